"""Pytest fixtures: isolated SQLite stores, a controllable clock, wired services."""
from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool

from voucher_gateway.core.config import Settings
from voucher_gateway.database import init_db, make_engine, make_sessionmaker
from voucher_gateway.issuance import IssuanceService
from voucher_gateway.main import create_app
from voucher_gateway.redemption import RedemptionService
from voucher_gateway.store import VoucherStore

BASE_URL = "https://coupons.example.test"
T0 = datetime(2026, 1, 15, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self, now: datetime = T0):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture
def engine():
    eng = make_engine("sqlite://", poolclass=StaticPool)
    init_db(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def store(engine) -> VoucherStore:
    return VoucherStore(make_sessionmaker(engine))


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def issuer(store, clock) -> IssuanceService:
    return IssuanceService(store, base_url=BASE_URL, clock=clock)


@pytest.fixture
def redeemer(store, clock) -> RedemptionService:
    return RedemptionService(store, clock=clock)


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        DATABASE_URL="sqlite://",
        PUBLIC_BASE_URL=BASE_URL,
        LOG_LEVEL="DEBUG",
    )


@pytest.fixture
def client(settings, store):
    app = create_app(settings=settings, store=store)
    with TestClient(app) as c:
        yield c
