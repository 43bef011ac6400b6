# voucher_gateway/main.py
from __future__ import annotations

import logging
from typing import Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from voucher_gateway.api import router as coupons_router
from voucher_gateway.core.config import Settings, settings as default_settings
from voucher_gateway.database import init_db, make_engine, make_sessionmaker
from voucher_gateway.issuance import IssuanceService
from voucher_gateway.monitoring import run_selftest
from voucher_gateway.redemption import RedemptionService
from voucher_gateway.store import VoucherStore

logger = logging.getLogger(__name__)


def create_app(
    settings: Optional[Settings] = None,
    store: Optional[VoucherStore] = None,
) -> FastAPI:
    """Wire settings -> store -> services onto one FastAPI instance.

    Passing ``store`` skips engine creation and schema init; the caller owns
    the database in that case (tests do this).
    """
    settings = settings or default_settings
    logging.basicConfig(
        level=settings.LOG_LEVEL.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    app = FastAPI(title="Voucher Gateway")

    engine = None
    if store is None:
        engine = make_engine(settings.DATABASE_URL)
        store = VoucherStore(make_sessionmaker(engine))

    app.state.settings = settings
    app.state.store = store
    app.state.issuance = IssuanceService(
        store,
        base_url=settings.PUBLIC_BASE_URL,
        redeem_path=settings.REDEEM_PATH,
        ttl_days=settings.VOUCHER_TTL_DAYS,
        secret_bytes=settings.SECRET_BYTES,
    )
    app.state.redemption = RedemptionService(store)

    @app.on_event("startup")
    async def startup_event():
        if engine is None:
            return
        try:
            init_db(engine)
            logger.info("DB initialized")
        except Exception:
            logger.exception("DB init failed (startup). Continuing to boot app.")

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(
            {"error": "validation_error", "message": str(exc.errors())},
            status_code=status.HTTP_400_BAD_REQUEST,
        )

    @app.get("/")
    async def root():
        return {"message": "Voucher Gateway is running"}

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    @app.get("/ready")
    def ready():
        result = run_selftest(app.state.store, settings, quick=True)
        return {"status": result.get("status", "unknown"), "checks": result.get("checks", [])}

    @app.get("/selftest")
    def selftest():
        return run_selftest(app.state.store, settings, quick=False)

    app.include_router(coupons_router)
    return app


app = create_app()
