# voucher_gateway/database.py
from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Generator

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, Session

from voucher_gateway.models import Base

logger = logging.getLogger(__name__)


def make_engine(database_url: str, **kwargs) -> Engine:
    if not database_url:
        raise RuntimeError("DATABASE_URL is not set")

    if database_url.startswith("sqlite"):
        connect_args = kwargs.pop("connect_args", {})
        # writers queue on the file lock instead of failing immediately
        connect_args.setdefault("check_same_thread", False)
        connect_args.setdefault("timeout", 30)
        kwargs["connect_args"] = connect_args

    return create_engine(database_url, pool_pre_ping=True, future=True, **kwargs)


def make_sessionmaker(engine: Engine) -> sessionmaker:
    return sessionmaker(
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,
        bind=engine,
        future=True,
    )


@contextmanager
def session_scope(factory: sessionmaker) -> Generator[Session, None, None]:
    db = factory()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def init_db(engine: Engine) -> None:
    """Create missing tables/indexes. Safe to call on every boot."""
    Base.metadata.create_all(bind=engine, checkfirst=True)
    logger.info("Schema ready on %s", engine.url.render_as_string(hide_password=True))
