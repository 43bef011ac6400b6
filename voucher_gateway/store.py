# voucher_gateway/store.py
from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, Optional

from sqlalchemy import func, or_, select, text, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from voucher_gateway import models
from voucher_gateway.database import session_scope
from voucher_gateway.errors import NotRedeemable, StoreConflict, StoreUnavailable

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """SQLite hands back naive datetimes; everything we store is UTC."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def canonical_json(meta: Any) -> Optional[str]:
    if meta is None:
        return None
    return json.dumps(meta, ensure_ascii=False, sort_keys=True, separators=(",", ":"))


@dataclass(frozen=True)
class VoucherRecord:
    """Detached snapshot of a coupons row."""

    id: str
    token_hash: str
    amount: Decimal
    holder_name: str
    status: str
    created_at: datetime
    used_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    meta: Any = None

    @classmethod
    def from_row(cls, row: models.Voucher) -> "VoucherRecord":
        return cls(
            id=row.id,
            token_hash=row.token_hash,
            amount=Decimal(str(row.amount)),
            holder_name=row.holder_name,
            status=row.status,
            created_at=as_utc(row.created_at),
            used_at=as_utc(row.used_at),
            expires_at=as_utc(row.expires_at),
            meta=(json.loads(row.meta) if row.meta else None),
        )

    @property
    def is_used(self) -> bool:
        return self.status == models.STATUS_USED

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at is not None and as_utc(now) > self.expires_at

    def public_dict(self) -> Dict[str, Any]:
        # never exposes token_hash
        return {
            "id": self.id,
            "amount": self.amount,
            "holder_name": self.holder_name,
            "status": self.status,
            "created_at": self.created_at,
            "used_at": self.used_at,
            "expires_at": self.expires_at,
            "metadata": self.meta,
        }


class VoucherStore:
    """Durable coupon rows plus the one atomic primitive redemption relies on.

    Every call runs in its own short transaction; the store holds no state
    besides the session factory, so one instance can be shared by any number
    of concurrent requests.
    """

    def __init__(self, session_factory: sessionmaker):
        self._factory = session_factory

    def insert(self, voucher: VoucherRecord) -> VoucherRecord:
        row = models.Voucher(
            id=voucher.id,
            token_hash=voucher.token_hash,
            amount=voucher.amount,
            holder_name=voucher.holder_name,
            status=models.STATUS_UNUSED,
            created_at=as_utc(voucher.created_at),
            used_at=None,
            expires_at=as_utc(voucher.expires_at),
            meta=canonical_json(voucher.meta),
        )
        try:
            with session_scope(self._factory) as db:
                db.add(row)
                db.flush()
                db.refresh(row)
                return VoucherRecord.from_row(row)
        except IntegrityError as e:
            logger.error("Coupon insert conflict id=%s", voucher.id)
            raise StoreConflict(f"coupon {voucher.id} already exists") from e
        except SQLAlchemyError as e:
            logger.exception("Coupon insert failed id=%s", voucher.id)
            raise StoreUnavailable("coupon store unavailable") from e

    def try_redeem(
        self,
        voucher_id: str,
        token_hash: str,
        *,
        now: Optional[datetime] = None,
    ) -> VoucherRecord:
        """Flip one unused, unexpired, matching row to used in a single UPDATE.

        The predicate and the write are one statement, so among concurrent
        callers at most one sees rowcount == 1. Raises NotRedeemable when no
        row matched; nothing is written in that case.
        """
        now = as_utc(now or utcnow())
        stmt = (
            update(models.Voucher)
            .where(
                models.Voucher.id == voucher_id,
                models.Voucher.token_hash == token_hash,
                models.Voucher.status == models.STATUS_UNUSED,
                or_(models.Voucher.expires_at.is_(None), models.Voucher.expires_at >= now),
            )
            .values(status=models.STATUS_USED, used_at=now)
            .execution_options(synchronize_session=False)
        )
        try:
            with session_scope(self._factory) as db:
                result = db.execute(stmt)
                if result.rowcount != 1:
                    raise NotRedeemable()
                row = db.get(models.Voucher, voucher_id)
                return VoucherRecord.from_row(row)
        except SQLAlchemyError as e:
            logger.exception("Coupon redeem failed id=%s", voucher_id)
            raise StoreUnavailable("coupon store unavailable") from e

    def get(self, voucher_id: str) -> Optional[VoucherRecord]:
        try:
            with session_scope(self._factory) as db:
                row = db.get(models.Voucher, voucher_id)
                return VoucherRecord.from_row(row) if row else None
        except SQLAlchemyError as e:
            logger.exception("Coupon lookup failed id=%s", voucher_id)
            raise StoreUnavailable("coupon store unavailable") from e

    # -------- ops helpers --------

    def ping(self) -> None:
        try:
            with session_scope(self._factory) as db:
                db.execute(text("SELECT 1"))
        except SQLAlchemyError as e:
            raise StoreUnavailable(repr(e)) from e

    def count_by_status(self) -> Dict[str, int]:
        try:
            with session_scope(self._factory) as db:
                rows = db.execute(
                    select(models.Voucher.status, func.count(models.Voucher.id))
                    .group_by(models.Voucher.status)
                ).all()
        except SQLAlchemyError as e:
            raise StoreUnavailable(repr(e)) from e
        counts = {models.STATUS_UNUSED: 0, models.STATUS_USED: 0}
        counts.update({status: int(n) for status, n in rows})
        return counts
