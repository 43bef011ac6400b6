# voucher_gateway/issuance.py
from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Dict, Optional

from voucher_gateway import credentials
from voucher_gateway.credentials import PayloadFormat
from voucher_gateway.errors import (
    InvalidAmount,
    InvalidExpiry,
    InvalidHolder,
    InvalidMetadata,
    IssueStoreFailure,
    StoreError,
)
from voucher_gateway.store import VoucherRecord, VoucherStore, as_utc, canonical_json, utcnow

logger = logging.getLogger(__name__)

DEFAULT_TTL_DAYS = 90
MAX_HOLDER_LEN = 255
AMOUNT_PLACES = Decimal("0.00000001")  # matches Numeric(24, 8)
AMOUNT_LIMIT = Decimal("1e16")


def _to_amount(x: Any) -> Decimal:
    # bool is an int subclass; True is not a voucher value
    if x is None or isinstance(x, bool):
        raise InvalidAmount("amount must be a positive number")
    if isinstance(x, str):
        x = x.strip()
    try:
        amt = x if isinstance(x, Decimal) else Decimal(str(x))
    except (InvalidOperation, ValueError, TypeError):
        raise InvalidAmount("amount must be a positive number") from None
    if not amt.is_finite() or amt <= 0:
        raise InvalidAmount("amount must be > 0")
    if amt >= AMOUNT_LIMIT:
        raise InvalidAmount("amount must be below 1e16")
    if amt != amt.quantize(AMOUNT_PLACES):
        raise InvalidAmount("amount must have at most 8 decimal places")
    return amt


def _check_metadata(metadata: Any) -> None:
    try:
        canonical_json(metadata)
    except (TypeError, ValueError) as e:
        raise InvalidMetadata(f"metadata must be JSON-serializable: {e}") from None


@dataclass(frozen=True)
class IssueResult:
    id: str
    secret: str
    secret_payload: str
    amount: Decimal
    holder_name: str
    created_at: datetime
    expires_at: Optional[datetime]

    def record_payload(self) -> Dict[str, str]:
        return credentials.encode_payload(self.id, self.secret, PayloadFormat.RECORD)


class IssuanceService:
    """Creates coupons and hands out the secret exactly once."""

    def __init__(
        self,
        store: VoucherStore,
        *,
        base_url: str = "",
        redeem_path: str = "/redeem",
        ttl_days: int = DEFAULT_TTL_DAYS,
        secret_bytes: int = credentials.DEFAULT_SECRET_BYTES,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.base_url = base_url
        self.redeem_path = redeem_path
        self.ttl = timedelta(days=ttl_days)
        self.secret_bytes = secret_bytes
        self.clock = clock

    def issue(
        self,
        amount: Any,
        holder_name: Any,
        expires_at: Optional[datetime] = None,
        metadata: Any = None,
    ) -> IssueResult:
        amt = _to_amount(amount)

        holder = holder_name.strip() if isinstance(holder_name, str) else ""
        if not holder:
            raise InvalidHolder("holder_name is required")
        if len(holder) > MAX_HOLDER_LEN:
            raise InvalidHolder(f"holder_name must be at most {MAX_HOLDER_LEN} characters")

        if expires_at is not None and not isinstance(expires_at, datetime):
            raise InvalidExpiry("expires_at must be a timestamp")

        now = as_utc(self.clock())
        effective_expiry = as_utc(expires_at) if expires_at is not None else now + self.ttl
        if effective_expiry <= now:
            raise InvalidExpiry("expires_at must be in the future")

        _check_metadata(metadata)

        secret = credentials.generate_secret(self.secret_bytes)
        record = VoucherRecord(
            id=str(uuid.uuid4()),
            token_hash=credentials.fingerprint(secret),
            amount=amt,
            holder_name=holder,
            status="unused",
            created_at=now,
            expires_at=effective_expiry,
            meta=metadata,
        )

        try:
            saved = self.store.insert(record)
        except StoreError as e:
            raise IssueStoreFailure("could not create coupon") from e

        logger.info("Coupon issued id=%s amount=%s expires_at=%s", saved.id, saved.amount, saved.expires_at)

        return IssueResult(
            id=saved.id,
            secret=secret,
            secret_payload=credentials.encode_payload(
                saved.id,
                secret,
                PayloadFormat.LINK,
                base_url=self.base_url,
                redeem_path=self.redeem_path,
            ),
            amount=saved.amount,
            holder_name=saved.holder_name,
            created_at=saved.created_at,
            expires_at=saved.expires_at,
        )
