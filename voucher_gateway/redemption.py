# voucher_gateway/redemption.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Optional

from voucher_gateway import credentials
from voucher_gateway.errors import (
    DecodeError,
    MalformedPayload,
    NotRedeemable,
    RedeemStoreFailure,
    StoreError,
)
from voucher_gateway.store import VoucherRecord, VoucherStore, as_utc, utcnow

logger = logging.getLogger(__name__)

REJECT_REASON = "invalid_or_used"
REJECT_MESSAGE = "Invalid or already used coupon"


@dataclass(frozen=True)
class RedeemOutcome:
    success: bool
    voucher: Optional[VoucherRecord] = None
    reason: Optional[str] = None

    @classmethod
    def accepted(cls, voucher: VoucherRecord) -> "RedeemOutcome":
        return cls(success=True, voucher=voucher)

    @classmethod
    def rejected(cls) -> "RedeemOutcome":
        # same shape for unknown id, wrong secret, used and expired
        return cls(success=False, reason=REJECT_REASON)


class RedemptionService:
    def __init__(self, store: VoucherStore, *, clock: Callable[[], datetime] = utcnow):
        self.store = store
        self.clock = clock

    def redeem(self, payload: Any) -> RedeemOutcome:
        """
        Consume a presented credential.

        - undecodable payload -> MalformedPayload
        - no unused, unexpired row matching (id, fingerprint) -> rejected outcome
        - store trouble -> RedeemStoreFailure (nothing was written; safe to retry)
        """
        try:
            voucher_id, secret = credentials.decode_payload(payload)
        except DecodeError as e:
            logger.warning("Redeem with malformed payload: %s", e.message)
            raise MalformedPayload(e.message) from e

        token_hash = credentials.fingerprint(secret)
        now = as_utc(self.clock())

        try:
            voucher = self.store.try_redeem(voucher_id, token_hash, now=now)
        except NotRedeemable:
            logger.warning(
                "Coupon redeem rejected id=%s cause=%s",
                voucher_id,
                self._diagnose(voucher_id, token_hash, now),
            )
            return RedeemOutcome.rejected()
        except StoreError as e:
            raise RedeemStoreFailure("coupon store unavailable") from e

        logger.info("Coupon redeemed id=%s amount=%s", voucher.id, voucher.amount)
        return RedeemOutcome.accepted(voucher)

    def _diagnose(self, voucher_id: str, token_hash: str, now: datetime) -> str:
        """Operator-side cause of a rejection. Only ever written to the log."""
        try:
            row = self.store.get(voucher_id)
        except StoreError:
            return "lookup_failed"
        if row is None:
            return "unknown_id"
        if row.token_hash != token_hash:
            return "bad_secret"
        if row.is_used:
            return "already_used"
        if row.is_expired(now):
            return "expired"
        return "lost_race"
