# voucher_gateway/errors.py
from __future__ import annotations


class VoucherError(Exception):
    """Base class for everything the voucher protocol raises."""

    kind = "voucher_error"
    status_code = 500

    def __init__(self, message: str | None = None):
        super().__init__(message or self.kind)
        self.message = message or self.kind

    def to_dict(self) -> dict:
        return {"error": self.kind, "message": self.message}


# -------- Codec --------

class DecodeError(VoucherError):
    kind = "malformed_payload"
    status_code = 400


# -------- Store --------

class StoreError(VoucherError):
    kind = "store_error"
    status_code = 500


class StoreConflict(StoreError):
    kind = "store_conflict"


class StoreUnavailable(StoreError):
    kind = "store_unavailable"


class NotRedeemable(VoucherError):
    """No unused, matching row for (id, fingerprint). Deliberately carries no cause."""

    kind = "not_redeemable"
    status_code = 400


# -------- Issuance --------

class IssueError(VoucherError):
    kind = "issue_error"
    status_code = 400


class InvalidAmount(IssueError):
    kind = "invalid_amount"


class InvalidHolder(IssueError):
    kind = "invalid_holder"


class InvalidMetadata(IssueError):
    kind = "invalid_metadata"


class InvalidExpiry(IssueError):
    kind = "invalid_expiry"


class IssueStoreFailure(IssueError):
    kind = "store_failure"
    status_code = 500


# -------- Redemption --------

class RedeemError(VoucherError):
    kind = "redeem_error"
    status_code = 400


class MalformedPayload(RedeemError):
    kind = "malformed_payload"


class RedeemStoreFailure(RedeemError):
    kind = "store_failure"
    status_code = 500
