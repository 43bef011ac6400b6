# voucher_gateway/models.py
from __future__ import annotations

from sqlalchemy import (
    Column,
    String,
    Numeric,
    DateTime,
    Text,
    Index,
    CheckConstraint,
)
from sqlalchemy.orm import declarative_base

Base = declarative_base()

STATUS_UNUSED = "unused"
STATUS_USED = "used"


class Voucher(Base):
    """One row per issued coupon. Rows are never deleted by the service."""

    __tablename__ = "coupons"

    id = Column(String(36), primary_key=True)  # uuid4, public handle

    # sha256 hex of the secret; the secret itself is never stored
    token_hash = Column(String(64), nullable=False)

    amount = Column(Numeric(24, 8), nullable=False)
    holder_name = Column(String(255), nullable=False)

    # unused / used
    status = Column(String(16), nullable=False, default=STATUS_UNUSED)

    created_at = Column(DateTime(timezone=True), nullable=False)
    used_at = Column(DateTime(timezone=True), nullable=True)
    expires_at = Column(DateTime(timezone=True), nullable=True)

    meta = Column(Text, nullable=True)  # canonical JSON, opaque to the service

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_coupons_amount_positive"),
        CheckConstraint("status IN ('unused', 'used')", name="ck_coupons_status"),
        CheckConstraint(
            "(status = 'used') = (used_at IS NOT NULL)",
            name="ck_coupons_used_at",
        ),
        Index("ix_coupons_token_hash", "token_hash"),
        Index("ix_coupons_status", "status"),
    )
