# voucher_gateway/schemas.py
from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class IssueRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    # validated by the issuance service so the error kinds stay ours
    amount: Any = None
    holder_name: Any = Field(default=None, validation_alias=AliasChoices("holder_name", "user_name"))
    expires_at: Optional[datetime] = None
    metadata: Any = Field(default=None, validation_alias=AliasChoices("metadata", "meta"))


class IssueOut(BaseModel):
    id: str
    secret: str
    secret_payload: str
    record: Dict[str, str]
    amount: float
    holder_name: str
    created_at: datetime
    expires_at: Optional[datetime] = None


class VoucherOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    amount: float
    holder_name: str
    status: str
    created_at: datetime
    used_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    metadata: Any = Field(default=None, validation_alias=AliasChoices("metadata", "meta"))


class RedeemOut(BaseModel):
    success: bool
    voucher: Optional[VoucherOut] = None
    reason: Optional[str] = None
    message: Optional[str] = None
