# voucher_gateway/api.py
from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Body, Request, status
from fastapi.responses import JSONResponse

from voucher_gateway.errors import IssueError, RedeemError, StoreError
from voucher_gateway.issuance import IssuanceService
from voucher_gateway.redemption import REJECT_MESSAGE, RedemptionService
from voucher_gateway.schemas import IssueOut, IssueRequest, RedeemOut, VoucherOut
from voucher_gateway.store import VoucherRecord, VoucherStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["coupons"])


def voucher_out(record: VoucherRecord) -> VoucherOut:
    return VoucherOut(
        id=record.id,
        amount=float(record.amount),
        holder_name=record.holder_name,
        status=record.status,
        created_at=record.created_at,
        used_at=record.used_at,
        expires_at=record.expires_at,
        metadata=record.meta,
    )


def _issuer(request: Request) -> IssuanceService:
    return request.app.state.issuance


def _redeemer(request: Request) -> RedemptionService:
    return request.app.state.redemption


def _store(request: Request) -> VoucherStore:
    return request.app.state.store


def _error(exc: IssueError | RedeemError | StoreError) -> JSONResponse:
    return JSONResponse(exc.to_dict(), status_code=exc.status_code)


@router.post("/coupons", status_code=status.HTTP_201_CREATED, response_model=IssueOut)
@router.post("/create-coupon", status_code=status.HTTP_201_CREATED, response_model=IssueOut)
def create_coupon(body: IssueRequest, request: Request):
    try:
        res = _issuer(request).issue(
            amount=body.amount,
            holder_name=body.holder_name,
            expires_at=body.expires_at,
            metadata=body.metadata,
        )
    except IssueError as e:
        logger.info("Coupon issue refused: %s (%s)", e.kind, e.message)
        return _error(e)

    return IssueOut(
        id=res.id,
        secret=res.secret,
        secret_payload=res.secret_payload,
        record=res.record_payload(),
        amount=float(res.amount),
        holder_name=res.holder_name,
        created_at=res.created_at,
        expires_at=res.expires_at,
    )


def _redeem_input(body: Any) -> Any:
    # {"payload": "<link | json | data url>"} wraps a raw scanned string
    if isinstance(body, dict) and set(body) == {"payload"}:
        return body["payload"]
    return body


@router.post("/redeem", response_model=RedeemOut)
def redeem_coupon(request: Request, body: Any = Body(default=None)):
    try:
        outcome = _redeemer(request).redeem(_redeem_input(body))
    except RedeemError as e:
        return _error(e)

    if not outcome.success:
        return JSONResponse(
            {"success": False, "reason": outcome.reason, "message": REJECT_MESSAGE},
            status_code=status.HTTP_400_BAD_REQUEST,
        )
    return RedeemOut(success=True, voucher=voucher_out(outcome.voucher))


@router.get("/coupons/{coupon_id}", response_model=VoucherOut)
def get_coupon(coupon_id: str, request: Request):
    try:
        record = _store(request).get(coupon_id)
    except StoreError as e:
        return _error(e)
    if record is None:
        return JSONResponse(
            {"error": "not_found", "message": "coupon not found"},
            status_code=status.HTTP_404_NOT_FOUND,
        )
    return voucher_out(record)
