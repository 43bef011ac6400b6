# voucher_gateway/monitoring.py
from __future__ import annotations

import time
from typing import Any, Dict, List

from voucher_gateway.core.config import Settings
from voucher_gateway.errors import StoreError
from voucher_gateway.store import VoucherStore


def _check(name: str, ok: bool, detail: str = "", extra: Dict[str, Any] | None = None) -> Dict[str, Any]:
    row: Dict[str, Any] = {"name": name, "ok": bool(ok)}
    if detail:
        row["detail"] = detail
    if extra:
        row["extra"] = extra
    return row


def run_selftest(store: VoucherStore, settings: Settings, quick: bool = True) -> dict:
    checks: List[Dict[str, Any]] = []

    # --- ENV sanity ---
    checks.append(_check("env:DATABASE_URL", bool(settings.DATABASE_URL)))
    checks.append(_check("env:PUBLIC_BASE_URL", bool(settings.PUBLIC_BASE_URL), detail="used to build redeem links"))

    # --- DB ---
    db_ok = False
    db_err = ""
    t0 = time.time()
    try:
        store.ping()
        db_ok = True
    except StoreError as e:
        db_err = e.message

    checks.append(_check("db:select1", db_ok, detail=db_err, extra={"ms": int((time.time() - t0) * 1000)}))

    # --- Coupon counts (skipped for readiness probes) ---
    if not quick and db_ok:
        try:
            counts = store.count_by_status()
            checks.append(_check("db:coupons", True, extra=counts))
        except StoreError as e:
            checks.append(_check("db:coupons", False, detail=e.message))

    status = "ok" if all(c.get("ok") for c in checks) else "degraded"
    return {"status": status, "checks": checks}
