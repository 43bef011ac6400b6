import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import timedelta

import pytest

from voucher_gateway.credentials import PayloadFormat, encode_payload
from voucher_gateway.database import init_db, make_engine, make_sessionmaker
from voucher_gateway.errors import MalformedPayload, RedeemStoreFailure
from voucher_gateway.issuance import IssuanceService
from voucher_gateway.redemption import REJECT_REASON, RedeemOutcome, RedemptionService
from voucher_gateway.store import VoucherStore

from tests.conftest import T0


def test_issue_then_redeem_exactly_once(issuer, redeemer, store, clock):
    res = issuer.issue(5000, "A. Batbold")
    clock.advance(minutes=5)

    first = redeemer.redeem({"id": res.id, "secret": res.secret})
    assert first.success
    assert first.voucher.status == "used"
    assert first.voucher.amount == 5000
    assert first.voucher.used_at == T0 + timedelta(minutes=5)

    second = redeemer.redeem({"id": res.id, "secret": res.secret})
    assert second == RedeemOutcome(success=False, reason=REJECT_REASON)
    assert store.get(res.id).used_at == T0 + timedelta(minutes=5)


@pytest.mark.parametrize("fmt", list(PayloadFormat))
def test_any_payload_format_redeems(issuer, redeemer, fmt):
    res = issuer.issue(10, "A")
    payload = encode_payload(res.id, res.secret, fmt, base_url="https://x.test")
    assert redeemer.redeem(payload).success


def test_wrong_secret_is_rejected_and_changes_nothing(issuer, redeemer, store):
    res = issuer.issue(10, "A")
    out = redeemer.redeem({"id": res.id, "secret": "0" * 40})
    assert not out.success
    assert store.get(res.id).status == "unused"
    # the real secret still works afterwards
    assert redeemer.redeem({"id": res.id, "secret": res.secret}).success


def test_unknown_id_is_rejected(issuer, redeemer):
    res = issuer.issue(10, "A")
    out = redeemer.redeem({"id": "00000000-0000-0000-0000-000000000000", "secret": res.secret})
    assert out == RedeemOutcome.rejected()


def test_expired_voucher_is_rejected_and_stays_unused(issuer, redeemer, store, clock):
    res = issuer.issue(10, "A", expires_at=T0 + timedelta(days=1))
    clock.advance(days=1, seconds=1)

    out = redeemer.redeem({"id": res.id, "secret": res.secret})
    assert out == RedeemOutcome.rejected()
    row = store.get(res.id)
    assert row.status == "unused"
    assert row.used_at is None


def test_rejections_look_identical(issuer, redeemer, clock):
    used = issuer.issue(10, "A")
    redeemer.redeem({"id": used.id, "secret": used.secret})
    expired = issuer.issue(10, "A", expires_at=T0 + timedelta(hours=1))
    live = issuer.issue(10, "A")
    clock.advance(hours=2)

    outcomes = [
        redeemer.redeem({"id": used.id, "secret": used.secret}),
        redeemer.redeem({"id": expired.id, "secret": expired.secret}),
        redeemer.redeem({"id": live.id, "secret": "f" * 40}),
        redeemer.redeem({"id": "nope", "secret": live.secret}),
    ]
    assert len(set(outcomes)) == 1


def test_rejection_cause_goes_to_log_only(issuer, redeemer, caplog):
    res = issuer.issue(10, "A")
    redeemer.redeem({"id": res.id, "secret": res.secret})

    with caplog.at_level(logging.WARNING, logger="voucher_gateway.redemption"):
        out = redeemer.redeem({"id": res.id, "secret": res.secret})

    assert out.reason == REJECT_REASON
    assert "cause=already_used" in caplog.text
    assert res.secret not in caplog.text


@pytest.mark.parametrize("payload", [None, "", "garbage", {"id": "x"}, "https://x.test/redeem?cid=1"])
def test_malformed_payload_raises(redeemer, payload):
    with pytest.raises(MalformedPayload):
        redeemer.redeem(payload)


def test_store_failure_raises(redeemer):
    bare = VoucherStore(make_sessionmaker(make_engine("sqlite://")))
    with pytest.raises(RedeemStoreFailure):
        RedemptionService(bare, clock=lambda: T0).redeem({"id": "a", "secret": "b"})


def test_concurrent_redeem_has_one_winner(tmp_path):
    engine = make_engine(f"sqlite:///{tmp_path / 'race.db'}")
    init_db(engine)
    store = VoucherStore(make_sessionmaker(engine))
    res = IssuanceService(store, clock=lambda: T0).issue(5000, "A. Batbold")
    svc = RedemptionService(store, clock=lambda: T0 + timedelta(minutes=1))

    n = 10
    barrier = threading.Barrier(n)

    def attempt(_):
        barrier.wait()
        return svc.redeem(res.secret_payload)

    with ThreadPoolExecutor(max_workers=n) as pool:
        outcomes = list(pool.map(attempt, range(n)))

    assert sum(o.success for o in outcomes) == 1
    assert [o for o in outcomes if not o.success] == [RedeemOutcome.rejected()] * (n - 1)

    final = store.get(res.id)
    assert final.status == "used"
    assert final.used_at == T0 + timedelta(minutes=1)
    engine.dispose()


def test_padded_secret_is_rejected(issuer, redeemer, store):
    res = issuer.issue(10, "A")
    out = redeemer.redeem({"id": res.id, "secret": "  " + res.secret + "\n"})
    assert out == RedeemOutcome.rejected()
    assert store.get(res.id).status == "unused"
