from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from bundle_offers.domain.offers import (
    CartIdentity,
    IllegalStatusTransition,
    OfferKind,
    OfferStatus,
    PromotionRecord,
)

NOW = datetime(2024, 3, 1, 12, tzinfo=timezone.utc)


def make_record(**overrides) -> PromotionRecord:
    values = dict(
        id="r1",
        store_id="s1",
        identity=CartIdentity(cart_key="cart-1", cart_hash="h"),
        code="BNDL1",
        kind=OfferKind.COUPON,
        discount_type="fixed",
        discount_amount=15.0,
        issued_amount=15.0,
        include_product_ids=frozenset({"p2", "p1"}),
        applied_bundle_ids=frozenset({"b1"}),
        bundles_summary=(),
        expires_at=NOW + timedelta(hours=24),
        issued_at=NOW,
        last_seen_at=NOW,
    )
    values.update(overrides)
    return PromotionRecord(**values)


def test_new_record_is_issued():
    assert make_record().status == OfferStatus.ISSUED


@pytest.mark.parametrize(
    "target", [OfferStatus.REDEEMED, OfferStatus.SUPERSEDED, OfferStatus.EXPIRED, OfferStatus.CLEARED]
)
def test_issued_can_move_to_any_terminal_state(target):
    record = make_record()
    record.transition(target)
    assert record.status == target


def test_superseded_can_only_expire():
    record = make_record()
    record.status = OfferStatus.SUPERSEDED
    with pytest.raises(IllegalStatusTransition):
        record.transition(OfferStatus.ISSUED)
    record.transition(OfferStatus.EXPIRED)
    assert record.status == OfferStatus.EXPIRED


@pytest.mark.parametrize("terminal", [OfferStatus.REDEEMED, OfferStatus.EXPIRED, OfferStatus.CLEARED])
def test_terminal_states_are_final(terminal):
    record = make_record()
    record.transition(terminal)
    for target in OfferStatus:
        if target == terminal:
            continue
        with pytest.raises(IllegalStatusTransition):
            record.transition(target)


def test_same_status_is_a_no_op():
    record = make_record()
    record.transition(OfferStatus.ISSUED)
    assert record.status == OfferStatus.ISSUED


def test_accepts_raw_status_values():
    record = make_record()
    record.transition("redeemed")
    assert record.status == OfferStatus.REDEEMED


def test_is_expired_at_boundary():
    record = make_record()
    assert not record.is_expired(NOW)
    assert record.is_expired(NOW + timedelta(hours=24))


def test_cart_identity_group_key():
    assert CartIdentity(cart_key="k", cart_hash="h").group_key == "key:k"
    assert CartIdentity(cart_hash="h").group_key == "hash:h"
    with pytest.raises(ValueError):
        CartIdentity()


def test_to_dict_sorts_ids():
    data = make_record().to_dict()
    assert data["includeProductIds"] == ["p1", "p2"]
    assert data["status"] == "issued"
    assert data["cartKey"] == "cart-1"
    assert data["redeemedAt"] is None
