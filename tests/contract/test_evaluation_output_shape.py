from datetime import date

from bundle_offers.adapters.platform.models import CouponPayload, SpecialOfferPayload
from bundle_offers.domain.bundles import Bundle, VariantSnapshot, evaluate_bundles
from bundle_offers.domain.offers import OfferDraft

BUNDLE = Bundle.from_dict(
    {
        "id": "b1",
        "storeId": "s1",
        "status": "active",
        "components": [{"variantId": "va", "group": "a"}, {"variantId": "vb", "group": "b"}],
        "rules": {"type": "percentage", "value": 10},
    }
)
SNAPSHOTS = {"va": VariantSnapshot("va", "pa", 100.0), "vb": VariantSnapshot("vb", "pb", 50.0)}
DRAFT = OfferDraft(
    code="BNDLABC",
    name="Bundle offer BNDLABC",
    discount_type="fixed",
    amount=15.0,
    minimum_amount=16.0,
    product_ids=("pa", "pb"),
    starts_on=date(2024, 3, 1),
    expires_on=date(2024, 3, 2),
)


def test_evaluation_result_shape():
    """Test that the evaluation result exposes the fields storefront callers read."""
    result = evaluate_bundles(
        "s1", [BUNDLE], [{"variantId": "vb", "quantity": 1}, {"variantId": "va", "quantity": 1}], SNAPSHOTS
    ).to_dict()

    assert set(result) == {"cart", "cartHash", "perBundle", "applied"}
    assert result["cart"] == [{"variantId": "va", "quantity": 1}, {"variantId": "vb", "quantity": 1}]
    assert len(result["cartHash"]) == 64
    assert set(result["perBundle"][0]) == {
        "bundleId",
        "matched",
        "applied",
        "uses",
        "discountAmount",
        "matchedVariantIds",
        "matchedProductIds",
    }
    applied = result["applied"]
    assert set(applied) == {"bundles", "matchedProductIds", "matchedVariantIds", "totalDiscount", "rule"}
    assert applied["totalDiscount"] == 15
    assert applied["rule"] == {"type": "percentage", "value": 10}
    assert applied["bundles"][0]["appliedRules"] == [{"type": "percentage", "value": 10, "minQty": 1}]


def test_coupon_payload_shape():
    """Test that coupon payloads carry the platform's required fields."""
    payload = CouponPayload.from_draft(DRAFT).model_dump()
    assert {
        "code",
        "type",
        "amount",
        "minimum_amount",
        "include_product_ids",
        "start_date",
        "expiry_date",
        "usage_limit",
        "usage_limit_per_user",
    } <= set(payload)
    assert payload["minimum_amount"] > payload["amount"]


def test_special_offer_payload_shape():
    """Test that special offer payloads carry buy/get blocks."""
    payload = SpecialOfferPayload.from_draft(DRAFT).model_dump()
    assert payload["buy"]["products"] == ["pa", "pb"]
    assert payload["get"]["discount_amount"] == 15
    assert payload["min_purchase_amount"] == 16
    assert payload["message"] == "Bundle discount 15"
