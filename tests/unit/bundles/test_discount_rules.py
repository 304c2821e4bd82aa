from __future__ import annotations

import math

import pytest

from bundle_offers.domain.bundles.rules import BundlePrice, DiscountType, Fixed, Percentage, make_rule


@pytest.mark.parametrize(
    "rule, subtotal, expected",
    [
        (Percentage(10), 150.0, 15.0),
        (Percentage(150), 80.0, 80.0),
        (Percentage(-5), 80.0, 0.0),
        (Fixed(30), 150.0, 30.0),
        (Fixed(500), 150.0, 150.0),
        (BundlePrice(120), 150.0, 30.0),
        (BundlePrice(200), 150.0, 0.0),
    ],
)
def test_discount_formulas(rule, subtotal, expected):
    assert rule.discount_for(subtotal) == pytest.approx(expected)


@pytest.mark.parametrize("subtotal", [0.0, -10.0, math.nan, math.inf])
def test_non_positive_or_non_finite_subtotal_yields_zero(subtotal):
    for rule in (Percentage(10), Fixed(10), BundlePrice(10)):
        assert rule.discount_for(subtotal) == 0.0


def test_make_rule_coerces_unknown_type_and_bad_values():
    assert make_rule("mystery", 10) == Fixed(10)
    assert make_rule("percentage", -4) == Percentage(0)
    assert make_rule(DiscountType.BUNDLE_PRICE, "nan") == BundlePrice(0)
    assert make_rule("fixed", None) == Fixed(0)


def test_rule_key_and_dict():
    rule = Percentage(12.5)
    assert rule.key == ("percentage", 12.5)
    assert rule.to_dict() == {"type": "percentage", "value": 12.5}
