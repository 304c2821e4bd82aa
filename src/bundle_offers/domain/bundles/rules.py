from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum
from typing import Any, ClassVar


class DiscountType(str, Enum):
    FIXED = "fixed"
    PERCENTAGE = "percentage"
    BUNDLE_PRICE = "bundle_price"


@dataclass(frozen=True)
class DiscountRule:
    """Closed set of discount formulas; see the three subclasses below."""

    value: float
    type: ClassVar[DiscountType]

    def discount_for(self, subtotal: float) -> float:
        if not math.isfinite(subtotal) or subtotal <= 0:
            return 0.0
        return self._discount(subtotal)

    def _discount(self, subtotal: float) -> float:
        raise NotImplementedError

    @property
    def key(self) -> tuple[str, float]:
        return (self.type.value, float(self.value))

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type.value, "value": self.value}


@dataclass(frozen=True)
class Fixed(DiscountRule):
    type: ClassVar[DiscountType] = DiscountType.FIXED

    def _discount(self, subtotal: float) -> float:
        return min(subtotal, max(0.0, self.value))


@dataclass(frozen=True)
class Percentage(DiscountRule):
    type: ClassVar[DiscountType] = DiscountType.PERCENTAGE

    def _discount(self, subtotal: float) -> float:
        pct = max(0.0, min(100.0, self.value))
        return subtotal * pct / 100


@dataclass(frozen=True)
class BundlePrice(DiscountRule):
    """The selection is sold for `value`; the discount is what exceeds it."""

    type: ClassVar[DiscountType] = DiscountType.BUNDLE_PRICE

    def _discount(self, subtotal: float) -> float:
        return max(0.0, subtotal - max(0.0, self.value))


_RULE_CLASSES: dict[DiscountType, type[DiscountRule]] = {
    DiscountType.FIXED: Fixed,
    DiscountType.PERCENTAGE: Percentage,
    DiscountType.BUNDLE_PRICE: BundlePrice,
}


def parse_discount_type(raw: Any) -> DiscountType:
    """Unknown or missing types fall back to fixed."""
    try:
        return DiscountType(str(raw or "").strip())
    except ValueError:
        return DiscountType.FIXED


def make_rule(discount_type: DiscountType | str, value: Any) -> DiscountRule:
    kind = discount_type if isinstance(discount_type, DiscountType) else parse_discount_type(discount_type)
    return _RULE_CLASSES[kind](value=_non_negative(value))


def _non_negative(value: Any) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    if not math.isfinite(number) or number < 0:
        return 0.0
    return number
