from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Mapping, Optional

from bundle_offers.domain.bundles.rules import DiscountRule, make_rule, parse_discount_type

PRODUCT_REF_PREFIX = "product:"
MAX_GROUP_LENGTH = 50
MAX_USES_PER_ORDER = 50


def parse_product_ref(ref: str) -> str | None:
    """Product id when a component reference names a whole product."""
    if not ref.startswith(PRODUCT_REF_PREFIX):
        return None
    product_id = ref[len(PRODUCT_REF_PREFIX):].strip()
    return product_id or None


class BundleStatus(str, Enum):
    DRAFT = "draft"
    ACTIVE = "active"
    PAUSED = "paused"


@dataclass(frozen=True)
class BundleComponent:
    variant_id: str
    quantity: int
    group: str

    @property
    def product_ref(self) -> str | None:
        return parse_product_ref(self.variant_id)


@dataclass(frozen=True)
class Tier:
    min_qty: int
    rule: DiscountRule


@dataclass(frozen=True)
class Eligibility:
    must_include_all_groups: bool = True
    min_cart_qty: int = 1


@dataclass(frozen=True)
class Limits:
    max_uses_per_order: int = 1


@dataclass(frozen=True)
class BundleRules:
    rule: DiscountRule
    tiers: tuple[Tier, ...] = ()
    eligibility: Eligibility = field(default_factory=Eligibility)
    limits: Limits = field(default_factory=Limits)

    @property
    def is_tiered(self) -> bool:
        return bool(self.tiers)

    @property
    def smallest_tier_qty(self) -> int:
        return min(t.min_qty for t in self.tiers) if self.tiers else self.eligibility.min_cart_qty


@dataclass(frozen=True)
class Bundle:
    id: str
    store_id: str
    status: BundleStatus
    components: tuple[BundleComponent, ...]
    rules: BundleRules
    name: str = ""
    cover_variant_id: Optional[str] = None
    trigger_product_id: Optional[str] = None
    deleted_at: Optional[datetime] = None

    @property
    def is_visible(self) -> bool:
        return self.status == BundleStatus.ACTIVE and self.deleted_at is None

    @property
    def cover_component_id(self) -> str | None:
        """Declared cover variant if it is a component, else the first component."""
        cover = (self.cover_variant_id or "").strip()
        if cover and any(c.variant_id == cover for c in self.components):
            return cover
        return self.components[0].variant_id if self.components else None

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "Bundle":
        """Build a bundle from a stored document, normalizing loose values."""
        presentation = raw.get("presentation") or {}
        cover = raw.get("coverVariantId", presentation.get("coverVariantId"))
        trigger = str(raw.get("triggerProductId") or "").strip()
        try:
            status = BundleStatus(str(raw.get("status") or "draft").strip())
        except ValueError:
            status = BundleStatus.DRAFT
        return cls(
            id=str(raw.get("id", raw.get("_id", ""))).strip(),
            store_id=str(raw.get("storeId") or "").strip(),
            status=status,
            components=parse_components(raw.get("components")),
            rules=parse_rules(raw.get("rules") or {}),
            name=str(raw.get("name") or ""),
            cover_variant_id=str(cover).strip() if cover else None,
            trigger_product_id=trigger or None,
            deleted_at=_parse_dt(raw.get("deletedAt")),
        )


@dataclass(frozen=True)
class VariantSnapshot:
    variant_id: str
    product_id: str
    price: float
    is_active: bool = True

    @property
    def is_usable(self) -> bool:
        return (
            self.is_active
            and bool(str(self.product_id or "").strip())
            and isinstance(self.price, (int, float))
            and math.isfinite(self.price)
            and self.price >= 0
        )


@dataclass(frozen=True)
class SnapshotResult:
    snapshots: dict[str, VariantSnapshot]
    missing: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class SelectionLine:
    variant_id: str
    product_id: str
    unit_price: float
    quantity: int

    @property
    def cost(self) -> float:
        return self.unit_price * self.quantity


@dataclass(frozen=True)
class AppliedRule:
    rule: DiscountRule
    min_qty: int

    @property
    def key(self) -> tuple[str, float, int]:
        return (*self.rule.key, self.min_qty)

    def to_dict(self) -> dict[str, Any]:
        return {**self.rule.to_dict(), "minQty": self.min_qty}


@dataclass(frozen=True)
class Application:
    """One use of a bundle within a single cart evaluation."""

    selection: tuple[SelectionLine, ...]
    subtotal: float
    discount_amount: float
    applied_rule: AppliedRule
    tier: Optional[Tier] = None

    @property
    def matched_variant_ids(self) -> list[str]:
        return list(dict.fromkeys(line.variant_id for line in self.selection))

    @property
    def matched_product_ids(self) -> list[str]:
        return list(dict.fromkeys(line.product_id for line in self.selection))


def parse_components(raw: Any) -> tuple[BundleComponent, ...]:
    out: list[BundleComponent] = []
    for item in raw if isinstance(raw, (list, tuple)) else []:
        if isinstance(item, BundleComponent):
            out.append(item)
            continue
        if not isinstance(item, Mapping):
            continue
        variant_id = str(item.get("variantId") or "").strip()
        group = str(item.get("group") or "").strip()[:MAX_GROUP_LENGTH]
        if not variant_id or not group:
            continue
        out.append(BundleComponent(variant_id=variant_id, quantity=_floor_at_least(item.get("quantity"), 1), group=group))
    return tuple(out)


def parse_tiers(raw: Any) -> tuple[Tier, ...]:
    candidates: list[Tier] = []
    for item in raw if isinstance(raw, (list, tuple)) else []:
        if not isinstance(item, Mapping):
            continue
        value = _as_float(item.get("value", 0))
        if value is None or value < 0:
            continue
        min_qty = _floor_at_least(item.get("minQty", item.get("minCartQty", item.get("qty", 1))), 1)
        candidates.append(Tier(min_qty=min_qty, rule=make_rule(parse_discount_type(item.get("type")), value)))

    # one tier per breakpoint: the first one listed after sorting by min_qty desc
    candidates.sort(key=lambda t: -t.min_qty)
    seen: set[int] = set()
    unique: list[Tier] = []
    for tier in candidates:
        if tier.min_qty in seen:
            continue
        seen.add(tier.min_qty)
        unique.append(tier)
    return tuple(unique)


def parse_rules(raw: Mapping[str, Any]) -> BundleRules:
    eligibility = raw.get("eligibility") or {}
    limits = raw.get("limits") or {}
    max_uses = _floor_at_least(limits.get("maxUsesPerOrder"), 1)
    return BundleRules(
        rule=make_rule(parse_discount_type(raw.get("type")), raw.get("value", 0)),
        tiers=parse_tiers(raw.get("tiers")),
        eligibility=Eligibility(
            must_include_all_groups=eligibility.get("mustIncludeAllGroups") is not False,
            min_cart_qty=_floor_at_least(eligibility.get("minCartQty"), 1),
        ),
        limits=Limits(max_uses_per_order=min(MAX_USES_PER_ORDER, max_uses)),
    )


def _as_float(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def _floor_at_least(value: Any, minimum: int) -> int:
    number = _as_float(value)
    if number is None:
        return minimum
    return max(minimum, math.floor(number))


def _parse_dt(value: Any) -> datetime | None:
    if value in (None, ""):
        return None
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value).replace("Z", "+00:00"))
