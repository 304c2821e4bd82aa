from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping, Optional

from bundle_offers.domain.bundles.models import (
    Application,
    AppliedRule,
    Bundle,
    BundleComponent,
    SelectionLine,
    Tier,
    VariantSnapshot,
    parse_product_ref,
)
from bundle_offers.domain.cart.normalizer import NormalizedCart

# Remaining quantity per variant id. Treated as an immutable value: every
# operation below returns a new mapping instead of mutating its input.
Ledger = Mapping[str, int]

# (component reference, required quantity) options of one group
GroupOptions = tuple[tuple[str, int], ...]


@dataclass(frozen=True)
class CartIndex:
    """Cart lines that can take part in a bundle, keyed for lookup."""

    by_variant: dict[str, SelectionLine]
    by_product: dict[str, tuple[SelectionLine, ...]]

    @classmethod
    def build(cls, cart: NormalizedCart, snapshots: Mapping[str, VariantSnapshot]) -> "CartIndex":
        by_variant: dict[str, SelectionLine] = {}
        by_product: dict[str, list[SelectionLine]] = {}
        for line in cart.lines:
            snap = snapshots.get(line.variant_id)
            if snap is None or not snap.is_usable:
                continue
            eligible = SelectionLine(
                variant_id=line.variant_id,
                product_id=str(snap.product_id).strip(),
                unit_price=float(snap.price),
                quantity=line.quantity,
            )
            by_variant[line.variant_id] = eligible
            by_product.setdefault(eligible.product_id, []).append(eligible)
        return cls(by_variant=by_variant, by_product={k: tuple(v) for k, v in by_product.items()})


@dataclass(frozen=True)
class Pick:
    lines: tuple[SelectionLine, ...]
    cost: float


@dataclass(frozen=True)
class UseSelection:
    lines: tuple[SelectionLine, ...]
    ledger: dict[str, int]

    @property
    def subtotal(self) -> float:
        return sum(line.cost for line in self.lines)


def deduct(ledger: Ledger, lines: tuple[SelectionLine, ...]) -> dict[str, int]:
    remaining = dict(ledger)
    for line in lines:
        remaining[line.variant_id] = max(0, remaining.get(line.variant_id, 0)) - max(0, line.quantity)
    return remaining


def pick_variant(variant_id: str, required_qty: int, ledger: Ledger, index: CartIndex) -> Pick | None:
    line = index.by_variant.get(variant_id)
    if line is None or ledger.get(variant_id, 0) < required_qty:
        return None
    picked = SelectionLine(
        variant_id=line.variant_id,
        product_id=line.product_id,
        unit_price=line.unit_price,
        quantity=required_qty,
    )
    return Pick(lines=(picked,), cost=picked.cost)


def pick_product(product_id: str, required_qty: int, ledger: Ledger, index: CartIndex) -> Pick | None:
    """Allocate the quantity across the product's variants, most expensive first."""
    remaining = required_qty
    picked: list[SelectionLine] = []
    for line in sorted(index.by_product.get(product_id, ()), key=lambda l: -l.unit_price):
        if remaining <= 0:
            break
        have = max(0, ledger.get(line.variant_id, 0))
        take = min(have, remaining)
        if take <= 0:
            continue
        picked.append(
            SelectionLine(
                variant_id=line.variant_id,
                product_id=line.product_id,
                unit_price=line.unit_price,
                quantity=take,
            )
        )
        remaining -= take
    if remaining > 0:
        return None
    return Pick(lines=tuple(picked), cost=sum(line.cost for line in picked))


def pick_best_option(options: GroupOptions, ledger: Ledger, index: CartIndex) -> Pick | None:
    """Cheapest satisfiable option of a group; earlier options win ties."""
    best: Pick | None = None
    for ref, quantity in options:
        product_id = parse_product_ref(ref)
        if product_id is not None:
            pick = pick_product(product_id, quantity, ledger, index)
        else:
            pick = pick_variant(ref, quantity, ledger, index)
        if pick is None:
            continue
        if best is None or pick.cost < best.cost:
            best = pick
    return best


def build_groups(
    components: tuple[BundleComponent, ...], overrides: Optional[Mapping[str, int]] = None
) -> list[tuple[str, GroupOptions]]:
    """Components grouped by name, groups in lexicographic order."""
    grouped: dict[str, list[tuple[str, int]]] = {}
    for component in components:
        quantity = component.quantity
        if overrides and component.variant_id in overrides:
            quantity = max(1, int(overrides[component.variant_id]))
        grouped.setdefault(component.group, []).append((component.variant_id, quantity))
    return [(name, tuple(grouped[name])) for name in sorted(grouped)]


def select_for_use(
    groups: list[tuple[str, GroupOptions]],
    must_include_all_groups: bool,
    ledger: Ledger,
    index: CartIndex,
) -> UseSelection | None:
    if not groups:
        return None

    if not must_include_all_groups:
        best: Pick | None = None
        for _, options in groups:
            pick = pick_best_option(options, ledger, index)
            if pick is None:
                continue
            if best is None or pick.cost < best.cost:
                best = pick
        if best is None or not best.lines:
            return None
        return UseSelection(lines=best.lines, ledger=deduct(ledger, best.lines))

    selection: list[SelectionLine] = []
    remaining: dict[str, int] = dict(ledger)
    for _, options in groups:
        pick = pick_best_option(options, remaining, index)
        if pick is None or not pick.lines:
            return None
        selection.extend(pick.lines)
        remaining = deduct(remaining, pick.lines)
    return UseSelection(lines=tuple(selection), ledger=remaining)


def compute_bundle_applications(
    bundle: Bundle, cart: NormalizedCart, snapshots: Mapping[str, VariantSnapshot]
) -> list[Application]:
    """
    Compute the uses of one bundle against a normalized cart.

    Returns an empty list when the bundle has no components or the cart does
    not reach the bundle's minimum quantity (the smallest tier for tiered
    bundles). Uses are bounded by maxUsesPerOrder and consume a remaining
    availability ledger that is private to this bundle.
    """
    rules = bundle.rules
    if not bundle.components:
        return []

    total_qty = cart.total_quantity
    required = rules.smallest_tier_qty if rules.is_tiered else rules.eligibility.min_cart_qty
    if total_qty < required:
        return []

    index = CartIndex.build(cart, snapshots)
    ledger: Ledger = cart.quantities()
    max_uses = rules.limits.max_uses_per_order
    must_include_all = rules.eligibility.must_include_all_groups

    if not rules.is_tiered:
        return _untiered_applications(bundle, index, ledger, max_uses, must_include_all)
    return _tiered_applications(bundle, index, ledger, max_uses, must_include_all)


def _untiered_applications(
    bundle: Bundle, index: CartIndex, ledger: Ledger, max_uses: int, must_include_all: bool
) -> list[Application]:
    rules = bundle.rules
    groups = build_groups(bundle.components)
    applied_rule = AppliedRule(rule=rules.rule, min_qty=rules.eligibility.min_cart_qty)
    applications: list[Application] = []
    for _ in range(max_uses):
        use = select_for_use(groups, must_include_all, ledger, index)
        if use is None:
            break
        ledger = use.ledger
        subtotal = use.subtotal
        applications.append(
            Application(
                selection=use.lines,
                subtotal=subtotal,
                discount_amount=rules.rule.discount_for(subtotal),
                applied_rule=applied_rule,
            )
        )
    return applications


def _tiered_applications(
    bundle: Bundle, index: CartIndex, ledger: Ledger, max_uses: int, must_include_all: bool
) -> list[Application]:
    cover = bundle.cover_component_id
    tiers = sorted(bundle.rules.tiers, key=lambda t: t.min_qty)
    tier_groups = [
        (tier, build_groups(bundle.components, {cover: tier.min_qty} if cover else None)) for tier in tiers
    ]

    applications: list[Application] = []
    for _ in range(max_uses):
        best: tuple[Tier, UseSelection, float] | None = None
        for tier, groups in tier_groups:
            use = select_for_use(groups, must_include_all, ledger, index)
            if use is None:
                continue
            discount = tier.rule.discount_for(use.subtotal)
            # best value for the customer, not the highest breakpoint
            if best is None or discount > best[2]:
                best = (tier, use, discount)
        if best is None:
            break
        tier, use, discount = best
        ledger = use.ledger
        applications.append(
            Application(
                selection=use.lines,
                subtotal=use.subtotal,
                discount_amount=discount,
                applied_rule=AppliedRule(rule=tier.rule, min_qty=tier.min_qty),
                tier=tier,
            )
        )
    return applications
