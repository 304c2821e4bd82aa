from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Iterable, Mapping, Optional, Union

from bundle_offers.domain.bundles.matcher import compute_bundle_applications
from bundle_offers.domain.bundles.models import (
    Application,
    AppliedRule,
    Bundle,
    SnapshotResult,
    VariantSnapshot,
)
from bundle_offers.domain.bundles.rules import DiscountRule
from bundle_offers.domain.cart.normalizer import NormalizedCart, normalize_cart
from bundle_offers.domain.common.money import round_money

logger = logging.getLogger(__name__)

Snapshots = Union[Mapping[str, VariantSnapshot], SnapshotResult]


@dataclass(frozen=True)
class BundleEvaluation:
    bundle_id: str
    matched: bool
    applied: bool
    uses: int
    discount_amount: float
    matched_variant_ids: list[str]
    matched_product_ids: list[str]

    def to_dict(self) -> dict[str, Any]:
        return {
            "bundleId": self.bundle_id,
            "matched": self.matched,
            "applied": self.applied,
            "uses": self.uses,
            "discountAmount": self.discount_amount,
            "matchedVariantIds": list(self.matched_variant_ids),
            "matchedProductIds": list(self.matched_product_ids),
        }


@dataclass(frozen=True)
class AppliedBundle:
    bundle_id: str
    uses: int
    discount_amount: float
    matched_variant_ids: list[str]
    matched_product_ids: list[str]
    applied_rules: list[AppliedRule]

    def to_dict(self) -> dict[str, Any]:
        return {
            "bundleId": self.bundle_id,
            "uses": self.uses,
            "discountAmount": self.discount_amount,
            "matchedVariantIds": list(self.matched_variant_ids),
            "matchedProductIds": list(self.matched_product_ids),
            "appliedRules": [r.to_dict() for r in self.applied_rules],
        }


@dataclass(frozen=True)
class AppliedSummary:
    bundles: list[AppliedBundle] = field(default_factory=list)
    matched_product_ids: list[str] = field(default_factory=list)
    matched_variant_ids: list[str] = field(default_factory=list)
    total_discount: float = 0.0
    rule: Optional[DiscountRule] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "bundles": [b.to_dict() for b in self.bundles],
            "matchedProductIds": list(self.matched_product_ids),
            "matchedVariantIds": list(self.matched_variant_ids),
            "totalDiscount": self.total_discount,
            "rule": self.rule.to_dict() if self.rule else None,
        }


@dataclass(frozen=True)
class EvaluationResult:
    normalized_cart: NormalizedCart
    per_bundle: list[BundleEvaluation]
    applied: AppliedSummary

    @property
    def cart_hash(self) -> str:
        return self.normalized_cart.cart_hash

    def to_dict(self) -> dict[str, Any]:
        return {
            "cart": self.normalized_cart.to_list(),
            "cartHash": self.cart_hash,
            "perBundle": [b.to_dict() for b in self.per_bundle],
            "applied": self.applied.to_dict(),
        }


@dataclass(frozen=True)
class AuditEntry:
    store_id: str
    bundle_id: str
    matched_variant_ids: list[str]
    cart_hash: str
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass(frozen=True)
class DraftEvaluation:
    normalized_cart: NormalizedCart
    matched: bool
    applied: bool
    uses: int
    discount_amount: float
    matched_variant_ids: list[str]
    matched_product_ids: list[str]
    applications: list[Application]


@dataclass(frozen=True)
class _PreEvaluation:
    bundle: Bundle
    group_key: str
    applications: list[Application]
    discount_amount: float
    matched_variant_ids: list[str]
    matched_product_ids: list[str]
    applied_rules: list[AppliedRule]

    @property
    def matched(self) -> bool:
        return bool(self.applications)


def _snapshot_map(snapshots: Snapshots | None) -> Mapping[str, VariantSnapshot]:
    if snapshots is None:
        return {}
    if isinstance(snapshots, SnapshotResult):
        return snapshots.snapshots
    return snapshots


def _union(values: Iterable[Iterable[str]]) -> list[str]:
    return [v for v in dict.fromkeys(item for group in values for item in group) if v]


def _distinct_rules(applications: list[Application]) -> list[AppliedRule]:
    seen: set[tuple[str, float, int]] = set()
    rules: list[AppliedRule] = []
    for application in applications:
        rule = application.applied_rule
        if rule.key in seen:
            continue
        seen.add(rule.key)
        rules.append(rule)
    return rules


def _pre_evaluate(bundle: Bundle, cart: NormalizedCart, snapshots: Mapping[str, VariantSnapshot]) -> _PreEvaluation:
    applications = compute_bundle_applications(bundle, cart, snapshots)
    trigger = (bundle.trigger_product_id or "").strip()
    return _PreEvaluation(
        bundle=bundle,
        group_key=f"trigger:{trigger}" if trigger else f"bundle:{bundle.id}",
        applications=applications,
        discount_amount=sum(a.discount_amount for a in applications),
        matched_variant_ids=_union(a.matched_variant_ids for a in applications),
        matched_product_ids=_union(a.matched_product_ids for a in applications),
        applied_rules=_distinct_rules(applications),
    )


def single_rule(bundles: list[AppliedBundle]) -> DiscountRule | None:
    """The applied rule when exactly one distinct (type, value) pair is in play."""
    rules: dict[tuple[str, float], DiscountRule] = {}
    for applied in bundles:
        for rule in applied.applied_rules:
            rules.setdefault(rule.rule.key, rule.rule)
    if len(rules) != 1:
        return None
    return next(iter(rules.values()))


def evaluate_bundles(
    store_id: str,
    bundles: Iterable[Bundle],
    cart_items: Iterable[Any] | None,
    snapshots: Snapshots | None,
    on_applied: Optional[Callable[[AuditEntry], None]] = None,
) -> EvaluationResult:
    """
    Evaluate every visible bundle of a store against a cart.

    Bundles sharing a trigger product compete: only the matched one with the
    largest discount is applied. Discounts are summed unrounded and the total
    is rounded to 2 decimals once.
    """
    cart = normalize_cart(cart_items)
    snapshot_map = _snapshot_map(snapshots)
    visible = [b for b in bundles if b.is_visible and (not b.store_id or b.store_id == store_id)]
    pre = [_pre_evaluate(bundle, cart, snapshot_map) for bundle in visible]

    best_by_group: dict[str, _PreEvaluation] = {}
    for ev in pre:
        if not ev.matched:
            continue
        current = best_by_group.get(ev.group_key)
        if current is None or ev.discount_amount > current.discount_amount:
            best_by_group[ev.group_key] = ev

    per_bundle: list[BundleEvaluation] = []
    applied_bundles: list[AppliedBundle] = []
    total = 0.0
    for ev in pre:
        applied = best_by_group.get(ev.group_key) is ev and ev.discount_amount > 0
        if applied:
            applied_bundles.append(
                AppliedBundle(
                    bundle_id=ev.bundle.id,
                    uses=len(ev.applications),
                    discount_amount=round_money(ev.discount_amount),
                    matched_variant_ids=ev.matched_variant_ids,
                    matched_product_ids=ev.matched_product_ids,
                    applied_rules=ev.applied_rules,
                )
            )
            total += ev.discount_amount
            if on_applied is not None:
                _emit_audit(
                    on_applied,
                    AuditEntry(
                        store_id=store_id,
                        bundle_id=ev.bundle.id,
                        matched_variant_ids=ev.matched_variant_ids,
                        cart_hash=cart.cart_hash,
                    ),
                )
        per_bundle.append(
            BundleEvaluation(
                bundle_id=ev.bundle.id,
                matched=ev.matched,
                applied=applied,
                uses=len(ev.applications),
                discount_amount=round_money(ev.discount_amount) if applied else 0.0,
                matched_variant_ids=ev.matched_variant_ids,
                matched_product_ids=ev.matched_product_ids,
            )
        )

    summary = AppliedSummary(
        bundles=applied_bundles,
        matched_product_ids=_union(b.matched_product_ids for b in applied_bundles),
        matched_variant_ids=_union(b.matched_variant_ids for b in applied_bundles),
        total_discount=round_money(total) if applied_bundles else 0.0,
        rule=single_rule(applied_bundles),
    )
    return EvaluationResult(normalized_cart=cart, per_bundle=per_bundle, applied=summary)


def evaluate_bundle_draft(
    bundle: Bundle, cart_items: Iterable[Any] | None, snapshots: Snapshots | None
) -> DraftEvaluation:
    """Preview a single bundle, ignoring its status. No audit entry is emitted."""
    cart = normalize_cart(cart_items)
    ev = _pre_evaluate(bundle, cart, _snapshot_map(snapshots))
    applied = ev.matched and ev.discount_amount > 0
    return DraftEvaluation(
        normalized_cart=cart,
        matched=ev.matched,
        applied=applied,
        uses=len(ev.applications),
        discount_amount=round_money(ev.discount_amount) if applied else 0.0,
        matched_variant_ids=ev.matched_variant_ids,
        matched_product_ids=ev.matched_product_ids,
        applications=ev.applications,
    )


def _emit_audit(on_applied: Callable[[AuditEntry], None], entry: AuditEntry) -> None:
    try:
        on_applied(entry)
    except Exception as e:
        logger.warning(f"Failed to record bundle match audit for bundle {entry.bundle_id}: {e}")
