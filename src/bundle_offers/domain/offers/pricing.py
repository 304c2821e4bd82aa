from __future__ import annotations

import hashlib
import re
import secrets
from typing import Iterable, Optional

from bundle_offers.domain.bundles.evaluator import EvaluationResult
from bundle_offers.domain.common.money import amounts_match, ceil_money, round_money
from bundle_offers.domain.offers.models import BundleSummary, PromotionRecord

CODE_PREFIX = "BNDL"
LARGE_DISCOUNT_THRESHOLD = 1000.0
NUMERIC_ID = re.compile(r"[0-9]+")


def minimum_purchase_amount(discount_amount: float) -> float:
    """
    Smallest purchase floor the platform accepts for a discount.

    The platform rejects offers whose minimum purchase does not exceed the
    discount: small discounts get +1, discounts of 1000 or more get x1.1 with
    at least +100.
    """
    discount = max(0.0, float(discount_amount or 0))
    if discount < LARGE_DISCOUNT_THRESHOLD:
        return ceil_money(discount + 1)
    # x1.1 carries float noise (1000 * 1.1 == 1100.0000000000002) that would ceil up a cent
    return ceil_money(round(max(discount * 1.1, discount + 100), 6))


def summaries_from_evaluation(
    evaluation: EvaluationResult, numeric_only: bool = False
) -> tuple[BundleSummary, ...]:
    return tuple(
        BundleSummary(
            bundle_id=applied.bundle_id,
            discount_amount=applied.discount_amount,
            product_ids=tuple(_clean_ids(applied.matched_product_ids, numeric_only)),
        )
        for applied in evaluation.applied.bundles
    )


def include_product_ids(evaluation: EvaluationResult, numeric_only: bool = False) -> frozenset[str]:
    """Product ids the offer applies to. Coupons only accept numeric platform ids."""
    return frozenset(_clean_ids(evaluation.applied.matched_product_ids, numeric_only))


def merge_bundle_summaries(
    existing: Iterable[BundleSummary], incoming: Iterable[BundleSummary]
) -> tuple[BundleSummary, ...]:
    """Merge per-bundle contributions keyed by bundle id; incoming entries replace."""
    merged: dict[str, BundleSummary] = {}
    for summary in existing:
        merged[summary.bundle_id] = summary
    for summary in incoming:
        merged[summary.bundle_id] = summary
    return tuple(merged.values())


def summaries_total(summaries: Iterable[BundleSummary]) -> float:
    return round_money(sum(s.discount_amount for s in summaries))


def summaries_product_ids(summaries: Iterable[BundleSummary]) -> frozenset[str]:
    return frozenset(pid for s in summaries for pid in s.product_ids)


def same_offer(
    record: PromotionRecord, discount_type: str, discount_amount: float, product_ids: frozenset[str]
) -> bool:
    return (
        record.discount_type == discount_type
        and amounts_match(record.discount_amount, discount_amount)
        and record.include_product_ids == product_ids
    )


def build_code(store_id: str, group_key: str, nonce: Optional[str] = None) -> str:
    digest = hashlib.sha256(f"{store_id}:{group_key}".encode("utf-8")).hexdigest()[:10].upper()
    return f"{CODE_PREFIX}{digest}{(nonce or secrets.token_hex(3)).upper()}"


def build_offer_name(code: str, suffix: Optional[str] = None) -> str:
    name = f"Bundle offer {code}"
    return f"{name} #{suffix}" if suffix else name


def _clean_ids(values: Iterable[str], numeric_only: bool = False) -> list[str]:
    cleaned = [v for v in dict.fromkeys(str(v or "").strip() for v in values) if v]
    if numeric_only:
        return [v for v in cleaned if NUMERIC_ID.fullmatch(v)]
    return cleaned
