from __future__ import annotations

from bundle_offers.domain.offers.models import (
    ALLOWED_TRANSITIONS,
    BundleSummary,
    CartIdentity,
    IllegalStatusTransition,
    OfferDraft,
    OfferKind,
    OfferStatus,
    PromotionRecord,
    ReconcileAction,
    ReconcileFailure,
    ReconcileMode,
    ReconcileOutcome,
)
from bundle_offers.domain.offers.pricing import (
    build_code,
    build_offer_name,
    merge_bundle_summaries,
    minimum_purchase_amount,
)

__all__ = [
    "ALLOWED_TRANSITIONS",
    "BundleSummary",
    "CartIdentity",
    "IllegalStatusTransition",
    "OfferDraft",
    "OfferKind",
    "OfferStatus",
    "PromotionRecord",
    "ReconcileAction",
    "ReconcileFailure",
    "ReconcileMode",
    "ReconcileOutcome",
    "build_code",
    "build_offer_name",
    "merge_bundle_summaries",
    "minimum_purchase_amount",
]
