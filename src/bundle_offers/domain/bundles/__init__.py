from __future__ import annotations

from bundle_offers.domain.bundles.evaluator import (
    AppliedBundle,
    AppliedSummary,
    AuditEntry,
    BundleEvaluation,
    DraftEvaluation,
    EvaluationResult,
    evaluate_bundle_draft,
    evaluate_bundles,
)
from bundle_offers.domain.bundles.matcher import compute_bundle_applications
from bundle_offers.domain.bundles.models import (
    Application,
    AppliedRule,
    Bundle,
    BundleComponent,
    BundleRules,
    BundleStatus,
    Eligibility,
    Limits,
    SnapshotResult,
    Tier,
    VariantSnapshot,
)
from bundle_offers.domain.bundles.rules import (
    BundlePrice,
    DiscountRule,
    DiscountType,
    Fixed,
    Percentage,
    make_rule,
)

__all__ = [
    "AppliedBundle",
    "AppliedSummary",
    "AuditEntry",
    "BundleEvaluation",
    "DraftEvaluation",
    "EvaluationResult",
    "evaluate_bundle_draft",
    "evaluate_bundles",
    "compute_bundle_applications",
    "Application",
    "AppliedRule",
    "Bundle",
    "BundleComponent",
    "BundleRules",
    "BundleStatus",
    "Eligibility",
    "Limits",
    "SnapshotResult",
    "Tier",
    "VariantSnapshot",
    "BundlePrice",
    "DiscountRule",
    "DiscountType",
    "Fixed",
    "Percentage",
    "make_rule",
]
