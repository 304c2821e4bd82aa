from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Callable, Iterable, Optional

from bundle_offers.application.errors import InvalidStoreError
from bundle_offers.application.reconciler import OfferReconciler
from bundle_offers.application.sweeper import ExpirySweeper
from bundle_offers.domain.bundles.evaluator import (
    DraftEvaluation,
    EvaluationResult,
    Snapshots,
    evaluate_bundle_draft,
    evaluate_bundles,
)
from bundle_offers.domain.bundles.models import Bundle
from bundle_offers.domain.cart.normalizer import normalize_cart
from bundle_offers.domain.offers.models import OfferStatus, PromotionRecord, ReconcileMode, ReconcileOutcome
from bundle_offers.ports.audit_log import AuditLog
from bundle_offers.ports.bundle_repository import BundleRepository
from bundle_offers.ports.catalog_snapshot_provider import CatalogSnapshotProvider
from bundle_offers.ports.promotion_store import PromotionStore

logger = logging.getLogger(__name__)


def _require_store(store_id: str) -> str:
    store_id = str(store_id or "").strip()
    if not store_id:
        raise InvalidStoreError("store_id is required")
    return store_id


class BundleOfferService:
    """Entry point used by the cart and webhook layers.

    Long-running hosts call `start()` (or use the service as a context
    manager) so stale promotions are expired periodically.
    """

    def __init__(
        self,
        bundles: BundleRepository,
        catalog: CatalogSnapshotProvider,
        store: PromotionStore,
        reconciler: OfferReconciler,
        sweeper: ExpirySweeper,
        audit_log: Optional[AuditLog] = None,
        default_ttl_hours: int = 24,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        self.bundles = bundles
        self.catalog = catalog
        self.store = store
        self.reconciler = reconciler
        self.sweeper = sweeper
        self.audit_log = audit_log
        self.default_ttl_hours = default_ttl_hours
        self.clock = clock

    def evaluate(
        self, store_id: str, cart_items: Optional[Iterable[Any]], snapshots: Snapshots | None
    ) -> EvaluationResult:
        store_id = _require_store(store_id)
        bundles = self.bundles.list_active_bundles(store_id)
        on_applied = self.audit_log.record_bundle_applied if self.audit_log is not None else None
        return evaluate_bundles(store_id, bundles, cart_items, snapshots, on_applied=on_applied)

    def evaluate_cart(self, store_id: str, cart_items: Optional[Iterable[Any]]) -> EvaluationResult:
        """Evaluate with snapshots fetched for the cart's variants."""
        store_id = _require_store(store_id)
        items = list(cart_items or [])
        cart = normalize_cart(items)
        snapshots = self.catalog.fetch_snapshots(store_id, [line.variant_id for line in cart.lines])
        if snapshots.missing:
            logger.info(
                f"{len(snapshots.missing)} cart variant(s) unavailable for evaluation",
                extra={"store_id": store_id},
            )
        return self.evaluate(store_id, items, snapshots)

    def evaluate_draft(
        self, bundle: Bundle, cart_items: Optional[Iterable[Any]], snapshots: Snapshots | None
    ) -> DraftEvaluation:
        return evaluate_bundle_draft(bundle, cart_items, snapshots)

    def issue_or_reuse(
        self,
        store_id: str,
        cart_items: Optional[Iterable[Any]],
        evaluation: EvaluationResult,
        ttl_hours: Optional[int] = None,
        cart_key: Optional[str] = None,
        mode: Optional[ReconcileMode] = None,
    ) -> ReconcileOutcome:
        return self.reconciler.issue_or_reuse(
            _require_store(store_id),
            cart_items,
            evaluation,
            ttl_hours=self.default_ttl_hours if ttl_hours is None else ttl_hours,
            cart_key=cart_key,
            mode=mode,
        )

    def start(self) -> None:
        """Sweep once, then keep sweeping on the sweeper's interval until `stop`."""
        self.sweeper.run_once()
        self.sweeper.start()
        logger.info(f"Expiry sweeper started (every {self.sweeper.interval_seconds:.0f}s)")

    def stop(self) -> None:
        self.sweeper.stop()

    def __enter__(self) -> BundleOfferService:
        self.start()
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.stop()

    def sweep_expired(self) -> int:
        return self.sweeper.run_once()

    def mark_redeemed(self, store_id: str, code: str, order_id: Optional[str] = None) -> Optional[PromotionRecord]:
        """Record that an order used an issued code; None when no such issued code exists."""
        store_id = _require_store(store_id)
        code = str(code or "").strip().upper()
        if not code:
            return None
        record = self.store.find_by_code(store_id, code)
        if record is None or record.status != OfferStatus.ISSUED:
            return None
        record.transition(OfferStatus.REDEEMED)
        record.redeemed_at = self.clock()
        record.order_id = order_id
        self.store.save(record)
        logger.info(f"Promotion {record.code} redeemed", extra={"store_id": store_id, "order_id": order_id})
        return record
