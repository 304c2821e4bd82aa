from __future__ import annotations

from typing import Iterable, Mapping, Optional

from bundle_offers.domain.bundles.models import SnapshotResult, VariantSnapshot
from bundle_offers.ports.catalog_snapshot_provider import CatalogSnapshotProvider


class InMemoryCatalog(CatalogSnapshotProvider):
    """Static snapshots; unknown variants are reported missing."""

    def __init__(self, snapshots: Optional[Mapping[str, VariantSnapshot]] = None) -> None:
        self.snapshots = dict(snapshots or {})

    def fetch_snapshots(self, store_id: str, variant_ids: Iterable[str]) -> SnapshotResult:
        found: dict[str, VariantSnapshot] = {}
        missing: list[str] = []
        for variant_id in dict.fromkeys(variant_ids):
            snapshot = self.snapshots.get(variant_id)
            if snapshot is None:
                missing.append(variant_id)
            else:
                found[variant_id] = snapshot
        return SnapshotResult(snapshots=found, missing=missing)
