from __future__ import annotations

from typing import Iterable, Protocol

from bundle_offers.domain.bundles.models import SnapshotResult


class CatalogSnapshotProvider(Protocol):
    def fetch_snapshots(self, store_id: str, variant_ids: Iterable[str]) -> SnapshotResult: ...
