from __future__ import annotations

from typing import Iterable, Optional

from bundle_offers.domain.bundles.models import Bundle
from bundle_offers.ports.bundle_repository import BundleRepository


class InMemoryBundleRepository(BundleRepository):
    def __init__(self, bundles: Optional[Iterable[Bundle]] = None) -> None:
        self.bundles = list(bundles or [])

    def add(self, bundle: Bundle) -> None:
        self.bundles.append(bundle)

    def list_active_bundles(self, store_id: str) -> list[Bundle]:
        return [b for b in self.bundles if b.store_id == store_id and b.is_visible]
