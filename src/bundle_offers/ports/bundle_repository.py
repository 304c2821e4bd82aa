from __future__ import annotations

from typing import Protocol

from bundle_offers.domain.bundles.models import Bundle


class BundleRepository(Protocol):
    def list_active_bundles(self, store_id: str) -> list[Bundle]: ...
