from __future__ import annotations

from datetime import datetime
from typing import Optional, Protocol

from bundle_offers.domain.offers.models import CartIdentity, PromotionRecord


class PromotionStore(Protocol):
    """Durable promotion records. `upsert_issued` raises DuplicateCodeError on a code clash."""

    def find_active(self, store_id: str, identity: CartIdentity) -> Optional[PromotionRecord]: ...

    def upsert_issued(self, record: PromotionRecord) -> PromotionRecord: ...

    def save(self, record: PromotionRecord) -> None: ...

    def supersede_others(self, store_id: str, identity: CartIdentity, keep_id: str) -> int: ...

    def find_by_code(self, store_id: str, code: str) -> Optional[PromotionRecord]: ...

    def expire_stale(self, now: datetime) -> int: ...
