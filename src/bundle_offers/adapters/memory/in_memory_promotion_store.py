from __future__ import annotations

import copy
import threading
from datetime import datetime
from typing import Optional

from bundle_offers.application.errors import DuplicateCodeError
from bundle_offers.domain.offers.models import EXPIRABLE_STATUSES, CartIdentity, OfferStatus, PromotionRecord
from bundle_offers.ports.promotion_store import PromotionStore


class InMemoryPromotionStore(PromotionStore):
    """Process-local store; records are copied in and out like a real database."""

    def __init__(self) -> None:
        self._records: dict[str, PromotionRecord] = {}
        self._lock = threading.Lock()

    def find_active(self, store_id: str, identity: CartIdentity) -> Optional[PromotionRecord]:
        with self._lock:
            matches = [
                r
                for r in self._records.values()
                if r.store_id == store_id
                and r.identity.group_key == identity.group_key
                and r.status == OfferStatus.ISSUED
            ]
            if not matches:
                return None
            return copy.deepcopy(max(matches, key=lambda r: r.last_seen_at))

    def upsert_issued(self, record: PromotionRecord) -> PromotionRecord:
        with self._lock:
            for other in self._records.values():
                if other.id != record.id and other.code == record.code:
                    raise DuplicateCodeError(record.code)
            self._records[record.id] = copy.deepcopy(record)
            return copy.deepcopy(record)

    def save(self, record: PromotionRecord) -> None:
        with self._lock:
            self._records[record.id] = copy.deepcopy(record)

    def supersede_others(self, store_id: str, identity: CartIdentity, keep_id: str) -> int:
        with self._lock:
            kept = self._records.get(keep_id)
            if kept is None or kept.status != OfferStatus.ISSUED:
                return 0
            count = 0
            for r in self._records.values():
                if (
                    r.id != keep_id
                    and r.store_id == store_id
                    and r.identity.group_key == identity.group_key
                    and r.status == OfferStatus.ISSUED
                ):
                    r.transition(OfferStatus.SUPERSEDED)
                    count += 1
            return count

    def find_by_code(self, store_id: str, code: str) -> Optional[PromotionRecord]:
        with self._lock:
            for r in self._records.values():
                if r.store_id == store_id and r.code == code:
                    return copy.deepcopy(r)
            return None

    def expire_stale(self, now: datetime) -> int:
        with self._lock:
            count = 0
            for r in self._records.values():
                if r.status in EXPIRABLE_STATUSES and r.is_expired(now):
                    r.transition(OfferStatus.EXPIRED)
                    count += 1
            return count

    def all(self) -> list[PromotionRecord]:
        with self._lock:
            return [copy.deepcopy(r) for r in self._records.values()]
