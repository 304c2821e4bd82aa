"""Shared fakes for bundle offer tests."""

from __future__ import annotations

import threading
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Optional

import pytest

from bundle_offers.adapters.memory.in_memory_promotion_store import InMemoryPromotionStore
from bundle_offers.domain.offers.models import OfferDraft, OfferKind


class FakeClock:
    def __init__(self, now: Optional[datetime] = None) -> None:
        self.now = now or datetime(2024, 3, 1, 12, 0, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now = self.now + timedelta(**kwargs)


class FakeGateway:
    """Records every call; queued errors are raised by the next call of that method."""

    def __init__(self) -> None:
        self.calls: list[tuple[Any, ...]] = []
        self.failures: dict[str, list[Exception]] = {}
        self.hooks: dict[str, Callable[[], None]] = {}
        self._next_id = 0
        self._lock = threading.Lock()

    def fail_next(self, method: str, *errors: Exception) -> None:
        self.failures.setdefault(method, []).extend(errors)

    def count(self, method: str) -> int:
        return sum(1 for call in self.calls if call[0] == method)

    def drafts(self, method: str) -> list[OfferDraft]:
        return [call[-1] for call in self.calls if call[0] == method]

    def _call(self, method: str, *args: Any) -> None:
        with self._lock:
            self.calls.append((method, *args))
            queued = self.failures.get(method)
            error = queued.pop(0) if queued else None
        hook = self.hooks.pop(method, None)
        if hook is not None:
            hook()
        if error is not None:
            raise error

    def _new_id(self) -> str:
        with self._lock:
            self._next_id += 1
            return f"ext-{self._next_id}"

    def create_coupon(self, store_id: str, draft: OfferDraft) -> str:
        self._call("create_coupon", store_id, draft)
        return self._new_id()

    def update_coupon(self, store_id: str, external_id: str, draft: OfferDraft) -> None:
        self._call("update_coupon", store_id, external_id, draft)

    def create_special_offer(self, store_id: str, draft: OfferDraft) -> str:
        self._call("create_special_offer", store_id, draft)
        return self._new_id()

    def update_special_offer(self, store_id: str, external_id: str, draft: OfferDraft) -> None:
        self._call("update_special_offer", store_id, external_id, draft)

    def change_status(self, store_id: str, external_id: str, status: str) -> None:
        self._call("change_status", store_id, external_id, status)

    def delete(self, store_id: str, kind: OfferKind, external_id: str) -> None:
        self._call("delete", store_id, kind, external_id)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def store() -> InMemoryPromotionStore:
    return InMemoryPromotionStore()


@pytest.fixture
def code_factory() -> Callable[[str, str], str]:
    """Deterministic promotion codes: BNDLTEST0001, BNDLTEST0002, ..."""
    counter = {"n": 0}

    def make(store_id: str, group_key: str) -> str:
        counter["n"] += 1
        return f"BNDLTEST{counter['n']:04d}"

    return make
