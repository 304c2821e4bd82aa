from __future__ import annotations

import logging
import threading
from datetime import datetime, timezone
from typing import Callable, Optional

from bundle_offers.ports.promotion_store import PromotionStore

logger = logging.getLogger(__name__)

MIN_INTERVAL_SECONDS = 10 * 60
MAX_INTERVAL_SECONDS = 7 * 24 * 60 * 60


def clamp_interval(seconds: float) -> float:
    return float(max(MIN_INTERVAL_SECONDS, min(MAX_INTERVAL_SECONDS, seconds)))


class ExpirySweeper:
    """Periodically moves issued and superseded records past their expiry to expired."""

    def __init__(
        self,
        store: PromotionStore,
        interval_seconds: float = 3600,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        self.store = store
        self.interval_seconds = clamp_interval(interval_seconds)
        self.clock = clock
        self._timer: Optional[threading.Timer] = None
        self._stopped = threading.Event()
        self._lock = threading.Lock()

    def run_once(self) -> int:
        """Sweep once. Failures are logged, never raised."""
        try:
            count = self.store.expire_stale(self.clock())
        except Exception:
            logger.exception("Expiry sweep failed")
            return 0
        logger.info(f"Expiry sweep marked {count} promotion(s) expired")
        return count

    def start(self) -> None:
        with self._lock:
            self._stopped.clear()
            self._schedule()

    def stop(self) -> None:
        with self._lock:
            self._stopped.set()
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None

    @property
    def running(self) -> bool:
        return self._timer is not None and not self._stopped.is_set()

    def _schedule(self) -> None:
        timer = threading.Timer(self.interval_seconds, self._tick)
        timer.daemon = True
        self._timer = timer
        timer.start()

    def _tick(self) -> None:
        if self._stopped.is_set():
            return
        self.run_once()
        with self._lock:
            if not self._stopped.is_set():
                self._schedule()
