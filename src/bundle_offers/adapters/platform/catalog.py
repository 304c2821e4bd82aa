from __future__ import annotations

import logging
import time
from typing import Callable, Iterable

from pydantic import ValidationError

from bundle_offers.application.errors import GatewayError
from bundle_offers.adapters.platform.http import INVALID_RESPONSE, PlatformHttpClient
from bundle_offers.adapters.platform.models import Variant
from bundle_offers.domain.bundles.models import SnapshotResult, VariantSnapshot
from bundle_offers.ports.catalog_snapshot_provider import CatalogSnapshotProvider

logger = logging.getLogger(__name__)

VARIANT_PATH = "/admin/v2/products/variants/{variant_id}"
RETRYABLE_STATUS_CODES = {429, 500, 502, 503, 504}


class HttpCatalogSnapshotProvider(CatalogSnapshotProvider):
    """
    Fetches variant price, product and availability one variant at a time.

    Variants the platform does not know (404) or returns malformed are reported
    as missing. Throttling and server errors are retried with a linear backoff
    up to `max_attempts`; any other error propagates.
    """

    def __init__(
        self,
        client: PlatformHttpClient,
        max_attempts: int = 3,
        backoff_seconds: float = 0.25,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.client = client
        self.max_attempts = max(1, max_attempts)
        self.backoff_seconds = backoff_seconds
        self.sleep = sleep

    def fetch_snapshots(self, store_id: str, variant_ids: Iterable[str]) -> SnapshotResult:
        snapshots: dict[str, VariantSnapshot] = {}
        missing: list[str] = []
        for variant_id in dict.fromkeys(str(v).strip() for v in variant_ids):
            if not variant_id:
                continue
            snapshot = self._fetch_one(store_id, variant_id)
            if snapshot is None:
                missing.append(variant_id)
            else:
                snapshots[variant_id] = snapshot
        return SnapshotResult(snapshots=snapshots, missing=missing)

    def _fetch_one(self, store_id: str, variant_id: str) -> VariantSnapshot | None:
        for attempt in range(1, self.max_attempts + 1):
            try:
                body = self.client.request(
                    "GET", VARIANT_PATH.format(variant_id=variant_id), store_id, "fetch product variant"
                )
            except GatewayError as e:
                if e.is_not_found:
                    return None
                if e.code == INVALID_RESPONSE:
                    logger.warning(f"Unreadable variant {variant_id}", extra={"store_id": store_id})
                    return None
                if e.status_code in RETRYABLE_STATUS_CODES and attempt < self.max_attempts:
                    self.sleep(self.backoff_seconds * attempt)
                    continue
                raise
            return _to_snapshot(variant_id, body)
        return None


def _to_snapshot(variant_id: str, body: dict) -> VariantSnapshot | None:
    try:
        variant = Variant.model_validate(body.get("data") or {})
    except ValidationError as e:
        logger.warning(f"Malformed variant {variant_id}: {e.error_count()} error(s)")
        return None
    if variant.unit_price is None:
        return None
    return VariantSnapshot(
        variant_id=variant_id,
        product_id=variant.product_id or "",
        price=variant.unit_price,
        is_active=variant.is_active,
    )
