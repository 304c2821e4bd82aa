"""Bundle definitions read from per-store JSON files."""

from __future__ import annotations

import json
import logging
import time
from pathlib import Path
from typing import Any

import jsonschema

from bundle_offers.domain.bundles.models import Bundle
from bundle_offers.ports.bundle_repository import BundleRepository

logger = logging.getLogger(__name__)

SCHEMA_PATH = Path(__file__).with_name("bundle.schema.json")


def load_schema(schema_path: Path = SCHEMA_PATH) -> dict[str, Any]:
    if not schema_path.exists():
        raise FileNotFoundError(f"Schema file not found: {schema_path}")
    with open(schema_path, "r", encoding="utf-8") as f:
        return json.load(f)


def validate_document(data: Any, schema: dict[str, Any]) -> None:
    """Validate a bundles document against the bundle schema."""
    try:
        jsonschema.validate(instance=data, schema=schema)
    except jsonschema.ValidationError as e:
        raise ValueError(f"JSON validation failed: {e.message}") from e
    except jsonschema.SchemaError as e:
        raise ValueError(f"Schema error: {e.message}") from e


class FileBundleRepository(BundleRepository):
    """Loads `<base_dir>/<store_id>.json`, validated and cached for `cache_ttl_seconds`."""

    def __init__(self, base_dir: str | Path, cache_ttl_seconds: float = 60) -> None:
        self.base_dir = Path(base_dir)
        self.cache_ttl_seconds = cache_ttl_seconds
        self._schema: dict[str, Any] | None = None
        self._cache: dict[str, tuple[float, list[Bundle]]] = {}
        self._error_cache: dict[str, tuple[float, Exception]] = {}

    @property
    def schema(self) -> dict[str, Any]:
        if self._schema is None:
            self._schema = load_schema()
        return self._schema

    def list_active_bundles(self, store_id: str) -> list[Bundle]:
        return [b for b in self._load(store_id) if b.is_visible]

    def _load(self, store_id: str) -> list[Bundle]:
        now = time.time()

        if store_id in self._cache:
            cached_time, cached = self._cache[store_id]
            if now - cached_time < self.cache_ttl_seconds:
                return cached

        if store_id in self._error_cache:
            cached_time, cached_error = self._error_cache[store_id]
            if now - cached_time < self.cache_ttl_seconds:
                raise cached_error

        path = self.base_dir / f"{store_id}.json"
        if not path.exists():
            logger.warning(f"No bundle definitions for store {store_id}: {path}")
            self._cache[store_id] = (now, [])
            return []

        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            error = ValueError(f"Invalid JSON in bundle file {path}: {e}")
            self._error_cache[store_id] = (now, error)
            raise error

        try:
            validate_document(data, self.schema)
        except ValueError as e:
            self._error_cache[store_id] = (now, e)
            raise

        bundles = [Bundle.from_dict({"storeId": store_id, **raw}) for raw in data["bundles"]]
        bundles = [b for b in bundles if b.store_id == store_id]
        self._error_cache.pop(store_id, None)
        self._cache[store_id] = (now, bundles)
        return bundles
