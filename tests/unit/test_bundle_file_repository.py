"""Unit tests for FileBundleRepository."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from bundle_offers.adapters.files.bundle_file_repository import (
    FileBundleRepository,
    load_schema,
    validate_document,
)


def write_bundles(base_dir: Path, store_id: str, bundles: list[dict], **extra) -> Path:
    path = base_dir / f"{store_id}.json"
    path.write_text(json.dumps({"bundles": bundles, **extra}), encoding="utf-8")
    return path


def bundle(bundle_id: str, status: str = "active", **extra) -> dict:
    return {
        "id": bundle_id,
        "status": status,
        "components": [{"variantId": "va", "group": "a"}],
        "rules": {"type": "fixed", "value": 5},
        **extra,
    }


def test_loads_visible_bundles_for_store(tmp_path):
    write_bundles(
        tmp_path,
        "s1",
        [
            bundle("b1"),
            bundle("b2", status="paused"),
            bundle("b3", deletedAt="2024-01-01T00:00:00Z"),
            bundle("b4", storeId="s2"),
        ],
    )
    repo = FileBundleRepository(tmp_path)
    bundles = repo.list_active_bundles("s1")
    assert [b.id for b in bundles] == ["b1"]
    assert bundles[0].store_id == "s1"


def test_missing_file_means_no_bundles(tmp_path):
    assert FileBundleRepository(tmp_path).list_active_bundles("unknown") == []


def test_results_are_cached(tmp_path):
    write_bundles(tmp_path, "s1", [bundle("b1")])
    repo = FileBundleRepository(tmp_path, cache_ttl_seconds=60)
    assert len(repo.list_active_bundles("s1")) == 1

    write_bundles(tmp_path, "s1", [bundle("b1"), bundle("b2")])
    assert len(repo.list_active_bundles("s1")) == 1


def test_zero_ttl_reloads(tmp_path):
    write_bundles(tmp_path, "s1", [bundle("b1")])
    repo = FileBundleRepository(tmp_path, cache_ttl_seconds=0)
    repo.list_active_bundles("s1")
    write_bundles(tmp_path, "s1", [bundle("b1"), bundle("b2")])
    assert len(repo.list_active_bundles("s1")) == 2


def test_invalid_json_raises_and_is_cached(tmp_path):
    path = tmp_path / "s1.json"
    path.write_text("{not json", encoding="utf-8")
    repo = FileBundleRepository(tmp_path)

    with pytest.raises(ValueError, match="Invalid JSON"):
        repo.list_active_bundles("s1")
    write_bundles(tmp_path, "s1", [bundle("b1")])
    with pytest.raises(ValueError, match="Invalid JSON"):
        repo.list_active_bundles("s1")


def test_schema_violation_raises(tmp_path):
    write_bundles(tmp_path, "s1", [bundle("b1", status="archived")])
    with pytest.raises(ValueError, match="JSON validation failed"):
        FileBundleRepository(tmp_path).list_active_bundles("s1")


@pytest.mark.parametrize(
    "document",
    [
        {},
        {"bundles": [{"id": "b1", "status": "active", "components": [], "rules": {"type": "free"}}]},
        {"bundles": [bundle("b1", rules={"type": "fixed", "value": -1})]},
        {"bundles": [bundle("b1", components=[{"variantId": "va", "group": "g" * 51}])]},
        {"bundles": [bundle("b1", rules={"limits": {"maxUsesPerOrder": 51}})]},
    ],
)
def test_schema_rejects(document):
    with pytest.raises(ValueError):
        validate_document(document, load_schema())


def test_schema_accepts_tiered_bundle():
    document = {
        "storeId": "s1",
        "bundles": [
            bundle(
                "b1",
                rules={
                    "tiers": [
                        {"minQty": 2, "type": "percentage", "value": 10},
                        {"minQty": 3, "value": 30},
                    ],
                    "eligibility": {"mustIncludeAllGroups": False, "minCartQty": 2},
                    "limits": {"maxUsesPerOrder": 2},
                },
                presentation={"coverVariantId": "va"},
                triggerProductId=None,
            )
        ],
    }
    validate_document(document, load_schema())
