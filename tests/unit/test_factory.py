"""Unit tests for adapter and service wiring."""

from __future__ import annotations

import pytest

from bundle_offers.adapters.databricks.promotion_store import DatabricksPromotionStore
from bundle_offers.adapters.files.bundle_file_repository import FileBundleRepository
from bundle_offers.adapters.memory.in_memory_promotion_store import InMemoryPromotionStore
from bundle_offers.adapters.platform.gateway import HttpPromotionGateway
from bundle_offers.app.factory import create_adapters, create_service
from bundle_offers.domain.offers import OfferKind
from bundle_offers.settings import Settings


def test_default_adapters_use_memory_store(monkeypatch, tmp_path):
    monkeypatch.delenv("RUNTIME_ADAPTERS", raising=False)
    adapters = create_adapters(Settings(bundles_dir=str(tmp_path)))

    assert isinstance(adapters.store, InMemoryPromotionStore)
    assert isinstance(adapters.bundles, FileBundleRepository)
    assert isinstance(adapters.gateway, HttpPromotionGateway)


def test_databricks_adapters_require_settings(monkeypatch):
    monkeypatch.setenv("RUNTIME_ADAPTERS", "databricks")
    with pytest.raises(ValueError, match="DATABRICKS_HTTP_PATH"):
        create_adapters(Settings(databricks_server_hostname="host"))


def test_databricks_adapters(monkeypatch):
    monkeypatch.setenv("RUNTIME_ADAPTERS", "Databricks")
    settings = Settings(
        databricks_server_hostname="host",
        databricks_http_path="/sql/1.0/warehouses/x",
        databricks_access_token="token",
        databricks_catalog="main",
        databricks_schema="offers",
    )
    adapters = create_adapters(settings)
    assert isinstance(adapters.store, DatabricksPromotionStore)
    assert adapters.store.table == "main.offers.bundle_promotion_records"


def test_create_service_applies_settings(monkeypatch, tmp_path):
    monkeypatch.delenv("RUNTIME_ADAPTERS", raising=False)
    settings = Settings(
        bundles_dir=str(tmp_path),
        offer_kind="special_offer",
        prefer_percentage_coupons=True,
        offer_ttl_hours=6,
        sweep_interval_seconds=5,
    )
    service = create_service(settings)

    assert service.reconciler.offer_kind == OfferKind.SPECIAL_OFFER
    assert service.reconciler.prefer_percentage_coupons is True
    assert service.default_ttl_hours == 6
    assert service.sweeper.interval_seconds == 600


def test_settings_from_env(monkeypatch):
    monkeypatch.setenv("OFFER_KIND", " Special_Offer ")
    monkeypatch.setenv("PREFER_PERCENTAGE_COUPONS", "yes")
    monkeypatch.setenv("OFFER_TTL_HOURS", "12")
    monkeypatch.delenv("VERBOSE_FAILURES", raising=False)
    settings = Settings.from_env()
    assert settings.offer_kind == "special_offer"
    assert settings.prefer_percentage_coupons is True
    assert settings.offer_ttl_hours == 12
    assert settings.verbose_failures is False
