from __future__ import annotations

import os
from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from bundle_offers.ports.audit_log import AuditLog
    from bundle_offers.ports.bundle_repository import BundleRepository
    from bundle_offers.ports.catalog_snapshot_provider import CatalogSnapshotProvider
    from bundle_offers.ports.promotion_gateway import PromotionGateway
    from bundle_offers.ports.promotion_store import PromotionStore

from bundle_offers.adapters.audit.logging_audit_log import LoggingAuditLog
from bundle_offers.adapters.databricks.client import DatabricksSqlClient
from bundle_offers.adapters.databricks.promotion_store import DatabricksPromotionStore
from bundle_offers.adapters.files.bundle_file_repository import FileBundleRepository
from bundle_offers.adapters.memory.in_memory_promotion_store import InMemoryPromotionStore
from bundle_offers.adapters.platform.catalog import HttpCatalogSnapshotProvider
from bundle_offers.adapters.platform.gateway import HttpPromotionGateway
from bundle_offers.adapters.platform.http import PlatformHttpClient, static_token
from bundle_offers.application.reconciler import OfferReconciler
from bundle_offers.application.service import BundleOfferService
from bundle_offers.application.sweeper import ExpirySweeper
from bundle_offers.domain.offers.models import OfferKind
from bundle_offers.settings import Settings, get_settings


@dataclass(frozen=True)
class Adapters:
    bundles: "BundleRepository"
    catalog: "CatalogSnapshotProvider"
    gateway: "PromotionGateway"
    store: "PromotionStore"
    audit_log: "AuditLog"


def create_adapters(settings: Optional[Settings] = None) -> Adapters:
    """
    Factory function to create adapters based on RUNTIME_ADAPTERS environment variable.

    If RUNTIME_ADAPTERS=databricks, promotion records live in a Databricks table.
    Otherwise they are kept in memory (default). Bundles always come from
    BUNDLES_DIR and the platform is always reached over HTTP.
    """
    settings = settings or get_settings()
    runtime_adapters = os.getenv("RUNTIME_ADAPTERS", "").lower()

    http_client = PlatformHttpClient(
        base_url=settings.platform_api_base_url,
        token_provider=static_token(settings.platform_access_token),
        timeout_seconds=settings.platform_timeout_seconds,
    )
    bundles = FileBundleRepository(settings.bundles_dir, cache_ttl_seconds=settings.bundles_cache_ttl_seconds)
    catalog = HttpCatalogSnapshotProvider(http_client, max_attempts=settings.catalog_max_attempts)
    gateway = HttpPromotionGateway(http_client)

    if runtime_adapters == "databricks":
        required_settings = [
            ("DATABRICKS_SERVER_HOSTNAME", settings.databricks_server_hostname),
            ("DATABRICKS_HTTP_PATH", settings.databricks_http_path),
            ("DATABRICKS_ACCESS_TOKEN", settings.databricks_access_token),
        ]
        missing = [name for name, value in required_settings if not value]
        if missing:
            raise ValueError(f"Missing required Databricks settings: {', '.join(missing)}")
        store: PromotionStore = DatabricksPromotionStore(DatabricksSqlClient(settings))
    else:
        store = InMemoryPromotionStore()

    return Adapters(bundles=bundles, catalog=catalog, gateway=gateway, store=store, audit_log=LoggingAuditLog())


def create_service(settings: Optional[Settings] = None, adapters: Optional[Adapters] = None) -> BundleOfferService:
    settings = settings or get_settings()
    adapters = adapters or create_adapters(settings)
    reconciler = OfferReconciler(
        gateway=adapters.gateway,
        store=adapters.store,
        offer_kind=OfferKind(settings.offer_kind),
        prefer_percentage_coupons=settings.prefer_percentage_coupons,
        verbose_failures=settings.verbose_failures,
    )
    return BundleOfferService(
        bundles=adapters.bundles,
        catalog=adapters.catalog,
        store=adapters.store,
        reconciler=reconciler,
        sweeper=ExpirySweeper(adapters.store, interval_seconds=settings.sweep_interval_seconds),
        audit_log=adapters.audit_log,
        default_ttl_hours=settings.offer_ttl_hours,
    )
