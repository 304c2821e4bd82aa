from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class Settings:
    """Runtime settings sourced from environment variables."""

    log_level: str = "INFO"
    # Offer issuance
    offer_ttl_hours: int = 24
    offer_kind: str = "coupon"  # coupon | special_offer
    prefer_percentage_coupons: bool = False
    verbose_failures: bool = False
    sweep_interval_seconds: int = 3600
    # Platform API
    platform_api_base_url: str = "https://api.salla.dev"
    platform_timeout_seconds: float = 15.0
    platform_access_token: Optional[str] = None
    catalog_max_attempts: int = 3
    # Local bundle definitions
    bundles_dir: str = "./bundles"
    bundles_cache_ttl_seconds: int = 60
    # Databricks settings
    databricks_server_hostname: Optional[str] = None
    databricks_http_path: Optional[str] = None
    databricks_access_token: Optional[str] = None
    databricks_catalog: Optional[str] = None
    databricks_schema: Optional[str] = None
    databricks_table_prefix: str = ""

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            log_level=os.getenv("LOG_LEVEL", cls.log_level),
            offer_ttl_hours=int(os.getenv("OFFER_TTL_HOURS", cls.offer_ttl_hours)),
            offer_kind=os.getenv("OFFER_KIND", cls.offer_kind).strip().lower(),
            prefer_percentage_coupons=_env_flag("PREFER_PERCENTAGE_COUPONS", cls.prefer_percentage_coupons),
            verbose_failures=_env_flag("VERBOSE_FAILURES", cls.verbose_failures),
            sweep_interval_seconds=int(os.getenv("SWEEP_INTERVAL_SECONDS", cls.sweep_interval_seconds)),
            platform_api_base_url=os.getenv("PLATFORM_API_BASE_URL", cls.platform_api_base_url),
            platform_timeout_seconds=float(os.getenv("PLATFORM_TIMEOUT_SECONDS", cls.platform_timeout_seconds)),
            platform_access_token=os.getenv("PLATFORM_ACCESS_TOKEN"),
            catalog_max_attempts=int(os.getenv("CATALOG_MAX_ATTEMPTS", cls.catalog_max_attempts)),
            bundles_dir=os.getenv("BUNDLES_DIR", cls.bundles_dir),
            bundles_cache_ttl_seconds=int(os.getenv("BUNDLES_CACHE_TTL_SECONDS", cls.bundles_cache_ttl_seconds)),
            databricks_server_hostname=os.getenv("DATABRICKS_SERVER_HOSTNAME"),
            databricks_http_path=os.getenv("DATABRICKS_HTTP_PATH"),
            databricks_access_token=os.getenv("DATABRICKS_ACCESS_TOKEN"),
            databricks_catalog=os.getenv("DATABRICKS_CATALOG"),
            databricks_schema=os.getenv("DATABRICKS_SCHEMA"),
            databricks_table_prefix=os.getenv("DATABRICKS_TABLE_PREFIX", cls.databricks_table_prefix),
        )


def _env_flag(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("true", "1", "yes")


def get_settings(_cache: dict[str, Settings] = {}) -> Settings:
    """Provide a simple cached settings object."""

    if "settings" not in _cache:
        _cache["settings"] = Settings.from_env()
    return _cache["settings"]
