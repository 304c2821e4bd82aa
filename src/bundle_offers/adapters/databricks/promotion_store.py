from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any, Optional

from bundle_offers.adapters.databricks.client import DatabricksSqlClient
from bundle_offers.application.errors import DuplicateCodeError
from bundle_offers.domain.offers.models import (
    BundleSummary,
    CartIdentity,
    OfferKind,
    OfferStatus,
    PromotionRecord,
)
from bundle_offers.ports.promotion_store import PromotionStore

logger = logging.getLogger(__name__)

TABLE_NAME = "bundle_promotion_records"

COLUMNS = (
    "id",
    "store_id",
    "group_key",
    "cart_key",
    "cart_hash",
    "code",
    "external_id",
    "kind",
    "name",
    "status",
    "discount_type",
    "discount_amount",
    "issued_amount",
    "include_product_ids_json",
    "applied_bundle_ids_json",
    "bundles_summary_json",
    "expires_at",
    "issued_at",
    "last_seen_at",
    "redeemed_at",
    "order_id",
)

DDL = """
CREATE TABLE IF NOT EXISTS {table} (
  id STRING NOT NULL,
  store_id STRING NOT NULL,
  group_key STRING NOT NULL,
  cart_key STRING,
  cart_hash STRING,
  code STRING NOT NULL,
  external_id STRING,
  kind STRING NOT NULL,
  name STRING,
  status STRING NOT NULL,
  discount_type STRING NOT NULL,
  discount_amount DOUBLE NOT NULL,
  issued_amount DOUBLE NOT NULL,
  include_product_ids_json STRING,
  applied_bundle_ids_json STRING,
  bundles_summary_json STRING,
  expires_at TIMESTAMP NOT NULL,
  issued_at TIMESTAMP NOT NULL,
  last_seen_at TIMESTAMP NOT NULL,
  redeemed_at TIMESTAMP,
  order_id STRING,
  updated_at TIMESTAMP
) USING DELTA
"""


class DatabricksPromotionStore(PromotionStore):
    """
    Promotion records in a Delta table.

    Writes are a MERGE keyed by record id. Delta has no unique constraints, so
    code uniqueness is checked with a lookup right before the MERGE and a
    clash is raised as DuplicateCodeError.
    """

    def __init__(self, client: DatabricksSqlClient, table_name: str = TABLE_NAME) -> None:
        self.client = client
        self.table = client.qualified(table_name)
        self._table_ready = False

    def _ensure_table(self) -> None:
        if self._table_ready:
            return
        self.client.execute(DDL.format(table=self.table))
        self._table_ready = True

    def find_active(self, store_id: str, identity: CartIdentity) -> Optional[PromotionRecord]:
        self._ensure_table()
        rows = self.client.query(
            f"SELECT * FROM {self.table} WHERE store_id = :store_id AND group_key = :group_key "
            f"AND status = 'issued' ORDER BY last_seen_at DESC LIMIT 1",
            {"store_id": store_id, "group_key": identity.group_key},
        )
        return _to_record(rows[0]) if rows else None

    def upsert_issued(self, record: PromotionRecord) -> PromotionRecord:
        self._ensure_table()
        clash = self.client.query(
            f"SELECT id FROM {self.table} WHERE code = :code AND id <> :id LIMIT 1",
            {"code": record.code, "id": record.id},
        )
        if clash:
            raise DuplicateCodeError(record.code)
        self._merge(record)
        return record

    def save(self, record: PromotionRecord) -> None:
        self._ensure_table()
        self._merge(record)

    def supersede_others(self, store_id: str, identity: CartIdentity, keep_id: str) -> int:
        self._ensure_table()
        kept = self.client.query(
            f"SELECT status FROM {self.table} WHERE id = :id", {"id": keep_id}
        )
        if not kept or kept[0].get("status") != OfferStatus.ISSUED.value:
            return 0
        where = (
            "store_id = :store_id AND group_key = :group_key AND status = 'issued' AND id <> :keep_id"
        )
        params = {"store_id": store_id, "group_key": identity.group_key, "keep_id": keep_id}
        count = _count(self.client.query(f"SELECT count(*) AS n FROM {self.table} WHERE {where}", params))
        if count:
            self.client.execute(
                f"UPDATE {self.table} SET status = 'superseded', updated_at = current_timestamp() WHERE {where}",
                params,
            )
        return count

    def find_by_code(self, store_id: str, code: str) -> Optional[PromotionRecord]:
        self._ensure_table()
        rows = self.client.query(
            f"SELECT * FROM {self.table} WHERE store_id = :store_id AND code = :code LIMIT 1",
            {"store_id": store_id, "code": code},
        )
        return _to_record(rows[0]) if rows else None

    def expire_stale(self, now: datetime) -> int:
        self._ensure_table()
        where = "status IN ('issued', 'superseded') AND expires_at <= :now"
        params = {"now": now}
        count = _count(self.client.query(f"SELECT count(*) AS n FROM {self.table} WHERE {where}", params))
        if count:
            self.client.execute(
                f"UPDATE {self.table} SET status = 'expired', updated_at = current_timestamp() WHERE {where}",
                params,
            )
        logger.info(f"Expired {count} promotion record(s) in {self.table}")
        return count

    def _merge(self, record: PromotionRecord) -> None:
        params = _to_row(record)
        source = ", ".join(f":{c} AS {c}" for c in COLUMNS)
        updates = ", ".join(f"t.{c} = s.{c}" for c in COLUMNS if c != "id")
        self.client.execute(
            f"MERGE INTO {self.table} t USING (SELECT {source}) s ON t.id = s.id "
            f"WHEN MATCHED THEN UPDATE SET {updates}, t.updated_at = current_timestamp() "
            f"WHEN NOT MATCHED THEN INSERT ({', '.join(COLUMNS)}, updated_at) "
            f"VALUES ({', '.join(f's.{c}' for c in COLUMNS)}, current_timestamp())",
            params,
        )


def _count(rows: list[dict[str, Any]]) -> int:
    return int(rows[0].get("n") or 0) if rows else 0


def _to_row(record: PromotionRecord) -> dict[str, Any]:
    return {
        "id": record.id,
        "store_id": record.store_id,
        "group_key": record.identity.group_key,
        "cart_key": record.identity.cart_key,
        "cart_hash": record.identity.cart_hash,
        "code": record.code,
        "external_id": record.external_id,
        "kind": record.kind.value,
        "name": record.name,
        "status": record.status.value,
        "discount_type": record.discount_type,
        "discount_amount": float(record.discount_amount),
        "issued_amount": float(record.issued_amount),
        "include_product_ids_json": json.dumps(sorted(record.include_product_ids)),
        "applied_bundle_ids_json": json.dumps(sorted(record.applied_bundle_ids)),
        "bundles_summary_json": json.dumps([s.to_dict() for s in record.bundles_summary]),
        "expires_at": record.expires_at,
        "issued_at": record.issued_at,
        "last_seen_at": record.last_seen_at,
        "redeemed_at": record.redeemed_at,
        "order_id": record.order_id,
    }


def _to_record(row: dict[str, Any]) -> PromotionRecord:
    return PromotionRecord(
        id=str(row["id"]),
        store_id=str(row["store_id"]),
        identity=CartIdentity(cart_key=row.get("cart_key"), cart_hash=row.get("cart_hash")),
        code=str(row["code"]),
        kind=OfferKind(row["kind"]),
        discount_type=str(row["discount_type"]),
        discount_amount=float(row["discount_amount"]),
        issued_amount=float(row["issued_amount"]),
        include_product_ids=frozenset(json.loads(row.get("include_product_ids_json") or "[]")),
        applied_bundle_ids=frozenset(json.loads(row.get("applied_bundle_ids_json") or "[]")),
        bundles_summary=tuple(
            BundleSummary.from_dict(s) for s in json.loads(row.get("bundles_summary_json") or "[]")
        ),
        expires_at=_utc(row["expires_at"]),
        issued_at=_utc(row["issued_at"]),
        last_seen_at=_utc(row["last_seen_at"]),
        external_id=row.get("external_id"),
        name=row.get("name"),
        redeemed_at=_utc(row["redeemed_at"]) if row.get("redeemed_at") else None,
        order_id=row.get("order_id"),
        _status=OfferStatus(row["status"]),
    )


def _utc(value: Any) -> datetime:
    if isinstance(value, str):
        value = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value
