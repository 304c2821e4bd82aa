from __future__ import annotations

import logging

from bundle_offers.domain.bundles.evaluator import AuditEntry
from bundle_offers.ports.audit_log import AuditLog

logger = logging.getLogger(__name__)


class LoggingAuditLog(AuditLog):
    def record_bundle_applied(self, entry: AuditEntry) -> None:
        logger.info(
            f"Bundle {entry.bundle_id} applied",
            extra={
                "store_id": entry.store_id,
                "bundle_id": entry.bundle_id,
                "matched_variant_ids": list(entry.matched_variant_ids),
                "cart_hash": entry.cart_hash,
                "created_at": entry.created_at.isoformat(),
            },
        )
