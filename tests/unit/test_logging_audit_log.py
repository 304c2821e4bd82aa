"""Unit tests for LoggingAuditLog."""

import logging
from datetime import datetime, timezone

from bundle_offers.adapters.audit.logging_audit_log import LoggingAuditLog
from bundle_offers.domain.bundles import AuditEntry


def test_record_bundle_applied_logs_entry(caplog):
    entry = AuditEntry(
        store_id="s1",
        bundle_id="b1",
        matched_variant_ids=["va", "vb"],
        cart_hash="abc",
        created_at=datetime(2024, 3, 1, tzinfo=timezone.utc),
    )
    with caplog.at_level(logging.INFO, logger="bundle_offers.adapters.audit.logging_audit_log"):
        LoggingAuditLog().record_bundle_applied(entry)

    [log] = caplog.records
    assert log.getMessage() == "Bundle b1 applied"
    assert log.store_id == "s1"
    assert log.matched_variant_ids == ["va", "vb"]
    assert log.cart_hash == "abc"
