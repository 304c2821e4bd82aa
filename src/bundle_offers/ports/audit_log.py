from __future__ import annotations

from typing import Protocol

from bundle_offers.domain.bundles.evaluator import AuditEntry


class AuditLog(Protocol):
    def record_bundle_applied(self, entry: AuditEntry) -> None: ...
