from __future__ import annotations

from typing import Protocol

from bundle_offers.domain.offers.models import OfferDraft, OfferKind


class PromotionGateway(Protocol):
    """Platform discount objects. Every method raises GatewayError on rejection."""

    def create_coupon(self, store_id: str, draft: OfferDraft) -> str: ...

    def update_coupon(self, store_id: str, external_id: str, draft: OfferDraft) -> None: ...

    def create_special_offer(self, store_id: str, draft: OfferDraft) -> str: ...

    def update_special_offer(self, store_id: str, external_id: str, draft: OfferDraft) -> None: ...

    def change_status(self, store_id: str, external_id: str, status: str) -> None: ...

    def delete(self, store_id: str, kind: OfferKind, external_id: str) -> None: ...
