from __future__ import annotations

import logging
from typing import Any

from pydantic import ValidationError

from bundle_offers.application.errors import GatewayError
from bundle_offers.adapters.platform.http import PlatformHttpClient
from bundle_offers.adapters.platform.models import CouponPayload, CreatedObject, SpecialOfferPayload
from bundle_offers.domain.offers.models import OfferDraft, OfferKind
from bundle_offers.ports.promotion_gateway import PromotionGateway

logger = logging.getLogger(__name__)

COUPONS_PATH = "/admin/v2/coupons"
SPECIAL_OFFERS_PATH = "/admin/v2/specialoffers"


class HttpPromotionGateway(PromotionGateway):
    def __init__(self, client: PlatformHttpClient) -> None:
        self.client = client

    def create_coupon(self, store_id: str, draft: OfferDraft) -> str:
        payload = CouponPayload.from_draft(draft).model_dump()
        body = self.client.request("POST", COUPONS_PATH, store_id, "create coupon", json=payload)
        return _created_id(body, "coupon")

    def update_coupon(self, store_id: str, external_id: str, draft: OfferDraft) -> None:
        payload = CouponPayload.from_draft(draft).model_dump()
        self.client.request("PUT", f"{COUPONS_PATH}/{external_id}", store_id, "update coupon", json=payload)

    def create_special_offer(self, store_id: str, draft: OfferDraft) -> str:
        payload = SpecialOfferPayload.from_draft(draft).model_dump()
        body = self.client.request("POST", SPECIAL_OFFERS_PATH, store_id, "create special offer", json=payload)
        return _created_id(body, "special offer")

    def update_special_offer(self, store_id: str, external_id: str, draft: OfferDraft) -> None:
        payload = SpecialOfferPayload.from_draft(draft).model_dump()
        self.client.request(
            "PUT", f"{SPECIAL_OFFERS_PATH}/{external_id}", store_id, "update special offer", json=payload
        )

    def change_status(self, store_id: str, external_id: str, status: str) -> None:
        self.client.request(
            "PUT",
            f"{SPECIAL_OFFERS_PATH}/{external_id}/status",
            store_id,
            "change special offer status",
            json={"status": status},
        )

    def delete(self, store_id: str, kind: OfferKind, external_id: str) -> None:
        base = SPECIAL_OFFERS_PATH if kind == OfferKind.SPECIAL_OFFER else COUPONS_PATH
        self.client.request("DELETE", f"{base}/{external_id}", store_id, f"delete {OfferKind(kind).value}")
        logger.info(f"Deleted platform {OfferKind(kind).value} {external_id}", extra={"store_id": store_id})


def _created_id(body: dict[str, Any], what: str) -> str:
    try:
        return CreatedObject.model_validate(body.get("data") or {}).id
    except ValidationError as e:
        raise GatewayError(f"Platform returned no id for the created {what}", detail=body) from e
