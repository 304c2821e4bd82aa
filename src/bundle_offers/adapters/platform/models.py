"""Wire models for the commerce platform admin API."""

from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator

from bundle_offers.domain.offers.models import OfferDraft

APPLIED_CHANNEL = "browser_and_application"


class CouponPayload(BaseModel):
    code: str
    type: str = Field(..., description="fixed | percentage")
    amount: float
    minimum_amount: float
    include_product_ids: list[str]
    start_date: str
    expiry_date: str
    usage_limit: int = 1
    usage_limit_per_user: int = 1
    free_shipping: bool = False
    exclude_sale_products: bool = False
    is_apply_with_offer: bool = True

    @classmethod
    def from_draft(cls, draft: OfferDraft) -> "CouponPayload":
        return cls(
            code=draft.code,
            type=draft.discount_type,
            amount=draft.amount,
            minimum_amount=draft.minimum_amount,
            include_product_ids=list(draft.product_ids),
            start_date=draft.starts_on.isoformat(),
            expiry_date=draft.expires_on.isoformat(),
        )


class OfferBuy(BaseModel):
    type: str = "product"
    min_amount: float
    products: list[str]


class OfferGet(BaseModel):
    discount_type: str = "fixed_amount"
    discount_amount: float


class SpecialOfferPayload(BaseModel):
    name: str
    message: str
    applied_channel: str = APPLIED_CHANNEL
    offer_type: str = "fixed_amount"
    applied_to: str = "product"
    start_date: str
    expiry_date: str
    min_purchase_amount: float
    buy: OfferBuy
    get: OfferGet
    status: str = "active"

    @classmethod
    def from_draft(cls, draft: OfferDraft) -> "SpecialOfferPayload":
        return cls(
            name=draft.name,
            message=f"Bundle discount {draft.amount:g}",
            start_date=draft.starts_on.isoformat(),
            expiry_date=draft.expires_on.isoformat(),
            min_purchase_amount=draft.minimum_amount,
            buy=OfferBuy(min_amount=draft.minimum_amount, products=list(draft.product_ids)),
            get=OfferGet(discount_amount=draft.amount),
        )


class CreatedObject(BaseModel):
    id: str

    @field_validator("id", mode="before")
    @classmethod
    def _stringify(cls, value: Any) -> Optional[str]:
        return None if value is None else str(value)


class Variant(BaseModel):
    """The subset of a variant record used for catalog snapshots."""

    id: str
    product_id: Optional[str] = None
    price: Optional[float] = None
    sale_price: Optional[float] = None
    is_available: bool = True
    status: Optional[str] = None

    @field_validator("id", "product_id", mode="before")
    @classmethod
    def _stringify(cls, value: Any) -> Optional[str]:
        return None if value is None else str(value)

    @field_validator("price", "sale_price", mode="before")
    @classmethod
    def _amount(cls, value: Any) -> Optional[float]:
        if isinstance(value, dict):
            value = value.get("amount")
        if value is None or value == "":
            return None
        return float(value)

    @property
    def unit_price(self) -> Optional[float]:
        if self.sale_price is not None and self.sale_price > 0:
            return self.sale_price
        return self.price

    @property
    def is_active(self) -> bool:
        return self.is_available and (self.status or "sale") not in ("hidden", "deleted", "out")
