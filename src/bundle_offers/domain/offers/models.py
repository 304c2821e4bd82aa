from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any, Optional


class IllegalStatusTransition(ValueError):
    pass


class OfferStatus(str, Enum):
    ISSUED = "issued"
    REDEEMED = "redeemed"
    SUPERSEDED = "superseded"
    EXPIRED = "expired"
    CLEARED = "cleared"


ALLOWED_TRANSITIONS: dict[OfferStatus, frozenset[OfferStatus]] = {
    OfferStatus.ISSUED: frozenset(
        {OfferStatus.REDEEMED, OfferStatus.SUPERSEDED, OfferStatus.EXPIRED, OfferStatus.CLEARED}
    ),
    OfferStatus.SUPERSEDED: frozenset({OfferStatus.EXPIRED}),
    OfferStatus.REDEEMED: frozenset(),
    OfferStatus.EXPIRED: frozenset(),
    OfferStatus.CLEARED: frozenset(),
}

EXPIRABLE_STATUSES = (OfferStatus.ISSUED, OfferStatus.SUPERSEDED)


class OfferKind(str, Enum):
    COUPON = "coupon"
    SPECIAL_OFFER = "special_offer"


class ReconcileMode(str, Enum):
    AUTHORITATIVE = "authoritative"
    INCREMENTAL = "incremental"


class ReconcileAction(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    REUSE = "reuse"
    KEEP = "keep"
    CLEAR = "clear"
    FAIL = "fail"


@dataclass(frozen=True)
class CartIdentity:
    """Groups discount state: a long-lived cart key, or the cart content hash."""

    cart_key: Optional[str] = None
    cart_hash: Optional[str] = None

    def __post_init__(self) -> None:
        if not (self.cart_key or self.cart_hash):
            raise ValueError("CartIdentity requires a cart_key or a cart_hash")

    @property
    def group_key(self) -> str:
        if self.cart_key:
            return f"key:{self.cart_key}"
        return f"hash:{self.cart_hash}"


@dataclass(frozen=True)
class BundleSummary:
    bundle_id: str
    discount_amount: float
    product_ids: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "bundleId": self.bundle_id,
            "discountAmount": self.discount_amount,
            "productIds": list(self.product_ids),
        }

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> "BundleSummary":
        return cls(
            bundle_id=str(raw.get("bundleId") or ""),
            discount_amount=float(raw.get("discountAmount") or 0),
            product_ids=tuple(str(p) for p in raw.get("productIds") or ()),
        )


@dataclass
class PromotionRecord:
    """Durable mirror of one platform discount object."""

    id: str
    store_id: str
    identity: CartIdentity
    code: str
    kind: OfferKind
    discount_type: str
    discount_amount: float
    issued_amount: float
    include_product_ids: frozenset[str]
    applied_bundle_ids: frozenset[str]
    bundles_summary: tuple[BundleSummary, ...]
    expires_at: datetime
    issued_at: datetime
    last_seen_at: datetime
    external_id: Optional[str] = None
    name: Optional[str] = None
    redeemed_at: Optional[datetime] = None
    order_id: Optional[str] = None
    _status: OfferStatus = field(default=OfferStatus.ISSUED, repr=False)

    @property
    def status(self) -> OfferStatus:
        return self._status

    @status.setter
    def status(self, new_status: OfferStatus) -> None:
        self.transition(new_status)

    def transition(self, new_status: OfferStatus) -> None:
        new_status = OfferStatus(new_status)
        if new_status == self._status:
            return
        if new_status not in ALLOWED_TRANSITIONS[self._status]:
            raise IllegalStatusTransition(
                f"Promotion {self.code} cannot move from {self._status.value} to {new_status.value}"
            )
        self._status = new_status

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at <= now

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "storeId": self.store_id,
            "cartKey": self.identity.cart_key,
            "cartHash": self.identity.cart_hash,
            "code": self.code,
            "externalId": self.external_id,
            "kind": self.kind.value,
            "name": self.name,
            "status": self.status.value,
            "discountType": self.discount_type,
            "discountAmount": self.discount_amount,
            "issuedAmount": self.issued_amount,
            "includeProductIds": sorted(self.include_product_ids),
            "appliedBundleIds": sorted(self.applied_bundle_ids),
            "bundlesSummary": [s.to_dict() for s in self.bundles_summary],
            "expiresAt": self.expires_at.isoformat(),
            "issuedAt": self.issued_at.isoformat(),
            "lastSeenAt": self.last_seen_at.isoformat(),
            "redeemedAt": self.redeemed_at.isoformat() if self.redeemed_at else None,
            "orderId": self.order_id,
        }


@dataclass(frozen=True)
class ReconcileFailure:
    reason: str
    message: str
    status_code: Optional[int] = None
    code: Optional[str] = None
    detail: Any = None
    payload: Optional[dict[str, Any]] = None


@dataclass(frozen=True)
class ReconcileOutcome:
    offer: Optional[PromotionRecord]
    action: ReconcileAction
    failure: Optional[ReconcileFailure] = None

    @property
    def failed(self) -> bool:
        return self.action == ReconcileAction.FAIL


@dataclass(frozen=True)
class OfferDraft:
    """Platform-neutral content of one coupon or special offer."""

    code: str
    name: str
    discount_type: str
    amount: float
    minimum_amount: float
    product_ids: tuple[str, ...]
    starts_on: date
    expires_on: date

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.code,
            "name": self.name,
            "discountType": self.discount_type,
            "amount": self.amount,
            "minimumAmount": self.minimum_amount,
            "productIds": list(self.product_ids),
            "startsOn": self.starts_on.isoformat(),
            "expiresOn": self.expires_on.isoformat(),
        }
