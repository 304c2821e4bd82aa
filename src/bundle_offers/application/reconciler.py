from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Iterable, Optional

from bundle_offers.application.errors import DuplicateCodeError, GatewayError, InvalidStoreError
from bundle_offers.application.retry import (
    MAX_ATTEMPTS,
    RetryExhausted,
    RetryPolicy,
    create_policy,
    update_policy,
)
from bundle_offers.domain.bundles.evaluator import EvaluationResult
from bundle_offers.domain.bundles.rules import Percentage
from bundle_offers.domain.cart.normalizer import normalize_cart
from bundle_offers.domain.offers.models import (
    BundleSummary,
    CartIdentity,
    OfferDraft,
    OfferKind,
    OfferStatus,
    PromotionRecord,
    ReconcileAction,
    ReconcileFailure,
    ReconcileMode,
    ReconcileOutcome,
)
from bundle_offers.domain.offers.pricing import (
    build_code,
    build_offer_name,
    include_product_ids,
    merge_bundle_summaries,
    minimum_purchase_amount,
    same_offer,
    summaries_from_evaluation,
    summaries_product_ids,
    summaries_total,
)
from bundle_offers.ports.promotion_gateway import PromotionGateway
from bundle_offers.ports.promotion_store import PromotionStore

logger = logging.getLogger(__name__)

MIN_TTL_HOURS = 1
MAX_TTL_HOURS = 24
FIXED = "fixed"
PERCENTAGE = "percentage"


@dataclass(frozen=True)
class _Desired:
    discount_type: str
    discount_amount: float
    issued_amount: float
    product_ids: frozenset[str]
    summaries: tuple[BundleSummary, ...]

    @property
    def bundle_ids(self) -> frozenset[str]:
        return frozenset(s.bundle_id for s in self.summaries)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _already_issued(record: PromotionRecord, desired: _Desired) -> bool:
    # a percentage the platform refused lives on as a fixed coupon for the same money
    types = {desired.discount_type, FIXED} if desired.discount_type == PERCENTAGE else {desired.discount_type}
    return any(same_offer(record, t, desired.discount_amount, desired.product_ids) for t in types)


def _unexpected(error: Exception, operation: str) -> GatewayError:
    logger.exception(f"Unexpected error from the promotion gateway during {operation}")
    return GatewayError(f"Promotion gateway failed during {operation}: {error}", code="gateway_error")


def clamp_ttl_hours(ttl_hours: Any) -> int:
    try:
        ttl = int(ttl_hours)
    except (TypeError, ValueError):
        return MAX_TTL_HOURS
    return max(MIN_TTL_HOURS, min(MAX_TTL_HOURS, ttl))


class OfferReconciler:
    """
    Converges the platform discount object and its stored record with an evaluation.

    There is no lock: two concurrent calls for the same cart may both issue,
    and the later `supersede_others` leaves exactly one record `issued`.
    Nothing the gateway raises escapes `issue_or_reuse`; it becomes a `fail` outcome.
    """

    def __init__(
        self,
        gateway: PromotionGateway,
        store: PromotionStore,
        offer_kind: OfferKind = OfferKind.COUPON,
        prefer_percentage_coupons: bool = False,
        verbose_failures: bool = False,
        clock: Callable[[], datetime] = _utcnow,
        code_factory: Callable[[str, str], str] = build_code,
        id_factory: Callable[[], str] = lambda: uuid.uuid4().hex,
    ) -> None:
        self.gateway = gateway
        self.store = store
        self.offer_kind = OfferKind(offer_kind)
        self.prefer_percentage_coupons = prefer_percentage_coupons
        self.verbose_failures = verbose_failures
        self.clock = clock
        self.code_factory = code_factory
        self.id_factory = id_factory

    def issue_or_reuse(
        self,
        store_id: str,
        cart_items: Optional[Iterable[Any]],
        evaluation: EvaluationResult,
        ttl_hours: int = MAX_TTL_HOURS,
        cart_key: Optional[str] = None,
        mode: Optional[ReconcileMode] = None,
        verbose: Optional[bool] = None,
    ) -> ReconcileOutcome:
        if not store_id or not str(store_id).strip():
            raise InvalidStoreError("store_id is required")
        cart_key = (cart_key or "").strip() or None
        cart_hash = evaluation.cart_hash if evaluation is not None else normalize_cart(cart_items).cart_hash
        identity = CartIdentity(cart_key=cart_key, cart_hash=cart_hash)
        if mode is None:
            mode = ReconcileMode.INCREMENTAL if cart_key else ReconcileMode.AUTHORITATIVE
        mode = ReconcileMode(mode)
        ttl = clamp_ttl_hours(ttl_hours)
        verbose = self.verbose_failures if verbose is None else verbose
        log_extra = {"store_id": store_id, "cart_group": identity.group_key, "mode": mode.value}

        existing = self.store.find_active(store_id, identity)
        now = self.clock()
        if existing is not None and existing.is_expired(now):
            existing.transition(OfferStatus.EXPIRED)
            self.store.save(existing)
            existing = None

        numeric_only = self.offer_kind == OfferKind.COUPON
        incoming = summaries_from_evaluation(evaluation, numeric_only) if evaluation is not None else ()
        total = evaluation.applied.total_discount if evaluation is not None else 0.0
        product_ids = include_product_ids(evaluation, numeric_only) if evaluation is not None else frozenset()

        if total <= 0 or not product_ids:
            return self._clear(store_id, existing, verbose, log_extra)

        desired = self._desired(evaluation, total, product_ids, incoming, accumulated=False)
        if existing is None:
            return self._create(store_id, identity, desired, ttl, verbose, log_extra)

        accumulated = False
        if mode == ReconcileMode.INCREMENTAL:
            merged = merge_bundle_summaries(existing.bundles_summary, incoming)
            accumulated = {s.bundle_id for s in merged} != {s.bundle_id for s in incoming}
            if accumulated:
                desired = self._desired(
                    evaluation,
                    summaries_total(merged),
                    summaries_product_ids(merged) | product_ids,
                    merged,
                    accumulated=True,
                )

        if _already_issued(existing, desired):
            self._touch(store_id, identity, existing, now)
            action = ReconcileAction.KEEP if accumulated else ReconcileAction.REUSE
            logger.info(f"{action.value.capitalize()} promotion {existing.code}", extra=log_extra)
            return ReconcileOutcome(offer=existing, action=action)

        if mode == ReconcileMode.AUTHORITATIVE:
            return self._replace(store_id, identity, existing, desired, ttl, verbose, log_extra)
        return self._update(store_id, identity, existing, desired, ttl, verbose, log_extra)

    def _desired(
        self,
        evaluation: EvaluationResult,
        total: float,
        product_ids: frozenset[str],
        summaries: tuple[BundleSummary, ...],
        accumulated: bool,
    ) -> _Desired:
        rule = evaluation.applied.rule
        if (
            self.prefer_percentage_coupons
            and self.offer_kind == OfferKind.COUPON
            and not accumulated
            and isinstance(rule, Percentage)
        ):
            pct = float(max(1, min(100, round(rule.value))))
            return _Desired(PERCENTAGE, total, pct, product_ids, summaries)
        return _Desired(FIXED, total, total, product_ids, summaries)

    def _touch(self, store_id: str, identity: CartIdentity, record: PromotionRecord, now: datetime) -> None:
        record.last_seen_at = now
        self.store.save(record)
        self.store.supersede_others(store_id, identity, record.id)

    def _draft(self, code: str, name: str, desired: _Desired, expires_at: datetime, issued_at: datetime) -> OfferDraft:
        return OfferDraft(
            code=code,
            name=name,
            discount_type=desired.discount_type,
            amount=desired.issued_amount,
            minimum_amount=minimum_purchase_amount(desired.discount_amount),
            product_ids=tuple(sorted(desired.product_ids)),
            starts_on=issued_at.date(),
            expires_on=expires_at.date(),
        )

    def _create_call(self, store_id: str) -> Callable[[OfferDraft], str]:
        if self.offer_kind == OfferKind.SPECIAL_OFFER:
            return lambda draft: self.gateway.create_special_offer(store_id, draft)
        return lambda draft: self.gateway.create_coupon(store_id, draft)

    def _update_call(self, store_id: str, record: PromotionRecord) -> Callable[[OfferDraft], None]:
        external_id = record.external_id or ""
        if record.kind == OfferKind.SPECIAL_OFFER:
            return lambda draft: self.gateway.update_special_offer(store_id, external_id, draft)
        return lambda draft: self.gateway.update_coupon(store_id, external_id, draft)

    def _create(
        self,
        store_id: str,
        identity: CartIdentity,
        desired: _Desired,
        ttl: int,
        verbose: bool,
        log_extra: dict[str, Any],
    ) -> ReconcileOutcome:
        now = self.clock()
        expires_at = now + timedelta(hours=ttl)
        policy: RetryPolicy[OfferDraft] = create_policy(
            code_factory=lambda: self.code_factory(store_id, identity.group_key),
            name_suffix=lambda attempt: f"{int(self.clock().timestamp() * 1000)}-{attempt}",
            fixed_amount=desired.discount_amount,
        )
        last_draft: Optional[OfferDraft] = None
        for attempt in range(1, MAX_ATTEMPTS + 1):
            code = self.code_factory(store_id, identity.group_key)
            draft = self._draft(code, build_offer_name(code), desired, expires_at, now)
            try:
                external_id, draft = policy.run(self._create_call(store_id), draft)
            except RetryExhausted as e:
                return self._fail("create_rejected", e.error, e.payload, verbose, log_extra)
            except Exception as e:
                return self._fail("gateway_error", _unexpected(e, "create"), draft, verbose, log_extra)
            last_draft = draft
            record = PromotionRecord(
                id=self.id_factory(),
                store_id=store_id,
                identity=identity,
                code=draft.code,
                kind=self.offer_kind,
                discount_type=draft.discount_type,
                discount_amount=desired.discount_amount,
                issued_amount=draft.amount,
                include_product_ids=desired.product_ids,
                applied_bundle_ids=desired.bundle_ids,
                bundles_summary=desired.summaries,
                expires_at=expires_at,
                issued_at=now,
                last_seen_at=now,
                external_id=external_id,
                name=draft.name,
            )
            try:
                saved = self.store.upsert_issued(record)
            except DuplicateCodeError:
                logger.warning(
                    f"Code {draft.code} already stored (attempt {attempt}); regenerating", extra=log_extra
                )
                self._retire_quietly(store_id, self.offer_kind, external_id, log_extra)
                continue
            superseded = self.store.supersede_others(store_id, identity, saved.id)
            logger.info(
                f"Created promotion {saved.code} for {saved.discount_amount} (superseded {superseded})",
                extra=log_extra,
            )
            return ReconcileOutcome(offer=saved, action=ReconcileAction.CREATE)

        error = GatewayError("Could not store a unique promotion code", code="duplicate_code")
        return self._fail("duplicate_code", error, last_draft, verbose, log_extra)

    def _update(
        self,
        store_id: str,
        identity: CartIdentity,
        existing: PromotionRecord,
        desired: _Desired,
        ttl: int,
        verbose: bool,
        log_extra: dict[str, Any],
    ) -> ReconcileOutcome:
        if not existing.external_id:
            return self._replace(store_id, identity, existing, desired, ttl, verbose, log_extra)
        now = self.clock()
        expires_at = now + timedelta(hours=ttl)
        draft = self._draft(existing.code, existing.name or build_offer_name(existing.code), desired, expires_at, now)
        try:
            _, draft = update_policy(desired.discount_amount).run(self._update_call(store_id, existing), draft)
        except RetryExhausted as e:
            if e.error.is_not_found or e.error.is_validation_rejection or e.error.is_conflict:
                logger.warning(
                    f"Update of {existing.code} rejected (status={e.error.status_code}); issuing a new promotion",
                    extra=log_extra,
                )
                return self._replace(store_id, identity, existing, desired, ttl, verbose, log_extra)
            return self._fail("update_rejected", e.error, e.payload, verbose, log_extra)
        except Exception as e:
            return self._fail("gateway_error", _unexpected(e, "update"), draft, verbose, log_extra)

        existing.discount_type = draft.discount_type
        existing.discount_amount = desired.discount_amount
        existing.issued_amount = draft.amount
        existing.include_product_ids = desired.product_ids
        existing.applied_bundle_ids = desired.bundle_ids
        existing.bundles_summary = desired.summaries
        existing.identity = identity
        existing.expires_at = expires_at
        existing.last_seen_at = now
        self.store.save(existing)
        superseded = self.store.supersede_others(store_id, identity, existing.id)
        logger.info(
            f"Updated promotion {existing.code} to {existing.discount_amount} (superseded {superseded})",
            extra=log_extra,
        )
        return ReconcileOutcome(offer=existing, action=ReconcileAction.UPDATE)

    def _replace(
        self,
        store_id: str,
        identity: CartIdentity,
        existing: PromotionRecord,
        desired: _Desired,
        ttl: int,
        verbose: bool,
        log_extra: dict[str, Any],
    ) -> ReconcileOutcome:
        error = self._retire(store_id, existing)
        if error is not None:
            return self._fail("retire_failed", error, existing, verbose, log_extra)
        existing.transition(OfferStatus.SUPERSEDED)
        self.store.save(existing)
        return self._create(store_id, identity, desired, ttl, verbose, log_extra)

    def _clear(
        self, store_id: str, existing: Optional[PromotionRecord], verbose: bool, log_extra: dict[str, Any]
    ) -> ReconcileOutcome:
        if existing is None:
            return ReconcileOutcome(offer=None, action=ReconcileAction.CLEAR)
        error = self._retire(store_id, existing)
        if error is not None:
            return self._fail("retire_failed", error, existing, verbose, log_extra)
        existing.transition(OfferStatus.CLEARED)
        self.store.save(existing)
        logger.info(f"Cleared promotion {existing.code}", extra=log_extra)
        return ReconcileOutcome(offer=None, action=ReconcileAction.CLEAR)

    def _retire(self, store_id: str, record: PromotionRecord) -> Optional[GatewayError]:
        """Take the platform object down. A 404 counts as already retired."""
        if not record.external_id:
            return None
        try:
            if record.kind == OfferKind.SPECIAL_OFFER:
                self.gateway.change_status(store_id, record.external_id, "inactive")
            self.gateway.delete(store_id, record.kind, record.external_id)
        except GatewayError as e:
            if e.is_not_found:
                return None
            return e
        except Exception as e:
            return _unexpected(e, "retire")
        return None

    def _retire_quietly(self, store_id: str, kind: OfferKind, external_id: str, log_extra: dict[str, Any]) -> None:
        try:
            self.gateway.delete(store_id, kind, external_id)
        except Exception as e:
            logger.warning(f"Could not delete orphaned promotion {external_id}: {e}", extra=log_extra)

    def _fail(
        self,
        reason: str,
        error: GatewayError,
        draft: Any,
        verbose: bool,
        log_extra: dict[str, Any],
    ) -> ReconcileOutcome:
        logger.error(f"Promotion reconciliation failed ({reason}): {error}", extra=log_extra)
        payload = draft.to_dict() if verbose and isinstance(draft, (OfferDraft, PromotionRecord)) else None
        failure = ReconcileFailure(
            reason=reason,
            message=str(error),
            status_code=error.status_code,
            code=error.code,
            detail=error.detail,
            payload=payload,
        )
        return ReconcileOutcome(offer=None, action=ReconcileAction.FAIL, failure=failure)
