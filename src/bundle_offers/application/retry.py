from __future__ import annotations

import logging
import math
from dataclasses import dataclass, replace
from typing import Callable, Generic, Optional, TypeVar

from bundle_offers.application.errors import GatewayError
from bundle_offers.domain.offers.models import OfferDraft
from bundle_offers.domain.offers.pricing import build_offer_name, minimum_purchase_amount

logger = logging.getLogger(__name__)

MAX_ATTEMPTS = 6

P = TypeVar("P")
R = TypeVar("R")


@dataclass(frozen=True)
class RetryRule(Generic[P]):
    """When `matches` the error, retry with `transform(payload, attempt)`.

    A transform returning None means the rule cannot help and the next
    matching rule is tried. `max_retries` bounds how often this rule may fire.
    """

    name: str
    matches: Callable[[GatewayError], bool]
    transform: Callable[[P, int], Optional[P]]
    max_retries: int = 1


class RetryExhausted(Exception):
    def __init__(self, error: GatewayError, payload: object, attempts: int) -> None:
        super().__init__(str(error))
        self.error = error
        self.payload = payload
        self.attempts = attempts


@dataclass(frozen=True)
class RetryPolicy(Generic[P]):
    rules: tuple[RetryRule[P], ...]

    def run(self, operation: Callable[[P], R], payload: P) -> tuple[R, P]:
        """
        Call `operation` until it succeeds or no rule can recover the error.

        Returns the result and the payload that succeeded. Raises
        RetryExhausted carrying the last error and payload otherwise.
        """
        used: dict[str, int] = {}
        attempts = 0
        while True:
            attempts += 1
            try:
                return operation(payload), payload
            except GatewayError as e:
                rule, next_payload = self._recover(e, payload, used)
                if rule is None or next_payload is None:
                    raise RetryExhausted(e, payload, attempts) from e
                used[rule.name] = used.get(rule.name, 0) + 1
                logger.warning(
                    f"Platform rejected attempt {attempts} (status={e.status_code}); retrying with {rule.name}"
                )
                payload = next_payload

    def _recover(
        self, error: GatewayError, payload: P, used: dict[str, int]
    ) -> tuple[Optional[RetryRule[P]], Optional[P]]:
        for rule in self.rules:
            if used.get(rule.name, 0) >= rule.max_retries or not rule.matches(error):
                continue
            next_payload = rule.transform(payload, used.get(rule.name, 0) + 1)
            if next_payload is not None:
                return rule, next_payload
        return None, None


def _floor_amount(draft: OfferDraft, attempt: int) -> Optional[OfferDraft]:
    floored = float(math.floor(draft.amount))
    if floored < 1 or floored >= draft.amount:
        return None
    return replace(draft, amount=floored, minimum_amount=minimum_purchase_amount(floored))


def _is_name_conflict(error: GatewayError) -> bool:
    return (error.is_conflict or error.is_validation_rejection) and error.mentions_field("name")


def _is_code_conflict(error: GatewayError) -> bool:
    if error.mentions_field("code"):
        return error.is_conflict or error.is_validation_rejection
    return error.is_conflict and not error.mentions_field("name")


def _is_amount_rejection(error: GatewayError) -> bool:
    return error.is_validation_rejection and not (error.mentions_field("name") or error.mentions_field("code"))


def fixed_fallback_rule(fixed_amount: Optional[float]) -> RetryRule[OfferDraft]:
    """A rejected percentage draft is retried once as the same discount in money."""

    def transform(draft: OfferDraft, attempt: int) -> Optional[OfferDraft]:
        if draft.discount_type != "percentage" or not fixed_amount:
            return None
        return replace(draft, discount_type="fixed", amount=fixed_amount)

    return RetryRule(name="fixed amount", matches=_is_amount_rejection, transform=transform)


def floor_amount_rule() -> RetryRule[OfferDraft]:
    return RetryRule(name="floored amount", matches=_is_amount_rejection, transform=_floor_amount)


def regenerate_name_rule(name_suffix: Callable[[int], str], max_attempts: int = MAX_ATTEMPTS) -> RetryRule[OfferDraft]:
    def transform(draft: OfferDraft, attempt: int) -> OfferDraft:
        return replace(draft, name=build_offer_name(draft.code, name_suffix(attempt)))

    return RetryRule(
        name="regenerated name", matches=_is_name_conflict, transform=transform, max_retries=max_attempts - 1
    )


def regenerate_code_rule(code_factory: Callable[[], str], max_attempts: int = MAX_ATTEMPTS) -> RetryRule[OfferDraft]:
    def transform(draft: OfferDraft, attempt: int) -> OfferDraft:
        code = code_factory()
        return replace(draft, code=code, name=build_offer_name(code))

    return RetryRule(
        name="regenerated code", matches=_is_code_conflict, transform=transform, max_retries=max_attempts - 1
    )


def create_policy(
    code_factory: Callable[[], str],
    name_suffix: Callable[[int], str],
    fixed_amount: Optional[float] = None,
) -> RetryPolicy[OfferDraft]:
    """Create path: names and codes may be regenerated, a percentage turned
    into `fixed_amount` and the amount floored once."""
    return RetryPolicy(
        rules=(
            regenerate_name_rule(name_suffix),
            regenerate_code_rule(code_factory),
            fixed_fallback_rule(fixed_amount),
            floor_amount_rule(),
        )
    )


def update_policy(fixed_amount: Optional[float] = None) -> RetryPolicy[OfferDraft]:
    """Update path: the object keeps its code and name, only the amount may change."""
    return RetryPolicy(rules=(fixed_fallback_rule(fixed_amount), floor_amount_rule()))
