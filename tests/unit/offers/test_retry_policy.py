from __future__ import annotations

from datetime import date

import pytest

from bundle_offers.application.errors import GatewayError
from bundle_offers.application.retry import (
    RetryExhausted,
    RetryPolicy,
    RetryRule,
    create_policy,
    floor_amount_rule,
    update_policy,
)
from bundle_offers.domain.offers import OfferDraft

NAME_TAKEN = GatewayError("name taken", status_code=422, detail={"errors": {"name": ["taken"]}})
CODE_TAKEN = GatewayError("code taken", status_code=409, detail={"errors": {"code": ["taken"]}})
AMOUNT_REJECTED = GatewayError("invalid", status_code=422, detail={"errors": {"amount": ["decimal"]}})
SERVER_ERROR = GatewayError("boom", status_code=500)


def make_draft(amount: float = 15.55, discount_type: str = "fixed") -> OfferDraft:
    return OfferDraft(
        code="BNDLA",
        name="Bundle offer BNDLA",
        discount_type=discount_type,
        amount=amount,
        minimum_amount=16.55,
        product_ids=("p1",),
        starts_on=date(2024, 3, 1),
        expires_on=date(2024, 3, 2),
    )


class Operation:
    def __init__(self, *errors: Exception) -> None:
        self.errors = list(errors)
        self.seen: list[OfferDraft] = []

    def __call__(self, draft: OfferDraft) -> str:
        self.seen.append(draft)
        if self.errors:
            raise self.errors.pop(0)
        return "ok"


def make_create_policy() -> RetryPolicy[OfferDraft]:
    codes = iter(f"BNDLNEW{i}" for i in range(1, 10))
    return create_policy(code_factory=lambda: next(codes), name_suffix=lambda attempt: f"t-{attempt}")


def test_success_returns_result_and_payload():
    draft = make_draft()
    result, payload = make_create_policy().run(Operation(), draft)
    assert result == "ok"
    assert payload is draft


def test_amount_rejection_floors_once():
    op = Operation(AMOUNT_REJECTED)
    _, payload = update_policy().run(op, make_draft())
    assert payload.amount == 15
    assert payload.minimum_amount == 16
    assert [d.amount for d in op.seen] == [15.55, 15]


def test_second_amount_rejection_is_exhausted():
    op = Operation(AMOUNT_REJECTED, AMOUNT_REJECTED)
    with pytest.raises(RetryExhausted) as info:
        update_policy().run(op, make_draft())
    assert info.value.attempts == 2
    assert info.value.payload.amount == 15
    assert info.value.error is AMOUNT_REJECTED


def test_whole_amount_cannot_be_floored():
    with pytest.raises(RetryExhausted) as info:
        update_policy().run(Operation(AMOUNT_REJECTED), make_draft(amount=15))
    assert info.value.attempts == 1


def test_amount_below_one_cannot_be_floored():
    with pytest.raises(RetryExhausted):
        update_policy().run(Operation(AMOUNT_REJECTED), make_draft(amount=0.5))


def test_name_conflict_regenerates_name_keeping_code():
    op = Operation(NAME_TAKEN, NAME_TAKEN)
    _, payload = make_create_policy().run(op, make_draft())
    assert payload.code == "BNDLA"
    assert [d.name for d in op.seen] == [
        "Bundle offer BNDLA",
        "Bundle offer BNDLA #t-1",
        "Bundle offer BNDLA #t-2",
    ]


def test_name_conflict_gives_up_after_six_attempts():
    op = Operation(*([NAME_TAKEN] * 10))
    with pytest.raises(RetryExhausted) as info:
        make_create_policy().run(op, make_draft())
    assert info.value.attempts == 6
    assert len(op.seen) == 6


def test_code_conflict_regenerates_code_and_name():
    op = Operation(CODE_TAKEN)
    _, payload = make_create_policy().run(op, make_draft())
    assert payload.code == "BNDLNEW1"
    assert payload.name == "Bundle offer BNDLNEW1"


def test_plain_conflict_is_treated_as_code_conflict():
    op = Operation(GatewayError("conflict", status_code=409))
    _, payload = make_create_policy().run(op, make_draft())
    assert payload.code == "BNDLNEW1"


def test_update_policy_does_not_regenerate_codes():
    with pytest.raises(RetryExhausted):
        update_policy().run(Operation(CODE_TAKEN), make_draft())


def test_unmatched_error_is_surfaced_immediately():
    op = Operation(SERVER_ERROR)
    with pytest.raises(RetryExhausted) as info:
        make_create_policy().run(op, make_draft())
    assert info.value.error is SERVER_ERROR
    assert info.value.attempts == 1


def test_rules_combine_in_one_run():
    op = Operation(NAME_TAKEN, CODE_TAKEN, AMOUNT_REJECTED)
    _, payload = make_create_policy().run(op, make_draft())
    assert payload.code == "BNDLNEW1"
    assert payload.amount == 15
    assert len(op.seen) == 4


def test_custom_rule_budget():
    rule = RetryRule(name="bump", matches=lambda e: True, transform=lambda p, attempt: p + 1, max_retries=2)
    policy = RetryPolicy(rules=(rule, floor_amount_rule()))

    def always_fails(value: int) -> int:
        raise SERVER_ERROR

    with pytest.raises(RetryExhausted) as info:
        policy.run(always_fails, 0)
    assert info.value.payload == 2
    assert info.value.attempts == 3


def test_rejected_percentage_becomes_fixed_then_floored():
    codes = iter(["BNDLNEW1"])
    policy = create_policy(code_factory=lambda: next(codes), name_suffix=str, fixed_amount=12.5)
    op = Operation(AMOUNT_REJECTED, AMOUNT_REJECTED)
    _, payload = policy.run(op, make_draft(amount=10, discount_type="percentage"))

    assert [(d.discount_type, d.amount) for d in op.seen] == [("percentage", 10), ("fixed", 12.5), ("fixed", 12)]
    assert payload.minimum_amount == 13


def test_percentage_without_fixed_amount_is_surfaced():
    with pytest.raises(RetryExhausted):
        update_policy().run(Operation(AMOUNT_REJECTED), make_draft(amount=10, discount_type="percentage"))


def test_rule_that_cannot_help_defers_to_the_next():
    never = RetryRule(name="never", matches=lambda e: True, transform=lambda p, attempt: None)
    policy = RetryPolicy(rules=(never, floor_amount_rule()))
    _, payload = policy.run(Operation(AMOUNT_REJECTED), make_draft())
    assert payload.amount == 15
