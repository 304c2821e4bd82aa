"""Unit tests for the HTTP promotion gateway against a mocked transport."""

from __future__ import annotations

import json
from datetime import date

import httpx
import pytest

from bundle_offers.adapters.platform.gateway import HttpPromotionGateway
from bundle_offers.adapters.platform.http import PlatformHttpClient, static_token
from bundle_offers.application.errors import GatewayError
from bundle_offers.domain.offers import OfferDraft, OfferKind

DRAFT = OfferDraft(
    code="BNDLABC",
    name="Bundle offer BNDLABC",
    discount_type="fixed",
    amount=15.0,
    minimum_amount=16.0,
    product_ids=("p1", "p2"),
    starts_on=date(2024, 3, 1),
    expires_on=date(2024, 3, 2),
)


class Recorder:
    def __init__(self, *responses: httpx.Response) -> None:
        self.responses = list(responses)
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.responses:
            return self.responses.pop(0)
        return httpx.Response(204)

    @property
    def bodies(self) -> list[dict]:
        return [json.loads(r.content) if r.content else None for r in self.requests]


def make_gateway(recorder: Recorder, token: str | None = "secret") -> HttpPromotionGateway:
    client = PlatformHttpClient(
        base_url="https://platform.test/",
        token_provider=static_token(token),
        transport=httpx.MockTransport(recorder),
    )
    return HttpPromotionGateway(client)


def test_create_coupon_posts_payload_and_returns_id():
    recorder = Recorder(httpx.Response(201, json={"data": {"id": 4411}}))
    external_id = make_gateway(recorder).create_coupon("s1", DRAFT)

    assert external_id == "4411"
    [request] = recorder.requests
    assert request.method == "POST"
    assert request.url == "https://platform.test/admin/v2/coupons"
    assert request.headers["Authorization"] == "Bearer secret"
    body = recorder.bodies[0]
    assert body["code"] == "BNDLABC"
    assert body["type"] == "fixed"
    assert body["amount"] == 15
    assert body["minimum_amount"] == 16
    assert body["include_product_ids"] == ["p1", "p2"]
    assert (body["start_date"], body["expiry_date"]) == ("2024-03-01", "2024-03-02")
    assert body["usage_limit"] == 1
    assert body["is_apply_with_offer"] is True


def test_no_token_sends_no_authorization_header():
    recorder = Recorder(httpx.Response(201, json={"data": {"id": "c1"}}))
    make_gateway(recorder, token=None).create_coupon("s1", DRAFT)
    assert "Authorization" not in recorder.requests[0].headers


def test_update_coupon_puts_to_object():
    recorder = Recorder(httpx.Response(200, json={"data": {}}))
    make_gateway(recorder).update_coupon("s1", "c1", DRAFT)
    assert recorder.requests[0].method == "PUT"
    assert recorder.requests[0].url.path == "/admin/v2/coupons/c1"


def test_create_special_offer_payload():
    recorder = Recorder(httpx.Response(201, json={"data": {"id": "o9"}}))
    assert make_gateway(recorder).create_special_offer("s1", DRAFT) == "o9"

    assert recorder.requests[0].url.path == "/admin/v2/specialoffers"
    body = recorder.bodies[0]
    assert body["name"] == "Bundle offer BNDLABC"
    assert body["min_purchase_amount"] == 16
    assert body["buy"] == {"type": "product", "min_amount": 16, "products": ["p1", "p2"]}
    assert body["get"] == {"discount_type": "fixed_amount", "discount_amount": 15}
    assert body["status"] == "active"


def test_change_status_and_delete_paths():
    recorder = Recorder()
    gateway = make_gateway(recorder)
    gateway.change_status("s1", "o9", "inactive")
    gateway.delete("s1", OfferKind.SPECIAL_OFFER, "o9")
    gateway.delete("s1", OfferKind.COUPON, "c1")

    assert [(r.method, r.url.path) for r in recorder.requests] == [
        ("PUT", "/admin/v2/specialoffers/o9/status"),
        ("DELETE", "/admin/v2/specialoffers/o9"),
        ("DELETE", "/admin/v2/coupons/c1"),
    ]
    assert recorder.bodies[0] == {"status": "inactive"}


def test_error_response_becomes_gateway_error():
    detail = {"status": 422, "success": False, "error": {"code": "validation", "fields": {"code": ["taken"]}}}
    recorder = Recorder(httpx.Response(422, json=detail))

    with pytest.raises(GatewayError) as info:
        make_gateway(recorder).create_coupon("s1", DRAFT)

    error = info.value
    assert error.status_code == 422
    assert error.code == "validation"
    assert error.detail == detail
    assert error.mentions_field("code")
    assert not error.mentions_field("name")


def test_non_json_error_keeps_text():
    recorder = Recorder(httpx.Response(502, text="bad gateway"))
    with pytest.raises(GatewayError) as info:
        make_gateway(recorder).delete("s1", OfferKind.COUPON, "c1")
    assert info.value.status_code == 502
    assert info.value.detail == "bad gateway"
    assert info.value.code is None


def test_transport_failure_is_unavailable():
    def refuse(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    client = PlatformHttpClient("https://platform.test", static_token(None), transport=httpx.MockTransport(refuse))
    with pytest.raises(GatewayError) as info:
        HttpPromotionGateway(client).create_coupon("s1", DRAFT)
    assert info.value.status_code == 503


@pytest.mark.parametrize("body", [{}, {"data": {}}, {"data": {"id": None}}])
def test_missing_created_id_is_an_error(body):
    recorder = Recorder(httpx.Response(201, json=body))
    with pytest.raises(GatewayError):
        make_gateway(recorder).create_coupon("s1", DRAFT)


def test_unreadable_success_body_is_a_gateway_error():
    recorder = Recorder(httpx.Response(200, text="<html>OK</html>"))
    with pytest.raises(GatewayError) as info:
        make_gateway(recorder).create_coupon("s1", DRAFT)
    assert info.value.status_code == 200
    assert info.value.code == "invalid_response"
    assert info.value.detail == "<html>OK</html>"
