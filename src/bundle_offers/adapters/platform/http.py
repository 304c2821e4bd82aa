from __future__ import annotations

import logging
from typing import Any, Callable, Optional

import httpx

from bundle_offers.application.errors import GatewayError

logger = logging.getLogger(__name__)

TokenProvider = Callable[[str], Optional[str]]

INVALID_RESPONSE = "invalid_response"


def static_token(token: Optional[str]) -> TokenProvider:
    return lambda store_id: token


class PlatformHttpClient:
    """Thin wrapper over httpx that turns error responses into GatewayError."""

    def __init__(
        self,
        base_url: str,
        token_provider: TokenProvider,
        timeout_seconds: float = 15.0,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.token_provider = token_provider
        self._http_client = httpx.Client(base_url=self.base_url, timeout=timeout_seconds, transport=transport)

    def close(self) -> None:
        self._http_client.close()

    def _headers(self, store_id: str) -> dict[str, str]:
        headers = {"Accept": "application/json", "Content-Type": "application/json"}
        token = self.token_provider(store_id)
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return headers

    def request(
        self,
        method: str,
        path: str,
        store_id: str,
        operation: str,
        json: Optional[dict[str, Any]] = None,
    ) -> dict[str, Any]:
        try:
            response = self._http_client.request(method, path, headers=self._headers(store_id), json=json)
        except httpx.HTTPError as e:
            logger.error(f"Platform request failed while {operation}: {e}", extra={"store_id": store_id})
            raise GatewayError(f"Platform unreachable while {operation}", status_code=503, detail=str(e)) from e

        if response.status_code >= 400:
            detail = _detail(response)
            logger.warning(
                f"Platform rejected {operation}: {response.status_code}",
                extra={"store_id": store_id, "status_code": response.status_code},
            )
            raise GatewayError(
                f"Failed to {operation} on the platform",
                status_code=response.status_code,
                code=_error_code(detail),
                detail=detail,
            )
        if not response.content:
            return {}
        try:
            body = response.json()
        except ValueError as e:
            logger.error(
                f"Platform returned a non-JSON body while {operation}",
                extra={"store_id": store_id, "status_code": response.status_code},
            )
            raise GatewayError(
                f"Unreadable platform response while {operation}",
                status_code=response.status_code,
                code=INVALID_RESPONSE,
                detail=response.text,
            ) from e
        return body if isinstance(body, dict) else {"data": body}


def _detail(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return response.text


def _error_code(detail: Any) -> Optional[str]:
    if isinstance(detail, dict):
        error = detail.get("error")
        if isinstance(error, dict) and error.get("code") is not None:
            return str(error["code"])
    return None
