# Overview: HTTP adapters for the hosted-page payment gateways (CHIP, BizAppay).

from __future__ import annotations

from typing import Optional

import httpx


class GatewayError(Exception):
    """Raised when a payment gateway is unreachable or rejects a request."""


def _json_or_error(response: httpx.Response, gateway: str) -> dict:
    try:
        return response.json()
    except ValueError as exc:
        raise GatewayError(f"{gateway} returned a non-JSON response ({response.status_code})") from exc


class ChipClient:
    """
    CHIP purchases API.

    Secret keys are per environment ("test" / "live"); the active environment
    comes from the payment settings document, not from process config.
    """

    def __init__(
        self,
        api_url: str,
        *,
        test_secret_key: str = "",
        live_secret_key: str = "",
        timeout: float = 10.0,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self._keys = {"test": test_secret_key, "live": live_secret_key}
        self._client = httpx.Client(base_url=api_url.rstrip("/"), timeout=timeout, transport=transport)

    def close(self) -> None:
        self._client.close()

    def _headers(self, environment: str) -> dict:
        key = self._keys.get(environment or "test")
        if not key:
            raise GatewayError(f"CHIP {environment} secret key is not configured")
        return {"Authorization": f"Bearer {key}", "Content-Type": "application/json"}

    def create_purchase(self, purchase: dict, *, environment: str = "test") -> dict:
        try:
            response = self._client.post("/purchases/", json=purchase, headers=self._headers(environment))
        except httpx.HTTPError as exc:
            raise GatewayError(f"CHIP unreachable: {exc}") from exc
        if response.status_code >= 400:
            raise GatewayError(f"CHIP API error: {response.status_code}")
        data = _json_or_error(response, "CHIP")
        if not data.get("id") or not data.get("checkout_url"):
            raise GatewayError("CHIP response missing purchase id or checkout_url")
        return data

    def get_purchase(self, purchase_id: str, *, environment: str = "test") -> dict:
        try:
            response = self._client.get(f"/purchases/{purchase_id}/", headers=self._headers(environment))
        except httpx.HTTPError as exc:
            raise GatewayError(f"CHIP unreachable: {exc}") from exc
        if response.status_code >= 400:
            raise GatewayError(f"Failed to verify payment: {response.status_code}")
        return _json_or_error(response, "CHIP")


class BizAppayClient:
    """BizAppay v3: exchange the API key for a token, then create a bill."""

    def __init__(
        self,
        api_url: str,
        *,
        api_key: str = "",
        category_code: str = "",
        timeout: float = 10.0,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.api_key = api_key
        self.category_code = category_code
        self._client = httpx.Client(base_url=api_url.rstrip("/"), timeout=timeout, transport=transport)

    def close(self) -> None:
        self._client.close()

    def _token(self) -> str:
        if not self.api_key:
            raise GatewayError("BizAppay API key is not configured")
        try:
            response = self._client.post("/token", data={"apiKey": self.api_key})
        except httpx.HTTPError as exc:
            raise GatewayError(f"BizAppay unreachable: {exc}") from exc
        data = _json_or_error(response, "BizAppay")
        if data.get("status") != "ok" or not data.get("token"):
            raise GatewayError(f"Authentication failed: {data.get('msg') or 'Invalid API key'}")
        return data["token"]

    def create_bill(
        self,
        *,
        name: str,
        amount: str,
        payer_name: str,
        payer_email: str,
        payer_phone: str,
        return_url: str,
        callback_url: str,
        reference: str,
    ) -> dict:
        token = self._token()
        form = {
            "apiKey": self.api_key,
            "category": self.category_code,
            "name": name,
            "amount": amount,
            "payer_name": payer_name,
            "payer_email": payer_email,
            "payer_phone": payer_phone,
            "webreturn_url": return_url,
            "callback_url": callback_url,
            "ext_reference": reference,
        }
        try:
            response = self._client.post("/bill/create", data=form, headers={"Authentication": token})
        except httpx.HTTPError as exc:
            raise GatewayError(f"BizAppay unreachable: {exc}") from exc
        data = _json_or_error(response, "BizAppay")
        if not data.get("url"):
            raise GatewayError(f"Payment gateway error: {data.get('msg') or 'Please try again.'}")
        return data
