# Overview: HTTP adapter for the Loyverse POS; items, inventory levels and receipts.

"""
Loyverse POS client.

One instance is constructed by create_app() and handed to the services that
need it; it is closed at process shutdown. Every response is parsed through
the schemas in clients.schemas so callers only see typed objects or a
PosError subclass.
"""

from __future__ import annotations

from typing import Iterator, Optional

import httpx
from pydantic import ValidationError as PydanticValidationError

from .schemas import (
    InventoryLevel,
    InventoryPage,
    PosItem,
    PosItemsPage,
    PosReceipt,
    ReceiptPayload,
)


PAGE_LIMIT = 250


class PosError(Exception):
    """Base class for POS adapter failures."""


class PosConfigurationError(PosError):
    """POS token or store configuration is missing."""


class PosUnavailableError(PosError):
    """POS unreachable, timed out, or answered 5xx."""


class PosApiError(PosError):
    """POS rejected the request (4xx)."""

    def __init__(self, status_code: int, body: str):
        super().__init__(f"Loyverse API Error [{status_code}]: {body}")
        self.status_code = status_code
        self.body = body


class PosSchemaError(PosError):
    """POS response did not match the expected shape."""


class LoyverseClient:
    def __init__(
        self,
        api_url: str,
        token: str,
        *,
        timeout: float = 10.0,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.token = token
        self._client = httpx.Client(
            base_url=api_url.rstrip("/"),
            timeout=timeout,
            transport=transport,
            headers={
                "Authorization": f"Bearer {token}",
                "Content-Type": "application/json",
            },
        )

    @property
    def configured(self) -> bool:
        return bool(self.token)

    def close(self) -> None:
        self._client.close()

    # -------------------------------------------------------------------------
    # Transport
    # -------------------------------------------------------------------------

    def _request(self, method: str, path: str, **kwargs) -> dict:
        if not self.token:
            raise PosConfigurationError("LOYVERSE_API_TOKEN is not configured")
        try:
            response = self._client.request(method, path, **kwargs)
        except httpx.TimeoutException as exc:
            raise PosUnavailableError(f"Loyverse request timed out: {path}") from exc
        except httpx.TransportError as exc:
            raise PosUnavailableError(f"Loyverse unreachable: {exc}") from exc

        if response.status_code >= 500:
            raise PosUnavailableError(f"Loyverse API Error [{response.status_code}]: {response.text}")
        if response.status_code >= 400:
            raise PosApiError(response.status_code, response.text)
        try:
            return response.json()
        except ValueError as exc:
            raise PosSchemaError(f"Loyverse returned non-JSON body for {path}") from exc

    @staticmethod
    def _parse(model, data, what: str):
        try:
            return model.model_validate(data)
        except PydanticValidationError as exc:
            raise PosSchemaError(f"Unexpected Loyverse {what} response: {exc.error_count()} errors") from exc

    # -------------------------------------------------------------------------
    # Items & inventory
    # -------------------------------------------------------------------------

    def iter_items(self) -> Iterator[PosItem]:
        cursor = None
        while True:
            params = {"limit": PAGE_LIMIT}
            if cursor:
                params["cursor"] = cursor
            page = self._parse(PosItemsPage, self._request("GET", "/items", params=params), "items")
            yield from page.items
            if not page.cursor:
                return
            cursor = page.cursor

    def get_items(self) -> list[PosItem]:
        return list(self.iter_items())

    def get_inventory(self) -> list[InventoryLevel]:
        levels: list[InventoryLevel] = []
        cursor = None
        while True:
            params = {"limit": PAGE_LIMIT}
            if cursor:
                params["cursor"] = cursor
            page = self._parse(InventoryPage, self._request("GET", "/inventory", params=params), "inventory")
            levels.extend(page.inventory_levels)
            if not page.cursor:
                return levels
            cursor = page.cursor

    # -------------------------------------------------------------------------
    # Receipts
    # -------------------------------------------------------------------------

    def create_receipt(self, payload: ReceiptPayload, *, idempotency_key: Optional[str] = None) -> PosReceipt:
        headers = {}
        if idempotency_key:
            headers["Idempotency-Key"] = idempotency_key
        data = self._request(
            "POST",
            "/receipts",
            json=payload.model_dump(exclude_none=True),
            headers=headers,
        )
        return self._parse(PosReceipt, data, "receipt")
