# Overview: HTTP adapter for ParcelAsia shipment booking.

from __future__ import annotations

from datetime import timedelta
from typing import Optional

import httpx

from storefront.time_utils import utcnow


FLYER_SIZES = ["flyers_s", "flyers_m", "flyers_l", "flyers_xl"]
DEFAULT_PROVIDER = "jnt"


class ShipmentError(Exception):
    """Raised when a shipment cannot be booked."""


def clean_phone(phone: str) -> str:
    digits = "".join(ch for ch in (phone or "") if ch.isdigit())
    if digits.startswith("60"):
        digits = "0" + digits[2:]
    return digits


class ParcelAsiaClient:
    def __init__(
        self,
        api_url: str,
        *,
        api_key: str = "",
        sender_postcode: str = "",
        timeout: float = 10.0,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.api_key = api_key
        self.sender_postcode = sender_postcode
        self._client = httpx.Client(base_url=api_url.rstrip("/"), timeout=timeout, transport=transport)

    def close(self) -> None:
        self._client.close()

    def build_payload(self, order) -> dict:
        customer = order.customer or {}
        weight = sum(float(line.weight or 0.1) * line.quantity for line in order.lines)
        description = ", ".join(line.name for line in order.lines)[:50]
        # Free shipping orders always go out with the default courier
        provider = DEFAULT_PROVIDER if float(order.shipping_cost or 0) == 0 else (order.shipping_provider or DEFAULT_PROVIDER)
        return {
            "api_key": self.api_key,
            "send_method": "pickup",
            "send_date": (utcnow() + timedelta(days=1)).date().isoformat(),
            "type": "parcel",
            "declared_weight": round(weight if weight > 0 else 1.0, 3),
            "provider_code": provider.lower(),
            "content_type": "general",
            "content_description": description or "General goods",
            "content_value": round(float(order.total_amount or 0), 2),
            "size": "flyers_m",
            "sender_postcode": self.sender_postcode,
            "receiver_name": customer.get("name", ""),
            "receiver_phone": clean_phone(customer.get("phone", "")),
            "receiver_email": customer.get("email", ""),
            "receiver_address_line_1": customer.get("address", ""),
            "receiver_postcode": customer.get("postcode", ""),
            "integration_order_id": order.id,
        }

    def create_shipment(self, order) -> str:
        """Book a shipment for the order; returns the ParcelAsia shipment key."""
        if not self.api_key:
            raise ShipmentError("Missing ParcelAsia API Key")
        try:
            response = self._client.post("/create_shipment", json=self.build_payload(order))
        except httpx.HTTPError as exc:
            raise ShipmentError(f"ParcelAsia unreachable: {exc}") from exc
        try:
            data = response.json()
        except ValueError as exc:
            raise ShipmentError(f"ParcelAsia returned a non-JSON response ({response.status_code})") from exc
        if data.get("status") is not True or not isinstance(data.get("data"), dict):
            raise ShipmentError(data.get("message") or "Shipment creation failed")
        shipment_key = data["data"].get("shipment_key") or data["data"].get("id")
        if not shipment_key:
            raise ShipmentError("ParcelAsia response missing shipment key")
        return str(shipment_key)
