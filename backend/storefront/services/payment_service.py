# Overview: Service-layer operations for payment gateways and payment confirmation; encapsulates business logic and database work.

"""
Payment Gateway Adapters

WHY: Checkout can hand the customer to one of three gateways, and each of
them later tells us "paid" in its own dialect. Everything downstream of
that (PAID transition, fulfillment) must be identical whichever gateway
spoke.

DESIGN:
- One adapter per gateway with the same two operations:
  create_payment(order) raises PaymentRedirect(url) on success or
  GatewayError on failure; parse_webhook(payload) normalizes a callback to
  WebhookEvent(status, external_reference, gateway_bill_id).
- PaymentRedirect is control flow, not an error. Every wrapper re-raises it
  unchanged; the route turns it into the redirect response.
- confirm_payment() is the single entry point for "gateway says paid":
  webhook, client-side verification and admin approval all go through it.
  A repeat confirmation for an already-PAID order is a successful no-op.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Optional
from urllib.parse import urlencode

from flask import current_app
from pydantic import ValidationError as PydanticValidationError

from ..clients import GatewayError
from ..clients.schemas import BizAppayCallback, ChipWebhook
from ..extensions import db
from ..models import Order
from . import fulfillment_service, order_service, settings_service
from .order_service import (
    ORDER_PAID,
    ORDER_PENDING_PAYMENT,
    OrderNotFoundError,
    OrderStateError,
    PAYABLE_STATUSES,
)
from .settings_service import GATEWAY_BIZAPPAY, GATEWAY_CHIP, GATEWAY_MANUAL


class PaymentRedirect(Exception):
    """Send the customer to url. Must propagate unchanged through handlers."""

    def __init__(self, url: str, order_id: Optional[str] = None):
        super().__init__(url)
        self.url = url
        self.order_id = order_id


class WebhookPayloadError(ValueError):
    """Webhook body is malformed or carries no order reference."""


# =============================================================================
# WEBHOOK EVENTS
# =============================================================================

EVENT_PAID = "paid"
EVENT_IGNORED = "ignored"


@dataclass(frozen=True)
class WebhookEvent:
    status: str
    external_reference: Optional[str]
    gateway_bill_id: Optional[str]


# =============================================================================
# ADAPTERS
# =============================================================================

def _base_url() -> str:
    return current_app.config["PUBLIC_BASE_URL"].rstrip("/")


def _success_url(order_id: str) -> str:
    return f"{_base_url()}/checkout/success?{urlencode({'order_id': order_id})}"


class PaymentGatewayAdapter:
    name = ""

    def create_payment(self, order: Order) -> None:
        raise NotImplementedError

    def parse_webhook(self, payload: dict[str, Any]) -> WebhookEvent:
        raise NotImplementedError

    def fetch_status(self, order: Order) -> Optional[bool]:
        """True/False if the gateway can be asked directly, None if not."""
        return None


class ManualTransferGateway(PaymentGatewayAdapter):
    """Bank transfer: order waits in PENDING_PAYMENT for an admin."""

    name = GATEWAY_MANUAL

    def __init__(self, settings: dict):
        self.settings = settings.get("manual_payment", {})

    def create_payment(self, order: Order) -> None:
        updated = db.session.query(Order).filter(
            Order.id == order.id,
            Order.status.in_(PAYABLE_STATUSES),
        ).update({
            Order.status: ORDER_PENDING_PAYMENT,
            Order.payment_gateway: self.name,
            Order.payment_instructions: self.settings.get("instructions", ""),
            Order.requires_approval: bool(self.settings.get("require_admin_approval", True)),
        }, synchronize_session=False)
        if updated != 1:
            raise GatewayError(f"Order {order.id} is no longer awaiting payment")
        db.session.commit()
        url = f"{_base_url()}/checkout/manual-payment?{urlencode({'order_id': order.id})}"
        raise PaymentRedirect(url, order.id)

    def parse_webhook(self, payload):
        raise WebhookPayloadError("Manual transfers have no webhook")


class ChipGateway(PaymentGatewayAdapter):
    name = GATEWAY_CHIP

    def __init__(self, client, settings: dict):
        self.client = client
        self.settings = settings.get("chip", {})

    @property
    def environment(self) -> str:
        return self.settings.get("environment") or "test"

    def _products(self, order: Order) -> list[dict]:
        # The gateway rejects negative lines; spread the discount over items
        subtotal = sum((Decimal(line.web_price) * line.quantity for line in order.lines), Decimal("0"))
        discount = Decimal(order.discount_amount or 0)
        ratio = discount / subtotal if discount > 0 and subtotal > 0 else Decimal("0")
        products = [
            {
                "name": line.name,
                "price": max(1, int((Decimal(line.web_price) * (1 - ratio) * 100).to_integral_value())),
                "quantity": line.quantity,
            }
            for line in order.lines
        ]
        fee = Decimal(order.shipping_cost or 0) + Decimal(order.collection_fee or 0)
        if fee > 0:
            products.append({"name": "Shipping Fee", "price": int((fee * 100).to_integral_value()), "quantity": 1})
        return products

    def build_purchase(self, order: Order) -> dict:
        customer = order.customer or {}
        base = _base_url()
        # The gateway refuses callback URLs on localhost
        if "localhost" in base or "127.0.0.1" in base:
            callback = "https://example.com/api/webhooks/chip"
        else:
            callback = f"{base}/api/webhooks/chip"
        address = {
            "street_address": customer.get("address", ""),
            "city": customer.get("city") or "N/A",
            "zip_code": customer.get("postcode") or "00000",
            "state": customer.get("state") or "N/A",
        }
        return {
            "brand_id": self.settings.get("brand_id", ""),
            "client": {
                "email": customer.get("email", ""),
                "phone": customer.get("phone", ""),
                "full_name": customer.get("name", ""),
                **address,
                **{f"shipping_{k}": v for k, v in address.items()},
            },
            "purchase": {
                "products": self._products(order),
                "currency": current_app.config.get("POS_CURRENCY", "MYR"),
            },
            "reference": order.id,
            "order_id": order.id,
            "success_redirect": _success_url(order.id),
            "failure_redirect": f"{base}/checkout?error=payment_failed",
            "cancel_redirect": f"{base}/checkout?error=payment_cancelled",
            "success_callback": callback,
        }

    def create_payment(self, order: Order) -> None:
        data = self.client.create_purchase(self.build_purchase(order), environment=self.environment)
        order.gateway_bill_id = data["id"]
        order.payment_gateway = self.name
        db.session.commit()
        current_app.logger.info("CHIP purchase %s created for order %s", data["id"], order.id)
        raise PaymentRedirect(data["checkout_url"], order.id)

    def parse_webhook(self, payload: dict[str, Any]) -> WebhookEvent:
        try:
            event = ChipWebhook.model_validate(payload)
        except PydanticValidationError as exc:
            raise WebhookPayloadError("Malformed CHIP payload") from exc
        purchase = event.purchase
        reference = (purchase.reference or purchase.order_id) if purchase else None
        reference = reference or event.reference
        bill_id = (purchase.id if purchase else None) or event.id
        paid = event.type == "purchase.paid" or (event.type is None and (event.status or "").lower() == "paid")
        return WebhookEvent(EVENT_PAID if paid else EVENT_IGNORED, reference, bill_id)

    def fetch_status(self, order: Order) -> Optional[bool]:
        if not order.gateway_bill_id:
            return None
        data = self.client.get_purchase(order.gateway_bill_id, environment=self.environment)
        return data.get("status") == "paid"


class BizAppayGateway(PaymentGatewayAdapter):
    name = GATEWAY_BIZAPPAY

    def __init__(self, client):
        self.client = client

    def create_payment(self, order: Order) -> None:
        customer = order.customer or {}
        data = self.client.create_bill(
            name=f"Order {order.id}",
            amount=f"{Decimal(order.total_amount):.2f}",
            payer_name=customer.get("name", ""),
            payer_email=customer.get("email", ""),
            payer_phone=customer.get("phone", ""),
            return_url=_success_url(order.id),
            callback_url=f"{_base_url()}/api/webhooks/bizappay",
            reference=order.id,
        )
        order.gateway_bill_id = data.get("billCode") or ""
        order.payment_gateway = self.name
        db.session.commit()
        current_app.logger.info("BizAppay bill %s created for order %s", order.gateway_bill_id, order.id)
        raise PaymentRedirect(data["url"], order.id)

    def parse_webhook(self, payload: dict[str, Any]) -> WebhookEvent:
        try:
            event = BizAppayCallback.model_validate(payload)
        except PydanticValidationError as exc:
            raise WebhookPayloadError("Malformed BizAppay payload") from exc
        reference = (
            event.billExternalReferenceNo
            or event.refno
            or event.order_id
            or event.ext_reference
            or event.reference
        )
        status = EVENT_PAID if event.billstatus == "1" else EVENT_IGNORED
        return WebhookEvent(status, reference, event.billcode)


def get_gateway(name: str, clients: dict, settings: Optional[dict] = None) -> PaymentGatewayAdapter:
    """Adapter for a gateway name; unknown names fall back to CHIP."""
    settings = settings or settings_service.get_payment_settings()
    if name == GATEWAY_MANUAL:
        return ManualTransferGateway(settings)
    if name == GATEWAY_BIZAPPAY:
        return BizAppayGateway(clients["bizappay"])
    return ChipGateway(clients["chip"], settings)


def active_gateway_name(settings: Optional[dict] = None) -> str:
    settings = settings or settings_service.get_payment_settings()
    name = settings.get("enabled_gateway")
    if name not in settings_service.VALID_GATEWAYS:
        return GATEWAY_CHIP
    return name


# =============================================================================
# CONFIRMATION
# =============================================================================

def confirm_payment(
    order_id: str,
    *,
    clients: dict,
    gateway_bill_id: Optional[str] = None,
    approved_by: Optional[str] = None,
) -> dict:
    """
    Gateway (or admin) says the order is paid.

    Exactly one caller transitions the order and runs fulfillment; everyone
    else gets {"success": True, "already_paid": True}.
    """
    order = order_service.find_order(order_id)
    if order is None:
        return {"success": False, "not_found": True, "error": "Order not found"}
    if order.status == ORDER_PAID:
        return {"success": True, "already_paid": True, "order_id": order.id}
    if order.status not in PAYABLE_STATUSES:
        return {"success": False, "error": f"Order is {order.status}", "order_id": order.id}

    if not order_service.mark_paid(order.id, gateway_bill_id=gateway_bill_id, approved_by=approved_by):
        db.session.expire_all()
        current = order_service.find_order(order_id)
        if current is not None and current.status == ORDER_PAID:
            return {"success": True, "already_paid": True, "order_id": order_id}
        return {"success": False, "error": "Order is no longer awaiting payment", "order_id": order_id}

    current_app.logger.info("Order %s marked PAID", order_id)
    fulfillment = fulfillment_service.process_successful_order(
        order_id, pos=clients["pos"], shipping=clients.get("shipping")
    )
    return {"success": True, "order_id": order_id, "fulfillment": fulfillment}


def handle_webhook(gateway_name: str, payload: dict[str, Any], *, clients: dict) -> tuple[dict, int]:
    """
    Normalize and apply a gateway callback. Returns (body, http_status).

    Non-success statuses are acknowledged with 200 "ignored" so the gateway
    does not retry; a missing reference is a 400.
    """
    logger = current_app.logger
    gateway = get_gateway(gateway_name, clients)
    try:
        event = gateway.parse_webhook(payload or {})
    except WebhookPayloadError as exc:
        logger.warning("Rejected %s webhook: %s", gateway_name, exc)
        return {"error": str(exc)}, 400

    if event.status != EVENT_PAID:
        logger.warning("Ignoring %s webhook for %s (status not paid)", gateway_name, event.external_reference)
        return {"status": "ignored"}, 200
    if not event.external_reference:
        return {"error": "Missing order reference"}, 400

    result = confirm_payment(event.external_reference, clients=clients, gateway_bill_id=event.gateway_bill_id)
    if result.get("not_found"):
        return {"error": "Order not found"}, 404
    if result.get("already_paid"):
        return {"status": "ok", "message": "Order already paid"}, 200
    if not result["success"]:
        logger.warning("Ignoring %s webhook for %s: %s", gateway_name, event.external_reference, result["error"])
        return {"status": "ignored", "message": result["error"]}, 200
    return {"status": "ok", "order_id": result["order_id"]}, 200


def approve_manual_payment(order_id: str, *, approved_by: str, clients: dict) -> dict:
    order = order_service.get_order(order_id)
    if order.status == ORDER_PAID:
        return {"success": True, "already_paid": True, "order_id": order.id}
    if order.status != ORDER_PENDING_PAYMENT:
        raise OrderStateError(f"Only PENDING_PAYMENT orders can be approved (status {order.status})")
    return confirm_payment(order_id, clients=clients, approved_by=approved_by)


def reprocess_order(order_id: str, *, processed_by: str, clients: dict) -> dict:
    """
    Admin push of an order through payment: unpaid orders become PAID; PAID
    orders just re-run fulfillment (which skips completed steps).
    """
    order = order_service.get_order(order_id)
    if order.status == ORDER_PAID:
        return fulfillment_service.process_successful_order(
            order_id, pos=clients["pos"], shipping=clients.get("shipping")
        )
    if order.status not in PAYABLE_STATUSES:
        raise OrderStateError(f"Cannot reprocess order in status {order.status}")
    return confirm_payment(order_id, clients=clients, approved_by=processed_by)


def verify_order_payment(order_id: str, *, clients: dict) -> dict:
    """Customer return-page poll: ask the gateway directly when we can."""
    order = order_service.find_order(order_id)
    if order is None:
        raise OrderNotFoundError("Order not found")
    if order.status == ORDER_PAID:
        return {"success": True, "paid": True, "status": ORDER_PAID}
    if order.status not in PAYABLE_STATUSES:
        return {"success": True, "paid": False, "status": order.status}

    gateway = get_gateway(order.payment_gateway or GATEWAY_CHIP, clients)
    try:
        paid = gateway.fetch_status(order)
    except GatewayError:
        current_app.logger.exception("Payment verification failed for order %s", order.id)
        return {"success": False, "paid": False, "status": order.status, "error": "Unable to verify payment"}

    if not paid:
        return {"success": True, "paid": False, "status": order.status}

    result = confirm_payment(order.id, clients=clients, gateway_bill_id=order.gateway_bill_id)
    return {"success": result["success"], "paid": result["success"], "status": ORDER_PAID if result["success"] else order.status}
