# Overview: Inbound payment gateway callbacks.

from flask import Blueprint, current_app, jsonify, request

from ..extensions import CLIENTS_KEY
from ..services import payment_service
from ..services.settings_service import GATEWAY_BIZAPPAY, GATEWAY_CHIP

webhooks_bp = Blueprint("webhooks", __name__, url_prefix="/api/webhooks")


def _payload() -> dict:
    """Gateways post either form-encoded or JSON bodies; accept both."""
    if request.form:
        return request.form.to_dict()
    return request.get_json(silent=True) or {}


def _handle(gateway_name: str):
    try:
        body, status = payment_service.handle_webhook(
            gateway_name, _payload(), clients=current_app.extensions[CLIENTS_KEY]
        )
    except Exception:
        current_app.logger.exception("%s webhook processing failed", gateway_name)
        return jsonify({"error": "Webhook processing failed"}), 500
    return jsonify(body), status


@webhooks_bp.post("/chip")
def chip_webhook():
    return _handle(GATEWAY_CHIP)


@webhooks_bp.post("/bizappay")
def bizappay_webhook():
    return _handle(GATEWAY_BIZAPPAY)
