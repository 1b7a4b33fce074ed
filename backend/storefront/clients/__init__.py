# Overview: Explicitly constructed adapters for the POS, payment gateways and courier.

from .loyverse import (
    LoyverseClient,
    PosError,
    PosConfigurationError,
    PosUnavailableError,
    PosApiError,
    PosSchemaError,
)
from .gateways import ChipClient, BizAppayClient, GatewayError
from .parcelasia import ParcelAsiaClient, ShipmentError


def build_clients(config) -> dict:
    """Construct one instance of each adapter from app config."""
    timeout = config["HTTP_TIMEOUT_SECONDS"]
    return {
        "pos": LoyverseClient(
            config["LOYVERSE_API_URL"],
            config["LOYVERSE_API_TOKEN"],
            timeout=timeout,
        ),
        "chip": ChipClient(
            config["CHIP_API_URL"],
            test_secret_key=config["CHIP_TEST_SECRET_KEY"],
            live_secret_key=config["CHIP_LIVE_SECRET_KEY"],
            timeout=timeout,
        ),
        "bizappay": BizAppayClient(
            config["BIZAPPAY_API_URL"],
            api_key=config["BIZAPPAY_API_KEY"],
            category_code=config["BIZAPPAY_CATEGORY_CODE"],
            timeout=timeout,
        ),
        "shipping": ParcelAsiaClient(
            config["PARCELASIA_API_URL"],
            api_key=config["PARCELASIA_API_KEY"],
            sender_postcode=config["SHIPPING_SENDER_POSTCODE"],
            timeout=timeout,
        ),
    }


__all__ = [
    'LoyverseClient', 'PosError', 'PosConfigurationError', 'PosUnavailableError',
    'PosApiError', 'PosSchemaError',
    'ChipClient', 'BizAppayClient', 'GatewayError',
    'ParcelAsiaClient', 'ShipmentError',
    'build_clients',
]
