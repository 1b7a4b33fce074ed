# backend/storefront/config.py
from __future__ import annotations
import os


def _int_env(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    return int(raw)


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/storefront.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///storefront.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Bearer token for /api/admin/*. Empty disables the admin API.
    ADMIN_API_TOKEN = os.environ.get("ADMIN_API_TOKEN", "")

    # Public base URL used for gateway redirects and callbacks
    PUBLIC_BASE_URL = os.environ.get("PUBLIC_BASE_URL", "http://localhost:5000")

    # Storefront origins allowed to call the API from a browser
    CORS_ORIGINS = [
        o.strip()
        for o in os.environ.get("CORS_ORIGINS", "http://localhost:5173,http://127.0.0.1:5173").split(",")
        if o.strip()
    ]

    # Outbound HTTP calls (POS, gateways, courier)
    HTTP_TIMEOUT_SECONDS = float(os.environ.get("HTTP_TIMEOUT_SECONDS", "10"))

    # Loyverse POS
    LOYVERSE_API_URL = os.environ.get("LOYVERSE_API_URL", "https://api.loyverse.com/v1.0")
    LOYVERSE_API_TOKEN = os.environ.get("LOYVERSE_API_TOKEN", "")
    LOYVERSE_STORE_ID = os.environ.get("LOYVERSE_STORE_ID", "")
    LOYVERSE_PAYMENT_TYPE_ID = os.environ.get("LOYVERSE_PAYMENT_TYPE_ID", "")
    POS_SHIPPING_FEE_VARIANT_ID = os.environ.get("POS_SHIPPING_FEE_VARIANT_ID", "")
    POS_CURRENCY = os.environ.get("POS_CURRENCY", "MYR")

    # CHIP hosted checkout
    CHIP_API_URL = os.environ.get("CHIP_API_URL", "https://gate.chip-in.asia/api/v1")
    CHIP_TEST_SECRET_KEY = os.environ.get("CHIP_TEST_SECRET_KEY", "")
    CHIP_LIVE_SECRET_KEY = os.environ.get("CHIP_LIVE_SECRET_KEY", "")

    # BizAppay hosted bill
    BIZAPPAY_API_URL = os.environ.get("BIZAPPAY_API_URL", "https://bizappay.my/api/v3")
    BIZAPPAY_API_KEY = os.environ.get("BIZAPPAY_API_KEY", "")
    BIZAPPAY_CATEGORY_CODE = os.environ.get("BIZAPPAY_CATEGORY_CODE", "")

    # ParcelAsia courier booking
    PARCELASIA_API_URL = os.environ.get("PARCELASIA_API_URL", "https://app.myparcelasia.com/apiv2")
    PARCELASIA_API_KEY = os.environ.get("PARCELASIA_API_KEY", "")
    SHIPPING_SENDER_POSTCODE = os.environ.get("SHIPPING_SENDER_POSTCODE", "31600")

    # Maintenance
    STALE_ORDER_DAYS = _int_env("STALE_ORDER_DAYS", 7)
    STALE_ORDER_SWEEP_LIMIT = _int_env("STALE_ORDER_SWEEP_LIMIT", 200)
    BATCH_WRITE_LIMIT = _int_env("BATCH_WRITE_LIMIT", 500)
    BATCH_SAFETY_MARGIN = _int_env("BATCH_SAFETY_MARGIN", 50)

    # Stock status: LOW when 0 < quantity < LOW_STOCK_THRESHOLD
    LOW_STOCK_THRESHOLD = _int_env("LOW_STOCK_THRESHOLD", 5)


class TestConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    ADMIN_API_TOKEN = "test-admin-token"
    PUBLIC_BASE_URL = "https://shop.test"
    LOYVERSE_API_TOKEN = "test-pos-token"
    LOYVERSE_STORE_ID = "store-1"
    LOYVERSE_PAYMENT_TYPE_ID = "ptype-1"
    POS_SHIPPING_FEE_VARIANT_ID = "var-shipping"
    CHIP_TEST_SECRET_KEY = "chip-test-key"
    BIZAPPAY_API_KEY = "bizappay-key"
    BIZAPPAY_CATEGORY_CODE = "cat-1"
    PARCELASIA_API_KEY = "parcel-key"
