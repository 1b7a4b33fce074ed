"""
Wire schemas for the external collaborators.

POS responses are parsed here, at the adapter boundary. A response that does
not match raises PosSchemaError instead of leaking missing keys into the
fulfillment and sync services.
"""

from __future__ import annotations

from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


# =============================================================================
# POS (Loyverse)
# =============================================================================

class PosVariant(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    variant_id: str = Field(..., description="POS variant id")
    item_id: Optional[str] = Field(None, description="Owning POS item id")
    sku: Optional[str] = Field(None, description="Business SKU; may be blank in the POS")
    default_price: Optional[float] = Field(None, description="POS list price")
    option1_value: Optional[str] = None
    option2_value: Optional[str] = None
    option3_value: Optional[str] = None

    @field_validator("sku")
    @classmethod
    def _strip_sku(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        value = value.strip()
        return value or None


class PosItem(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    item_name: str = ""
    variants: List[PosVariant] = Field(default_factory=list)


class PosItemsPage(BaseModel):
    model_config = ConfigDict(extra="ignore")

    items: List[PosItem] = Field(default_factory=list)
    cursor: Optional[str] = None


class InventoryLevel(BaseModel):
    model_config = ConfigDict(extra="ignore")

    variant_id: str
    store_id: Optional[str] = None
    in_stock: float = 0


class InventoryPage(BaseModel):
    model_config = ConfigDict(extra="ignore")

    inventory_levels: List[InventoryLevel] = Field(default_factory=list)
    cursor: Optional[str] = None


class Money(BaseModel):
    amount: float
    currency: str


class ReceiptLine(BaseModel):
    variant_id: str
    quantity: int = Field(..., ge=1)
    price: float = Field(..., ge=0)
    line_note: Optional[str] = None


class ReceiptPayment(BaseModel):
    payment_type_id: str
    amount_money: Money


class ReceiptPayload(BaseModel):
    receipt_number: str
    note: str
    order_id: str
    store_id: str
    line_items: List[ReceiptLine]
    total_money: Money
    payments: List[ReceiptPayment]


class PosReceipt(BaseModel):
    model_config = ConfigDict(extra="ignore")

    receipt_number: str


# =============================================================================
# PAYMENT GATEWAY WEBHOOKS
# =============================================================================

class ChipPurchaseRef(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: Optional[str] = None
    reference: Optional[str] = None
    order_id: Optional[str] = None
    status: Optional[str] = None


class ChipWebhook(BaseModel):
    """
    CHIP callbacks arrive either as an event envelope
    ({"type": "purchase.paid", "purchase": {...}}) or as the bare purchase.
    """
    model_config = ConfigDict(extra="ignore")

    type: Optional[str] = None
    id: Optional[str] = None
    reference: Optional[str] = None
    status: Optional[str] = None
    purchase: Optional[ChipPurchaseRef] = None


class BizAppayCallback(BaseModel):
    model_config = ConfigDict(extra="ignore")

    billstatus: Optional[str] = None
    billcode: Optional[str] = None
    billinvoice: Optional[str] = None
    # Form posts carry billExternalReferenceNo; JSON callbacks may send refno
    billExternalReferenceNo: Optional[str] = None
    refno: Optional[str] = None
    order_id: Optional[str] = None
    ext_reference: Optional[str] = None
    reference: Optional[str] = None

    @field_validator("billstatus", mode="before")
    @classmethod
    def _status_as_text(cls, value: Any) -> Optional[str]:
        return None if value is None else str(value).strip()
