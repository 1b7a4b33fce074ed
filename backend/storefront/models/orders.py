from __future__ import annotations

from ..extensions import db
from storefront.time_utils import to_utc_z


def _money(value):
    return float(value) if value is not None else 0.0


class Order(db.Model):
    """
    A purchase attempt.

    status: PENDING -> PENDING_PAYMENT -> PAID, or FAILED / CANCELLED.
    A PAID order can later move to PARTIAL_REFUND or REFUNDED.
    loyverse_status tracks the POS receipt independently of payment: a failed
    receipt never rolls back a confirmed payment.
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.Index("ix_orders_status_created_at", "status", "created_at"),
    )

    id = db.Column(db.String(40), primary_key=True)
    status = db.Column(db.String(24), nullable=False, default="PENDING", index=True)

    # {"name", "email", "phone", "address", "city", "state", "postcode"}
    customer = db.Column(db.JSON, nullable=False, default=dict)
    customer_name = db.Column(db.String(255), nullable=True)
    customer_email = db.Column(db.String(255), nullable=True, index=True)
    customer_phone = db.Column(db.String(64), nullable=True, index=True)

    subtotal = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    shipping_cost = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    discount_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    total_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    promo_code = db.Column(db.String(64), nullable=True)

    # delivery | self_collection
    delivery_method = db.Column(db.String(24), nullable=False, default="delivery")
    collection_point_id = db.Column(db.String(64), nullable=True)
    collection_point_name = db.Column(db.String(255), nullable=True)
    collection_point_address = db.Column(db.Text, nullable=True)
    collection_fee = db.Column(db.Numeric(12, 2), nullable=False, default=0)

    shipping_provider = db.Column(db.String(32), nullable=True)
    shipping_status = db.Column(db.String(32), nullable=True)
    shipment_id = db.Column(db.String(64), nullable=True)
    shipping_error = db.Column(db.Text, nullable=True)
    tracking_no = db.Column(db.String(64), nullable=True, index=True)

    # manual | chip | bizappay
    payment_gateway = db.Column(db.String(24), nullable=True)
    gateway_bill_id = db.Column(db.String(128), nullable=True, index=True)
    payment_instructions = db.Column(db.Text, nullable=True)
    payment_error = db.Column(db.Text, nullable=True)
    requires_approval = db.Column(db.Boolean, nullable=False, default=False)
    payment_approved_by = db.Column(db.String(128), nullable=True)
    payment_approved_at = db.Column(db.DateTime(timezone=True), nullable=True)
    rejection_reason = db.Column(db.Text, nullable=True)
    rejected_by = db.Column(db.String(128), nullable=True)
    rejected_at = db.Column(db.DateTime(timezone=True), nullable=True)

    # HELD | RELEASED | FINALIZED
    reservation_status = db.Column(db.String(16), nullable=False, default="HELD")

    # PENDING | SYNCED | PARTIAL_SYNC | FAILED
    loyverse_status = db.Column(db.String(16), nullable=False, default="PENDING", index=True)
    loyverse_error = db.Column(db.String(500), nullable=True)
    loyverse_failed_items = db.Column(db.JSON, nullable=False, default=list)
    loyverse_receipt_number = db.Column(db.String(64), nullable=True)
    # Persisted before each receipt call, doubles as the POS idempotency key
    pos_receipt_attempt_id = db.Column(db.String(64), nullable=True)
    stock_deducted = db.Column(db.Boolean, nullable=False, default=False)
    stock_deduction_error = db.Column(db.Text, nullable=True)

    refunded_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    refunded_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
    paid_at = db.Column(db.DateTime(timezone=True), nullable=True)
    processed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    collected_at = db.Column(db.DateTime(timezone=True), nullable=True)

    lines = db.relationship(
        "OrderLine",
        back_populates="order",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="OrderLine.id",
    )
    refunds = db.relationship(
        "Refund",
        back_populates="order",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="Refund.id",
    )

    def to_dict(self):
        return {
            "id": self.id,
            "status": self.status,
            "customer": self.customer or {},
            "customer_name": self.customer_name,
            "items": [line.to_dict() for line in self.lines],
            "subtotal": _money(self.subtotal),
            "shipping_cost": _money(self.shipping_cost),
            "discount_amount": _money(self.discount_amount),
            "total_amount": _money(self.total_amount),
            "promo_code": self.promo_code,
            "delivery_method": self.delivery_method,
            "collection_point_id": self.collection_point_id,
            "collection_point_name": self.collection_point_name,
            "collection_point_address": self.collection_point_address,
            "collection_fee": _money(self.collection_fee),
            "shipping_provider": self.shipping_provider,
            "shipping_status": self.shipping_status,
            "shipment_id": self.shipment_id,
            "shipping_error": self.shipping_error,
            "tracking_no": self.tracking_no,
            "payment_gateway": self.payment_gateway,
            "gateway_bill_id": self.gateway_bill_id,
            "payment_instructions": self.payment_instructions,
            "payment_error": self.payment_error,
            "requires_approval": self.requires_approval,
            "payment_approved_by": self.payment_approved_by,
            "payment_approved_at": to_utc_z(self.payment_approved_at),
            "rejection_reason": self.rejection_reason,
            "rejected_by": self.rejected_by,
            "rejected_at": to_utc_z(self.rejected_at),
            "reservation_status": self.reservation_status,
            "loyverse_status": self.loyverse_status,
            "loyverse_error": self.loyverse_error,
            "loyverse_failed_items": self.loyverse_failed_items or [],
            "loyverse_receipt_number": self.loyverse_receipt_number,
            "stock_deducted": self.stock_deducted,
            "stock_deduction_error": self.stock_deduction_error,
            "refunded_amount": _money(self.refunded_amount),
            "refunded_at": to_utc_z(self.refunded_at),
            "refunds": [refund.to_dict() for refund in self.refunds],
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "paid_at": to_utc_z(self.paid_at),
            "processed_at": to_utc_z(self.processed_at),
            "collected_at": to_utc_z(self.collected_at),
        }

    def to_public_dict(self):
        """Customer-safe view: no gateway ids, no POS diagnostics, no contact details."""
        return {
            "id": self.id,
            "status": self.status,
            "tracking_no": self.tracking_no,
            "shipping_status": self.shipping_status,
            "shipping_provider": self.shipping_provider,
            "delivery_method": self.delivery_method,
            "items": [
                {
                    "name": line.name,
                    "quantity": line.quantity,
                    "web_price": _money(line.web_price),
                    "selected_options": line.selected_options or {},
                }
                for line in self.lines
            ],
            "subtotal": _money(self.subtotal),
            "shipping_cost": _money(self.shipping_cost),
            "discount_amount": _money(self.discount_amount),
            "total_amount": _money(self.total_amount),
            "created_at": to_utc_z(self.created_at),
            "customer_name": self.customer_name,
        }


class OrderLine(db.Model):
    """Item snapshot copied at order creation; never follows later catalog edits."""
    __tablename__ = "order_lines"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.String(40), db.ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)

    product_id = db.Column(db.Integer, nullable=True)
    variant_id = db.Column(db.Integer, nullable=True)
    sku = db.Column(db.String(64), nullable=False)
    name = db.Column(db.String(255), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    web_price = db.Column(db.Numeric(12, 2), nullable=False)
    selected_options = db.Column(db.JSON, nullable=False, default=dict)
    category_slug = db.Column(db.String(128), nullable=True)
    loyverse_variant_id = db.Column(db.String(64), nullable=True)
    weight = db.Column(db.Numeric(8, 3), nullable=True)
    refunded_quantity = db.Column(db.Integer, nullable=False, default=0)

    order = db.relationship("Order", back_populates="lines")

    def to_dict(self):
        return {
            "id": self.id,
            "product_id": self.product_id,
            "variant_id": self.variant_id,
            "sku": self.sku,
            "name": self.name,
            "quantity": self.quantity,
            "web_price": _money(self.web_price),
            "selected_options": self.selected_options or {},
            "category_slug": self.category_slug,
            "loyverse_variant_id": self.loyverse_variant_id,
            "refunded_quantity": self.refunded_quantity or 0,
        }


class Refund(db.Model):
    """
    One refund against a paid order.

    items: [{"line_id", "sku", "name", "quantity", "returned_to_stock"}]
    """
    __tablename__ = "refunds"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.String(40), db.ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)

    # FULL | PARTIAL
    refund_type = db.Column(db.String(16), nullable=False)
    amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    reason = db.Column(db.Text, nullable=False, default="")
    items = db.Column(db.JSON, nullable=False, default=list)
    refunded_by = db.Column(db.String(128), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    order = db.relationship("Order", back_populates="refunds")

    def to_dict(self):
        return {
            "id": self.id,
            "order_id": self.order_id,
            "refund_type": self.refund_type,
            "amount": _money(self.amount),
            "reason": self.reason,
            "items": self.items or [],
            "refunded_by": self.refunded_by,
            "created_at": to_utc_z(self.created_at),
        }
