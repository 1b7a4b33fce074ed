from __future__ import annotations

from ..extensions import db
from storefront.time_utils import to_utc_z


class StockMovement(db.Model):
    """
    Ledger row for a manual change to the local stock mirror.

    quantity is signed (positive adds stock); previous_quantity and
    new_quantity are the figures of the row that was changed, the variant
    when variant_id is set, otherwise the product.
    """
    __tablename__ = "stock_movements"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id", ondelete="SET NULL"), nullable=True, index=True)
    variant_id = db.Column(db.Integer, nullable=True)

    # Snapshots, kept readable after the product is deleted
    sku = db.Column(db.String(64), nullable=False)
    product_name = db.Column(db.String(255), nullable=False)
    variant_label = db.Column(db.String(255), nullable=True)

    # RECEIVE | ADJUST | DAMAGE | SALE | RETURN
    movement_type = db.Column(db.String(16), nullable=False, index=True)
    quantity = db.Column(db.Integer, nullable=False)
    previous_quantity = db.Column(db.Integer, nullable=False)
    new_quantity = db.Column(db.Integer, nullable=False)

    reason = db.Column(db.Text, nullable=True)
    # PO number, delivery note, order id
    reference = db.Column(db.String(64), nullable=True, index=True)
    created_by = db.Column(db.String(128), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    def to_dict(self):
        return {
            "id": self.id,
            "product_id": self.product_id,
            "variant_id": self.variant_id,
            "sku": self.sku,
            "product_name": self.product_name,
            "variant_label": self.variant_label,
            "movement_type": self.movement_type,
            "quantity": self.quantity,
            "previous_quantity": self.previous_quantity,
            "new_quantity": self.new_quantity,
            "reason": self.reason,
            "reference": self.reference,
            "created_by": self.created_by,
            "created_at": to_utc_z(self.created_at),
        }
