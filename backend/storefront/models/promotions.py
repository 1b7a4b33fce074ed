from __future__ import annotations

from ..extensions import db
from storefront.time_utils import to_utc_z


class PromoCode(db.Model):
    """
    Checkout promo code.

    code is stored uppercase/trimmed; lookups normalize the same way.
    usage_limit of NULL or 0 means unlimited.
    """
    __tablename__ = "promo_codes"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(64), nullable=False, unique=True, index=True)

    promo_type = db.Column(db.String(16), nullable=False)  # percentage, fixed
    value = db.Column(db.Numeric(12, 2), nullable=False)

    min_spend = db.Column(db.Numeric(12, 2), nullable=True)
    usage_limit = db.Column(db.Integer, nullable=True)
    usage_count = db.Column(db.Integer, nullable=False, default=0)

    active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self):
        return {
            "id": self.id,
            "code": self.code,
            "type": self.promo_type,
            "value": float(self.value),
            "min_spend": float(self.min_spend) if self.min_spend is not None else None,
            "usage_limit": self.usage_limit,
            "usage_count": self.usage_count,
            "active": self.active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
