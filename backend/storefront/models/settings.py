from __future__ import annotations

from ..extensions import db
from storefront.time_utils import to_utc_z


class SettingsDocument(db.Model):
    """
    Singleton settings document per concern (payment, shipping, collection).

    value holds only what has been saved; readers merge it over the
    hardcoded defaults in settings_service.
    """
    __tablename__ = "settings_documents"

    key = db.Column(db.String(32), primary_key=True)
    value = db.Column(db.JSON, nullable=False, default=dict)

    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self):
        return {
            "key": self.key,
            "value": self.value or {},
            "updated_at": to_utc_z(self.updated_at),
        }
