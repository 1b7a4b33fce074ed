import unittest
from flask import Flask

from storefront.extensions import db
from storefront.models import SettingsDocument
from storefront.services import settings_service
from storefront.services.settings_service import COLLECTION, PAYMENT, SHIPPING, deep_merge
from storefront.validation import NotFoundError, ValidationError


class SettingsServiceTests(unittest.TestCase):
    @classmethod
    def setUpClass(cls):
        cls.app = Flask(__name__)
        cls.app.config.update(
            SECRET_KEY="test",
            SQLALCHEMY_DATABASE_URI="sqlite:///:memory:",
            SQLALCHEMY_TRACK_MODIFICATIONS=False,
            TESTING=True,
        )
        db.init_app(cls.app)
        cls.ctx = cls.app.app_context()
        cls.ctx.push()
        from storefront import models  # noqa: F401
        db.create_all()

    @classmethod
    def tearDownClass(cls):
        db.session.remove()
        db.drop_all()
        cls.ctx.pop()

    def setUp(self):
        db.session.query(SettingsDocument).delete()
        db.session.commit()

    def test_deep_merge_does_not_mutate_inputs(self):
        base = {"chip": {"enabled": True, "environment": "test"}, "flat_rate": 10}
        override = {"chip": {"environment": "live"}}

        merged = deep_merge(base, override)

        self.assertEqual(merged, {"chip": {"enabled": True, "environment": "live"}, "flat_rate": 10})
        self.assertEqual(base["chip"]["environment"], "test")

    def test_missing_document_resolves_to_defaults(self):
        payment = settings_service.get_payment_settings()
        self.assertEqual(payment["enabled_gateway"], "chip")
        self.assertTrue(payment["manual_payment"]["require_admin_approval"])

        shipping = settings_service.get_shipping_settings()
        self.assertEqual(shipping["flat_rate"], 10)
        self.assertFalse(shipping["free_shipping_enabled"])

    def test_update_merges_into_stored_document(self):
        settings_service.update_settings(SHIPPING, {"free_shipping_enabled": True})
        settings_service.update_settings(SHIPPING, {"free_shipping_threshold": 250})

        shipping = settings_service.get_shipping_settings()
        self.assertTrue(shipping["free_shipping_enabled"])
        self.assertEqual(shipping["free_shipping_threshold"], 250)
        # Only changed keys are stored
        stored = db.session.get(SettingsDocument, SHIPPING).value
        self.assertEqual(stored, {"free_shipping_enabled": True, "free_shipping_threshold": 250})

    def test_nested_update_keeps_sibling_fields(self):
        settings_service.update_settings(PAYMENT, {"chip": {"brand_id": "brand-1"}})
        chip = settings_service.get_payment_settings()["chip"]
        self.assertEqual(chip["brand_id"], "brand-1")
        self.assertEqual(chip["environment"], "test")

    def test_unknown_document_rejected(self):
        with self.assertRaises(ValidationError):
            settings_service.get_settings("tax")

    def test_payment_validation(self):
        with self.assertRaises(ValidationError):
            settings_service.update_settings(PAYMENT, {"enabled_gateway": "paypal"})
        with self.assertRaises(ValidationError):
            settings_service.update_settings(PAYMENT, {"chip": {"environment": "staging"}})

    def test_switch_payment_gateway(self):
        result = settings_service.switch_payment_gateway("bizappay")
        self.assertEqual(result["enabled_gateway"], "bizappay")
        with self.assertRaises(ValidationError):
            settings_service.switch_payment_gateway(None)

    def test_collection_point_lifecycle(self):
        point = settings_service.add_collection_point({"name": "Warehouse", "address": "Lot 5, Shah Alam", "fee": "5"})
        self.assertTrue(point["id"].startswith("cp_"))
        self.assertEqual(point["fee"], 5.0)
        self.assertTrue(point["active"])

        updated = settings_service.update_collection_point(point["id"], {"operating_hours": "9am-5pm"})
        self.assertEqual(updated["operating_hours"], "9am-5pm")
        self.assertEqual(updated["name"], "Warehouse")

        settings_service.update_collection_point(point["id"], {"active": False})
        self.assertIsNone(settings_service.find_collection_point(point["id"]))

        settings_service.delete_collection_point(point["id"])
        self.assertEqual(settings_service.get_settings(COLLECTION)["collection_points"], [])

    def test_collection_point_requires_fields(self):
        with self.assertRaises(ValidationError):
            settings_service.add_collection_point({"name": "Warehouse"})

    def test_unknown_collection_point(self):
        with self.assertRaises(NotFoundError):
            settings_service.update_collection_point("cp_missing", {"name": "X"})
        with self.assertRaises(NotFoundError):
            settings_service.delete_collection_point("cp_missing")


if __name__ == "__main__":
    unittest.main()
