"""Initial storefront schema

Revision ID: 20261019_initial
Revises:
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20261019_initial"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps():
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
    ]


def upgrade():
    op.create_table(
        "categories",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("slug", sa.String(128), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("order", sa.Integer(), nullable=False),
        sa.Column("subcategories", sa.JSON(), nullable=False),
        sa.Column("handling_fee", sa.Numeric(12, 2), nullable=True),
        sa.Column("shipping_markup_percent", sa.Numeric(6, 2), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("categories", schema=None) as batch_op:
        batch_op.create_index("ix_categories_slug", ["slug"], unique=True)
        batch_op.create_index("ix_categories_order", ["order"], unique=False)

    op.create_table(
        "products",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("sku", sa.String(64), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("images", sa.JSON(), nullable=False),
        sa.Column("web_price", sa.Numeric(12, 2), nullable=False),
        sa.Column("promo_price", sa.Numeric(12, 2), nullable=True),
        sa.Column("category_slug", sa.String(128), nullable=False),
        sa.Column("subcategory_slugs", sa.JSON(), nullable=False),
        sa.Column("stock_status", sa.String(16), nullable=False),
        sa.Column("stock_quantity", sa.Integer(), nullable=True),
        sa.Column("reserved_quantity", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("last_stock_sync", sa.DateTime(timezone=True), nullable=True),
        sa.Column("weight", sa.Numeric(8, 3), nullable=True),
        sa.Column("width", sa.Numeric(8, 2), nullable=True),
        sa.Column("length", sa.Numeric(8, 2), nullable=True),
        sa.Column("height", sa.Numeric(8, 2), nullable=True),
        sa.Column("handling_fee", sa.Numeric(12, 2), nullable=True),
        sa.Column("shipping_markup_percent", sa.Numeric(6, 2), nullable=True),
        sa.Column("loyverse_item_id", sa.String(64), nullable=True),
        sa.Column("loyverse_variant_id", sa.String(64), nullable=True),
        sa.Column("is_draft", sa.Boolean(), nullable=False, server_default=sa.text("0")),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("products", schema=None) as batch_op:
        batch_op.create_index("ix_products_sku", ["sku"], unique=True)
        batch_op.create_index("ix_products_category_slug", ["category_slug"], unique=False)
        batch_op.create_index("ix_products_stock_status", ["stock_status"], unique=False)
        batch_op.create_index("ix_products_loyverse_item_id", ["loyverse_item_id"], unique=False)
        batch_op.create_index("ix_products_loyverse_variant_id", ["loyverse_variant_id"], unique=False)
        batch_op.create_index("ix_products_is_draft", ["is_draft"], unique=False)

    op.create_table(
        "product_variants",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("product_id", sa.Integer(), nullable=False),
        sa.Column("sku", sa.String(64), nullable=False),
        sa.Column("name", sa.String(255), nullable=True),
        sa.Column("options", sa.JSON(), nullable=False),
        sa.Column("price", sa.Numeric(12, 2), nullable=True),
        sa.Column("stock_status", sa.String(16), nullable=False),
        sa.Column("stock_quantity", sa.Integer(), nullable=True),
        sa.Column("reserved_quantity", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("loyverse_variant_id", sa.String(64), nullable=True),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("product_variants", schema=None) as batch_op:
        batch_op.create_index("ix_product_variants_product_id", ["product_id"], unique=False)
        batch_op.create_index("ix_product_variants_sku", ["sku"], unique=True)
        batch_op.create_index("ix_product_variants_loyverse_variant_id", ["loyverse_variant_id"], unique=False)

    op.create_table(
        "orders",
        sa.Column("id", sa.String(40), nullable=False),
        sa.Column("status", sa.String(24), nullable=False),
        sa.Column("customer", sa.JSON(), nullable=False),
        sa.Column("customer_name", sa.String(255), nullable=True),
        sa.Column("customer_email", sa.String(255), nullable=True),
        sa.Column("customer_phone", sa.String(64), nullable=True),
        sa.Column("subtotal", sa.Numeric(12, 2), nullable=False),
        sa.Column("shipping_cost", sa.Numeric(12, 2), nullable=False),
        sa.Column("discount_amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("total_amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("promo_code", sa.String(64), nullable=True),
        sa.Column("delivery_method", sa.String(24), nullable=False),
        sa.Column("collection_point_id", sa.String(64), nullable=True),
        sa.Column("collection_point_name", sa.String(255), nullable=True),
        sa.Column("collection_point_address", sa.Text(), nullable=True),
        sa.Column("collection_fee", sa.Numeric(12, 2), nullable=False),
        sa.Column("shipping_provider", sa.String(32), nullable=True),
        sa.Column("shipping_status", sa.String(32), nullable=True),
        sa.Column("shipment_id", sa.String(64), nullable=True),
        sa.Column("shipping_error", sa.Text(), nullable=True),
        sa.Column("tracking_no", sa.String(64), nullable=True),
        sa.Column("payment_gateway", sa.String(24), nullable=True),
        sa.Column("gateway_bill_id", sa.String(128), nullable=True),
        sa.Column("payment_instructions", sa.Text(), nullable=True),
        sa.Column("payment_error", sa.Text(), nullable=True),
        sa.Column("requires_approval", sa.Boolean(), nullable=False, server_default=sa.text("0")),
        sa.Column("payment_approved_by", sa.String(128), nullable=True),
        sa.Column("payment_approved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("rejection_reason", sa.Text(), nullable=True),
        sa.Column("rejected_by", sa.String(128), nullable=True),
        sa.Column("rejected_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("reservation_status", sa.String(16), nullable=False),
        sa.Column("loyverse_status", sa.String(16), nullable=False),
        sa.Column("loyverse_error", sa.String(500), nullable=True),
        sa.Column("loyverse_failed_items", sa.JSON(), nullable=False),
        sa.Column("loyverse_receipt_number", sa.String(64), nullable=True),
        sa.Column("pos_receipt_attempt_id", sa.String(64), nullable=True),
        sa.Column("stock_deducted", sa.Boolean(), nullable=False, server_default=sa.text("0")),
        sa.Column("stock_deduction_error", sa.Text(), nullable=True),
        *_timestamps(),
        sa.Column("paid_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("processed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("collected_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    with op.batch_alter_table("orders", schema=None) as batch_op:
        # Stale-order sweep filters on status and orders by created_at
        batch_op.create_index("ix_orders_status_created_at", ["status", "created_at"], unique=False)
        batch_op.create_index("ix_orders_status", ["status"], unique=False)
        batch_op.create_index("ix_orders_created_at", ["created_at"], unique=False)
        batch_op.create_index("ix_orders_customer_email", ["customer_email"], unique=False)
        batch_op.create_index("ix_orders_customer_phone", ["customer_phone"], unique=False)
        batch_op.create_index("ix_orders_tracking_no", ["tracking_no"], unique=False)
        batch_op.create_index("ix_orders_gateway_bill_id", ["gateway_bill_id"], unique=False)
        batch_op.create_index("ix_orders_loyverse_status", ["loyverse_status"], unique=False)

    op.create_table(
        "order_lines",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("order_id", sa.String(40), nullable=False),
        sa.Column("product_id", sa.Integer(), nullable=True),
        sa.Column("variant_id", sa.Integer(), nullable=True),
        sa.Column("sku", sa.String(64), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("web_price", sa.Numeric(12, 2), nullable=False),
        sa.Column("selected_options", sa.JSON(), nullable=False),
        sa.Column("category_slug", sa.String(128), nullable=True),
        sa.Column("loyverse_variant_id", sa.String(64), nullable=True),
        sa.Column("weight", sa.Numeric(8, 3), nullable=True),
        sa.ForeignKeyConstraint(["order_id"], ["orders.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("order_lines", schema=None) as batch_op:
        batch_op.create_index("ix_order_lines_order_id", ["order_id"], unique=False)

    op.create_table(
        "promo_codes",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("code", sa.String(64), nullable=False),
        sa.Column("promo_type", sa.String(16), nullable=False),
        sa.Column("value", sa.Numeric(12, 2), nullable=False),
        sa.Column("min_spend", sa.Numeric(12, 2), nullable=True),
        sa.Column("usage_limit", sa.Integer(), nullable=True),
        sa.Column("usage_count", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.text("1")),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("promo_codes", schema=None) as batch_op:
        batch_op.create_index("ix_promo_codes_code", ["code"], unique=True)
        batch_op.create_index("ix_promo_codes_active", ["active"], unique=False)

    op.create_table(
        "settings_documents",
        sa.Column("key", sa.String(32), nullable=False),
        sa.Column("value", sa.JSON(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.PrimaryKeyConstraint("key"),
    )


def downgrade():
    op.drop_table("settings_documents")
    with op.batch_alter_table("promo_codes", schema=None) as batch_op:
        batch_op.drop_index("ix_promo_codes_active")
        batch_op.drop_index("ix_promo_codes_code")
    op.drop_table("promo_codes")
    with op.batch_alter_table("order_lines", schema=None) as batch_op:
        batch_op.drop_index("ix_order_lines_order_id")
    op.drop_table("order_lines")
    op.drop_table("orders")
    op.drop_table("product_variants")
    op.drop_table("products")
    op.drop_table("categories")
