from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect
from sqlalchemy.dialects.postgresql import JSONB


revision = "0001_create_checkout_schema"
down_revision = None
branch_labels = None
depends_on = None

JSON_TYPE = JSONB().with_variant(sa.JSON(), "sqlite")


def _has_table(inspector, table_name: str) -> bool:
    return table_name in inspector.get_table_names()


def _has_index(inspector, table_name: str, index_name: str) -> bool:
    return any(idx["name"] == index_name for idx in inspector.get_indexes(table_name))


def _create_index(bind, name: str, table_name: str, columns: list[str], unique: bool = False) -> None:
    inspector = inspect(bind)
    if not _has_index(inspector, table_name, name):
        op.create_index(name, table_name, columns, unique=unique)


def upgrade() -> None:
    bind = op.get_bind()
    inspector = inspect(bind)

    if not _has_table(inspector, "businesses"):
        op.create_table(
            "businesses",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("slug", sa.String(length=120), nullable=False),
            sa.Column("name", sa.String(length=200), nullable=False, server_default=""),
            sa.Column("whatsapp_phone", sa.String(length=30), nullable=True),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        )
    _create_index(bind, "ix_businesses_slug", "businesses", ["slug"], unique=True)

    inspector = inspect(bind)
    if not _has_table(inspector, "ff_settings"):
        op.create_table(
            "ff_settings",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("business_id", sa.Integer(), sa.ForeignKey("businesses.id"), nullable=False, unique=True),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("min_order_amount", sa.Numeric(10, 2), nullable=False, server_default="0"),
            sa.Column("delivery_fee", sa.Numeric(10, 2), nullable=False, server_default="0"),
            sa.Column("free_delivery_threshold", sa.Numeric(10, 2), nullable=False, server_default="0"),
            sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        )

    inspector = inspect(bind)
    if not _has_table(inspector, "ff_products"):
        op.create_table(
            "ff_products",
            sa.Column("id", sa.String(length=100), primary_key=True),
            sa.Column("business_id", sa.Integer(), sa.ForeignKey("businesses.id"), nullable=False),
            sa.Column("category_id", sa.String(length=100), nullable=True),
            sa.Column("name", sa.String(length=200), nullable=False),
            sa.Column("price", sa.Numeric(10, 2), nullable=False, server_default="0"),
            sa.Column("discount_price", sa.Numeric(10, 2), nullable=True),
            sa.Column("discount_until", sa.DateTime(timezone=True), nullable=True),
            sa.Column("in_stock", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("track_stock", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("stock", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("sizes", JSON_TYPE, nullable=False),
            sa.Column("extras", JSON_TYPE, nullable=False),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        )
    _create_index(bind, "ix_ff_products_business_id", "ff_products", ["business_id"])
    _create_index(bind, "ix_ff_products_category_id", "ff_products", ["category_id"])

    inspector = inspect(bind)
    if not _has_table(inspector, "ff_coupons"):
        op.create_table(
            "ff_coupons",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("business_id", sa.Integer(), sa.ForeignKey("businesses.id"), nullable=False),
            sa.Column("code", sa.String(length=64), nullable=False),
            sa.Column("title", sa.String(length=200), nullable=False, server_default=""),
            sa.Column("description", sa.Text(), nullable=False, server_default=""),
            sa.Column("emoji", sa.String(length=16), nullable=False, server_default="🎉"),
            sa.Column("discount_type", sa.String(length=20), nullable=False),
            sa.Column("discount_value", sa.Numeric(10, 2), nullable=False, server_default="0"),
            sa.Column("max_discount_amount", sa.Numeric(10, 2), nullable=True),
            sa.Column("bogo_type", sa.String(length=30), nullable=True),
            sa.Column("bogo_buy_quantity", sa.Integer(), nullable=False, server_default="1"),
            sa.Column("bogo_get_quantity", sa.Integer(), nullable=False, server_default="1"),
            sa.Column("bogo_discount_percent", sa.Integer(), nullable=False, server_default="100"),
            sa.Column("min_order_amount", sa.Numeric(10, 2), nullable=False, server_default="0"),
            sa.Column("max_usage_count", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("usage_per_user", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("current_usage_count", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("valid_from", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
            sa.Column("valid_until", sa.DateTime(timezone=True), nullable=True),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("applicable_to", sa.String(length=20), nullable=False, server_default="all"),
            sa.Column("applicable_category_ids", JSON_TYPE, nullable=False),
            sa.Column("applicable_product_ids", JSON_TYPE, nullable=False),
            sa.Column("is_public", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("is_first_order_only", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
            sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
            sa.UniqueConstraint("business_id", "code", name="uq_ff_coupons_business_code"),
        )
    _create_index(bind, "ix_ff_coupons_business_id", "ff_coupons", ["business_id"])

    inspector = inspect(bind)
    if not _has_table(inspector, "ff_orders"):
        op.create_table(
            "ff_orders",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("business_id", sa.Integer(), sa.ForeignKey("businesses.id"), nullable=False),
            sa.Column("qr_code", sa.String(length=160), nullable=False, server_default=""),
            sa.Column("customer_name", sa.String(length=120), nullable=False, server_default=""),
            sa.Column("customer_phone", sa.String(length=30), nullable=False),
            sa.Column("customer_email", sa.String(length=200), nullable=True),
            sa.Column("delivery_type", sa.String(length=20), nullable=False),
            sa.Column("delivery_address", sa.Text(), nullable=True),
            sa.Column("table_number", sa.String(length=20), nullable=True),
            sa.Column("payment_method", sa.String(length=30), nullable=False),
            sa.Column("items", JSON_TYPE, nullable=False),
            sa.Column("order_note", sa.Text(), nullable=False, server_default=""),
            sa.Column("subtotal", sa.Numeric(10, 2), nullable=False, server_default="0"),
            sa.Column("discount_amount", sa.Numeric(10, 2), nullable=False, server_default="0"),
            sa.Column("delivery_fee", sa.Numeric(10, 2), nullable=False, server_default="0"),
            sa.Column("total", sa.Numeric(10, 2), nullable=False, server_default="0"),
            sa.Column("coupon_id", sa.Integer(), sa.ForeignKey("ff_coupons.id"), nullable=True),
            sa.Column("coupon_snapshot", JSON_TYPE, nullable=True),
            sa.Column("status", sa.String(length=20), nullable=False, server_default="pending"),
            sa.Column("status_history", JSON_TYPE, nullable=False),
            sa.Column("price_verified", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("verified_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("client_ip", sa.String(length=64), nullable=True),
            sa.Column("user_agent", sa.String(length=300), nullable=True),
            sa.Column("internal_note", sa.Text(), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
            sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        )
    _create_index(bind, "ix_ff_orders_business_id", "ff_orders", ["business_id"])
    _create_index(bind, "ix_ff_orders_customer_phone", "ff_orders", ["customer_phone"])

    inspector = inspect(bind)
    if not _has_table(inspector, "ff_coupon_usages"):
        op.create_table(
            "ff_coupon_usages",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("business_id", sa.Integer(), sa.ForeignKey("businesses.id"), nullable=False),
            sa.Column("coupon_id", sa.Integer(), sa.ForeignKey("ff_coupons.id"), nullable=False),
            sa.Column("order_id", sa.Integer(), sa.ForeignKey("ff_orders.id"), nullable=False),
            sa.Column("code", sa.String(length=64), nullable=False),
            sa.Column("customer_phone", sa.String(length=30), nullable=True),
            sa.Column("discount_amount", sa.Numeric(10, 2), nullable=False, server_default="0"),
            sa.Column("used_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        )
    _create_index(bind, "ix_ff_coupon_usages_business_id", "ff_coupon_usages", ["business_id"])
    _create_index(bind, "ix_ff_coupon_usages_coupon_id", "ff_coupon_usages", ["coupon_id"])
    _create_index(bind, "ix_ff_coupon_usages_order_id", "ff_coupon_usages", ["order_id"])
    _create_index(bind, "ix_ff_coupon_usages_customer_phone", "ff_coupon_usages", ["customer_phone"])


def downgrade() -> None:
    for table_name in ("ff_coupon_usages", "ff_orders", "ff_coupons", "ff_products", "ff_settings", "businesses"):
        op.drop_table(table_name)
