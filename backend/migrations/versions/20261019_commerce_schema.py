"""Commerce schema: organizations, event years, products, carts, orders, invoices

Revision ID: 20261019_commerce_schema
Revises:
Create Date: 2026-10-19 09:00:00.000000
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20261019_commerce_schema"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "organizations",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("slug", sa.String(length=255), nullable=False),
        sa.Column("billing_email", sa.String(length=255), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_organizations_slug", "organizations", ["slug"], unique=True)

    op.create_table(
        "organization_members",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("organization_id", sa.Integer(), sa.ForeignKey("organizations.id"), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=True),
        sa.Column("role", sa.String(length=16), nullable=False),
        sa.UniqueConstraint("organization_id", "email", name="uq_org_members_org_email"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_organization_members_organization_id", "organization_members", ["organization_id"])

    op.create_table(
        "event_years",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("year", sa.Integer(), nullable=False, unique=True),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("is_deleted", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_event_years_is_active", "event_years", ["is_active"])

    op.create_table(
        "products",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("event_year_id", sa.Integer(), sa.ForeignKey("event_years.id"), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("product_type", sa.String(length=32), nullable=False),
        sa.Column("base_price_cents", sa.Integer(), nullable=False),
        sa.Column("requires_deposit", sa.Boolean(), nullable=False),
        sa.Column("deposit_amount_cents", sa.Integer(), nullable=True),
        sa.Column("max_quantity_per_org", sa.Integer(), nullable=True),
        sa.Column("total_inventory", sa.Integer(), nullable=True),
        sa.Column("reserved_count", sa.Integer(), server_default=sa.text("0"), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.CheckConstraint("reserved_count >= 0", name="ck_products_reserved_nonneg"),
        sa.CheckConstraint(
            "total_inventory IS NULL OR reserved_count <= total_inventory",
            name="ck_products_reserved_within_capacity",
        ),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_products_event_year_id", "products", ["event_year_id"])
    op.create_index("ix_products_status", "products", ["status"])
    op.create_index("ix_products_event_year_status", "products", ["event_year_id", "status"])

    op.create_table(
        "cart_sessions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("organization_id", sa.Integer(), sa.ForeignKey("organizations.id"), nullable=False),
        sa.Column("event_year_id", sa.Integer(), sa.ForeignKey("event_years.id"), nullable=False),
        sa.Column("cart_data", sa.JSON(), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("version_id", sa.Integer(), nullable=False),
        sa.UniqueConstraint("organization_id", "event_year_id", name="uq_cart_sessions_org_year"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_cart_sessions_organization_id", "cart_sessions", ["organization_id"])
    op.create_index("ix_cart_sessions_event_year_id", "cart_sessions", ["event_year_id"])
    op.create_index("ix_cart_sessions_expires_at", "cart_sessions", ["expires_at"])

    op.create_table(
        "orders",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("order_number", sa.String(length=64), nullable=False, unique=True),
        sa.Column("organization_id", sa.Integer(), sa.ForeignKey("organizations.id"), nullable=False),
        sa.Column("event_year_id", sa.Integer(), sa.ForeignKey("event_years.id"), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False),
        sa.Column("total_amount_cents", sa.Integer(), nullable=False),
        sa.Column("deposit_amount_cents", sa.Integer(), nullable=False),
        sa.Column("balance_owed_cents", sa.Integer(), nullable=False),
        sa.Column("is_sponsorship", sa.Boolean(), nullable=False),
        sa.Column("is_manually_created", sa.Boolean(), nullable=False),
        sa.Column("metadata", sa.JSON(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("refunded_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("status_reason", sa.String(length=255), nullable=True),
        sa.Column("version_id", sa.Integer(), nullable=False),
        sa.CheckConstraint("balance_owed_cents >= 0", name="ck_orders_balance_nonneg"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_orders_organization_id", "orders", ["organization_id"])
    op.create_index("ix_orders_event_year_id", "orders", ["event_year_id"])
    op.create_index("ix_orders_status", "orders", ["status"])
    op.create_index("ix_orders_status_created", "orders", ["status", "created_at"])
    op.create_index("ix_orders_org_year", "orders", ["organization_id", "event_year_id"])

    op.create_table(
        "order_items",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("order_id", sa.Integer(), sa.ForeignKey("orders.id", ondelete="CASCADE"), nullable=False),
        sa.Column("product_id", sa.Integer(), sa.ForeignKey("products.id"), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("unit_price_cents", sa.Integer(), nullable=False),
        sa.Column("line_total_cents", sa.Integer(), nullable=False),
        sa.CheckConstraint("quantity > 0", name="ck_order_items_quantity_positive"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_order_items_order_id", "order_items", ["order_id"])
    op.create_index("ix_order_items_product_id", "order_items", ["product_id"])

    op.create_table(
        "order_payments",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("order_id", sa.Integer(), sa.ForeignKey("orders.id", ondelete="CASCADE"), nullable=False),
        sa.Column("payment_type", sa.String(length=16), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False),
        sa.Column("amount_cents", sa.Integer(), nullable=False),
        sa.Column("provider_reference", sa.String(length=255), nullable=True),
        sa.Column("processed_at", sa.DateTime(timezone=True), nullable=False),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_order_payments_order_id", "order_payments", ["order_id"])
    op.create_index("ix_order_payments_provider_reference", "order_payments", ["provider_reference"], unique=True)

    op.create_table(
        "order_invoices",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("order_id", sa.Integer(), sa.ForeignKey("orders.id", ondelete="CASCADE"), nullable=False),
        sa.Column("invoice_number", sa.String(length=64), nullable=False, unique=True),
        sa.Column("total_amount_cents", sa.Integer(), nullable=False),
        sa.Column("paid_amount_cents", sa.Integer(), nullable=False),
        sa.Column("balance_owed_cents", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False),
        sa.Column("sent_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("paid_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("metadata", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("version_id", sa.Integer(), nullable=False),
        sa.CheckConstraint("paid_amount_cents >= 0", name="ck_invoices_paid_nonneg"),
        sa.CheckConstraint("balance_owed_cents >= 0", name="ck_invoices_balance_nonneg"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_order_invoices_order_id", "order_invoices", ["order_id"])
    op.create_index("ix_order_invoices_status", "order_invoices", ["status"])


def downgrade():
    op.drop_table("order_invoices")
    op.drop_table("order_payments")
    op.drop_table("order_items")
    op.drop_table("orders")
    op.drop_table("cart_sessions")
    op.drop_table("products")
    op.drop_table("event_years")
    op.drop_table("organization_members")
    op.drop_table("organizations")
