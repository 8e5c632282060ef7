"""init procurement tables

Revision ID: 20260301_0001
Revises: None
Create Date: 2026-03-01
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20260301_0001_init_procurement_tables"
down_revision = None
branch_labels = None
depends_on = None


def _enum(*values: str, name: str) -> sa.Enum:
    # Stored as VARCHAR on every backend, matching native_enum=False on the models.
    return sa.Enum(*values, name=name, native_enum=False, create_constraint=False, length=32)


def upgrade() -> None:
    role_enum = _enum("admin", "procurement_manager", "procurement_staff", "viewer", name="rolename")
    quotation_status_enum = _enum(
        "pending", "negotiation", "approved", "cancelled", name="quotationstatus"
    )
    demand_status_enum = _enum("active", "inactive", name="demandstatus")
    price_type_enum = _enum("initial", "negotiated", "approved", name="pricehistorytype")

    op.create_table(
        "roles",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("name", role_enum, nullable=False, unique=True),
        sa.Column("description", sa.String(length=255)),
    )

    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("email", sa.String(length=255), nullable=False, unique=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("role_id", sa.Integer(), sa.ForeignKey("roles.id"), nullable=False),
        sa.Column("active", sa.Boolean(), server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_users_email", "users", ["email"])

    op.create_table(
        "products",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("code", sa.String(length=64), nullable=False, unique=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("specification", sa.Text()),
        sa.Column("unit", sa.String(length=32), nullable=False),
        sa.Column("category", sa.String(length=128), nullable=False),
        sa.Column("base_price", sa.Float()),
        sa.Column("base_quantity", sa.Float()),
        sa.Column("active", sa.Boolean(), server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_products_category", "products", ["category"])
    op.create_index("ix_products_active", "products", ["active"])

    op.create_table(
        "suppliers",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("code", sa.String(length=32), nullable=False, unique=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("active", sa.Boolean(), server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_suppliers_active", "suppliers", ["active"])

    op.create_table(
        "quotations",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("quotation_code", sa.String(length=64), nullable=False, unique=True),
        sa.Column("period", sa.String(length=10), nullable=False),
        sa.Column("region", sa.String(length=128), nullable=False),
        sa.Column("supplier_id", sa.Integer(), sa.ForeignKey("suppliers.id"), nullable=False),
        sa.Column("status", quotation_status_enum, nullable=False, server_default="pending"),
        sa.Column("created_by", sa.Integer(), sa.ForeignKey("users.id")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint(
            "supplier_id", "period", "region", name="uq_quotations_supplier_period_region"
        ),
    )
    op.create_index("ix_quotations_period", "quotations", ["period"])
    op.create_index("ix_quotations_region", "quotations", ["region"])
    op.create_index("ix_quotations_status", "quotations", ["status"])
    op.create_index("ix_quotations_supplier_id", "quotations", ["supplier_id"])

    op.create_table(
        "quote_items",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "quotation_id",
            sa.Integer(),
            sa.ForeignKey("quotations.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("product_id", sa.Integer(), sa.ForeignKey("products.id"), nullable=False),
        sa.Column("quantity", sa.Float()),
        sa.Column("initial_price", sa.Float()),
        sa.Column("negotiated_price", sa.Float()),
        sa.Column("approved_price", sa.Float()),
        sa.Column("vat_percentage", sa.Float(), nullable=False, server_default="0"),
        sa.Column("currency", sa.String(length=8), nullable=False, server_default="VND"),
        sa.Column("negotiation_rounds", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_negotiated_at", sa.DateTime(timezone=True)),
        sa.Column("approved_at", sa.DateTime(timezone=True)),
        sa.Column("approved_by", sa.Integer(), sa.ForeignKey("users.id")),
        sa.Column("notes", sa.Text()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint(
            "quotation_id", "product_id", name="uq_quote_items_quotation_product"
        ),
    )
    op.create_index("ix_quote_items_quotation_id", "quote_items", ["quotation_id"])
    op.create_index("ix_quote_items_product_id", "quote_items", ["product_id"])

    op.create_table(
        "kitchen_period_demands",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("kitchen_id", sa.Integer(), nullable=False),
        sa.Column("product_id", sa.Integer(), sa.ForeignKey("products.id"), nullable=False),
        sa.Column("period", sa.String(length=10), nullable=False),
        sa.Column("quantity", sa.Float(), nullable=False),
        sa.Column("unit", sa.String(length=32)),
        sa.Column("status", demand_status_enum, nullable=False, server_default="active"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint(
            "kitchen_id", "product_id", "period", name="uq_kitchen_demand_product_period"
        ),
    )
    op.create_index("ix_kitchen_period_demands_kitchen_id", "kitchen_period_demands", ["kitchen_id"])
    op.create_index("ix_kitchen_period_demands_product_id", "kitchen_period_demands", ["product_id"])
    op.create_index("ix_kitchen_period_demands_period", "kitchen_period_demands", ["period"])

    op.create_table(
        "price_history",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("product_id", sa.Integer(), sa.ForeignKey("products.id"), nullable=False),
        sa.Column("supplier_id", sa.Integer(), sa.ForeignKey("suppliers.id"), nullable=False),
        sa.Column("period", sa.String(length=10), nullable=False),
        sa.Column("region", sa.String(length=128), nullable=False),
        sa.Column("price", sa.Float(), nullable=False),
        sa.Column("price_type", price_type_enum, nullable=False),
        sa.Column("recorded_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_price_history_product_id", "price_history", ["product_id"])
    op.create_index("ix_price_history_supplier_id", "price_history", ["supplier_id"])
    op.create_index("ix_price_history_period", "price_history", ["period"])

    op.create_table(
        "audit_logs",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("action", sa.String(length=128), nullable=False),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id")),
        sa.Column("quotation_id", sa.Integer(), sa.ForeignKey("quotations.id")),
        sa.Column("payload_json", sa.Text()),
        sa.Column("request_id", sa.String(length=64)),
        sa.Column("idempotency_key", sa.String(length=128), unique=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_audit_logs_action", "audit_logs", ["action"])
    op.create_index("ix_audit_logs_user_id", "audit_logs", ["user_id"])
    op.create_index("ix_audit_logs_request_id", "audit_logs", ["request_id"])

    op.bulk_insert(
        sa.table("roles", sa.column("name", sa.String), sa.column("description", sa.String)),
        [
            {"name": "admin", "description": "Administrator"},
            {"name": "procurement_manager", "description": "Procurement manager (approves prices)"},
            {"name": "procurement_staff", "description": "Procurement staff (compares and negotiates)"},
            {"name": "viewer", "description": "Read-only access to comparisons"},
        ],
    )


def downgrade() -> None:
    op.drop_table("audit_logs")
    op.drop_table("price_history")
    op.drop_table("kitchen_period_demands")
    op.drop_table("quote_items")
    op.drop_table("quotations")
    op.drop_table("suppliers")
    op.drop_table("products")
    op.drop_table("users")
    op.drop_table("roles")
