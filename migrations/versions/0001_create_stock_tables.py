"""create chemical product, inventory and stock movement tables

Revision ID: 0001_create_stock_tables
Revises: 
Create Date: 2026-10-19

"""

from alembic import op
import sqlalchemy as sa


revision = "0001_create_stock_tables"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "chemical_products",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("product_name", sa.String(255), nullable=False),
        sa.Column("cas_number", sa.String(50), nullable=False, unique=True),
        sa.Column("unit_of_measurement", sa.String(20), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint(
            "unit_of_measurement IN ('KG', 'MT', 'Litre')",
            name="ck_chemical_products_unit",
        ),
    )
    op.create_table(
        "inventory",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "product_id",
            sa.Integer(),
            sa.ForeignKey("chemical_products.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "current_stock_quantity",
            sa.Numeric(10, 2),
            nullable=False,
            server_default="0",
        ),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("product_id", name="uq_inventory_product"),
        sa.CheckConstraint(
            "current_stock_quantity >= 0", name="ck_inventory_quantity_non_negative"
        ),
    )
    op.create_table(
        "stock_movements",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "product_id",
            sa.Integer(),
            sa.ForeignKey("chemical_products.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("movement_type", sa.String(10), nullable=False),
        sa.Column("quantity", sa.Numeric(10, 2), nullable=False),
        sa.Column("previous_stock", sa.Numeric(10, 2), nullable=False),
        sa.Column("new_stock", sa.Numeric(10, 2), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint(
            "movement_type IN ('IN', 'OUT')", name="ck_stock_movements_type"
        ),
        sa.CheckConstraint("quantity > 0", name="ck_stock_movements_quantity_positive"),
    )
    op.create_index(
        "ix_stock_movements_product_created",
        "stock_movements",
        ["product_id", "created_at"],
    )


def downgrade():
    op.drop_index("ix_stock_movements_product_created", table_name="stock_movements")
    op.drop_table("stock_movements")
    op.drop_table("inventory")
    op.drop_table("chemical_products")
