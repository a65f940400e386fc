"""Inventory ledger schema

Revision ID: 001
Revises:
Create Date: 2026-10-17 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

QTY = sa.Numeric(18, 6)
MONEY = sa.Numeric(18, 6)


def _timestamps(updated: bool = True):
    columns = [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False, index=True),
    ]
    if updated:
        columns.append(
            sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False)
        )
    return columns


def upgrade() -> None:
    # Tenants
    op.create_table(
        "organizations",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("external_id", sa.String(100), unique=True, nullable=False, index=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("is_active", sa.Boolean(), default=True, nullable=False),
        *_timestamps(),
    )

    op.create_table(
        "organization_settings",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("organization_id", sa.Integer(), sa.ForeignKey("organizations.id", ondelete="CASCADE"), unique=True, nullable=False),
        sa.Column("target_margin_threshold", sa.Numeric(10, 6), nullable=True),
        sa.Column("currency", sa.String(3), default="USD", nullable=False),
        *_timestamps(),
    )

    op.create_table(
        "branches",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("organization_id", sa.Integer(), sa.ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("is_active", sa.Boolean(), default=True, nullable=False),
        *_timestamps(),
    )

    # Ingredients and their batch ledger
    op.create_table(
        "ingredients",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("organization_id", sa.Integer(), sa.ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("name", sa.String(255), nullable=False, index=True),
        sa.Column("unit", sa.String(20), default="pcs", nullable=False),
        sa.Column("is_active", sa.Boolean(), default=True, nullable=False),
        sa.Column("total_stock", QTY, default=0, nullable=False),
        sa.Column("average_unit_cost", MONEY, nullable=True),
        sa.Column("fifo_unit_cost", MONEY, nullable=True),
        sa.Column("reorder_threshold", QTY, nullable=True),
        *_timestamps(),
    )

    op.create_table(
        "ingredient_batches",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("ingredient_id", sa.Integer(), sa.ForeignKey("ingredients.id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("initial_qty", QTY, nullable=False),
        sa.Column("remaining_qty", QTY, nullable=False),
        sa.Column("unit_cost", MONEY, nullable=False),
        sa.Column("total_cost", MONEY, nullable=False),
        sa.Column("receipt_ref", sa.String(255), nullable=True),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("is_closed", sa.Boolean(), default=False, nullable=False, index=True),
        sa.Column("branch_id", sa.Integer(), sa.ForeignKey("branches.id", ondelete="SET NULL"), nullable=True, index=True),
        *_timestamps(updated=False),
    )
    op.create_index("ix_batches_fifo", "ingredient_batches", ["ingredient_id", "is_closed", "created_at", "id"])

    # Recipes
    op.create_table(
        "recipes",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("organization_id", sa.Integer(), sa.ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("name", sa.String(255), nullable=False, index=True),
        sa.Column("yield_quantity", QTY, default=1, nullable=False),
        sa.Column("total_cost", MONEY, default=0, nullable=False),
        sa.Column("cost_per_portion", MONEY, default=0, nullable=False),
        sa.Column("version", sa.Integer(), default=1, nullable=False),
        sa.Column("is_active", sa.Boolean(), default=True, nullable=False),
        *_timestamps(),
    )

    op.create_table(
        "recipe_ingredients",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("recipe_id", sa.Integer(), sa.ForeignKey("recipes.id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("ingredient_id", sa.Integer(), sa.ForeignKey("ingredients.id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("quantity_used", QTY, nullable=False),
        sa.Column("unit_cost_at_use", MONEY, default=0, nullable=False),
        sa.Column("total_cost", MONEY, default=0, nullable=False),
    )

    # Append-only audit trail
    op.create_table(
        "stock_entries",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("type", sa.String(20), nullable=False, index=True),
        sa.Column("ingredient_id", sa.Integer(), sa.ForeignKey("ingredients.id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("batch_id", sa.Integer(), sa.ForeignKey("ingredient_batches.id"), nullable=True),
        sa.Column("quantity", QTY, nullable=False),
        sa.Column("unit_cost", MONEY, nullable=False),
        sa.Column("total_cost", MONEY, nullable=False),
        sa.Column("reason", sa.String(500), nullable=True),
        sa.Column("reference", sa.String(255), nullable=True),
        sa.Column("metadata", sa.JSON(), nullable=True),
        sa.Column("branch_id", sa.Integer(), sa.ForeignKey("branches.id", ondelete="SET NULL"), nullable=True),
        *_timestamps(updated=False),
    )

    op.create_table(
        "stock_deductions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("ingredient_id", sa.Integer(), sa.ForeignKey("ingredients.id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("batch_id", sa.Integer(), sa.ForeignKey("ingredient_batches.id"), nullable=False, index=True),
        sa.Column("quantity_deducted", QTY, nullable=False),
        sa.Column("cost_per_unit", MONEY, nullable=False),
        sa.Column("total_cost", MONEY, nullable=False),
        sa.Column("order_id", sa.String(100), nullable=True, index=True),
        sa.Column("recipe_id", sa.Integer(), sa.ForeignKey("recipes.id", ondelete="SET NULL"), nullable=True),
        sa.Column("reason", sa.String(100), default="order", nullable=False),
        *_timestamps(updated=False),
    )

    op.create_table(
        "cogs_ledger",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("organization_id", sa.Integer(), sa.ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("order_id", sa.String(100), nullable=False, index=True),
        sa.Column("total_cost", MONEY, nullable=False),
        sa.Column("metadata", sa.JSON(), nullable=True),
        *_timestamps(updated=False),
    )

    # Menu
    op.create_table(
        "menu_items",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("organization_id", sa.Integer(), sa.ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("name", sa.String(255), nullable=False, index=True),
        sa.Column("base_price", MONEY, nullable=False),
        sa.Column("portion_multiplier", sa.Numeric(10, 4), default=1, nullable=False),
        sa.Column("recipe_id", sa.Integer(), sa.ForeignKey("recipes.id", ondelete="SET NULL"), nullable=True, index=True),
        sa.Column("computed_cost", MONEY, nullable=True),
        sa.Column("margin", sa.Numeric(12, 6), nullable=True),
        sa.Column("is_active", sa.Boolean(), default=True, nullable=False),
        sa.Column("version", sa.Integer(), server_default="1", nullable=False),
        *_timestamps(),
    )


def downgrade() -> None:
    op.drop_table("menu_items")
    op.drop_table("cogs_ledger")
    op.drop_table("stock_deductions")
    op.drop_table("stock_entries")
    op.drop_table("recipe_ingredients")
    op.drop_table("recipes")
    op.drop_index("ix_batches_fifo", table_name="ingredient_batches")
    op.drop_table("ingredient_batches")
    op.drop_table("ingredients")
    op.drop_table("branches")
    op.drop_table("organization_settings")
    op.drop_table("organizations")
