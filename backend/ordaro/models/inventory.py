"""Inventory ledger models: Ingredient, IngredientBatch, StockEntry, StockDeduction, CogsLedger."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from sqlalchemy import JSON, Boolean, DateTime, ForeignKey, Index, Numeric, String, event
from sqlalchemy.orm import Mapped, mapped_column, relationship, validates

from ordaro.db.base import Base, CreatedAtMixin, TimestampMixin

# Column types for ledger math; services quantize to the configured scale first
Quantity = Numeric(18, 6)
Money = Numeric(18, 6)


class StockEntryType(str, Enum):
    """Kinds of stock entry."""

    PURCHASE = "PURCHASE"  # Goods received, always creates a batch
    ADJUSTMENT = "ADJUSTMENT"  # Manual correction, never touches batches


class Ingredient(Base, TimestampMixin):
    """A stock-keeping ingredient with cached ledger aggregates.

    ``total_stock``, ``average_unit_cost`` and ``fifo_unit_cost`` are written
    only by the costing engine inside ledger transactions.
    """

    __tablename__ = "ingredients"

    id: Mapped[int] = mapped_column(primary_key=True)
    organization_id: Mapped[int] = mapped_column(
        ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    unit: Mapped[str] = mapped_column(String(20), default="pcs", nullable=False)  # g, kg, ml, L, pcs
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    total_stock: Mapped[Decimal] = mapped_column(Quantity, default=Decimal("0"), nullable=False)
    average_unit_cost: Mapped[Optional[Decimal]] = mapped_column(Money, nullable=True)
    fifo_unit_cost: Mapped[Optional[Decimal]] = mapped_column(Money, nullable=True)
    reorder_threshold: Mapped[Optional[Decimal]] = mapped_column(Quantity, nullable=True)

    # Relationships
    batches: Mapped[list["IngredientBatch"]] = relationship(
        "IngredientBatch",
        back_populates="ingredient",
        order_by=lambda: [IngredientBatch.created_at, IngredientBatch.id],
    )


class IngredientBatch(Base, CreatedAtMixin):
    """One stock lot created by one purchase. Never deleted, never reopened."""

    __tablename__ = "ingredient_batches"
    __table_args__ = (
        Index("ix_batches_fifo", "ingredient_id", "is_closed", "created_at", "id"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    ingredient_id: Mapped[int] = mapped_column(
        ForeignKey("ingredients.id", ondelete="CASCADE"), nullable=False, index=True
    )
    initial_qty: Mapped[Decimal] = mapped_column(Quantity, nullable=False)
    remaining_qty: Mapped[Decimal] = mapped_column(Quantity, nullable=False)
    unit_cost: Mapped[Decimal] = mapped_column(Money, nullable=False)
    total_cost: Mapped[Decimal] = mapped_column(Money, nullable=False)  # initial_qty * unit_cost
    receipt_ref: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    expires_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    is_closed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False, index=True)
    branch_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("branches.id", ondelete="SET NULL"), nullable=True, index=True
    )

    # Relationships
    ingredient: Mapped["Ingredient"] = relationship("Ingredient", back_populates="batches")

    @validates("remaining_qty")
    def _validate_remaining_qty(self, key, value):
        current = self.remaining_qty
        if current is not None and value > current:
            raise ValueError(f"Batch {self.id} remaining quantity cannot increase")
        return value

    @validates("is_closed")
    def _validate_is_closed(self, key, value):
        if self.is_closed and not value:
            raise ValueError(f"Batch {self.id} is closed and cannot be reopened")
        return value


class StockEntry(Base, CreatedAtMixin):
    """Immutable audit record of a purchase or manual adjustment."""

    __tablename__ = "stock_entries"

    id: Mapped[int] = mapped_column(primary_key=True)
    type: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    ingredient_id: Mapped[int] = mapped_column(
        ForeignKey("ingredients.id", ondelete="CASCADE"), nullable=False, index=True
    )
    batch_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("ingredient_batches.id"), nullable=True
    )  # Purchases only
    quantity: Mapped[Decimal] = mapped_column(Quantity, nullable=False)  # Signed for adjustments
    unit_cost: Mapped[Decimal] = mapped_column(Money, nullable=False)
    total_cost: Mapped[Decimal] = mapped_column(Money, nullable=False)
    reason: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    reference: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    extra: Mapped[Optional[dict]] = mapped_column("metadata", JSON, nullable=True)
    branch_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("branches.id", ondelete="SET NULL"), nullable=True
    )


class StockDeduction(Base, CreatedAtMixin):
    """Immutable record of one batch-level FIFO consumption slice."""

    __tablename__ = "stock_deductions"

    id: Mapped[int] = mapped_column(primary_key=True)
    ingredient_id: Mapped[int] = mapped_column(
        ForeignKey("ingredients.id", ondelete="CASCADE"), nullable=False, index=True
    )
    batch_id: Mapped[int] = mapped_column(
        ForeignKey("ingredient_batches.id"), nullable=False, index=True
    )
    quantity_deducted: Mapped[Decimal] = mapped_column(Quantity, nullable=False)
    cost_per_unit: Mapped[Decimal] = mapped_column(Money, nullable=False)  # The batch's own unit cost
    total_cost: Mapped[Decimal] = mapped_column(Money, nullable=False)
    order_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True, index=True)
    recipe_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("recipes.id", ondelete="SET NULL"), nullable=True
    )
    reason: Mapped[str] = mapped_column(String(100), default="order", nullable=False)


class CogsLedger(Base, CreatedAtMixin):
    """Cost of goods sold posted for one order."""

    __tablename__ = "cogs_ledger"

    id: Mapped[int] = mapped_column(primary_key=True)
    organization_id: Mapped[int] = mapped_column(
        ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    order_id: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    total_cost: Mapped[Decimal] = mapped_column(Money, nullable=False)
    extra: Mapped[Optional[dict]] = mapped_column("metadata", JSON, nullable=True)


# Append-only ledger tables
def _reject_mutation(mapper, connection, target):
    raise ValueError(f"{type(target).__name__} rows are append-only")


for _model in (StockEntry, StockDeduction, CogsLedger):
    event.listen(_model, "before_update", _reject_mutation)
    event.listen(_model, "before_delete", _reject_mutation)
event.listen(IngredientBatch, "before_delete", _reject_mutation)
