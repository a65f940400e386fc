"""Menu item model with recipe-derived cost and margin."""

from __future__ import annotations

from decimal import Decimal
from typing import Optional

from sqlalchemy import Boolean, ForeignKey, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ordaro.db.base import Base, TimestampMixin, VersionMixin
from ordaro.models.inventory import Money


class MenuItem(Base, TimestampMixin, VersionMixin):
    """A sellable item. ``computed_cost`` and ``margin`` are null without a recipe."""

    __tablename__ = "menu_items"

    id: Mapped[int] = mapped_column(primary_key=True)
    organization_id: Mapped[int] = mapped_column(
        ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    base_price: Mapped[Decimal] = mapped_column(Money, nullable=False)
    portion_multiplier: Mapped[Decimal] = mapped_column(
        Numeric(10, 4), default=Decimal("1"), nullable=False
    )
    recipe_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("recipes.id", ondelete="SET NULL"), nullable=True, index=True
    )
    computed_cost: Mapped[Optional[Decimal]] = mapped_column(Money, nullable=True)
    margin: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 6), nullable=True)  # fraction, 0.70 = 70%
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    # Relationships
    recipe: Mapped[Optional["Recipe"]] = relationship("Recipe")


