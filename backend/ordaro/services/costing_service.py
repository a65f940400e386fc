"""Costing engine: weighted-average and FIFO unit costs per ingredient.

The only code allowed to write ``Ingredient.total_stock``,
``average_unit_cost`` and ``fifo_unit_cost``. Every method runs inside the
caller's unit of work.
"""

import logging
from decimal import Decimal
from typing import Optional

from sqlalchemy.orm import Session

from ordaro.core.numeric import ZERO, optional_cost, quantize_cost, quantize_qty
from ordaro.models.inventory import Ingredient
from ordaro.services.batch_service import BatchService

logger = logging.getLogger(__name__)


def weighted_average_cost(
    old_stock: Decimal,
    old_average: Optional[Decimal],
    quantity: Decimal,
    total_cost: Decimal,
) -> Decimal:
    """Blend a purchase into the running average.

    With no prior stock (or no prior average) the purchase's own unit cost
    becomes the average.
    """
    if old_stock <= ZERO or old_average is None:
        return quantize_cost(total_cost / quantity)
    new_stock = old_stock + quantity
    return quantize_cost((old_stock * old_average + total_cost) / new_stock)


class CostingEngine:
    """Keeps an ingredient's cached aggregates in step with its batches."""

    def __init__(self, db: Session):
        self.db = db
        self.batches = BatchService(db)

    def apply_purchase(self, ingredient: Ingredient, quantity: Decimal, total_cost: Decimal) -> None:
        ingredient.average_unit_cost = weighted_average_cost(
            ingredient.total_stock, ingredient.average_unit_cost, quantity, total_cost
        )
        ingredient.total_stock = quantize_qty(ingredient.total_stock + quantity)
        self.refresh_fifo_cost(ingredient)

    def apply_deduction(self, ingredient: Ingredient, quantity: Decimal) -> None:
        ingredient.total_stock = quantize_qty(ingredient.total_stock - quantity)
        self.refresh_fifo_cost(ingredient)

    def apply_adjustment(self, ingredient: Ingredient, delta: Decimal) -> None:
        # Batches are left alone; see InventoryService.adjust_stock
        ingredient.total_stock = quantize_qty(ingredient.total_stock + delta)

    def refresh_fifo_cost(self, ingredient: Ingredient) -> Optional[Decimal]:
        """Set the FIFO cost to the oldest surviving open batch, or None."""
        oldest = self.batches.oldest_open_batch(ingredient.id)
        ingredient.fifo_unit_cost = oldest.unit_cost if oldest else None
        return ingredient.fifo_unit_cost

    def reconcile_from_batches(self, ingredient: Ingredient) -> bool:
        """Recompute both unit costs from the open batches.

        The average becomes the value-weighted mean of open stock; with no
        open stock it is left as it was. Returns True if either cost changed.
        """
        open_batches = self.batches.open_batches_fifo(ingredient.id)

        total_qty = sum((b.remaining_qty for b in open_batches), ZERO)
        total_value = sum((b.remaining_qty * b.unit_cost for b in open_batches), ZERO)

        new_average = ingredient.average_unit_cost
        if total_qty > ZERO:
            new_average = quantize_cost(total_value / total_qty)
        new_fifo = open_batches[0].unit_cost if open_batches else None

        changed = (
            optional_cost(new_average) != optional_cost(ingredient.average_unit_cost)
            or optional_cost(new_fifo) != optional_cost(ingredient.fifo_unit_cost)
        )
        if changed:
            logger.info(
                f"Ingredient {ingredient.id} costs reconciled: average "
                f"{ingredient.average_unit_cost} -> {new_average}, fifo "
                f"{ingredient.fifo_unit_cost} -> {new_fifo}"
            )
            ingredient.average_unit_cost = new_average
            ingredient.fifo_unit_cost = new_fifo
        return changed
