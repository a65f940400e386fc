"""Stock movement recorder: the append-only audit trail of the ledger."""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from ordaro.core.numeric import quantize_cost
from ordaro.models.inventory import IngredientBatch, StockDeduction, StockEntry, StockEntryType

logger = logging.getLogger(__name__)


@dataclass
class StockMovement:
    """One row of the merged audit trail. Deductions carry negative quantities."""

    kind: str  # PURCHASE, ADJUSTMENT or DEDUCTION
    id: int
    ingredient_id: int
    quantity: Decimal
    unit_cost: Decimal
    total_cost: Decimal
    created_at: datetime
    batch_id: Optional[int] = None
    reason: Optional[str] = None
    reference: Optional[str] = None


def _sort_timestamp(value: datetime) -> datetime:
    # SQLite hands back naive UTC, PostgreSQL aware; compare as naive UTC
    if value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


class StockMovementRecorder:
    """Writes StockEntry and StockDeduction rows. Never updates or deletes them."""

    def __init__(self, db: Session):
        self.db = db

    def record_purchase(
        self,
        ingredient_id: int,
        batch: IngredientBatch,
        reason: Optional[str] = None,
        reference: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> StockEntry:
        entry = StockEntry(
            type=StockEntryType.PURCHASE.value,
            ingredient_id=ingredient_id,
            batch_id=batch.id,
            quantity=batch.initial_qty,
            unit_cost=batch.unit_cost,
            total_cost=batch.total_cost,
            reason=reason,
            reference=reference or batch.receipt_ref,
            extra=metadata,
            branch_id=batch.branch_id,
        )
        self.db.add(entry)
        self.db.flush()
        return entry

    def record_adjustment(
        self,
        ingredient_id: int,
        delta: Decimal,
        unit_cost: Decimal,
        reason: str,
        metadata: Optional[Dict[str, Any]] = None,
        branch_id: Optional[int] = None,
    ) -> StockEntry:
        entry = StockEntry(
            type=StockEntryType.ADJUSTMENT.value,
            ingredient_id=ingredient_id,
            quantity=delta,
            unit_cost=unit_cost,
            total_cost=quantize_cost(unit_cost * abs(delta)),
            reason=reason,
            extra=metadata,
            branch_id=branch_id,
        )
        self.db.add(entry)
        self.db.flush()
        return entry

    def record_deduction(
        self,
        ingredient_id: int,
        batch: IngredientBatch,
        quantity: Decimal,
        total_cost: Decimal,
        order_id: Optional[str] = None,
        recipe_id: Optional[int] = None,
        reason: str = "order",
    ) -> StockDeduction:
        deduction = StockDeduction(
            ingredient_id=ingredient_id,
            batch_id=batch.id,
            quantity_deducted=quantity,
            cost_per_unit=batch.unit_cost,
            total_cost=total_cost,
            order_id=order_id,
            recipe_id=recipe_id,
            reason=reason,
        )
        self.db.add(deduction)
        return deduction

    def list_movements(self, ingredient_id: int) -> List[StockMovement]:
        """Purchases, adjustments and deductions merged oldest first."""
        self.db.flush()
        movements: List[StockMovement] = []

        entries = self.db.query(StockEntry).filter(StockEntry.ingredient_id == ingredient_id).all()
        for entry in entries:
            movements.append(StockMovement(
                kind=entry.type,
                id=entry.id,
                ingredient_id=entry.ingredient_id,
                quantity=entry.quantity,
                unit_cost=entry.unit_cost,
                total_cost=entry.total_cost,
                created_at=entry.created_at,
                batch_id=entry.batch_id,
                reason=entry.reason,
                reference=entry.reference,
            ))

        deductions = self.db.query(StockDeduction).filter(
            StockDeduction.ingredient_id == ingredient_id
        ).all()
        for deduction in deductions:
            movements.append(StockMovement(
                kind="DEDUCTION",
                id=deduction.id,
                ingredient_id=deduction.ingredient_id,
                quantity=-deduction.quantity_deducted,
                unit_cost=deduction.cost_per_unit,
                total_cost=deduction.total_cost,
                created_at=deduction.created_at,
                batch_id=deduction.batch_id,
                reason=deduction.reason,
                reference=deduction.order_id,
            ))

        # Entries before deductions when timestamps tie
        movements.sort(key=lambda m: (_sort_timestamp(m.created_at), m.kind == "DEDUCTION", m.id))
        return movements
