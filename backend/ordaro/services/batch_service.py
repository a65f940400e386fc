"""Batch ledger: one stock lot per purchase, consumed oldest-first."""

import logging
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from sqlalchemy.orm import Session

from ordaro.core.numeric import ZERO
from ordaro.models.inventory import IngredientBatch

logger = logging.getLogger(__name__)


class BatchService:
    """Creates, reads and closes ingredient batches.

    Callers own the transaction; nothing here commits.
    """

    def __init__(self, db: Session):
        self.db = db

    def create_batch(
        self,
        ingredient_id: int,
        quantity: Decimal,
        unit_cost: Decimal,
        total_cost: Decimal,
        receipt_ref: Optional[str] = None,
        expires_at: Optional[datetime] = None,
        branch_id: Optional[int] = None,
    ) -> IngredientBatch:
        batch = IngredientBatch(
            ingredient_id=ingredient_id,
            initial_qty=quantity,
            remaining_qty=quantity,
            unit_cost=unit_cost,
            total_cost=total_cost,
            receipt_ref=receipt_ref,
            expires_at=expires_at,
            branch_id=branch_id,
            is_closed=False,
        )
        self.db.add(batch)
        self.db.flush()

        logger.info(f"Batch created: {batch.id} for ingredient {ingredient_id}")
        return batch

    def open_batches_fifo(self, ingredient_id: int, lock: bool = True) -> List[IngredientBatch]:
        """Open batches with stock left, oldest first (created_at, then id).

        With ``lock`` the rows are selected FOR UPDATE and refreshed from the
        database so the walk never starts from a stale snapshot.
        """
        self.db.flush()
        query = self.db.query(IngredientBatch).filter(
            IngredientBatch.ingredient_id == ingredient_id,
            IngredientBatch.is_closed == False,
            IngredientBatch.remaining_qty > ZERO,
        ).order_by(IngredientBatch.created_at.asc(), IngredientBatch.id.asc())

        if lock:
            query = query.with_for_update().populate_existing()
        return query.all()

    def oldest_open_batch(self, ingredient_id: int) -> Optional[IngredientBatch]:
        self.db.flush()
        return self.db.query(IngredientBatch).filter(
            IngredientBatch.ingredient_id == ingredient_id,
            IngredientBatch.is_closed == False,
            IngredientBatch.remaining_qty > ZERO,
        ).order_by(IngredientBatch.created_at.asc(), IngredientBatch.id.asc()).first()

    def list_batches(self, ingredient_id: int, include_closed: bool = True) -> List[IngredientBatch]:
        """All batches of an ingredient, newest first."""
        query = self.db.query(IngredientBatch).filter(IngredientBatch.ingredient_id == ingredient_id)
        if not include_closed:
            query = query.filter(IngredientBatch.is_closed == False)
        return query.order_by(IngredientBatch.created_at.desc(), IngredientBatch.id.desc()).all()

    def close_empty_batches(self, ingredient_id: int) -> int:
        """Mark drained batches closed. Returns how many were closed."""
        empty = self.db.query(IngredientBatch).filter(
            IngredientBatch.ingredient_id == ingredient_id,
            IngredientBatch.remaining_qty <= ZERO,
            IngredientBatch.is_closed == False,
        ).all()
        for batch in empty:
            batch.is_closed = True

        if empty:
            logger.debug(f"Closed {len(empty)} empty batches for ingredient {ingredient_id}")
        return len(empty)
