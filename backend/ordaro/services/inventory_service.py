"""Inventory Service - FIFO stock ledger for ingredients.

Flow of a ledger mutation:
1. Resolve the ingredient inside the caller's organization
2. Pre-check the request against the cached aggregate (fast rejection)
3. Inside one unit of work holding the ingredient's transaction slot:
   a. Re-read the ingredient row (FOR UPDATE) and re-validate
   b. Write batches and audit rows
   c. Update total stock and unit costs through the costing engine
4. After commit, best-effort:
   - Close batches drained to zero
   - Invalidate the tenant's cached reads
   - Announce the batch change on the job queue

Nothing in step 4 can fail the operation; a failure in step 3 rolls back
every row written by it.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy.orm import Session

from ordaro.core.cache import RedisCacheClient, redis_cache
from ordaro.core.numeric import ZERO, DecimalLike, quantize_cost, quantize_qty
from ordaro.db.unit_of_work import unit_of_work
from ordaro.models.inventory import CogsLedger, Ingredient, IngredientBatch, StockEntry
from ordaro.models.recipe import Recipe
from ordaro.services.batch_service import BatchService
from ordaro.services.cogs_service import CogsService
from ordaro.services.costing_service import CostingEngine
from ordaro.services.exceptions import (
    BatchShortfallError,
    InsufficientStockError,
    NoBatchesAvailableError,
    NotFoundError,
    ValidationFailedError,
)
from ordaro.services.job_queue import JobQueue, JobType, job_queue
from ordaro.services.organization_service import TenantScopedService, get_branch
from ordaro.services.stock_movement_service import StockMovement, StockMovementRecorder

logger = logging.getLogger(__name__)


@dataclass
class StockEntryResult:
    batch: IngredientBatch
    stock_entry: StockEntry
    ingredient: Ingredient


@dataclass
class DeductionSlice:
    """Consumption from a single batch, costed at that batch's own unit cost."""
    batch_id: int
    quantity: Decimal
    unit_cost: Decimal
    line_cost: Decimal


@dataclass
class DeductionResult:
    ingredient_id: int
    quantity: Decimal
    total_cost: Decimal
    deductions: List[DeductionSlice] = field(default_factory=list)
    remaining_stock: Decimal = ZERO
    fifo_unit_cost: Optional[Decimal] = None


@dataclass
class RecipeConsumptionResult:
    order_id: str
    recipe_id: int
    portions: Decimal
    total_cost: Decimal
    ingredients: List[DeductionResult]
    cogs_entry: CogsLedger


@dataclass
class IngredientStock:
    ingredient_id: int
    ingredient_name: str
    unit: str
    total_stock: Decimal
    average_unit_cost: Optional[Decimal]
    fifo_unit_cost: Optional[Decimal]
    open_batches: List[IngredientBatch]


@dataclass
class LowStockAlert:
    ingredient_id: int
    name: str
    total_stock: Decimal
    reorder_threshold: Decimal
    unit: str


class InventoryService(TenantScopedService):
    """Stock entry, adjustment and FIFO deduction for one organization."""

    def __init__(
        self,
        db: Session,
        tenant_id: str,
        jobs: Optional[JobQueue] = None,
        cache: Optional[RedisCacheClient] = None,
    ):
        super().__init__(db, tenant_id)
        self.jobs = jobs or job_queue
        self.cache = cache or redis_cache
        self.batches = BatchService(db)
        self.movements = StockMovementRecorder(db)
        self.costing = CostingEngine(db)

    def _get_ingredient(self, ingredient_id: int, lock: bool = False) -> Ingredient:
        query = self.db.query(Ingredient).filter(
            Ingredient.id == ingredient_id,
            Ingredient.organization_id == self.organization_id,
        )
        if lock:
            query = query.with_for_update().populate_existing()
        ingredient = query.first()
        if not ingredient:
            raise NotFoundError("Ingredient", ingredient_id)
        return ingredient

    # ===== STOCK ENTRY (PURCHASE) =====

    def record_stock_entry(
        self,
        ingredient_id: int,
        quantity: DecimalLike,
        total_cost: DecimalLike,
        receipt_ref: Optional[str] = None,
        expires_at: Optional[datetime] = None,
        branch_id: Optional[int] = None,
        reason: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> StockEntryResult:
        """Receive goods: one new batch, one PURCHASE entry, updated costs."""
        quantity = quantize_qty(quantity)
        total_cost = quantize_cost(total_cost)
        if quantity <= ZERO:
            raise ValidationFailedError("Quantity must be greater than zero", {"quantity": str(quantity)})
        if total_cost < ZERO:
            raise ValidationFailedError("Total cost cannot be negative", {"total_cost": str(total_cost)})

        self._get_ingredient(ingredient_id)
        if branch_id is not None:
            get_branch(self.db, self.organization_id, branch_id)

        with unit_of_work(self.db, [ingredient_id]):
            ingredient = self._get_ingredient(ingredient_id, lock=True)
            unit_cost = quantize_cost(total_cost / quantity)

            batch = self.batches.create_batch(
                ingredient.id, quantity, unit_cost, total_cost,
                receipt_ref=receipt_ref, expires_at=expires_at, branch_id=branch_id,
            )
            entry = self.movements.record_purchase(
                ingredient.id, batch, reason=reason, metadata=metadata,
            )
            self.costing.apply_purchase(ingredient, quantity, total_cost)

        logger.info(
            f"Stock entry recorded: ingredient {ingredient_id}, qty {quantity}, "
            f"cost {total_cost}, batch {batch.id}"
        )
        self._after_commit([ingredient_id])
        return StockEntryResult(batch=batch, stock_entry=entry, ingredient=ingredient)

    # ===== MANUAL ADJUSTMENT =====

    def adjust_stock(
        self,
        ingredient_id: int,
        delta: DecimalLike,
        reason: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> StockEntry:
        """Correct the aggregate by a signed delta.

        Only ``total_stock`` moves; batch remainders are not touched, so an
        adjustment can leave the aggregate out of step with the batch ledger.
        """
        delta = quantize_qty(delta)
        if not reason or not reason.strip():
            raise ValidationFailedError("An adjustment reason is required")

        ingredient = self._get_ingredient(ingredient_id)
        self._check_adjustment(ingredient, delta)

        with unit_of_work(self.db, [ingredient_id]):
            ingredient = self._get_ingredient(ingredient_id, lock=True)
            self._check_adjustment(ingredient, delta)

            unit_cost = ingredient.fifo_unit_cost
            if unit_cost is None:
                unit_cost = ingredient.average_unit_cost
            if unit_cost is None:
                unit_cost = ZERO

            entry = self.movements.record_adjustment(
                ingredient.id, delta, unit_cost, reason.strip(), metadata=metadata,
            )
            self.costing.apply_adjustment(ingredient, delta)

        logger.info(f"Stock adjusted: ingredient {ingredient_id}, delta {delta}, reason '{reason}'")
        self._after_commit([ingredient_id], batches_changed=False)
        return entry

    def _check_adjustment(self, ingredient: Ingredient, delta: Decimal) -> None:
        if ingredient.total_stock + delta < ZERO:
            raise InsufficientStockError(ingredient.id, ingredient.total_stock, -delta)

    # ===== FIFO DEDUCTION =====

    def deduct_stock(
        self,
        ingredient_id: int,
        quantity: DecimalLike,
        order_id: Optional[str] = None,
        recipe_id: Optional[int] = None,
        reason: Optional[str] = None,
    ) -> DeductionResult:
        """Consume stock oldest batch first. All or nothing."""
        quantity = self._positive_quantity(quantity)

        ingredient = self._get_ingredient(ingredient_id)
        if ingredient.total_stock < quantity:
            raise InsufficientStockError(ingredient.id, ingredient.total_stock, quantity)

        with unit_of_work(self.db, [ingredient_id]):
            ingredient = self._get_ingredient(ingredient_id, lock=True)
            result = self._deduct_fifo(
                ingredient, quantity, order_id=order_id, recipe_id=recipe_id,
                reason=reason or "order",
            )

        logger.info(
            f"Stock deducted: ingredient {ingredient_id}, qty {quantity}, cost {result.total_cost}, "
            f"{len(result.deductions)} batch(es)"
        )
        self._after_commit([ingredient_id])
        return result

    def _positive_quantity(self, quantity: DecimalLike) -> Decimal:
        quantity = quantize_qty(quantity)
        if quantity <= ZERO:
            raise ValidationFailedError("Quantity must be greater than zero", {"quantity": str(quantity)})
        return quantity

    def _deduct_fifo(
        self,
        ingredient: Ingredient,
        quantity: Decimal,
        order_id: Optional[str],
        recipe_id: Optional[int],
        reason: str,
    ) -> DeductionResult:
        """Walk the open batches oldest-first. Caller holds the ingredient's slot."""
        if ingredient.total_stock < quantity:
            raise InsufficientStockError(ingredient.id, ingredient.total_stock, quantity)

        open_batches = self.batches.open_batches_fifo(ingredient.id)
        if not open_batches:
            logger.error(
                f"Consistency violation: ingredient {ingredient.id} reports stock "
                f"{ingredient.total_stock} but has no open batches (requested {quantity})"
            )
            raise NoBatchesAvailableError(ingredient.id, ingredient.total_stock)

        remaining = quantity
        total_cost = ZERO
        slices: List[DeductionSlice] = []

        for batch in open_batches:
            if remaining <= ZERO:
                break

            take = min(remaining, batch.remaining_qty)
            line_cost = quantize_cost(take * batch.unit_cost)

            batch.remaining_qty = quantize_qty(batch.remaining_qty - take)
            if batch.remaining_qty <= ZERO:
                batch.is_closed = True

            self.movements.record_deduction(
                ingredient.id, batch, take, line_cost,
                order_id=order_id, recipe_id=recipe_id, reason=reason,
            )
            slices.append(DeductionSlice(
                batch_id=batch.id,
                quantity=take,
                unit_cost=batch.unit_cost,
                line_cost=line_cost,
            ))
            total_cost += line_cost
            remaining -= take

        if remaining > ZERO:
            logger.error(
                f"Consistency violation: ingredient {ingredient.id} batches short by {remaining} "
                f"(requested {quantity}, satisfied {quantity - remaining}, "
                f"aggregate stock {ingredient.total_stock})"
            )
            raise BatchShortfallError(ingredient.id, quantity, remaining)

        self.costing.apply_deduction(ingredient, quantity)

        return DeductionResult(
            ingredient_id=ingredient.id,
            quantity=quantity,
            total_cost=quantize_cost(total_cost),
            deductions=slices,
            remaining_stock=ingredient.total_stock,
            fifo_unit_cost=ingredient.fifo_unit_cost,
        )

    # ===== RECIPE CONSUMPTION =====

    def consume_recipe_for_order(
        self,
        recipe_id: int,
        portions: DecimalLike,
        order_id: str,
    ) -> RecipeConsumptionResult:
        """Deduct every ingredient of a recipe and post the order's COGS.

        All ingredients are deducted in one transaction; if any of them
        cannot be satisfied nothing is deducted.
        """
        portions = self._positive_quantity(portions)
        recipe = self.db.query(Recipe).filter(
            Recipe.id == recipe_id,
            Recipe.organization_id == self.organization_id,
        ).first()
        if not recipe:
            raise NotFoundError("Recipe", recipe_id)
        if recipe.yield_quantity <= ZERO:
            raise ValidationFailedError("Recipe yield must be greater than zero", {"recipe_id": recipe_id})

        requirements: Dict[int, Decimal] = {}
        for line in recipe.ingredients:
            needed = line.quantity_used / recipe.yield_quantity * portions
            requirements[line.ingredient_id] = requirements.get(line.ingredient_id, ZERO) + needed
        requirements = {
            ingredient_id: quantize_qty(qty)
            for ingredient_id, qty in requirements.items()
            if quantize_qty(qty) > ZERO
        }
        if not requirements:
            raise ValidationFailedError("Recipe has no ingredient quantities to consume", {"recipe_id": recipe_id})

        for ingredient_id, needed in requirements.items():
            ingredient = self._get_ingredient(ingredient_id)
            if ingredient.total_stock < needed:
                raise InsufficientStockError(ingredient.id, ingredient.total_stock, needed)

        cogs = CogsService(self.db, self.tenant_id)
        results: List[DeductionResult] = []
        with unit_of_work(self.db, requirements.keys()):
            for ingredient_id in sorted(requirements):
                ingredient = self._get_ingredient(ingredient_id, lock=True)
                results.append(self._deduct_fifo(
                    ingredient, requirements[ingredient_id], order_id=order_id,
                    recipe_id=recipe.id, reason="recipe_consumption",
                ))

            total_cost = quantize_cost(sum((r.total_cost for r in results), ZERO))
            cogs_entry = cogs.add_entry(
                order_id,
                total_cost,
                metadata={
                    "recipe_id": recipe.id,
                    "portions": str(portions),
                    "ingredients": {str(r.ingredient_id): str(r.total_cost) for r in results},
                },
            )

        logger.info(
            f"Recipe {recipe_id} consumed for order {order_id}: {portions} portion(s), "
            f"{len(results)} ingredient(s), COGS {total_cost}"
        )
        self._after_commit(requirements.keys())
        return RecipeConsumptionResult(
            order_id=order_id,
            recipe_id=recipe.id,
            portions=portions,
            total_cost=total_cost,
            ingredients=results,
            cogs_entry=cogs_entry,
        )

    # ===== READS =====

    def get_ingredient_stock(self, ingredient_id: int) -> IngredientStock:
        ingredient = self._get_ingredient(ingredient_id)
        open_batches = self.batches.open_batches_fifo(ingredient.id, lock=False)
        return IngredientStock(
            ingredient_id=ingredient.id,
            ingredient_name=ingredient.name,
            unit=ingredient.unit,
            total_stock=ingredient.total_stock,
            average_unit_cost=ingredient.average_unit_cost,
            fifo_unit_cost=ingredient.fifo_unit_cost,
            open_batches=open_batches,
        )

    def get_low_stock_alerts(self) -> List[LowStockAlert]:
        """Active ingredients at or below their reorder threshold."""
        ingredients = self.db.query(Ingredient).filter(
            Ingredient.organization_id == self.organization_id,
            Ingredient.is_active == True,
            Ingredient.reorder_threshold.isnot(None),
            Ingredient.total_stock <= Ingredient.reorder_threshold,
        ).order_by(Ingredient.name.asc(), Ingredient.id.asc()).all()

        return [
            LowStockAlert(
                ingredient_id=ing.id,
                name=ing.name,
                total_stock=ing.total_stock,
                reorder_threshold=ing.reorder_threshold,
                unit=ing.unit,
            )
            for ing in ingredients
        ]

    def list_batches(self, ingredient_id: int, include_closed: bool = True) -> List[IngredientBatch]:
        self._get_ingredient(ingredient_id)
        return self.batches.list_batches(ingredient_id, include_closed=include_closed)

    def list_stock_movements(self, ingredient_id: int) -> List[StockMovement]:
        self._get_ingredient(ingredient_id)
        return self.movements.list_movements(ingredient_id)

    # ===== DOWNSTREAM NOTIFICATIONS =====

    def _after_commit(self, ingredient_ids: Iterable[int], batches_changed: bool = True) -> None:
        ingredient_ids = sorted(set(ingredient_ids))

        if batches_changed:
            for ingredient_id in ingredient_ids:
                try:
                    with unit_of_work(self.db, [ingredient_id]):
                        self.batches.close_empty_batches(ingredient_id)
                except Exception as e:
                    logger.warning(f"Closing empty batches failed for ingredient {ingredient_id}: {e}")

        try:
            self.cache.invalidate_organization(self.tenant_id)
        except Exception as e:
            logger.warning(f"Cache invalidation failed for organization {self.tenant_id}: {e}")

        if batches_changed:
            for ingredient_id in ingredient_ids:
                try:
                    self.jobs.add_job(
                        JobType.INVENTORY_BATCH_CHANGE,
                        {"tenant_id": self.tenant_id, "ingredient_id": ingredient_id},
                    )
                except Exception as e:
                    logger.warning(f"Failed to enqueue batch change for ingredient {ingredient_id}: {e}")


def get_inventory_service(db: Session, tenant_id: str) -> InventoryService:
    """Factory function to get inventory service."""
    return InventoryService(db, tenant_id)
