"""
Inventory ledger API endpoints
Stock entries, adjustments, FIFO deductions, recipe consumption and COGS
"""
from typing import List, Optional

from fastapi import APIRouter, Query, Request

from ordaro.core.cache import CacheKeys, org_cache_key, redis_cache
from ordaro.core.config import settings
from ordaro.core.rate_limit import limiter
from ordaro.core.rbac import CurrentUser, RequireChef, RequireManager
from ordaro.db.session import DbSession
from ordaro.schemas.inventory import (
    AdjustStockRequest,
    BatchResponse,
    CogsEntryResponse,
    ConsumeRecipeRequest,
    DeductionResponse,
    DeductStockRequest,
    IngredientStockResponse,
    LowStockAlertResponse,
    RecipeConsumptionResponse,
    RecordStockEntryResponse,
    StockEntryRequest,
    StockEntryResponse,
    StockMovementResponse,
)
from ordaro.services.cogs_service import CogsService
from ordaro.services.inventory_service import InventoryService

router = APIRouter()


@router.post("/stock-entry", response_model=RecordStockEntryResponse, status_code=201)
@limiter.limit("30/minute")
def record_stock_entry(request: Request, data: StockEntryRequest, db: DbSession, current_user: RequireManager):
    """Receive goods into a new batch."""
    result = InventoryService(db, current_user.tenant_id).record_stock_entry(
        data.ingredient_id,
        data.quantity,
        data.total_cost,
        receipt_ref=data.receipt_ref,
        expires_at=data.expires_at,
        branch_id=data.branch_id,
        reason=data.reason,
        metadata=data.metadata,
    )
    return RecordStockEntryResponse(
        batch=BatchResponse.model_validate(result.batch),
        stock_entry=StockEntryResponse.model_validate(result.stock_entry),
        total_stock=result.ingredient.total_stock,
        average_unit_cost=result.ingredient.average_unit_cost,
        fifo_unit_cost=result.ingredient.fifo_unit_cost,
    )


@router.post("/adjust", response_model=StockEntryResponse, status_code=201)
@limiter.limit("30/minute")
def adjust_stock(request: Request, data: AdjustStockRequest, db: DbSession, current_user: RequireManager):
    """Manual correction of total stock. Batches are not touched."""
    return InventoryService(db, current_user.tenant_id).adjust_stock(
        data.ingredient_id, data.quantity, data.reason, metadata=data.metadata,
    )


@router.post("/deduct", response_model=DeductionResponse)
@limiter.limit("60/minute")
def deduct_stock(request: Request, data: DeductStockRequest, db: DbSession, current_user: RequireChef):
    """Consume stock oldest batch first."""
    return InventoryService(db, current_user.tenant_id).deduct_stock(
        data.ingredient_id,
        data.quantity,
        order_id=data.order_id,
        recipe_id=data.recipe_id,
        reason=data.reason,
    )


@router.post("/consume-recipe", response_model=RecipeConsumptionResponse)
@limiter.limit("60/minute")
def consume_recipe(request: Request, data: ConsumeRecipeRequest, db: DbSession, current_user: RequireChef):
    """Deduct a recipe's ingredients for an order and post its COGS."""
    result = InventoryService(db, current_user.tenant_id).consume_recipe_for_order(
        data.recipe_id, data.portions, data.order_id,
    )
    return RecipeConsumptionResponse.model_validate(result)


@router.get("/ingredient/{ingredient_id}", response_model=IngredientStockResponse)
@limiter.limit("120/minute")
def get_ingredient_stock(request: Request, ingredient_id: int, db: DbSession, current_user: CurrentUser):
    key = org_cache_key(current_user.tenant_id, CacheKeys.STOCK, ingredient_id)
    cached = redis_cache.get(key)
    if cached is not None:
        return cached
    generation = redis_cache.generation(current_user.tenant_id)

    stock = InventoryService(db, current_user.tenant_id).get_ingredient_stock(ingredient_id)
    data = IngredientStockResponse.model_validate(stock).model_dump(mode="json")
    redis_cache.set_for_organization(current_user.tenant_id, key, data, generation, settings.cache_ttl_seconds)
    return data


@router.get("/alerts", response_model=List[LowStockAlertResponse])
@limiter.limit("60/minute")
def get_low_stock_alerts(request: Request, db: DbSession, current_user: CurrentUser):
    """Ingredients at or below their reorder threshold."""
    key = org_cache_key(current_user.tenant_id, CacheKeys.ALERTS)
    cached = redis_cache.get(key)
    if cached is not None:
        return cached
    generation = redis_cache.generation(current_user.tenant_id)

    alerts = InventoryService(db, current_user.tenant_id).get_low_stock_alerts()
    data = [LowStockAlertResponse.model_validate(a).model_dump(mode="json") for a in alerts]
    redis_cache.set_for_organization(current_user.tenant_id, key, data, generation, settings.cache_ttl_seconds)
    return data


@router.get("/batches/{ingredient_id}", response_model=List[BatchResponse])
@limiter.limit("60/minute")
def list_batches(
    request: Request,
    ingredient_id: int,
    db: DbSession,
    current_user: CurrentUser,
    include_closed: bool = Query(True),
):
    return InventoryService(db, current_user.tenant_id).list_batches(ingredient_id, include_closed=include_closed)


@router.get("/movements/{ingredient_id}", response_model=List[StockMovementResponse])
@limiter.limit("60/minute")
def list_stock_movements(request: Request, ingredient_id: int, db: DbSession, current_user: CurrentUser):
    """Purchases, adjustments and deductions, oldest first."""
    return InventoryService(db, current_user.tenant_id).list_stock_movements(ingredient_id)


@router.get("/cogs", response_model=List[CogsEntryResponse])
@limiter.limit("60/minute")
def list_cogs(
    request: Request,
    db: DbSession,
    current_user: RequireManager,
    order_id: Optional[str] = Query(None),
    limit: int = Query(100, ge=1, le=500),
):
    return CogsService(db, current_user.tenant_id).list_cogs(order_id=order_id, limit=limit)
