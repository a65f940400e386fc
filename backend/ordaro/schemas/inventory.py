"""Inventory ledger schemas."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from pydantic import AliasChoices, BaseModel, Field


class StockEntryRequest(BaseModel):
    """Goods received into stock."""

    ingredient_id: int
    quantity: Decimal = Field(..., gt=0)
    total_cost: Decimal = Field(..., ge=0)
    receipt_ref: Optional[str] = Field(None, max_length=255)
    expires_at: Optional[datetime] = None
    branch_id: Optional[int] = None
    reason: Optional[str] = Field(None, max_length=500)
    metadata: Optional[Dict[str, Any]] = None


class AdjustStockRequest(BaseModel):
    """Signed manual correction of an ingredient's stock."""

    ingredient_id: int
    quantity: Decimal
    reason: str = Field(..., min_length=1, max_length=500)
    metadata: Optional[Dict[str, Any]] = None


class DeductStockRequest(BaseModel):
    ingredient_id: int
    quantity: Decimal = Field(..., gt=0)
    order_id: Optional[str] = Field(None, max_length=100)
    recipe_id: Optional[int] = None
    reason: Optional[str] = Field(None, max_length=100)


class ConsumeRecipeRequest(BaseModel):
    recipe_id: int
    portions: Decimal = Field(Decimal("1"), gt=0)
    order_id: str = Field(..., min_length=1, max_length=100)


class BatchResponse(BaseModel):
    """Ingredient batch response schema."""

    id: int
    ingredient_id: int
    initial_qty: Decimal
    remaining_qty: Decimal
    unit_cost: Decimal
    total_cost: Decimal
    receipt_ref: Optional[str] = None
    expires_at: Optional[datetime] = None
    is_closed: bool
    branch_id: Optional[int] = None
    created_at: datetime

    model_config = {"from_attributes": True}


class StockEntryResponse(BaseModel):
    """Stock entry (purchase or adjustment) response schema."""

    id: int
    type: str
    ingredient_id: int
    batch_id: Optional[int] = None
    quantity: Decimal
    unit_cost: Decimal
    total_cost: Decimal
    reason: Optional[str] = None
    reference: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = Field(None, validation_alias=AliasChoices("extra", "metadata"))
    branch_id: Optional[int] = None
    created_at: datetime

    model_config = {"from_attributes": True}


class RecordStockEntryResponse(BaseModel):
    batch: BatchResponse
    stock_entry: StockEntryResponse
    total_stock: Decimal
    average_unit_cost: Optional[Decimal] = None
    fifo_unit_cost: Optional[Decimal] = None


class DeductionSliceResponse(BaseModel):
    batch_id: int
    quantity: Decimal
    unit_cost: Decimal
    line_cost: Decimal

    model_config = {"from_attributes": True}


class DeductionResponse(BaseModel):
    ingredient_id: int
    quantity: Decimal
    total_cost: Decimal
    deductions: List[DeductionSliceResponse]
    remaining_stock: Decimal
    fifo_unit_cost: Optional[Decimal] = None

    model_config = {"from_attributes": True}


class CogsEntryResponse(BaseModel):
    id: int
    order_id: str
    total_cost: Decimal
    metadata: Optional[Dict[str, Any]] = Field(None, validation_alias=AliasChoices("extra", "metadata"))
    created_at: datetime

    model_config = {"from_attributes": True}


class RecipeConsumptionResponse(BaseModel):
    order_id: str
    recipe_id: int
    portions: Decimal
    total_cost: Decimal
    ingredients: List[DeductionResponse]
    cogs_entry: CogsEntryResponse

    model_config = {"from_attributes": True}


class IngredientStockResponse(BaseModel):
    ingredient_id: int
    ingredient_name: str
    unit: str
    total_stock: Decimal
    average_unit_cost: Optional[Decimal] = None
    fifo_unit_cost: Optional[Decimal] = None
    open_batches: List[BatchResponse]

    model_config = {"from_attributes": True}


class LowStockAlertResponse(BaseModel):
    ingredient_id: int
    name: str
    total_stock: Decimal
    reorder_threshold: Decimal
    unit: str

    model_config = {"from_attributes": True}


class StockMovementResponse(BaseModel):
    """One row of an ingredient's audit trail; deductions are negative."""

    kind: str
    id: int
    ingredient_id: int
    quantity: Decimal
    unit_cost: Decimal
    total_cost: Decimal
    created_at: datetime
    batch_id: Optional[int] = None
    reason: Optional[str] = None
    reference: Optional[str] = None

    model_config = {"from_attributes": True}
