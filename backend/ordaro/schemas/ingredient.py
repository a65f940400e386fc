"""Ingredient schemas."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field


class IngredientCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    unit: str = Field("pcs", min_length=1, max_length=20)
    reorder_threshold: Optional[Decimal] = Field(None, ge=0)


class IngredientUpdate(BaseModel):
    """Descriptive fields only; stock and costs come from the ledger."""

    name: Optional[str] = Field(None, min_length=1, max_length=255)
    unit: Optional[str] = Field(None, min_length=1, max_length=20)
    reorder_threshold: Optional[Decimal] = Field(None, ge=0)
    is_active: Optional[bool] = None

    model_config = {"extra": "forbid"}


class IngredientResponse(BaseModel):
    id: int
    name: str
    unit: str
    is_active: bool
    total_stock: Decimal
    average_unit_cost: Optional[Decimal] = None
    fifo_unit_cost: Optional[Decimal] = None
    reorder_threshold: Optional[Decimal] = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}
