"""Recipe schemas."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field


class RecipeLineCreate(BaseModel):
    ingredient_id: int
    quantity_used: Decimal = Field(..., gt=0)


class RecipeCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    yield_quantity: Decimal = Field(Decimal("1"), gt=0)
    ingredients: List[RecipeLineCreate] = Field(..., min_length=1)


class RecipeUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    yield_quantity: Optional[Decimal] = Field(None, gt=0)
    ingredients: Optional[List[RecipeLineCreate]] = Field(None, min_length=1)

    model_config = {"extra": "forbid"}


class RecipeLineResponse(BaseModel):
    id: int
    ingredient_id: int
    quantity_used: Decimal
    unit_cost_at_use: Decimal
    total_cost: Decimal

    model_config = {"from_attributes": True}


class RecipeResponse(BaseModel):
    id: int
    name: str
    yield_quantity: Decimal
    total_cost: Decimal
    cost_per_portion: Decimal
    version: int
    is_active: bool
    ingredients: List[RecipeLineResponse]
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}
