"""Menu item schemas."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field


class MenuItemCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    base_price: Decimal = Field(..., ge=0)
    portion_multiplier: Decimal = Field(Decimal("1"), gt=0)
    recipe_id: Optional[int] = None


class MenuItemUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    base_price: Optional[Decimal] = Field(None, ge=0)
    portion_multiplier: Optional[Decimal] = Field(None, gt=0)
    is_active: Optional[bool] = None
    expected_version: Optional[int] = None


class AttachRecipeRequest(BaseModel):
    recipe_id: Optional[int] = None  # None unlinks


class MenuItemResponse(BaseModel):
    id: int
    name: str
    base_price: Decimal
    portion_multiplier: Decimal
    recipe_id: Optional[int] = None
    computed_cost: Optional[Decimal] = None
    margin: Optional[Decimal] = None
    is_active: bool
    version: int
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class MenuCostResponse(BaseModel):
    """Menu item after a cost recalculation, with the low-margin signal."""

    menu_item: MenuItemResponse
    target_margin_threshold: Optional[Decimal] = None
    below_threshold: bool
    recalculated: bool

    model_config = {"from_attributes": True}
