"""Ingredient catalog API endpoints."""
from typing import List

from fastapi import APIRouter, Query, Request

from ordaro.core.rate_limit import limiter
from ordaro.core.rbac import CurrentUser, RequireManager
from ordaro.db.session import DbSession
from ordaro.schemas.ingredient import IngredientCreate, IngredientResponse, IngredientUpdate
from ordaro.services.ingredient_service import IngredientService

router = APIRouter()


@router.post("", response_model=IngredientResponse, status_code=201)
@limiter.limit("30/minute")
def create_ingredient(request: Request, data: IngredientCreate, db: DbSession, current_user: RequireManager):
    return IngredientService(db, current_user.tenant_id).create_ingredient(
        data.name, unit=data.unit, reorder_threshold=data.reorder_threshold,
    )


@router.get("", response_model=List[IngredientResponse])
@limiter.limit("60/minute")
def list_ingredients(
    request: Request,
    db: DbSession,
    current_user: CurrentUser,
    include_inactive: bool = Query(False),
):
    return IngredientService(db, current_user.tenant_id).list_ingredients(include_inactive=include_inactive)


@router.patch("/{ingredient_id}", response_model=IngredientResponse)
@limiter.limit("30/minute")
def update_ingredient(
    request: Request,
    ingredient_id: int,
    data: IngredientUpdate,
    db: DbSession,
    current_user: RequireManager,
):
    return IngredientService(db, current_user.tenant_id).update_ingredient(
        ingredient_id, **data.model_dump(exclude_unset=True)
    )
