"""Recipe API endpoints."""
from fastapi import APIRouter, Request

from ordaro.core.rate_limit import limiter
from ordaro.core.rbac import CurrentUser, RequireChef
from ordaro.db.session import DbSession
from ordaro.schemas.recipe import RecipeCreate, RecipeResponse, RecipeUpdate
from ordaro.services.recipe_service import RecipeService

router = APIRouter()


@router.post("", response_model=RecipeResponse, status_code=201)
@limiter.limit("30/minute")
def create_recipe(request: Request, data: RecipeCreate, db: DbSession, current_user: RequireChef):
    return RecipeService(db, current_user.tenant_id).create_recipe(
        data.name,
        data.yield_quantity,
        [(line.ingredient_id, line.quantity_used) for line in data.ingredients],
    )


@router.get("/{recipe_id}", response_model=RecipeResponse)
@limiter.limit("60/minute")
def get_recipe(request: Request, recipe_id: int, db: DbSession, current_user: CurrentUser):
    return RecipeService(db, current_user.tenant_id).get_recipe(recipe_id)


@router.post("/{recipe_id}/recalculate", response_model=RecipeResponse)
@limiter.limit("30/minute")
def recalculate_recipe(request: Request, recipe_id: int, db: DbSession, current_user: RequireChef):
    """Re-cost the recipe from current ingredient costs; linked menu items follow."""
    return RecipeService(db, current_user.tenant_id).recalculate_cost(recipe_id)


@router.patch("/{recipe_id}", response_model=RecipeResponse)
@limiter.limit("30/minute")
def update_recipe(request: Request, recipe_id: int, data: RecipeUpdate, db: DbSession, current_user: RequireChef):
    """Rename, change the yield or replace the lines; the recipe is re-costed."""
    lines = None
    if data.ingredients is not None:
        lines = [(line.ingredient_id, line.quantity_used) for line in data.ingredients]
    return RecipeService(db, current_user.tenant_id).update_recipe(
        recipe_id,
        name=data.name,
        yield_quantity=data.yield_quantity,
        lines=lines,
    )
