"""Menu item API endpoints with recipe-based costing."""
from fastapi import APIRouter, Request

from ordaro.core.rate_limit import limiter
from ordaro.core.rbac import CurrentUser, RequireManager
from ordaro.db.session import DbSession
from ordaro.schemas.menu import AttachRecipeRequest, MenuCostResponse, MenuItemCreate, MenuItemResponse, MenuItemUpdate
from ordaro.services.menu_cost_service import MenuCostService

router = APIRouter()


@router.post("", response_model=MenuCostResponse, status_code=201)
@limiter.limit("30/minute")
def create_menu_item(request: Request, data: MenuItemCreate, db: DbSession, current_user: RequireManager):
    result = MenuCostService(db, current_user.tenant_id).create_menu_item(
        data.name,
        data.base_price,
        portion_multiplier=data.portion_multiplier,
        recipe_id=data.recipe_id,
    )
    return MenuCostResponse.model_validate(result)


@router.get("/{menu_item_id}", response_model=MenuItemResponse)
@limiter.limit("60/minute")
def get_menu_item(request: Request, menu_item_id: int, db: DbSession, current_user: CurrentUser):
    return MenuCostService(db, current_user.tenant_id).get_menu_item(menu_item_id)


@router.patch("/{menu_item_id}", response_model=MenuCostResponse)
@limiter.limit("30/minute")
def update_menu_item(
    request: Request,
    menu_item_id: int,
    data: MenuItemUpdate,
    db: DbSession,
    current_user: RequireManager,
):
    result = MenuCostService(db, current_user.tenant_id).update_menu_item(
        menu_item_id, **data.model_dump(exclude_unset=True)
    )
    return MenuCostResponse.model_validate(result)


@router.post("/{menu_item_id}/recipe", response_model=MenuCostResponse)
@limiter.limit("30/minute")
def attach_recipe(
    request: Request,
    menu_item_id: int,
    data: AttachRecipeRequest,
    db: DbSession,
    current_user: RequireManager,
):
    result = MenuCostService(db, current_user.tenant_id).attach_recipe(menu_item_id, data.recipe_id)
    return MenuCostResponse.model_validate(result)
