"""API routes."""

import logging
from fastapi import APIRouter

from ordaro.api.routes import ingredients, inventory, menu, recipes

logger = logging.getLogger(__name__)

api_router = APIRouter()

api_router.include_router(inventory.router, prefix="/inventory", tags=["inventory"])
api_router.include_router(ingredients.router, prefix="/ingredients", tags=["ingredients"])
api_router.include_router(recipes.router, prefix="/recipes", tags=["recipes"])
api_router.include_router(menu.router, prefix="/menu-items", tags=["menu"])
