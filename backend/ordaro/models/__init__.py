"""SQLAlchemy models."""

from ordaro.models.organization import Organization, OrganizationSettings, Branch
from ordaro.models.inventory import (
    Ingredient,
    IngredientBatch,
    StockEntry,
    StockEntryType,
    StockDeduction,
    CogsLedger,
)
from ordaro.models.recipe import Recipe, RecipeIngredient
from ordaro.models.menu import MenuItem

__all__ = [
    "Organization",
    "OrganizationSettings",
    "Branch",
    "Ingredient",
    "IngredientBatch",
    "StockEntry",
    "StockEntryType",
    "StockDeduction",
    "CogsLedger",
    "Recipe",
    "RecipeIngredient",
    "MenuItem",
]
