"""Recipe costing.

A line is costed at the ingredient's FIFO unit cost, falling back to the
weighted average and then to zero for ingredients never purchased.
"""

import logging
from decimal import Decimal
from typing import Iterable, List, Optional, Tuple

from sqlalchemy.orm import Session

from ordaro.core.numeric import ZERO, DecimalLike, quantize_cost, quantize_qty
from ordaro.models.inventory import Ingredient
from ordaro.models.menu import MenuItem
from ordaro.models.recipe import Recipe, RecipeIngredient
from ordaro.services.exceptions import NotFoundError, ValidationFailedError
from ordaro.services.job_queue import JobQueue, JobType, job_queue
from ordaro.services.organization_service import TenantScopedService

logger = logging.getLogger(__name__)


def ingredient_unit_cost(ingredient: Ingredient) -> Decimal:
    if ingredient.fifo_unit_cost is not None:
        return ingredient.fifo_unit_cost
    if ingredient.average_unit_cost is not None:
        return ingredient.average_unit_cost
    return ZERO


class RecipeService(TenantScopedService):

    def __init__(self, db: Session, tenant_id: str, jobs: Optional[JobQueue] = None):
        super().__init__(db, tenant_id)
        self.jobs = jobs or job_queue

    def get_recipe(self, recipe_id: int) -> Recipe:
        recipe = self.db.query(Recipe).filter(
            Recipe.id == recipe_id,
            Recipe.organization_id == self.organization_id,
        ).first()
        if not recipe:
            raise NotFoundError("Recipe", recipe_id)
        return recipe

    def create_recipe(
        self,
        name: str,
        yield_quantity: DecimalLike,
        lines: Iterable[Tuple[int, DecimalLike]],
    ) -> Recipe:
        """Create a recipe from ``(ingredient_id, quantity_used)`` lines and cost it."""
        recipe = Recipe(
            organization_id=self.organization_id,
            name=name,
            yield_quantity=self._yield(yield_quantity),
        )
        recipe.ingredients = self._build_lines(lines)

        self._apply_costs(recipe)
        self.db.add(recipe)
        self.db.commit()
        self.db.refresh(recipe)

        logger.info(f"Recipe created: {recipe.id} '{name}', total cost {recipe.total_cost}")
        return recipe

    def update_recipe(
        self,
        recipe_id: int,
        name: Optional[str] = None,
        yield_quantity: Optional[DecimalLike] = None,
        lines: Optional[Iterable[Tuple[int, DecimalLike]]] = None,
    ) -> Recipe:
        """
        Rename the recipe, change its yield or replace its lines.

        The recipe is re-costed from current ingredient costs, its version is
        bumped and linked menu items are queued for recalculation.
        """
        recipe = self.get_recipe(recipe_id)
        previous = recipe.total_cost

        if name is not None:
            recipe.name = name
        if yield_quantity is not None:
            recipe.yield_quantity = self._yield(yield_quantity)
        if lines is not None:
            recipe.ingredients = self._build_lines(lines)

        self._apply_costs(recipe)
        recipe.version += 1
        self.db.commit()
        self.db.refresh(recipe)

        logger.info(f"Recipe {recipe.id} updated: {previous} -> {recipe.total_cost} (v{recipe.version})")
        self._enqueue_menu_updates(recipe)
        return recipe

    def recalculate_cost(self, recipe_id: int) -> Recipe:
        """Re-cost every line from current ingredient costs and fan out to menu items."""
        recipe = self.get_recipe(recipe_id)
        previous = recipe.total_cost

        self._apply_costs(recipe)
        recipe.version += 1
        self.db.commit()
        self.db.refresh(recipe)

        logger.info(f"Recipe {recipe.id} recalculated: {previous} -> {recipe.total_cost} (v{recipe.version})")
        self._enqueue_menu_updates(recipe)
        return recipe

    def recipes_using_ingredient(self, ingredient_id: int) -> List[int]:
        rows = self.db.query(RecipeIngredient.recipe_id).join(Recipe, Recipe.id == RecipeIngredient.recipe_id).filter(
            RecipeIngredient.ingredient_id == ingredient_id,
            Recipe.organization_id == self.organization_id,
            Recipe.is_active == True,
        ).distinct().order_by(RecipeIngredient.recipe_id).all()
        return [row.recipe_id for row in rows]

    def _enqueue_menu_updates(self, recipe: Recipe) -> None:
        menu_item_ids = [
            row.id for row in self.db.query(MenuItem.id).filter(
                MenuItem.recipe_id == recipe.id,
                MenuItem.organization_id == self.organization_id,
                MenuItem.is_active == True,
            ).all()
        ]
        for menu_item_id in menu_item_ids:
            try:
                self.jobs.add_job(
                    JobType.MENU_COST_UPDATE,
                    {"tenant_id": self.tenant_id, "menu_item_id": menu_item_id},
                )
            except Exception as e:
                logger.warning(f"Failed to enqueue menu cost update for item {menu_item_id}: {e}")

    def _yield(self, value: DecimalLike) -> Decimal:
        yield_quantity = quantize_qty(value)
        if yield_quantity <= ZERO:
            raise ValidationFailedError("Recipe yield must be greater than zero", {"yield_quantity": str(yield_quantity)})
        return yield_quantity

    def _build_lines(self, lines: Iterable[Tuple[int, DecimalLike]]) -> List[RecipeIngredient]:
        built = []
        for ingredient_id, quantity_used in lines:
            quantity_used = quantize_qty(quantity_used)
            if quantity_used <= ZERO:
                raise ValidationFailedError(
                    "Ingredient quantity must be greater than zero",
                    {"ingredient_id": ingredient_id, "quantity_used": str(quantity_used)},
                )
            ingredient = self._get_ingredient(ingredient_id)
            built.append(RecipeIngredient(ingredient=ingredient, quantity_used=quantity_used))
        if not built:
            raise ValidationFailedError("Recipe must have at least one ingredient")
        return built

    def _get_ingredient(self, ingredient_id: int) -> Ingredient:
        ingredient = self.db.query(Ingredient).filter(
            Ingredient.id == ingredient_id,
            Ingredient.organization_id == self.organization_id,
            Ingredient.is_active == True,
        ).first()
        if not ingredient:
            raise NotFoundError("Ingredient", ingredient_id)
        return ingredient

    def _apply_costs(self, recipe: Recipe) -> None:
        total = ZERO
        for line in recipe.ingredients:
            line.unit_cost_at_use = ingredient_unit_cost(line.ingredient)
            line.total_cost = quantize_cost(line.unit_cost_at_use * line.quantity_used)
            total += line.total_cost
        recipe.total_cost = quantize_cost(total)
        recipe.cost_per_portion = quantize_cost(recipe.total_cost / recipe.yield_quantity)
