"""Menu cost propagation.

computed_cost = recipe.total_cost / recipe.yield_quantity * portion_multiplier
margin        = (base_price - computed_cost) / base_price

Both are null without a linked recipe; margin is also null for a zero price.
A margin under the organization's target threshold is reported with a
warning and left for a person to act on.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from sqlalchemy.orm import Session

from ordaro.core.numeric import ZERO, DecimalLike, quantize_cost, quantize_margin, to_decimal
from ordaro.models.menu import MenuItem
from ordaro.models.recipe import Recipe
from ordaro.services.exceptions import NotFoundError, ValidationFailedError, VersionConflictError
from ordaro.services.organization_service import TenantScopedService, get_target_margin_threshold

logger = logging.getLogger(__name__)


@dataclass
class MenuCostResult:
    menu_item: MenuItem
    computed_cost: Optional[Decimal]
    margin: Optional[Decimal]
    target_margin_threshold: Optional[Decimal]
    below_threshold: bool
    recalculated: bool = True


def compute_menu_cost(
    recipe: Optional[Recipe],
    base_price: Decimal,
    portion_multiplier: Decimal,
):
    """Return ``(computed_cost, margin)`` for the given inputs."""
    if recipe is None:
        return None, None
    if recipe.yield_quantity <= ZERO:
        raise ValidationFailedError("Recipe yield must be greater than zero", {"recipe_id": recipe.id})

    computed_cost = quantize_cost(recipe.total_cost / recipe.yield_quantity * portion_multiplier)
    margin = None
    if base_price > ZERO:
        margin = quantize_margin((base_price - computed_cost) / base_price)
    return computed_cost, margin


class MenuCostService(TenantScopedService):

    def get_menu_item(self, menu_item_id: int) -> MenuItem:
        item = self.db.query(MenuItem).filter(
            MenuItem.id == menu_item_id,
            MenuItem.organization_id == self.organization_id,
        ).first()
        if not item:
            raise NotFoundError("Menu item", menu_item_id)
        return item

    def _get_recipe(self, recipe_id: int) -> Recipe:
        recipe = self.db.query(Recipe).filter(
            Recipe.id == recipe_id,
            Recipe.organization_id == self.organization_id,
        ).first()
        if not recipe:
            raise NotFoundError("Recipe", recipe_id)
        return recipe

    def create_menu_item(
        self,
        name: str,
        base_price: DecimalLike,
        portion_multiplier: DecimalLike = Decimal("1"),
        recipe_id: Optional[int] = None,
    ) -> MenuCostResult:
        item = MenuItem(
            organization_id=self.organization_id,
            name=name,
            base_price=self._price(base_price),
            portion_multiplier=self._multiplier(portion_multiplier),
            recipe_id=self._get_recipe(recipe_id).id if recipe_id is not None else None,
        )
        self.db.add(item)
        self.db.flush()

        result = self._recalculate(item)
        self.db.commit()
        logger.info(f"Menu item created: {item.id} '{name}', cost {result.computed_cost}, margin {result.margin}")
        return result

    def update_menu_item(
        self,
        menu_item_id: int,
        name: Optional[str] = None,
        base_price: Optional[DecimalLike] = None,
        portion_multiplier: Optional[DecimalLike] = None,
        is_active: Optional[bool] = None,
        expected_version: Optional[int] = None,
    ) -> MenuCostResult:
        """Apply changes; cost and margin are recomputed only if a cost input changed."""
        item = self.get_menu_item(menu_item_id)
        try:
            item.check_version(expected_version)
        except ValueError as e:
            raise VersionConflictError(str(e), {"menu_item_id": menu_item_id, "current_version": item.version})

        cost_inputs_changed = False
        if name is not None:
            item.name = name
        if is_active is not None:
            item.is_active = is_active
        if base_price is not None:
            base_price = self._price(base_price)
            if base_price != item.base_price:
                item.base_price = base_price
                cost_inputs_changed = True
        if portion_multiplier is not None:
            portion_multiplier = self._multiplier(portion_multiplier)
            if portion_multiplier != item.portion_multiplier:
                item.portion_multiplier = portion_multiplier
                cost_inputs_changed = True

        if cost_inputs_changed:
            result = self._recalculate(item)
        else:
            threshold = get_target_margin_threshold(self.db, self.organization_id)
            result = MenuCostResult(
                menu_item=item,
                computed_cost=item.computed_cost,
                margin=item.margin,
                target_margin_threshold=threshold,
                below_threshold=item.margin is not None and threshold is not None and item.margin < threshold,
                recalculated=False,
            )
        item.increment_version()
        self.db.commit()
        return result

    def attach_recipe(self, menu_item_id: int, recipe_id: Optional[int]) -> MenuCostResult:
        """Link a recipe (or unlink with None) and recompute cost and margin."""
        item = self.get_menu_item(menu_item_id)
        item.recipe_id = self._get_recipe(recipe_id).id if recipe_id is not None else None

        result = self._recalculate(item)
        item.increment_version()
        self.db.commit()
        logger.info(f"Menu item {item.id} linked to recipe {recipe_id}")
        return result

    def recalculate_menu_item_cost(self, menu_item_id: int) -> MenuCostResult:
        item = self.get_menu_item(menu_item_id)
        result = self._recalculate(item)
        self.db.commit()
        return result

    def _recalculate(self, item: MenuItem) -> MenuCostResult:
        recipe = self._get_recipe(item.recipe_id) if item.recipe_id is not None else None
        computed_cost, margin = compute_menu_cost(recipe, item.base_price, item.portion_multiplier)

        item.computed_cost = computed_cost
        item.margin = margin

        threshold = get_target_margin_threshold(self.db, self.organization_id)
        below = margin is not None and threshold is not None and margin < threshold
        if below:
            logger.warning(
                f"Low margin: menu item {item.id} '{item.name}' margin {margin} "
                f"below target {threshold} (price {item.base_price}, cost {computed_cost})"
            )

        logger.info(f"Menu item {item.id} cost recalculated: cost {computed_cost}, margin {margin}")
        return MenuCostResult(
            menu_item=item,
            computed_cost=computed_cost,
            margin=margin,
            target_margin_threshold=threshold,
            below_threshold=below,
        )

    def _price(self, value: DecimalLike) -> Decimal:
        value = quantize_cost(value)
        if value < ZERO:
            raise ValidationFailedError("Base price cannot be negative", {"base_price": str(value)})
        return value

    def _multiplier(self, value: DecimalLike) -> Decimal:
        value = to_decimal(value)
        if value <= ZERO:
            raise ValidationFailedError("Portion multiplier must be greater than zero", {"portion_multiplier": str(value)})
        return value
