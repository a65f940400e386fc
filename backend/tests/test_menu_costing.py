"""Tests for recipe costing and menu item margins."""

import logging
import pytest
from decimal import Decimal

from ordaro.models.inventory import Ingredient
from ordaro.models.menu import MenuItem
from ordaro.models.recipe import Recipe, RecipeIngredient
from ordaro.services.exceptions import NotFoundError, ValidationFailedError, VersionConflictError
from ordaro.services.menu_cost_service import MenuCostService, compute_menu_cost
from ordaro.services.recipe_service import RecipeService, ingredient_unit_cost

TENANT_ID = "org_test"


@pytest.fixture
def recipes(db_session, organization, jobs):
    return RecipeService(db_session, TENANT_ID, jobs=jobs)


@pytest.fixture
def menu(db_session, organization):
    return MenuCostService(db_session, TENANT_ID)


@pytest.fixture
def stew(inventory, recipes, make_ingredient):
    """Five portions costing 30.00 in total: 10 kg of beef at 3.00."""
    beef = make_ingredient("Beef")
    inventory.record_stock_entry(beef.id, "10", "30")
    return recipes.create_recipe("Beef stew", "5", [(beef.id, "10")])


class TestIngredientUnitCost:
    def test_prefers_fifo_then_average_then_zero(self):
        assert ingredient_unit_cost(Ingredient(fifo_unit_cost=Decimal("2"), average_unit_cost=Decimal("3"))) == Decimal("2")
        assert ingredient_unit_cost(Ingredient(fifo_unit_cost=None, average_unit_cost=Decimal("3"))) == Decimal("3")
        assert ingredient_unit_cost(Ingredient(fifo_unit_cost=None, average_unit_cost=None)) == Decimal("0")


class TestRecipeCosting:
    def test_recipe_cost_from_ingredient_costs(self, stew):
        assert stew.total_cost == Decimal("30")
        assert stew.cost_per_portion == Decimal("6")
        assert stew.version == 1
        assert stew.ingredients[0].unit_cost_at_use == Decimal("3")

    def test_unpurchased_ingredient_costs_nothing(self, recipes, make_ingredient):
        water = make_ingredient("Water", unit="L")
        recipe = recipes.create_recipe("Stock", "1", [(water.id, "2")])
        assert recipe.total_cost == Decimal("0")

    def test_average_used_once_batches_are_gone(self, inventory, recipes, make_ingredient):
        lentils = make_ingredient("Lentils")
        inventory.record_stock_entry(lentils.id, "5", "10")
        inventory.deduct_stock(lentils.id, "5")

        recipe = recipes.create_recipe("Dal", "1", [(lentils.id, "1")])
        assert recipe.total_cost == Decimal("2")

    @pytest.mark.parametrize("yield_quantity,quantity", [("0", "1"), ("1", "0")])
    def test_non_positive_quantities_rejected(self, recipes, make_ingredient, yield_quantity, quantity):
        rice = make_ingredient("Rice")
        with pytest.raises(ValidationFailedError):
            recipes.create_recipe("Rice", yield_quantity, [(rice.id, quantity)])

    def test_foreign_ingredient_rejected(self, recipes, make_ingredient, other_organization):
        foreign = make_ingredient("Caviar", org=other_organization)
        with pytest.raises(NotFoundError):
            recipes.create_recipe("Blini", "1", [(foreign.id, "1")])

    def test_recalculate_bumps_version(self, inventory, recipes, stew):
        beef_id = stew.ingredients[0].ingredient_id
        inventory.deduct_stock(beef_id, "10")
        inventory.record_stock_entry(beef_id, "10", "50")

        recipe = recipes.recalculate_cost(stew.id)

        assert recipe.total_cost == Decimal("50")
        assert recipe.version == 2

    def test_recipes_using_ingredient(self, recipes, stew, make_ingredient):
        carrot = make_ingredient("Carrot")
        soup = recipes.create_recipe("Soup", "4", [(carrot.id, "1")])
        beef_id = stew.ingredients[0].ingredient_id

        assert recipes.recipes_using_ingredient(beef_id) == [stew.id]
        assert recipes.recipes_using_ingredient(carrot.id) == [soup.id]


class TestComputeMenuCost:
    def test_margin_from_recipe_cost(self):
        recipe = Recipe(total_cost=Decimal("30"), yield_quantity=Decimal("5"))
        cost, margin = compute_menu_cost(recipe, Decimal("20"), Decimal("1"))
        assert cost == Decimal("6.0000")
        assert margin == Decimal("0.7000")

    def test_portion_multiplier_scales_cost(self):
        recipe = Recipe(total_cost=Decimal("30"), yield_quantity=Decimal("5"))
        cost, _ = compute_menu_cost(recipe, Decimal("20"), Decimal("1.5"))
        assert cost == Decimal("9.0000")

    def test_no_recipe(self):
        assert compute_menu_cost(None, Decimal("20"), Decimal("1")) == (None, None)

    def test_zero_price_has_no_margin(self):
        recipe = Recipe(total_cost=Decimal("30"), yield_quantity=Decimal("5"))
        assert compute_menu_cost(recipe, Decimal("0"), Decimal("1")) == (Decimal("6.0000"), None)

    def test_price_below_cost_gives_negative_margin(self):
        recipe = Recipe(total_cost=Decimal("30"), yield_quantity=Decimal("5"))
        _, margin = compute_menu_cost(recipe, Decimal("4"), Decimal("1"))
        assert margin == Decimal("-0.5000")


class TestMenuItems:
    def test_create_with_recipe(self, menu, stew):
        result = menu.create_menu_item("Stew bowl", "20", recipe_id=stew.id)

        assert result.computed_cost == Decimal("6.0000")
        assert result.margin == Decimal("0.7000")
        assert result.below_threshold is False
        assert result.target_margin_threshold == Decimal("0.65")
        assert result.menu_item.version == 1

    def test_low_margin_is_flagged(self, menu, stew, caplog):
        with caplog.at_level(logging.WARNING, logger="ordaro.services.menu_cost_service"):
            result = menu.create_menu_item("Cheap stew", "8", recipe_id=stew.id)

        assert result.margin == Decimal("0.2500")
        assert result.below_threshold is True
        assert "Low margin" in caplog.text

    def test_no_threshold_never_flags(self, db_session, menu, stew, organization):
        organization.settings.target_margin_threshold = None
        db_session.commit()

        result = menu.create_menu_item("Cheap stew", "8", recipe_id=stew.id)
        assert result.below_threshold is False

    def test_without_recipe_costs_are_null(self, menu):
        result = menu.create_menu_item("Tap water", "0")
        assert result.computed_cost is None
        assert result.margin is None

    def test_foreign_recipe_rejected(self, db_session, menu, other_organization, jobs, make_ingredient):
        foreign = make_ingredient("Caviar", org=other_organization)
        foreign_recipe = RecipeService(db_session, "org_other", jobs=jobs).create_recipe(
            "Blini", "1", [(foreign.id, "1")]
        )
        with pytest.raises(NotFoundError):
            menu.create_menu_item("Blini", "30", recipe_id=foreign_recipe.id)

    @pytest.mark.parametrize("price,multiplier", [("-1", "1"), ("10", "0")])
    def test_invalid_inputs_rejected(self, menu, price, multiplier):
        with pytest.raises(ValidationFailedError):
            menu.create_menu_item("Broken", price, portion_multiplier=multiplier)

    def test_price_change_recalculates(self, menu, stew):
        item = menu.create_menu_item("Stew bowl", "20", recipe_id=stew.id).menu_item

        result = menu.update_menu_item(item.id, base_price="30", expected_version=1)

        assert result.recalculated is True
        assert result.margin == Decimal("0.8000")
        assert result.menu_item.version == 2

    def test_rename_does_not_recalculate(self, menu, stew):
        item = menu.create_menu_item("Stew bowl", "20", recipe_id=stew.id).menu_item

        result = menu.update_menu_item(item.id, name="Hearty stew")

        assert result.recalculated is False
        assert result.menu_item.name == "Hearty stew"
        assert result.margin == Decimal("0.7")

    def test_rename_keeps_low_margin_flag(self, menu, stew):
        item = menu.create_menu_item("Cheap stew", "8", recipe_id=stew.id).menu_item

        result = menu.update_menu_item(item.id, name="Budget stew")

        assert result.recalculated is False
        assert result.margin == Decimal("0.25")
        assert result.below_threshold is True

    def test_same_price_does_not_recalculate(self, menu, stew):
        item = menu.create_menu_item("Stew bowl", "20", recipe_id=stew.id).menu_item
        assert menu.update_menu_item(item.id, base_price="20.00").recalculated is False

    def test_stale_version_conflicts(self, menu, stew):
        item = menu.create_menu_item("Stew bowl", "20", recipe_id=stew.id).menu_item
        menu.update_menu_item(item.id, base_price="25", expected_version=1)

        with pytest.raises(VersionConflictError):
            menu.update_menu_item(item.id, base_price="30", expected_version=1)

    def test_attach_and_detach_recipe(self, menu, stew):
        item = menu.create_menu_item("Special", "12").menu_item

        linked = menu.attach_recipe(item.id, stew.id)
        assert linked.computed_cost == Decimal("6.0000")
        assert linked.margin == Decimal("0.5000")
        assert linked.below_threshold is True

        unlinked = menu.attach_recipe(item.id, None)
        assert unlinked.computed_cost is None
        assert unlinked.margin is None

    def test_other_tenant_menu_item_not_found(self, db_session, menu, other_organization):
        other = MenuCostService(db_session, "org_other").create_menu_item("Elsewhere", "5").menu_item
        with pytest.raises(NotFoundError):
            menu.get_menu_item(other.id)


class TestRecipeUpdates:
    def test_replacing_lines_recosts_and_bumps_version(self, db_session, inventory, recipes, stew, make_ingredient):
        carrot = make_ingredient("Carrot")
        inventory.record_stock_entry(carrot.id, "10", "10")

        recipe = recipes.update_recipe(stew.id, lines=[(carrot.id, "5")])

        assert recipe.total_cost == Decimal("5")
        assert recipe.cost_per_portion == Decimal("1")
        assert recipe.version == 2
        assert [line.ingredient_id for line in recipe.ingredients] == [carrot.id]
        assert db_session.query(RecipeIngredient).filter(RecipeIngredient.recipe_id == stew.id).count() == 1

    def test_yield_change_recosts_portions(self, recipes, stew):
        recipe = recipes.update_recipe(stew.id, name="Beef stew for ten", yield_quantity="10")

        assert recipe.name == "Beef stew for ten"
        assert recipe.total_cost == Decimal("30")
        assert recipe.cost_per_portion == Decimal("3")
        assert recipe.version == 2

    def test_active_linked_menu_items_follow(self, db_session, recipes, menu, stew, jobs):
        item = menu.create_menu_item("Stew bowl", "20", recipe_id=stew.id).menu_item
        retired = menu.create_menu_item("Old bowl", "18", recipe_id=stew.id).menu_item
        menu.update_menu_item(retired.id, is_active=False)
        jobs.drain()

        recipes.update_recipe(stew.id, yield_quantity="10")
        menu_jobs = [j for j in jobs.history.values() if j.job_type == "menu.cost_update"]
        assert [j.payload["menu_item_id"] for j in menu_jobs] == [item.id]
        jobs.drain()

        db_session.expire_all()
        item = db_session.get(MenuItem, item.id)
        assert item.computed_cost == Decimal("3")
        assert item.margin == Decimal("0.85")
        assert db_session.get(MenuItem, retired.id).computed_cost == Decimal("6")

    def test_empty_lines_rejected(self, recipes, stew):
        with pytest.raises(ValidationFailedError):
            recipes.update_recipe(stew.id, lines=[])
        with pytest.raises(ValidationFailedError):
            recipes.create_recipe("Nothing", "1", [])

    def test_inactive_ingredient_rejected(self, db_session, recipes, stew, make_ingredient):
        truffle = make_ingredient("Truffle")
        truffle.is_active = False
        db_session.commit()

        with pytest.raises(NotFoundError):
            recipes.create_recipe("Truffle fries", "1", [(truffle.id, "1")])
        with pytest.raises(NotFoundError):
            recipes.update_recipe(stew.id, lines=[(truffle.id, "1")])

    def test_unknown_recipe(self, recipes):
        with pytest.raises(NotFoundError):
            recipes.update_recipe(99999, name="Ghost")

    @pytest.mark.parametrize("yield_quantity", ["0", "-2"])
    def test_non_positive_yield_rejected(self, recipes, stew, yield_quantity):
        with pytest.raises(ValidationFailedError):
            recipes.update_recipe(stew.id, yield_quantity=yield_quantity)
