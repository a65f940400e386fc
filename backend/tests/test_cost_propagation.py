"""Tests for the job queue and the cost propagation chain."""

import pytest
from decimal import Decimal

from ordaro.models.inventory import CogsLedger, Ingredient, IngredientBatch, StockDeduction
from ordaro.models.menu import MenuItem
from ordaro.models.recipe import Recipe
from ordaro.services.cogs_service import CogsService
from ordaro.services.exceptions import InsufficientStockError, NoBatchesAvailableError, ValidationFailedError
from ordaro.services.job_queue import JobQueue, JobStatus, JobType
from ordaro.services.menu_cost_service import MenuCostService
from ordaro.services.recipe_service import RecipeService

TENANT_ID = "org_test"


class TestJobQueue:
    def test_disabled_queue_drops_jobs(self, session_factory):
        queue = JobQueue(session_factory=session_factory, enabled=False)
        assert queue.add_job(JobType.RECIPE_COST_UPDATE, {"tenant_id": TENANT_ID, "recipe_id": 1}) is None
        assert queue.pending_count() == 0

    def test_job_type_is_stored_by_value(self, session_factory):
        queue = JobQueue(session_factory=session_factory, enabled=True)
        job = queue.add_job(JobType.MENU_COST_UPDATE, {"tenant_id": TENANT_ID, "menu_item_id": 1})
        assert job.job_type == "menu.cost_update"

    def test_transient_failure_is_retried(self, session_factory):
        queue = JobQueue(session_factory=session_factory, enabled=True, retry_backoff_seconds=0)
        calls = []

        def flaky(db, job):
            calls.append(job.attempts)
            if len(calls) == 1:
                raise RuntimeError("temporary")
            return {"ok": True}

        queue.register("test.flaky", flaky)
        job = queue.add_job("test.flaky", {"tenant_id": TENANT_ID})

        assert queue.drain() == 2
        assert calls == [1, 2]
        assert job.status == JobStatus.COMPLETED
        assert job.result == {"ok": True}

    def test_permanent_failure_after_max_retries(self, session_factory):
        queue = JobQueue(session_factory=session_factory, enabled=True, max_retries=3, retry_backoff_seconds=0)

        def broken(db, job):
            raise RuntimeError("always")

        queue.register("test.broken", broken)
        job = queue.add_job("test.broken", {"tenant_id": TENANT_ID})

        assert queue.drain() == 3
        assert job.status == JobStatus.FAILED
        assert job.attempts == 3
        assert job.error_message == "always"
        assert queue.get_stats()["jobs_failed"] == 1

    def test_history_keeps_newest_finished_jobs(self, session_factory):
        queue = JobQueue(session_factory=session_factory, enabled=True, max_history=2)
        queue.register("test.noop", lambda db, job: None)
        first, second, third = [queue.add_job("test.noop", {"tenant_id": TENANT_ID}) for _ in range(3)]

        queue.drain()

        assert list(queue.history) == [second.id, third.id]
        assert queue.get_job(first.id) is None
        assert queue.get_job(third.id).status == JobStatus.COMPLETED

    def test_history_never_drops_unfinished_jobs(self, session_factory):
        queue = JobQueue(session_factory=session_factory, enabled=True, max_history=1)
        queue.register("test.noop", lambda db, job: None)
        jobs = [queue.add_job("test.noop", {"tenant_id": TENANT_ID}) for _ in range(3)]

        queue.drain(max_jobs=1)

        assert len(queue.history) == 2
        assert all(queue.get_job(job.id) for job in jobs[1:])

    def test_unknown_job_type_fails(self, session_factory):
        queue = JobQueue(session_factory=session_factory, enabled=True, max_retries=1)
        job = queue.add_job("test.nobody", {"tenant_id": TENANT_ID})
        queue.drain()
        assert job.status == JobStatus.FAILED


class TestCostPropagation:
    def test_batch_change_reaches_menu_item(self, db_session, inventory, jobs, make_ingredient):
        flour = make_ingredient("Flour")
        inventory.record_stock_entry(flour.id, "10", "10")
        recipe = RecipeService(db_session, TENANT_ID, jobs=jobs).create_recipe("Bread", "1", [(flour.id, "2")])
        item = MenuCostService(db_session, TENANT_ID).create_menu_item("Loaf", "10", recipe_id=recipe.id).menu_item
        assert item.computed_cost == Decimal("2")

        # The cheap batch is used up and the remaining stock cost 3.00 a unit
        inventory.record_stock_entry(flour.id, "10", "30")
        inventory.deduct_stock(flour.id, "10")
        jobs.drain()

        db_session.expire_all()
        flour = db_session.get(Ingredient, flour.id)
        recipe = db_session.get(Recipe, recipe.id)
        item = db_session.get(MenuItem, item.id)
        assert flour.average_unit_cost == Decimal("3")
        assert flour.fifo_unit_cost == Decimal("3")
        assert recipe.total_cost == Decimal("6")
        assert recipe.version == 2
        assert item.computed_cost == Decimal("6")
        assert item.margin == Decimal("0.4")

        completed = [j.job_type for j in jobs.history.values() if j.status == JobStatus.COMPLETED]
        assert completed.count("ingredient.cost_update") == 1
        assert completed.count("recipe.cost_update") == 1
        assert completed.count("menu.cost_update") == 1
        assert not [j for j in jobs.history.values() if j.status == JobStatus.FAILED]

    def test_unchanged_costs_stop_the_chain(self, db_session, inventory, jobs, make_ingredient):
        salt = make_ingredient("Salt")
        inventory.record_stock_entry(salt.id, "10", "10")
        jobs.drain()

        types = [j.job_type for j in jobs.history.values()]
        assert types == ["inventory.batch_change"]

    def test_inactive_menu_items_are_skipped(self, db_session, inventory, jobs, make_ingredient):
        flour = make_ingredient("Flour")
        inventory.record_stock_entry(flour.id, "10", "10")
        recipes = RecipeService(db_session, TENANT_ID, jobs=jobs)
        recipe = recipes.create_recipe("Bread", "1", [(flour.id, "1")])
        menu = MenuCostService(db_session, TENANT_ID)
        menu.create_menu_item("Loaf", "10", recipe_id=recipe.id)
        retired = menu.create_menu_item("Old loaf", "9", recipe_id=recipe.id).menu_item
        menu.update_menu_item(retired.id, is_active=False)
        jobs.drain()

        recipes.recalculate_cost(recipe.id)

        menu_jobs = [j for j in jobs.history.values() if j.job_type == "menu.cost_update"]
        assert len(menu_jobs) == 1
        assert menu_jobs[0].payload["menu_item_id"] != retired.id

    def test_jobs_carry_the_tenant(self, inventory, jobs, make_ingredient):
        flour = make_ingredient("Flour")
        inventory.record_stock_entry(flour.id, "10", "10")
        assert all(j.payload["tenant_id"] == TENANT_ID for j in jobs.history.values())


class TestRecipeConsumption:
    @pytest.fixture
    def pastry(self, db_session, inventory, jobs, make_ingredient):
        """Yields 2: 0.5 kg flour @ 2.00 and 0.2 kg butter @ 10.00."""
        flour = make_ingredient("Flour")
        butter = make_ingredient("Butter")
        inventory.record_stock_entry(flour.id, "10", "20")
        inventory.record_stock_entry(butter.id, "1", "10")
        recipe = RecipeService(db_session, TENANT_ID, jobs=jobs).create_recipe(
            "Pastry", "2", [(flour.id, "0.5"), (butter.id, "0.2")]
        )
        return recipe, flour, butter

    def test_consumption_posts_cogs(self, db_session, inventory, pastry):
        recipe, flour, butter = pastry

        result = inventory.consume_recipe_for_order(recipe.id, "4", "order-77")

        # 4 portions: 1.0 flour (2.00) + 0.4 butter (4.00)
        assert result.total_cost == Decimal("6.0000")
        assert [r.quantity for r in result.ingredients] == [Decimal("1.0000"), Decimal("0.4000")]
        assert result.cogs_entry.order_id == "order-77"
        assert result.cogs_entry.total_cost == Decimal("6")
        assert result.cogs_entry.extra["recipe_id"] == recipe.id

        db_session.expire_all()
        assert db_session.get(Ingredient, flour.id).total_stock == Decimal("9")
        assert db_session.get(Ingredient, butter.id).total_stock == Decimal("0.6")
        rows = db_session.query(StockDeduction).filter(StockDeduction.order_id == "order-77").all()
        assert {r.recipe_id for r in rows} == {recipe.id}

    def test_short_ingredient_deducts_nothing(self, db_session, inventory, pastry):
        recipe, flour, butter = pastry

        with pytest.raises(InsufficientStockError):
            inventory.consume_recipe_for_order(recipe.id, "12", "order-78")

        db_session.expire_all()
        assert db_session.get(Ingredient, flour.id).total_stock == Decimal("10")
        assert db_session.query(CogsLedger).count() == 0

    def test_failure_mid_transaction_rolls_back_earlier_ingredients(self, db_session, inventory, pastry):
        recipe, flour, butter = pastry
        # Butter's aggregate now exceeds its batches
        inventory.deduct_stock(butter.id, "1")
        inventory.adjust_stock(butter.id, "1", reason="recount")

        with pytest.raises(NoBatchesAvailableError):
            inventory.consume_recipe_for_order(recipe.id, "2", "order-79")

        db_session.expire_all()
        assert db_session.get(Ingredient, flour.id).total_stock == Decimal("10")
        flour_batch = db_session.query(IngredientBatch).filter(IngredientBatch.ingredient_id == flour.id).one()
        assert flour_batch.remaining_qty == Decimal("10")
        assert db_session.query(StockDeduction).filter(StockDeduction.order_id == "order-79").count() == 0
        assert db_session.query(CogsLedger).count() == 0


class TestCogsLedger:
    def test_record_and_list(self, db_session, organization):
        cogs = CogsService(db_session, TENANT_ID)
        cogs.record_order_cogs("order-1", "12.50", metadata={"source": "pos"})
        cogs.record_order_cogs("order-2", "3")

        assert [e.order_id for e in cogs.list_cogs()] == ["order-2", "order-1"]
        assert cogs.list_cogs(order_id="order-1")[0].total_cost == Decimal("12.5")

    @pytest.mark.parametrize("order_id,total_cost", [("", "1"), ("order-3", "-1")])
    def test_invalid_entries_rejected(self, db_session, organization, order_id, total_cost):
        with pytest.raises(ValidationFailedError):
            CogsService(db_session, TENANT_ID).record_order_cogs(order_id, total_cost)
