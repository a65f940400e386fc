"""
Cost propagation workers.

inventory.batch_change -> ingredient.cost_update -> recipe.cost_update -> menu.cost_update

Each stage re-reads current state, so running a stage twice is harmless.
"""

import logging
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from ordaro.db.unit_of_work import unit_of_work
from ordaro.models.inventory import Ingredient
from ordaro.services.costing_service import CostingEngine
from ordaro.services.exceptions import NotFoundError
from ordaro.services.job_queue import Job, JobQueue, JobType, job_queue
from ordaro.services.menu_cost_service import MenuCostService
from ordaro.services.organization_service import resolve_organization
from ordaro.services.recipe_service import RecipeService

logger = logging.getLogger(__name__)


class CostPropagationWorkers:
    """Job handlers bound to the queue they enqueue follow-up work on."""

    def __init__(self, queue: JobQueue):
        self.queue = queue

    def register(self) -> None:
        self.queue.register(JobType.INVENTORY_BATCH_CHANGE, self.handle_batch_change)
        self.queue.register(JobType.INGREDIENT_COST_UPDATE, self.handle_ingredient_cost_update)
        self.queue.register(JobType.RECIPE_COST_UPDATE, self.handle_recipe_cost_update)
        self.queue.register(JobType.MENU_COST_UPDATE, self.handle_menu_cost_update)

    def handle_batch_change(self, db: Session, job: Job) -> Dict[str, Any]:
        tenant_id = job.payload["tenant_id"]
        ingredient_id = job.payload["ingredient_id"]

        organization = resolve_organization(db, tenant_id)
        with unit_of_work(db, [ingredient_id]):
            ingredient = db.query(Ingredient).filter(
                Ingredient.id == ingredient_id,
                Ingredient.organization_id == organization.id,
            ).with_for_update().populate_existing().first()
            if not ingredient:
                raise NotFoundError("Ingredient", ingredient_id)
            changed = CostingEngine(db).reconcile_from_batches(ingredient)

        if changed:
            self.queue.add_job(
                JobType.INGREDIENT_COST_UPDATE,
                {"tenant_id": tenant_id, "ingredient_id": ingredient_id},
            )
        return {"ingredient_id": ingredient_id, "costs_changed": changed}

    def handle_ingredient_cost_update(self, db: Session, job: Job) -> Dict[str, Any]:
        tenant_id = job.payload["tenant_id"]
        ingredient_id = job.payload["ingredient_id"]

        recipe_ids = RecipeService(db, tenant_id, jobs=self.queue).recipes_using_ingredient(ingredient_id)
        for recipe_id in recipe_ids:
            self.queue.add_job(
                JobType.RECIPE_COST_UPDATE,
                {"tenant_id": tenant_id, "recipe_id": recipe_id},
            )
        logger.info(f"Ingredient {ingredient_id} cost change fans out to {len(recipe_ids)} recipe(s)")
        return {"recipe_ids": recipe_ids}

    def handle_recipe_cost_update(self, db: Session, job: Job) -> Dict[str, Any]:
        recipe = RecipeService(db, job.payload["tenant_id"], jobs=self.queue).recalculate_cost(
            job.payload["recipe_id"]
        )
        return {"recipe_id": recipe.id, "total_cost": str(recipe.total_cost)}

    def handle_menu_cost_update(self, db: Session, job: Job) -> Dict[str, Any]:
        result = MenuCostService(db, job.payload["tenant_id"]).recalculate_menu_item_cost(
            job.payload["menu_item_id"]
        )
        return {
            "menu_item_id": job.payload["menu_item_id"],
            "computed_cost": None if result.computed_cost is None else str(result.computed_cost),
            "margin": None if result.margin is None else str(result.margin),
            "below_threshold": result.below_threshold,
        }


def register_cost_workers(queue: Optional[JobQueue] = None) -> CostPropagationWorkers:
    workers = CostPropagationWorkers(queue or job_queue)
    workers.register()
    return workers
