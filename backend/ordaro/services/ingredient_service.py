"""Ingredient catalog operations.

Stock and cost fields are owned by the costing engine and cannot be set here.
"""

import logging
from typing import Any, List, Optional

from sqlalchemy.orm import Session

from ordaro.core.cache import RedisCacheClient, redis_cache
from ordaro.core.numeric import ZERO, DecimalLike, quantize_qty
from ordaro.models.inventory import Ingredient
from ordaro.services.exceptions import NotFoundError, ValidationFailedError
from ordaro.services.organization_service import TenantScopedService

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = {"name", "unit", "reorder_threshold", "is_active"}


class IngredientService(TenantScopedService):

    def __init__(self, db: Session, tenant_id: str, cache: Optional[RedisCacheClient] = None):
        super().__init__(db, tenant_id)
        self.cache = cache or redis_cache

    def get_ingredient(self, ingredient_id: int) -> Ingredient:
        ingredient = self.db.query(Ingredient).filter(
            Ingredient.id == ingredient_id,
            Ingredient.organization_id == self.organization_id,
        ).first()
        if not ingredient:
            raise NotFoundError("Ingredient", ingredient_id)
        return ingredient

    def list_ingredients(self, include_inactive: bool = False) -> List[Ingredient]:
        query = self.db.query(Ingredient).filter(Ingredient.organization_id == self.organization_id)
        if not include_inactive:
            query = query.filter(Ingredient.is_active == True)
        return query.order_by(Ingredient.name.asc(), Ingredient.id.asc()).all()

    def create_ingredient(
        self,
        name: str,
        unit: str = "pcs",
        reorder_threshold: Optional[DecimalLike] = None,
    ) -> Ingredient:
        ingredient = Ingredient(
            organization_id=self.organization_id,
            name=name,
            unit=unit,
            total_stock=ZERO,
            reorder_threshold=self._threshold(reorder_threshold),
        )
        self.db.add(ingredient)
        self.db.commit()
        self.db.refresh(ingredient)

        logger.info(f"Ingredient created: {ingredient.id} '{name}' for organization {self.tenant_id}")
        return ingredient

    def update_ingredient(self, ingredient_id: int, **changes: Any) -> Ingredient:
        """Update descriptive fields. Anything else is rejected."""
        rejected = set(changes) - UPDATABLE_FIELDS
        if rejected:
            raise ValidationFailedError(
                "Fields cannot be updated directly",
                {"fields": sorted(rejected)},
            )

        ingredient = self.get_ingredient(ingredient_id)
        for key, value in changes.items():
            if key == "reorder_threshold":
                value = self._threshold(value)
            setattr(ingredient, key, value)

        self.db.commit()
        self.db.refresh(ingredient)
        self._invalidate()
        return ingredient

    def _threshold(self, value: Optional[DecimalLike]):
        if value is None:
            return None
        value = quantize_qty(value)
        if value < ZERO:
            raise ValidationFailedError("Reorder threshold cannot be negative", {"reorder_threshold": str(value)})
        return value

    def _invalidate(self) -> None:
        try:
            self.cache.invalidate_organization(self.tenant_id)
        except Exception as e:
            logger.warning(f"Cache invalidation failed for organization {self.tenant_id}: {e}")
