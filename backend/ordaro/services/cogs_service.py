"""Cost of goods sold ledger."""

import logging
from decimal import Decimal
from typing import Any, Dict, List, Optional

from ordaro.core.numeric import ZERO, DecimalLike, quantize_cost
from ordaro.db.unit_of_work import unit_of_work
from ordaro.models.inventory import CogsLedger
from ordaro.services.exceptions import ValidationFailedError
from ordaro.services.organization_service import TenantScopedService

logger = logging.getLogger(__name__)


class CogsService(TenantScopedService):

    def add_entry(
        self,
        order_id: str,
        total_cost: Decimal,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> CogsLedger:
        """Stage a COGS row in the caller's transaction."""
        entry = CogsLedger(
            organization_id=self.organization_id,
            order_id=order_id,
            total_cost=total_cost,
            extra=metadata,
        )
        self.db.add(entry)
        self.db.flush()
        return entry

    def record_order_cogs(
        self,
        order_id: str,
        total_cost: DecimalLike,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> CogsLedger:
        total_cost = quantize_cost(total_cost)
        if not order_id:
            raise ValidationFailedError("order_id is required")
        if total_cost < ZERO:
            raise ValidationFailedError("Total cost cannot be negative", {"total_cost": str(total_cost)})

        with unit_of_work(self.db):
            entry = self.add_entry(order_id, total_cost, metadata)

        logger.info(f"COGS recorded: {entry.id} for order {order_id}, cost: {total_cost}")
        return entry

    def list_cogs(self, order_id: Optional[str] = None, limit: int = 100) -> List[CogsLedger]:
        query = self.db.query(CogsLedger).filter(CogsLedger.organization_id == self.organization_id)
        if order_id:
            query = query.filter(CogsLedger.order_id == order_id)
        return query.order_by(CogsLedger.created_at.desc(), CogsLedger.id.desc()).limit(limit).all()
