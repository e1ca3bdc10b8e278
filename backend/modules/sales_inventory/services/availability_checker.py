# backend/modules/sales_inventory/services/availability_checker.py

import math
import logging
from collections import defaultdict
from typing import Dict, Iterable, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from core.inventory_models import InventoryItem
from ..config.deduction_config import StockDeductionConfig, get_stock_deduction_config
from ..schemas.deduction_schemas import (
    AvailabilityReport,
    IngredientRequirement,
    LineResolution,
    Shortfall,
)

logger = logging.getLogger(__name__)


def aggregate_requirements(
    resolutions: Iterable[LineResolution], precision: int = 6
) -> Dict[int, float]:
    """Total quantity needed per inventory item across all resolved lines"""
    totals: Dict[int, float] = defaultdict(float)
    for resolution in resolutions:
        for requirement in resolution.mapped_requirements:
            totals[requirement.inventory_item_id] += (
                requirement.quantity_per_unit * resolution.line.quantity
            )
    return {item_id: round(total, precision) for item_id, total in totals.items()}


class AvailabilityChecker:
    """
    Advisory stock sufficiency check.

    Stock is read once at check time; the deduction executor re-checks at
    the point of mutation.
    """

    def __init__(self, config: Optional[StockDeductionConfig] = None):
        self.config = config or get_stock_deduction_config()

    async def _load_items(
        self, db: AsyncSession, item_ids: Iterable[int]
    ) -> Dict[int, InventoryItem]:
        item_ids = list(item_ids)
        if not item_ids:
            return {}
        result = await db.execute(
            select(InventoryItem).where(InventoryItem.id.in_(item_ids))
        )
        return {item.id: item for item in result.scalars().all()}

    async def check(
        self, db: AsyncSession, required_totals: Dict[int, float]
    ) -> AvailabilityReport:
        items = await self._load_items(db, required_totals.keys())
        precision = self.config.QUANTITY_PRECISION

        shortfalls: List[Shortfall] = []
        for item_id in sorted(required_totals):
            required = round(required_totals[item_id], precision)
            item = items.get(item_id)
            available = round(item.total_quantity, precision) if item else 0.0
            if available < required:
                shortfalls.append(
                    Shortfall(
                        inventory_item_id=item_id,
                        item_name=item.name if item else f"inventory item {item_id}",
                        required=required,
                        available=available,
                        unit=item.unit if item else "pieces",
                    )
                )

        if shortfalls:
            logger.info(
                f"Availability check found {len(shortfalls)} shortfall(s) "
                f"across {len(required_totals)} item(s)"
            )

        return AvailabilityReport(
            can_proceed=not shortfalls,
            shortfalls=shortfalls,
            required_totals=dict(required_totals),
        )

    async def check_resolutions(
        self, db: AsyncSession, resolutions: Iterable[LineResolution]
    ) -> AvailabilityReport:
        totals = aggregate_requirements(resolutions, self.config.QUANTITY_PRECISION)
        return await self.check(db, totals)

    async def max_producible_quantity(
        self, db: AsyncSession, requirements_per_unit: List[IngredientRequirement]
    ) -> int:
        """How many units current stock can make; 0 when nothing is mapped"""
        per_unit: Dict[int, float] = defaultdict(float)
        for requirement in requirements_per_unit:
            if requirement.is_mapped:
                per_unit[requirement.inventory_item_id] += requirement.quantity_per_unit

        if not per_unit:
            return 0

        items = await self._load_items(db, per_unit.keys())
        precision = self.config.QUANTITY_PRECISION

        producible = None
        for item_id, needed in per_unit.items():
            item = items.get(item_id)
            if item is None:
                return 0
            units = math.floor(round(item.total_quantity / needed, precision))
            producible = units if producible is None else min(producible, units)

        return max(producible or 0, 0)
