# backend/modules/sales_inventory/services/combo_expander.py

import logging
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..exceptions.inventory_exceptions import ComboExpansionError
from ..models.catalog_models import CatalogEntry, ComboComponent
from ..schemas.deduction_schemas import SaleLine
from .catalog_resolver import CatalogResolver

logger = logging.getLogger(__name__)


class ComboExpander:
    """
    Rewrites combo sale lines into their constituent product lines.

    Component quantities are multiplied by the combo line's quantity. Combos
    may contain combos; a product that reappears in its own expansion chain
    fails the sale.
    """

    def __init__(self, catalog_resolver: Optional[CatalogResolver] = None):
        self.catalog_resolver = catalog_resolver or CatalogResolver()

    async def expand(self, db: AsyncSession, lines: List[SaleLine]) -> List[SaleLine]:
        """Expand every line; the whole list is returned or an error is raised"""
        expanded: List[SaleLine] = []
        for line in lines:
            expanded.extend(await self._expand_line(db, line, []))
        return expanded

    async def _find_entry(
        self, db: AsyncSession, line: SaleLine
    ) -> Optional[CatalogEntry]:
        if line.product_id is not None:
            entry = await self.catalog_resolver.get_catalog_entry(
                db, line.store_id, line.product_id
            )
            if entry is not None:
                return entry
        return await self.catalog_resolver.find_catalog_entry_by_name(
            db, line.store_id, line.product_name
        )

    async def get_components(
        self, db: AsyncSession, combo_product_id: int
    ) -> List[ComboComponent]:
        result = await db.execute(
            select(ComboComponent)
            .where(ComboComponent.combo_product_id == combo_product_id)
            .order_by(ComboComponent.position, ComboComponent.id)
        )
        return list(result.scalars().all())

    async def _expand_line(
        self, db: AsyncSession, line: SaleLine, chain: List[int]
    ) -> List[SaleLine]:
        entry = await self._find_entry(db, line)
        if entry is None or not entry.is_combo:
            return [line]

        if entry.id in chain:
            raise ComboExpansionError(
                entry.id, entry.product_name,
                "combo contains itself", combo_chain=chain + [entry.id]
            )

        components = await self.get_components(db, entry.id)
        if not components:
            raise ComboExpansionError(
                entry.id, entry.product_name,
                "combo has no components", combo_chain=chain + [entry.id]
            )

        expanded: List[SaleLine] = []
        for component in components:
            product = await self.catalog_resolver.get_catalog_entry(
                db, line.store_id, component.component_product_id
            )
            if product is None:
                raise ComboExpansionError(
                    entry.id, entry.product_name,
                    f"component product {component.component_product_id} not found "
                    f"in store {line.store_id}",
                    combo_chain=chain + [entry.id],
                )
            if component.quantity is None or component.quantity <= 0:
                raise ComboExpansionError(
                    entry.id, entry.product_name,
                    f"component '{product.product_name}' has quantity {component.quantity}",
                    combo_chain=chain + [entry.id],
                )

            component_line = SaleLine(
                product_id=product.id,
                product_name=product.product_name,
                quantity=line.quantity * component.quantity,
                store_id=line.store_id,
                parent_combo=line.parent_combo or line.product_name,
            )
            expanded.extend(
                await self._expand_line(db, component_line, chain + [entry.id])
            )

        logger.debug(
            f"Expanded combo '{entry.product_name}' x{line.quantity} "
            f"into {len(expanded)} line(s)"
        )
        return expanded
