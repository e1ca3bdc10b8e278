# backend/modules/sales_inventory/services/catalog_resolver.py

"""
Recipe and inventory resolution for sale lines.

Recipes are found through a strict fallback chain:

1. catalog entry by product id -> recipe
2. catalog entry by exact product name within the store -> recipe
3. "<name> Base" recipe template, ingredients mapped to store inventory
4. recipe template named exactly <name>, same mapping

Each step runs only when the previous one produced no ingredients. All
lookups are read-only.
"""

import logging
from typing import List, NamedTuple, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from core.inventory_models import InventoryItem
from ..enums.deduction_enums import RecipeSource
from ..exceptions.inventory_exceptions import (
    NoInventoryMappingError,
    NoRecipeFoundError,
)
from ..models.catalog_models import CatalogEntry, Recipe, RecipeTemplate
from ..schemas.deduction_schemas import IngredientRequirement

logger = logging.getLogger(__name__)

BASE_TEMPLATE_SUFFIX = " Base"


class RecipeMatch(NamedTuple):
    source: RecipeSource
    requirements: List[IngredientRequirement]
    catalog_entry: Optional[CatalogEntry]


class CatalogResolver:
    """Read-only lookups against the catalog, recipe and inventory tables"""

    # Inventory lookups

    async def find_inventory_item_by_name(
        self, db: AsyncSession, store_id: int, name: str
    ) -> Optional[InventoryItem]:
        """Exact name match, then case-insensitive, among active store items"""
        base_query = select(InventoryItem).where(
            InventoryItem.store_id == store_id,
            InventoryItem.is_active.is_(True),
        )

        result = await db.execute(
            base_query.where(InventoryItem.name == name).order_by(InventoryItem.id)
        )
        item = result.scalars().first()
        if item is not None:
            return item

        result = await db.execute(
            base_query.where(func.lower(InventoryItem.name) == name.strip().lower())
            .order_by(InventoryItem.id)
        )
        return result.scalars().first()

    async def find_inventory_item_containing(
        self, db: AsyncSession, store_id: int, text: str
    ) -> Optional[InventoryItem]:
        """First active item whose name contains text, ordered by name then id"""
        needle = text.strip().lower()
        if not needle:
            return None

        result = await db.execute(
            select(InventoryItem)
            .where(
                InventoryItem.store_id == store_id,
                InventoryItem.is_active.is_(True),
                InventoryItem.name.icontains(needle, autoescape=True),
            )
            .order_by(InventoryItem.name, InventoryItem.id)
        )
        return result.scalars().first()

    # Catalog lookups

    async def get_catalog_entry(
        self, db: AsyncSession, store_id: int, product_id: int
    ) -> Optional[CatalogEntry]:
        result = await db.execute(
            select(CatalogEntry).where(
                CatalogEntry.id == product_id,
                CatalogEntry.store_id == store_id,
            )
        )
        return result.scalars().first()

    async def find_catalog_entry_by_name(
        self, db: AsyncSession, store_id: int, product_name: str
    ) -> Optional[CatalogEntry]:
        result = await db.execute(
            select(CatalogEntry)
            .where(
                CatalogEntry.store_id == store_id,
                CatalogEntry.product_name == product_name,
            )
            .order_by(CatalogEntry.is_available.desc(), CatalogEntry.id)
        )
        return result.scalars().first()

    async def find_available_entries_by_name(
        self, db: AsyncSession, store_id: int, product_name: str
    ) -> List[CatalogEntry]:
        """Available entries with this name that point at a recipe, oldest first"""
        result = await db.execute(
            select(CatalogEntry)
            .where(
                CatalogEntry.store_id == store_id,
                CatalogEntry.product_name == product_name,
                CatalogEntry.is_available.is_(True),
                CatalogEntry.recipe_id.is_not(None),
            )
            .order_by(CatalogEntry.id)
        )
        return list(result.scalars().all())

    async def find_template(
        self, db: AsyncSession, name: str
    ) -> Optional[RecipeTemplate]:
        result = await db.execute(
            select(RecipeTemplate)
            .where(RecipeTemplate.name == name, RecipeTemplate.is_active.is_(True))
            .order_by(RecipeTemplate.id)
        )
        return result.scalars().first()

    # Requirement building

    async def _recipe_requirements(
        self, db: AsyncSession, store_id: int, recipe: Optional[Recipe],
        source: RecipeSource
    ) -> List[IngredientRequirement]:
        if recipe is None or not recipe.is_active:
            return []

        requirements = []
        for ingredient in recipe.ingredients:
            item_id = ingredient.inventory_item_id
            if item_id is None:
                item = await self.find_inventory_item_by_name(
                    db, store_id, ingredient.ingredient_name
                )
                if item is not None:
                    item_id = item.id
            requirements.append(
                IngredientRequirement(
                    ingredient_name=ingredient.ingredient_name,
                    quantity_per_unit=ingredient.quantity_per_unit,
                    unit=ingredient.unit,
                    inventory_item_id=item_id,
                    source=source,
                )
            )
        return requirements

    async def _template_requirements(
        self, db: AsyncSession, store_id: int, template: Optional[RecipeTemplate],
        source: RecipeSource
    ) -> List[IngredientRequirement]:
        if template is None:
            return []

        requirements = []
        for ingredient in template.ingredients:
            item = await self.find_inventory_item_by_name(
                db, store_id, ingredient.ingredient_name
            )
            requirements.append(
                IngredientRequirement(
                    ingredient_name=ingredient.ingredient_name,
                    quantity_per_unit=ingredient.quantity,
                    unit=ingredient.unit,
                    inventory_item_id=item.id if item else None,
                    source=source,
                )
            )
        return requirements

    # Resolution chain

    async def resolve_direct(
        self, db: AsyncSession, store_id: int, product_id: int
    ) -> Optional[RecipeMatch]:
        """Step 1: the catalog entry's own recipe"""
        entry = await self.get_catalog_entry(db, store_id, product_id)
        if entry is None or entry.recipe_id is None:
            return None
        requirements = await self._recipe_requirements(
            db, store_id, entry.recipe, RecipeSource.DIRECT_CATALOG
        )
        if not requirements:
            return None
        return RecipeMatch(RecipeSource.DIRECT_CATALOG, requirements, entry)

    async def resolve_by_name(
        self, db: AsyncSession, store_id: int, name: str
    ) -> Optional[RecipeMatch]:
        """Steps 2-4 of the chain for a product or base-product name"""
        # first same-name entry whose recipe yields ingredients
        for candidate in await self.find_available_entries_by_name(db, store_id, name):
            requirements = await self._recipe_requirements(
                db, store_id, candidate.recipe, RecipeSource.CATALOG_NAME
            )
            if requirements:
                return RecipeMatch(RecipeSource.CATALOG_NAME, requirements, candidate)

        entry = await self.find_catalog_entry_by_name(db, store_id, name)

        template = await self.find_template(db, f"{name}{BASE_TEMPLATE_SUFFIX}")
        requirements = await self._template_requirements(
            db, store_id, template, RecipeSource.BASE_TEMPLATE
        )
        if requirements:
            return RecipeMatch(RecipeSource.BASE_TEMPLATE, requirements, entry)

        template = await self.find_template(db, name)
        requirements = await self._template_requirements(
            db, store_id, template, RecipeSource.TEMPLATE
        )
        if requirements:
            return RecipeMatch(RecipeSource.TEMPLATE, requirements, entry)

        return None

    async def resolve_recipe(
        self,
        db: AsyncSession,
        store_id: int,
        product_name: str,
        product_id: Optional[int] = None,
    ) -> RecipeMatch:
        """
        Run the full fallback chain.

        Raises:
            NoRecipeFoundError: no step yielded ingredients
        """
        match = None
        if product_id is not None:
            match = await self.resolve_direct(db, store_id, product_id)
        if match is None:
            match = await self.resolve_by_name(db, store_id, product_name)
        if match is not None:
            return match

        logger.debug(
            f"No recipe for '{product_name}' (product {product_id}) in store {store_id}"
        )
        raise NoRecipeFoundError(product_name, store_id, product_id)

    async def is_recipe_backed(
        self,
        db: AsyncSession,
        store_id: int,
        product_name: str,
        product_id: Optional[int] = None,
    ) -> bool:
        """Whether the catalog declares a recipe for this product"""
        entry = None
        if product_id is not None:
            entry = await self.get_catalog_entry(db, store_id, product_id)
        if entry is None:
            entry = await self.find_catalog_entry_by_name(db, store_id, product_name)
        return entry is not None and entry.recipe_id is not None

    async def resolve_direct_inventory(
        self, db: AsyncSession, store_id: int, product_name: str
    ) -> List[IngredientRequirement]:
        """
        Stock-only products deduct themselves: one unit of the first
        inventory item whose name contains the product name.

        Raises:
            NoInventoryMappingError: no inventory item matches
        """
        item = await self.find_inventory_item_containing(db, store_id, product_name)
        if item is None:
            raise NoInventoryMappingError(
                product_name, store_id, "No recipe and no inventory item by name."
            )

        return [
            IngredientRequirement(
                ingredient_name=item.name,
                quantity_per_unit=1.0,
                unit=item.unit,
                inventory_item_id=item.id,
                source=RecipeSource.DIRECT_INVENTORY,
            )
        ]
