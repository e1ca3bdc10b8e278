# backend/modules/sales_inventory/services/addon_resolver.py

"""
Addon taxonomy and descriptor resolution for mix-and-match products.
"""

from typing import Dict, List, Optional, Sequence, Tuple

from sqlalchemy.ext.asyncio import AsyncSession

from core.inventory_models import InventoryItem
from ..enums.deduction_enums import AddonCategory, RecipeSource
from ..schemas.deduction_schemas import IngredientRequirement, ResolvedAddon
from .catalog_resolver import CatalogResolver


# Checked in this order: sauces, then toppings, then biscuits
ADDON_TAXONOMY: Sequence[Tuple[AddonCategory, Sequence[str]]] = (
    (AddonCategory.SAUCE_PREMIUM, ("Nutella", "Tiramisu")),
    (
        AddonCategory.SAUCE_CLASSIC,
        (
            "Chocolate Sauce",
            "Caramel Sauce",
            "Strawberry Sauce",
            "Vanilla Sauce",
            "Matcha Sauce",
            "Blueberry Sauce",
        ),
    ),
    (
        AddonCategory.TOPPING_PREMIUM,
        (
            "Biscoff Crushed",
            "Crushed Biscoff",
            "Kitkat",
            "Blueberry",
            "Strawberry",
            "Banana",
        ),
    ),
    (
        AddonCategory.TOPPING_CLASSIC,
        (
            "Marshmallow",
            "Choco Flakes",
            "Colored Sprinkles",
            "Peanut",
            "Crushed Oreo",
            "Graham Cracker",
            "Whipped Cream",
        ),
    ),
    (
        AddonCategory.BISCUIT,
        ("Lotus Biscuit", "Oreo Biscuit", "Graham Biscuit", "Biscoff Biscuit"),
    ),
)

# Other spellings seen on receipts, keyed by canonical name
ADDON_ALIASES: Dict[str, Sequence[str]] = {
    "Caramel Sauce": ("Caramel Syrup", "Caramel"),
    "Chocolate Sauce": ("Chocolate Syrup", "Choco Sauce"),
    "Choco Flakes": ("Chocolate Flakes", "Choco Flake"),
    "Whipped Cream": ("Whip Cream",),
    "Blueberry": ("Blueberries",),
}

DEFAULT_ADDON_CATEGORY = AddonCategory.TOPPING_CLASSIC
ADDON_UNIT = "pieces"


def resolve_addon(descriptor: str) -> ResolvedAddon:
    """
    Map a descriptor to its canonical addon name and category.

    Within a category longer names and aliases win, so "Strawberry Sauce" is
    never read as the "Strawberry" topping. Unknown descriptors become classic
    toppings under their own name.
    """
    cleaned = " ".join((descriptor or "").split())
    lowered = cleaned.lower()

    for category, names in ADDON_TAXONOMY:
        patterns = [
            (pattern, name)
            for name in names
            for pattern in (name, *ADDON_ALIASES.get(name, ()))
        ]
        for pattern, name in sorted(patterns, key=lambda p: len(p[0]), reverse=True):
            if pattern.lower() in lowered:
                return ResolvedAddon(
                    descriptor=cleaned,
                    name=name,
                    category=category,
                    quantity=1.0,
                    unit=ADDON_UNIT,
                )

    return ResolvedAddon(
        descriptor=cleaned,
        name=cleaned,
        category=DEFAULT_ADDON_CATEGORY,
        quantity=1.0,
        unit=ADDON_UNIT,
    )


class AddonResolver:
    """Turns addon descriptors into ingredient requirements for one store"""

    def __init__(self, catalog_resolver: Optional[CatalogResolver] = None):
        self.catalog_resolver = catalog_resolver or CatalogResolver()

    async def find_inventory_item(
        self, db: AsyncSession, store_id: int, addon: ResolvedAddon
    ) -> Optional[InventoryItem]:
        item = await self.catalog_resolver.find_inventory_item_by_name(
            db, store_id, addon.name
        )
        if item is None:
            item = await self.catalog_resolver.find_inventory_item_containing(
                db, store_id, addon.name
            )
        return item

    async def resolve_addons(
        self, db: AsyncSession, store_id: int, descriptors: List[str]
    ) -> Tuple[List[IngredientRequirement], List[str]]:
        """
        Resolve descriptors to requirements.

        Returns (requirements, warnings). An addon with no inventory item is
        kept as an unmapped requirement and reported as a warning; it never
        fails the line.
        """
        requirements: List[IngredientRequirement] = []
        warnings: List[str] = []

        for descriptor in descriptors:
            addon = resolve_addon(descriptor)
            item = await self.find_inventory_item(db, store_id, addon)
            if item is None:
                warnings.append(
                    f"Addon '{addon.name}' ({addon.category.value}) has no inventory "
                    f"item in store {store_id}; not deducted"
                )
            requirements.append(
                IngredientRequirement(
                    ingredient_name=item.name if item else addon.name,
                    quantity_per_unit=addon.quantity,
                    unit=item.unit if item else addon.unit,
                    inventory_item_id=item.id if item else None,
                    source=RecipeSource.ADDON,
                    is_addon=True,
                )
            )

        return requirements, warnings
