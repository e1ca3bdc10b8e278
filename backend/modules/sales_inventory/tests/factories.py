# backend/modules/sales_inventory/tests/factories.py

import factory
from factory import Sequence

from core.inventory_models import InventoryItem
from modules.sales_inventory.models.catalog_models import (
    CatalogEntry,
    ComboComponent,
    Recipe,
    RecipeIngredient,
    RecipeTemplate,
    RecipeTemplateIngredient,
)

STORE_ID = 1


class InventoryItemFactory(factory.Factory):
    """Unsaved inventory item; persist through an AsyncSession."""

    class Meta:
        model = InventoryItem

    store_id = STORE_ID
    name = Sequence(lambda n: f"Ingredient {n}")
    unit = "pieces"
    whole_units = 100
    fractional_units = 0.0
    minimum_threshold = None
    version = 1
    is_active = True


class RecipeFactory(factory.Factory):
    class Meta:
        model = Recipe

    store_id = STORE_ID
    name = Sequence(lambda n: f"Recipe {n}")
    is_active = True


class RecipeIngredientFactory(factory.Factory):
    class Meta:
        model = RecipeIngredient

    ingredient_name = Sequence(lambda n: f"Ingredient {n}")
    quantity_per_unit = 1.0
    unit = "pieces"
    position = Sequence(lambda n: n)


class CatalogEntryFactory(factory.Factory):
    class Meta:
        model = CatalogEntry

    store_id = STORE_ID
    product_name = Sequence(lambda n: f"Product {n}")
    is_combo = False
    is_available = True


class ComboComponentFactory(factory.Factory):
    class Meta:
        model = ComboComponent

    quantity = 1
    position = Sequence(lambda n: n)


class RecipeTemplateFactory(factory.Factory):
    class Meta:
        model = RecipeTemplate

    name = Sequence(lambda n: f"Template {n}")
    is_active = True


class RecipeTemplateIngredientFactory(factory.Factory):
    class Meta:
        model = RecipeTemplateIngredient

    ingredient_name = Sequence(lambda n: f"Ingredient {n}")
    quantity = 1.0
    unit = "pieces"
    position = Sequence(lambda n: n)
