# backend/modules/sales_inventory/tests/test_addon_resolver.py

import pytest

from modules.sales_inventory.enums.deduction_enums import AddonCategory, RecipeSource
from modules.sales_inventory.services.addon_resolver import AddonResolver, resolve_addon
from modules.sales_inventory.tests.factories import STORE_ID, InventoryItemFactory


@pytest.mark.unit
class TestResolveAddon:

    @pytest.mark.parametrize(
        "descriptor, name, category",
        [
            ("Nutella", "Nutella", AddonCategory.SAUCE_PREMIUM),
            ("extra tiramisu", "Tiramisu", AddonCategory.SAUCE_PREMIUM),
            ("Caramel Sauce", "Caramel Sauce", AddonCategory.SAUCE_CLASSIC),
            ("Strawberry Sauce", "Strawberry Sauce", AddonCategory.SAUCE_CLASSIC),
            ("Strawberry", "Strawberry", AddonCategory.TOPPING_PREMIUM),
            ("crushed biscoff", "Crushed Biscoff", AddonCategory.TOPPING_PREMIUM),
            ("Choco Flakes", "Choco Flakes", AddonCategory.TOPPING_CLASSIC),
            ("Marshmallow", "Marshmallow", AddonCategory.TOPPING_CLASSIC),
            ("Lotus Biscuit", "Lotus Biscuit", AddonCategory.BISCUIT),
            ("Oreo Biscuit", "Oreo Biscuit", AddonCategory.BISCUIT),
            ("Caramel", "Caramel Sauce", AddonCategory.SAUCE_CLASSIC),
            ("caramel syrup", "Caramel Sauce", AddonCategory.SAUCE_CLASSIC),
            ("Chocolate Syrup", "Chocolate Sauce", AddonCategory.SAUCE_CLASSIC),
            ("choco sauce", "Chocolate Sauce", AddonCategory.SAUCE_CLASSIC),
            ("Chocolate Flakes", "Choco Flakes", AddonCategory.TOPPING_CLASSIC),
            ("Blueberries", "Blueberry", AddonCategory.TOPPING_PREMIUM),
        ],
    )
    def test_taxonomy_lookup(self, descriptor, name, category):
        addon = resolve_addon(descriptor)

        assert addon.name == name
        assert addon.category == category
        assert addon.quantity == 1.0
        assert addon.unit == "pieces"

    def test_sauces_are_checked_before_toppings(self):
        # Contains both "Blueberry" (topping) and "Blueberry Sauce" (sauce)
        addon = resolve_addon("Blueberry Sauce drizzle")

        assert addon.category == AddonCategory.SAUCE_CLASSIC
        assert addon.name == "Blueberry Sauce"

    def test_alias_resolves_within_its_own_category_order(self):
        # "Caramel" alone is the classic sauce, not a made-up topping
        addon = resolve_addon("Salted Caramel")

        assert addon.name == "Caramel Sauce"
        assert addon.category == AddonCategory.SAUCE_CLASSIC

    def test_toppings_are_checked_before_biscuits(self):
        # "Biscoff Crushed" topping wins over anything biscuit-like
        addon = resolve_addon("Biscoff Crushed")

        assert addon.category == AddonCategory.TOPPING_PREMIUM

    def test_unknown_descriptor_falls_back_to_classic_topping(self):
        addon = resolve_addon("  Rainbow   Dust ")

        assert addon.category == AddonCategory.TOPPING_CLASSIC
        assert addon.name == "Rainbow Dust"
        assert addon.descriptor == "Rainbow Dust"

    def test_empty_descriptor_still_resolves(self):
        addon = resolve_addon("")

        assert addon.category == AddonCategory.TOPPING_CLASSIC


@pytest.mark.asyncio
class TestAddonResolver:

    async def test_maps_addons_to_inventory(self, db, persist):
        nutella, flakes = await persist(
            InventoryItemFactory(name="Nutella"),
            InventoryItemFactory(name="choco flakes"),
        )
        resolver = AddonResolver()

        requirements, warnings = await resolver.resolve_addons(
            db, STORE_ID, ["Nutella", "Choco Flakes"]
        )

        assert warnings == []
        assert [req.inventory_item_id for req in requirements] == [nutella.id, flakes.id]
        assert all(req.is_addon for req in requirements)
        assert all(req.source == RecipeSource.ADDON for req in requirements)
        assert all(req.quantity_per_unit == 1.0 for req in requirements)

    async def test_substring_match_picks_first_by_name(self, db, persist):
        _, bulk = await persist(
            InventoryItemFactory(name="Marshmallow Bag (Large)"),
            InventoryItemFactory(name="Marshmallow Bag (Bulk)"),
        )
        resolver = AddonResolver()

        requirements, _ = await resolver.resolve_addons(db, STORE_ID, ["Marshmallow"])

        assert requirements[0].inventory_item_id == bulk.id

    async def test_unmapped_addon_is_a_warning_not_an_error(self, db):
        resolver = AddonResolver()

        requirements, warnings = await resolver.resolve_addons(db, STORE_ID, ["Kitkat"])

        assert len(requirements) == 1
        assert requirements[0].inventory_item_id is None
        assert requirements[0].ingredient_name == "Kitkat"
        assert len(warnings) == 1
        assert "Kitkat" in warnings[0]

    async def test_other_store_inventory_is_ignored(self, db, persist):
        await persist(InventoryItemFactory(name="Banana", store_id=STORE_ID + 1))
        resolver = AddonResolver()

        requirements, warnings = await resolver.resolve_addons(db, STORE_ID, ["Banana"])

        assert requirements[0].inventory_item_id is None
        assert warnings
