# backend/modules/sales_inventory/tests/test_availability_checker.py

import pytest

from modules.sales_inventory.enums.deduction_enums import RecipeSource
from modules.sales_inventory.schemas.deduction_schemas import (
    IngredientRequirement,
    LineResolution,
    SaleLine,
)
from modules.sales_inventory.services.availability_checker import (
    AvailabilityChecker,
    aggregate_requirements,
)
from modules.sales_inventory.tests.factories import STORE_ID, InventoryItemFactory


def requirement(item_id, quantity, name="Ingredient"):
    return IngredientRequirement(
        ingredient_name=name,
        quantity_per_unit=quantity,
        inventory_item_id=item_id,
        source=RecipeSource.CATALOG_NAME,
    )


def resolution(index, quantity, *requirements):
    return LineResolution(
        line_index=index,
        line=SaleLine(product_name=f"Product {index}", quantity=quantity, store_id=STORE_ID),
        requirements=list(requirements),
    )


@pytest.mark.unit
class TestAggregateRequirements:

    def test_sums_across_lines_and_multiplies_by_line_quantity(self):
        resolutions = [
            resolution(0, 2, requirement(1, 1.5), requirement(2, 1.0)),
            resolution(1, 3, requirement(1, 0.5)),
        ]

        assert aggregate_requirements(resolutions) == {1: 4.5, 2: 2.0}

    def test_unmapped_requirements_are_skipped(self):
        resolutions = [resolution(0, 1, requirement(None, 1.0), requirement(7, 1.0))]

        assert aggregate_requirements(resolutions) == {7: 1.0}

    def test_float_drift_is_rounded_away(self):
        resolutions = [resolution(0, 1, *[requirement(1, 0.1) for _ in range(3)])]

        assert aggregate_requirements(resolutions) == {1: 0.3}


@pytest.mark.asyncio
class TestAvailabilityChecker:

    async def test_single_shortfall_blocks(self, db, persist, config):
        flour = await persist(InventoryItemFactory(name="Flour", whole_units=5))
        checker = AvailabilityChecker(config)

        report = await checker.check(db, {flour.id: 6.0})

        assert report.can_proceed is False
        assert len(report.shortfalls) == 1
        shortfall = report.shortfalls[0]
        assert (shortfall.item_name, shortfall.required, shortfall.available) == ("Flour", 6.0, 5.0)
        assert shortfall.shortage == 1.0

    async def test_exact_stock_is_sufficient(self, db, persist, config):
        milk = await persist(
            InventoryItemFactory(name="Milk", whole_units=2, fractional_units=0.5)
        )
        checker = AvailabilityChecker(config)

        report = await checker.check(db, {milk.id: 2.5})

        assert report.can_proceed is True
        assert report.shortfalls == []

    async def test_check_resolutions_aggregates_first(self, db, persist, config):
        sugar = await persist(InventoryItemFactory(name="Sugar", whole_units=3))
        checker = AvailabilityChecker(config)

        # 2 + 2 = 4 > 3, though each line alone would fit
        report = await checker.check_resolutions(
            db,
            [
                resolution(0, 1, requirement(sugar.id, 2.0)),
                resolution(1, 1, requirement(sugar.id, 2.0)),
            ],
        )

        assert report.can_proceed is False
        assert report.required_totals == {sugar.id: 4.0}

    async def test_missing_item_counts_as_zero_available(self, db, config):
        checker = AvailabilityChecker(config)

        report = await checker.check(db, {4242: 1.0})

        assert report.shortfalls[0].available == 0.0


@pytest.mark.asyncio
class TestMaxProducibleQuantity:

    async def test_limited_by_scarcest_ingredient(self, db, persist, config):
        flour, egg = await persist(
            InventoryItemFactory(name="Flour", whole_units=10),
            InventoryItemFactory(name="Egg", whole_units=3),
        )
        checker = AvailabilityChecker(config)

        producible = await checker.max_producible_quantity(
            db, [requirement(flour.id, 2.0), requirement(egg.id, 1.0)]
        )

        assert producible == 3

    async def test_fractional_needs(self, db, persist, config):
        syrup = await persist(
            InventoryItemFactory(name="Syrup", whole_units=0, fractional_units=0.9)
        )
        checker = AvailabilityChecker(config)

        assert await checker.max_producible_quantity(db, [requirement(syrup.id, 0.3)]) == 3

    async def test_nothing_mapped_yields_zero(self, db, config):
        checker = AvailabilityChecker(config)

        assert await checker.max_producible_quantity(db, [requirement(None, 1.0)]) == 0
