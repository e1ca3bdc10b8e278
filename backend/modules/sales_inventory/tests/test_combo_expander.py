# backend/modules/sales_inventory/tests/test_combo_expander.py

import pytest

from modules.sales_inventory.exceptions.inventory_exceptions import ComboExpansionError
from modules.sales_inventory.schemas.deduction_schemas import SaleLine
from modules.sales_inventory.services.combo_expander import ComboExpander
from modules.sales_inventory.tests.factories import (
    STORE_ID,
    CatalogEntryFactory,
    ComboComponentFactory,
)


def sale_line(entry=None, quantity=1, name=None):
    return SaleLine(
        product_id=entry.id if entry is not None else None,
        product_name=name or entry.product_name,
        quantity=quantity,
        store_id=STORE_ID,
    )


@pytest.mark.asyncio
class TestComboExpander:

    async def test_combo_quantity_multiplies_components(self, db, persist):
        combo, product_a, product_b = await persist(
            CatalogEntryFactory(product_name="Croffle + Coffee", is_combo=True),
            CatalogEntryFactory(product_name="A"),
            CatalogEntryFactory(product_name="B"),
        )
        await persist(
            ComboComponentFactory(
                combo_product_id=combo.id, component_product_id=product_a.id,
                quantity=1, position=0
            ),
            ComboComponentFactory(
                combo_product_id=combo.id, component_product_id=product_b.id,
                quantity=3, position=1
            ),
        )

        expanded = await ComboExpander().expand(db, [sale_line(combo, quantity=2)])

        assert [(line.product_name, line.quantity) for line in expanded] == [("A", 2), ("B", 6)]
        assert all(line.parent_combo == "Croffle + Coffee" for line in expanded)
        assert [line.product_id for line in expanded] == [product_a.id, product_b.id]

    async def test_non_combo_lines_pass_through(self, db, persist):
        plain = await persist(CatalogEntryFactory(product_name="Iced Tea"))
        lines = [sale_line(plain, quantity=3), sale_line(name="Not In Catalog")]

        expanded = await ComboExpander().expand(db, lines)

        assert expanded == lines

    async def test_combo_found_by_name_when_id_missing(self, db, persist):
        combo, product_a = await persist(
            CatalogEntryFactory(product_name="Snack Box", is_combo=True),
            CatalogEntryFactory(product_name="Chips"),
        )
        await persist(
            ComboComponentFactory(
                combo_product_id=combo.id, component_product_id=product_a.id, quantity=2
            )
        )

        expanded = await ComboExpander().expand(
            db, [sale_line(name="Snack Box", quantity=1)]
        )

        assert [(line.product_name, line.quantity) for line in expanded] == [("Chips", 2)]

    async def test_nested_combos_expand_recursively(self, db, persist):
        outer, inner, leaf = await persist(
            CatalogEntryFactory(product_name="Family Bundle", is_combo=True),
            CatalogEntryFactory(product_name="Duo Set", is_combo=True),
            CatalogEntryFactory(product_name="Mini Croffle"),
        )
        await persist(
            ComboComponentFactory(
                combo_product_id=outer.id, component_product_id=inner.id, quantity=2
            ),
            ComboComponentFactory(
                combo_product_id=inner.id, component_product_id=leaf.id, quantity=2
            ),
        )

        expanded = await ComboExpander().expand(db, [sale_line(outer, quantity=3)])

        assert len(expanded) == 1
        assert expanded[0].product_name == "Mini Croffle"
        assert expanded[0].quantity == 12
        assert expanded[0].parent_combo == "Family Bundle"

    async def test_cycle_fails_expansion(self, db, persist):
        first, second = await persist(
            CatalogEntryFactory(product_name="Loop A", is_combo=True),
            CatalogEntryFactory(product_name="Loop B", is_combo=True),
        )
        await persist(
            ComboComponentFactory(
                combo_product_id=first.id, component_product_id=second.id
            ),
            ComboComponentFactory(
                combo_product_id=second.id, component_product_id=first.id
            ),
        )

        with pytest.raises(ComboExpansionError) as exc_info:
            await ComboExpander().expand(db, [sale_line(first)])

        assert exc_info.value.combo_chain == [first.id, second.id, first.id]

    async def test_combo_without_components_fails(self, db, persist):
        combo = await persist(CatalogEntryFactory(product_name="Empty Deal", is_combo=True))

        with pytest.raises(ComboExpansionError, match="no components"):
            await ComboExpander().expand(db, [sale_line(combo)])

    async def test_missing_component_product_fails(self, db, persist):
        combo = await persist(CatalogEntryFactory(product_name="Broken Deal", is_combo=True))
        await persist(
            ComboComponentFactory(combo_product_id=combo.id, component_product_id=combo.id + 100)
        )

        with pytest.raises(ComboExpansionError, match="not found"):
            await ComboExpander().expand(db, [sale_line(combo)])

    async def test_failure_in_later_line_returns_nothing(self, db, persist):
        plain, combo = await persist(
            CatalogEntryFactory(product_name="Iced Tea"),
            CatalogEntryFactory(product_name="Empty Deal", is_combo=True),
        )

        with pytest.raises(ComboExpansionError):
            await ComboExpander().expand(db, [sale_line(plain), sale_line(combo)])
