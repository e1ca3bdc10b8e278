# backend/modules/sales_inventory/tests/test_audit_ledger.py

from datetime import datetime, timedelta

import pytest

from core.inventory_models import DeductionRecord, MovementType
from modules.sales_inventory.exceptions.inventory_exceptions import LedgerImmutabilityError
from modules.sales_inventory.services.audit_ledger import AuditLedger
from modules.sales_inventory.tests.factories import STORE_ID, InventoryItemFactory

NOON = datetime(2026, 3, 1, 12, 0, 0)


def ledger_entry(item, sale_ref="SALE-1", created_at=None, **overrides):
    values = dict(
        inventory_item_id=item.id,
        store_id=item.store_id,
        sale_ref=sale_ref,
        actor_id=7,
        movement_type=MovementType.SALE,
        quantity_deducted=1.0,
        previous_total=10.0,
        new_total=9.0,
    )
    values.update(overrides)
    if created_at is not None:
        values["created_at"] = created_at
    return DeductionRecord(**values)


@pytest.fixture
def ledger():
    return AuditLedger()


@pytest.mark.asyncio
class TestAppend:

    async def test_append_is_visible_only_after_commit(self, db, persist, session_factory, ledger):
        flour = await persist(InventoryItemFactory(name="Flour"))

        record = await ledger.append(
            db,
            inventory_item_id=flour.id,
            store_id=STORE_ID,
            sale_ref="SALE-9",
            actor_id=3,
            movement_type=MovementType.SALE,
            quantity_deducted=2.0,
            previous_total=100.0,
            new_total=98.0,
            product_name="Mini Croffle",
            ingredient_name="Flour",
        )
        assert record.id is not None
        assert record.created_at is not None

        await db.rollback()

        async with session_factory() as other:
            assert await ledger.get_records_for_sale(other, "SALE-9") == []


@pytest.mark.asyncio
class TestImmutability:

    async def test_update_is_refused(self, db, persist):
        flour = await persist(InventoryItemFactory(name="Flour"))
        entry = await persist(ledger_entry(flour))

        record = await db.get(DeductionRecord, entry.id)
        record.quantity_deducted = 0.5

        with pytest.raises(LedgerImmutabilityError) as exc_info:
            await db.flush()

        assert exc_info.value.details["operation"] == "update"

    async def test_delete_is_refused(self, db, persist):
        flour = await persist(InventoryItemFactory(name="Flour"))
        entry = await persist(ledger_entry(flour))

        record = await db.get(DeductionRecord, entry.id)
        await db.delete(record)

        with pytest.raises(LedgerImmutabilityError) as exc_info:
            await db.flush()

        assert exc_info.value.details["operation"] == "delete"


@pytest.mark.asyncio
class TestQueries:

    async def test_records_for_sale_in_time_order(self, db, persist, ledger):
        flour, sugar = await persist(
            InventoryItemFactory(name="Flour"), InventoryItemFactory(name="Sugar")
        )
        late, early, _ = await persist(
            ledger_entry(sugar, created_at=NOON + timedelta(seconds=5)),
            ledger_entry(flour, created_at=NOON),
            ledger_entry(flour, sale_ref="SALE-2", created_at=NOON),
        )

        records = await ledger.get_records_for_sale(db, "SALE-1")

        assert [r.id for r in records] == [early.id, late.id]

    async def test_filter_by_movement_type(self, db, persist, ledger):
        flour = await persist(InventoryItemFactory(name="Flour"))
        sale = await persist(ledger_entry(flour, created_at=NOON))
        reversal = await persist(
            ledger_entry(
                flour,
                created_at=NOON + timedelta(minutes=1),
                movement_type=MovementType.REVERSAL,
                quantity_deducted=-1.0,
                previous_total=9.0,
                new_total=10.0,
                reverses_record_id=sale.id,
            )
        )

        reversals = await ledger.get_records_for_sale(db, "SALE-1", MovementType.REVERSAL)

        assert [r.id for r in reversals] == [reversal.id]
        assert await ledger.get_reversed_record_ids(db, "SALE-1") == {sale.id}
        assert (await ledger.find_reversal(db, sale.id)).id == reversal.id
        assert await ledger.find_reversal(db, reversal.id) is None

    async def test_store_window_is_half_open(self, db, persist, ledger):
        flour = await persist(InventoryItemFactory(name="Flour"))
        before, at_start, inside, at_end = await persist(
            ledger_entry(flour, created_at=NOON - timedelta(seconds=1)),
            ledger_entry(flour, created_at=NOON),
            ledger_entry(flour, created_at=NOON + timedelta(minutes=30)),
            ledger_entry(flour, created_at=NOON + timedelta(hours=1)),
        )

        records = await ledger.get_records_for_store(
            db, STORE_ID, NOON, NOON + timedelta(hours=1)
        )

        assert [r.id for r in records] == [at_start.id, inside.id]
        everything = await ledger.get_records_for_store(db, STORE_ID)
        assert len(everything) == 4

    async def test_other_store_is_excluded(self, db, persist, ledger):
        local, remote = await persist(
            InventoryItemFactory(name="Flour"),
            InventoryItemFactory(name="Flour", store_id=STORE_ID + 1),
        )
        await persist(ledger_entry(local), ledger_entry(remote))

        records = await ledger.get_records_for_store(db, STORE_ID)

        assert [r.store_id for r in records] == [STORE_ID]

    async def test_records_for_item(self, db, persist, ledger):
        flour, sugar = await persist(
            InventoryItemFactory(name="Flour"), InventoryItemFactory(name="Sugar")
        )
        first, _, second = await persist(
            ledger_entry(flour, created_at=NOON),
            ledger_entry(sugar, created_at=NOON),
            ledger_entry(flour, sale_ref="SALE-2", created_at=NOON + timedelta(seconds=1)),
        )

        records = await ledger.get_records_for_item(db, flour.id)

        assert [r.id for r in records] == [first.id, second.id]
