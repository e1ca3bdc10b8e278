# backend/modules/sales_inventory/services/audit_ledger.py

"""
Append-only ledger of stock mutations.

Entries are written inside the caller's transaction so a stock update and
its ledger row commit or roll back together. Existing entries are never
updated or deleted; ORM listeners on DeductionRecord refuse both.
"""

from datetime import datetime
from typing import List, Optional, Set

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from core.inventory_models import DeductionRecord, MovementType


class AuditLedger:

    async def append(
        self,
        db: AsyncSession,
        *,
        inventory_item_id: int,
        store_id: int,
        sale_ref: str,
        actor_id: int,
        movement_type: MovementType,
        quantity_deducted: float,
        previous_total: float,
        new_total: float,
        product_name: Optional[str] = None,
        ingredient_name: Optional[str] = None,
        reverses_record_id: Optional[int] = None,
        notes: Optional[str] = None,
    ) -> DeductionRecord:
        """Stage one entry and flush it so it has an id; the caller commits"""
        record = DeductionRecord(
            inventory_item_id=inventory_item_id,
            store_id=store_id,
            sale_ref=sale_ref,
            actor_id=actor_id,
            movement_type=movement_type,
            quantity_deducted=quantity_deducted,
            previous_total=previous_total,
            new_total=new_total,
            product_name=product_name,
            ingredient_name=ingredient_name,
            reverses_record_id=reverses_record_id,
            notes=notes,
        )
        db.add(record)
        await db.flush()
        return record

    async def get_records_for_sale(
        self,
        db: AsyncSession,
        sale_ref: str,
        movement_type: Optional[MovementType] = None,
    ) -> List[DeductionRecord]:
        query = select(DeductionRecord).where(DeductionRecord.sale_ref == sale_ref)
        if movement_type is not None:
            query = query.where(DeductionRecord.movement_type == movement_type)
        result = await db.execute(
            query.order_by(DeductionRecord.created_at, DeductionRecord.id)
        )
        return list(result.scalars().all())

    async def get_records_for_store(
        self,
        db: AsyncSession,
        store_id: int,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> List[DeductionRecord]:
        """Entries for a store, optionally limited to [start, end)"""
        query = select(DeductionRecord).where(DeductionRecord.store_id == store_id)
        if start is not None:
            query = query.where(DeductionRecord.created_at >= start)
        if end is not None:
            query = query.where(DeductionRecord.created_at < end)
        result = await db.execute(
            query.order_by(DeductionRecord.created_at, DeductionRecord.id)
        )
        return list(result.scalars().all())

    async def get_records_for_item(
        self, db: AsyncSession, inventory_item_id: int
    ) -> List[DeductionRecord]:
        result = await db.execute(
            select(DeductionRecord)
            .where(DeductionRecord.inventory_item_id == inventory_item_id)
            .order_by(DeductionRecord.created_at, DeductionRecord.id)
        )
        return list(result.scalars().all())

    async def get_reversed_record_ids(self, db: AsyncSession, sale_ref: str) -> Set[int]:
        result = await db.execute(
            select(DeductionRecord.reverses_record_id).where(
                DeductionRecord.sale_ref == sale_ref,
                DeductionRecord.movement_type == MovementType.REVERSAL,
                DeductionRecord.reverses_record_id.is_not(None),
            )
        )
        return set(result.scalars().all())

    async def find_reversal(
        self, db: AsyncSession, record_id: int
    ) -> Optional[DeductionRecord]:
        result = await db.execute(
            select(DeductionRecord).where(
                DeductionRecord.reverses_record_id == record_id,
                DeductionRecord.movement_type == MovementType.REVERSAL,
            )
        )
        return result.scalars().first()
