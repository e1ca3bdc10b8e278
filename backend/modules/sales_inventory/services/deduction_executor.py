# backend/modules/sales_inventory/services/deduction_executor.py

"""
Stock mutation with a compare-and-set guard.

Every mutation reads the item and its version in a fresh session, then
issues ``UPDATE ... WHERE id = :id AND version = :read_version``. A zero
rowcount means another writer got there first and the attempt is replayed
from a fresh read. Sufficiency is re-checked on every attempt, so the sum
of successful deductions against an item never exceeds its starting total.

Within one executor, mutations of the same item are additionally queued on
a per-item ``asyncio.Lock``; the version check still covers writers in
other processes.
"""

import asyncio
import logging
import math
from contextlib import asynccontextmanager
from typing import Dict, Optional, Tuple

from sqlalchemy import update
from sqlalchemy.orm import sessionmaker

from core.inventory_models import DeductionRecord, InventoryItem, MovementType
from core.mixins import utcnow
from ..config.deduction_config import StockDeductionConfig, get_stock_deduction_config
from ..exceptions.inventory_exceptions import (
    AuditWriteError,
    InsufficientStockError,
    NoInventoryMappingError,
    StaleStockError,
)
from ..schemas.deduction_schemas import DeductionSummary, Shortfall
from ..utils.database_retry import is_retryable_error, retry_on_deadlock
from ..utils.inventory_logging import InventoryLogger
from .audit_ledger import AuditLedger

logger = logging.getLogger(__name__)


def split_quantity(total: float, precision: int = 6) -> Tuple[int, float]:
    """Split a non-negative total into (whole_units, fractional_units in [0, 1))"""
    total = round(total, precision)
    whole = math.floor(total)
    fractional = round(total - whole, precision)
    if fractional >= 1:
        whole += 1
        fractional = 0.0
    return int(whole), fractional


class DeductionExecutor:

    def __init__(
        self,
        session_factory: sessionmaker,
        audit_ledger: Optional[AuditLedger] = None,
        config: Optional[StockDeductionConfig] = None,
    ):
        self.session_factory = session_factory
        self.audit_ledger = audit_ledger or AuditLedger()
        self.config = config or get_stock_deduction_config()
        self.inventory_logger = InventoryLogger()
        # item id -> (lock, number of holders and waiters)
        self._item_locks: Dict[int, Tuple[asyncio.Lock, int]] = {}

    @asynccontextmanager
    async def _lock_for(self, inventory_item_id: int):
        """Hold the item's lock; the entry is dropped once nobody holds or awaits it"""
        lock, users = self._item_locks.get(inventory_item_id, (None, 0))
        if lock is None:
            lock = asyncio.Lock()
        self._item_locks[inventory_item_id] = (lock, users + 1)
        try:
            async with lock:
                yield
        finally:
            lock, users = self._item_locks[inventory_item_id]
            if users == 1:
                del self._item_locks[inventory_item_id]
            else:
                self._item_locks[inventory_item_id] = (lock, users - 1)

    async def deduct(
        self,
        inventory_item_id: int,
        quantity: float,
        sale_ref: str,
        actor_id: int,
        store_id: int,
        product_name: Optional[str] = None,
        ingredient_name: Optional[str] = None,
        line_index: Optional[int] = None,
    ) -> DeductionSummary:
        """
        Deduct quantity from one item and append its ledger entry.

        Raises:
            InsufficientStockError: stock at mutation time is below quantity
            AuditWriteError: the ledger entry failed; the update was rolled back
            StaleStockError: every compare-and-set attempt lost to another writer
            NoInventoryMappingError: the item no longer exists
        """
        if quantity <= 0:
            raise ValueError(f"Deduction quantity must be positive, got {quantity}")

        async with self._lock_for(inventory_item_id):
            summary = await retry_on_deadlock(
                self._apply_movement,
                inventory_item_id=inventory_item_id,
                delta=quantity,
                movement_type=MovementType.SALE,
                sale_ref=sale_ref,
                actor_id=actor_id,
                store_id=store_id,
                product_name=product_name,
                ingredient_name=ingredient_name,
                max_retries=self.config.MAX_LOCK_RETRIES,
                initial_delay=self.config.LOCK_RETRY_INITIAL_DELAY,
            )

        summary.line_index = line_index
        self.inventory_logger.log_deduction_applied(
            sale_ref, inventory_item_id, quantity,
            summary.previous_total, summary.new_total
        )
        return summary

    async def restore(
        self, record: DeductionRecord, actor_id: int, reason: Optional[str] = None
    ) -> Optional[DeductionSummary]:
        """
        Give back the quantity of a sale entry and append a reversal entry.

        Returns None when the entry has already been reversed.
        """
        async with self._lock_for(record.inventory_item_id):
            return await retry_on_deadlock(
                self._apply_movement,
                inventory_item_id=record.inventory_item_id,
                delta=-record.quantity_deducted,
                movement_type=MovementType.REVERSAL,
                sale_ref=record.sale_ref,
                actor_id=actor_id,
                store_id=record.store_id,
                product_name=record.product_name,
                ingredient_name=record.ingredient_name,
                reverses_record_id=record.id,
                notes=reason,
                max_retries=self.config.MAX_LOCK_RETRIES,
                initial_delay=self.config.LOCK_RETRY_INITIAL_DELAY,
            )

    async def _apply_movement(
        self,
        inventory_item_id: int,
        delta: float,
        movement_type: MovementType,
        sale_ref: str,
        actor_id: int,
        store_id: int,
        product_name: Optional[str] = None,
        ingredient_name: Optional[str] = None,
        reverses_record_id: Optional[int] = None,
        notes: Optional[str] = None,
    ) -> Optional[DeductionSummary]:
        precision = self.config.QUANTITY_PRECISION
        delta = round(delta, precision)
        attempts = self.config.MAX_CONFLICT_RETRIES + 1

        for attempt in range(1, attempts + 1):
            async with self.session_factory() as db:
                item = await db.get(InventoryItem, inventory_item_id)
                if item is None:
                    raise NoInventoryMappingError(
                        product_name or ingredient_name or f"item {inventory_item_id}",
                        store_id,
                        f"Inventory item {inventory_item_id} does not exist.",
                    )

                if reverses_record_id is not None:
                    if await self.audit_ledger.find_reversal(db, reverses_record_id):
                        return None

                previous_total = round(item.total_quantity, precision)
                if movement_type == MovementType.SALE and previous_total < delta:
                    raise InsufficientStockError(
                        [
                            Shortfall(
                                inventory_item_id=item.id,
                                item_name=item.name,
                                required=delta,
                                available=previous_total,
                                unit=item.unit,
                            )
                        ],
                        sale_ref,
                    )

                new_total = round(previous_total - delta, precision)
                whole_units, fractional_units = split_quantity(new_total, precision)
                read_version = item.version

                result = await db.execute(
                    update(InventoryItem)
                    .where(
                        InventoryItem.id == inventory_item_id,
                        InventoryItem.version == read_version,
                    )
                    .values(
                        whole_units=whole_units,
                        fractional_units=fractional_units,
                        version=read_version + 1,
                        updated_at=utcnow(),
                    )
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount != 1:
                    await db.rollback()
                    logger.debug(
                        f"Version conflict on item {inventory_item_id} "
                        f"(attempt {attempt}/{attempts})"
                    )
                    await asyncio.sleep(0)
                    continue

                try:
                    record = await self.audit_ledger.append(
                        db,
                        inventory_item_id=inventory_item_id,
                        store_id=item.store_id,
                        sale_ref=sale_ref,
                        actor_id=actor_id,
                        movement_type=movement_type,
                        quantity_deducted=delta,
                        previous_total=previous_total,
                        new_total=new_total,
                        product_name=product_name,
                        ingredient_name=ingredient_name,
                        reverses_record_id=reverses_record_id,
                        notes=notes,
                    )
                    await db.commit()
                except Exception as e:
                    await db.rollback()
                    if is_retryable_error(e):
                        raise
                    self.inventory_logger.log_audit_write_failure(
                        sale_ref, inventory_item_id, e
                    )
                    raise AuditWriteError(inventory_item_id, sale_ref, e) from e

                return DeductionSummary(
                    record_id=record.id,
                    inventory_item_id=inventory_item_id,
                    item_name=item.name,
                    quantity_deducted=delta,
                    previous_total=previous_total,
                    new_total=new_total,
                    unit=item.unit,
                    product_name=product_name,
                    ingredient_name=ingredient_name,
                    minimum_threshold=item.minimum_threshold,
                )

        raise StaleStockError(inventory_item_id, attempts)
