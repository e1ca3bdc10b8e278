# backend/core/inventory_models.py

from sqlalchemy import (Column, Integer, String, ForeignKey, Float, Text,
                        Boolean, Index, Enum as SQLEnum, event)
from core.database import Base
from core.mixins import TimestampMixin, CreatedAtMixin
from enum import Enum


class MovementType(str, Enum):
    """Stock movement types recorded in the deduction ledger"""
    SALE = "sale"
    REVERSAL = "reversal"


class InventoryItem(Base, TimestampMixin):
    """Store-level raw material stock with whole/fractional unit tracking"""
    __tablename__ = "inventory_items"

    id = Column(Integer, primary_key=True, index=True)
    store_id = Column(Integer, nullable=False, index=True)
    name = Column(String(200), nullable=False, index=True)
    unit = Column(String(20), nullable=False, default="pieces")

    # Quantity tracking: total on hand = whole_units + fractional_units
    whole_units = Column(Integer, nullable=False, default=0)
    fractional_units = Column(Float, nullable=False, default=0.0)
    minimum_threshold = Column(Float, nullable=True)

    # Optimistic concurrency token, bumped on every stock mutation
    version = Column(Integer, nullable=False, default=1)

    is_active = Column(Boolean, nullable=False, default=True)

    __table_args__ = (
        Index("ix_inventory_items_store_name", "store_id", "name"),
    )

    def __repr__(self):
        return (
            f"<InventoryItem(id={self.id}, name='{self.name}', "
            f"whole={self.whole_units}, fractional={self.fractional_units})>"
        )

    @property
    def total_quantity(self) -> float:
        return (self.whole_units or 0) + (self.fractional_units or 0.0)

    @property
    def is_low_stock(self) -> bool:
        if self.minimum_threshold is None:
            return False
        return self.total_quantity <= self.minimum_threshold


class DeductionRecord(Base, CreatedAtMixin):
    """Append-only audit ledger entry, one per stock mutation"""
    __tablename__ = "deduction_records"

    id = Column(Integer, primary_key=True, index=True)
    inventory_item_id = Column(
        Integer, ForeignKey("inventory_items.id"), nullable=False, index=True
    )
    store_id = Column(Integer, nullable=False, index=True)
    sale_ref = Column(String(100), nullable=False, index=True)
    actor_id = Column(Integer, nullable=False)
    movement_type = Column(SQLEnum(MovementType), nullable=False, default=MovementType.SALE)

    # Positive for a sale, negative for a reversal
    quantity_deducted = Column(Float, nullable=False)
    previous_total = Column(Float, nullable=False)
    new_total = Column(Float, nullable=False)

    product_name = Column(String(200), nullable=True)
    ingredient_name = Column(String(200), nullable=True)
    reverses_record_id = Column(Integer, ForeignKey("deduction_records.id"), nullable=True)
    notes = Column(Text, nullable=True)

    def __repr__(self):
        return (
            f"<DeductionRecord(id={self.id}, item={self.inventory_item_id}, "
            f"sale='{self.sale_ref}', quantity={self.quantity_deducted})>"
        )


@event.listens_for(DeductionRecord, "before_update")
def _block_ledger_update(mapper, connection, target):
    from modules.sales_inventory.exceptions.inventory_exceptions import (
        LedgerImmutabilityError,
    )
    raise LedgerImmutabilityError(record_id=target.id, operation="update")


@event.listens_for(DeductionRecord, "before_delete")
def _block_ledger_delete(mapper, connection, target):
    from modules.sales_inventory.exceptions.inventory_exceptions import (
        LedgerImmutabilityError,
    )
    raise LedgerImmutabilityError(record_id=target.id, operation="delete")
