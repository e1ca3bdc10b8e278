# backend/modules/sales_inventory/exceptions/inventory_exceptions.py

from typing import List, Dict, Optional, TYPE_CHECKING

from ..enums.deduction_enums import ErrorKind
from ..schemas.deduction_schemas import Shortfall

if TYPE_CHECKING:
    from ..schemas.deduction_schemas import DeductionOutcome


class InventoryDeductionError(Exception):
    """Base exception for all inventory deduction errors"""

    error_kind: Optional[ErrorKind] = None

    def __init__(self, message: str, error_code: str, details: Optional[Dict] = None):
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict:
        """Convert exception to dictionary for API responses"""
        return {
            "error": self.__class__.__name__,
            "message": self.message,
            "error_code": self.error_code,
            "details": self.details
        }


class NoRecipeFoundError(InventoryDeductionError):
    """Raised when no step of the recipe resolution chain yields ingredients"""

    error_kind = ErrorKind.NO_RECIPE_FOUND

    def __init__(self, product_name: str, store_id: int, product_id: Optional[int] = None):
        self.product_name = product_name
        self.store_id = store_id
        self.product_id = product_id

        message = f"No recipe found for '{product_name}' in store {store_id}."
        details = {
            "product_name": product_name,
            "product_id": product_id,
            "store_id": store_id,
        }

        super().__init__(message, "NO_RECIPE_FOUND", details)


class NoInventoryMappingError(InventoryDeductionError):
    """Raised when a sale line cannot be mapped to any inventory item"""

    error_kind = ErrorKind.NO_INVENTORY_MAPPING

    def __init__(self, product_name: str, store_id: int, reason: Optional[str] = None):
        self.product_name = product_name
        self.store_id = store_id

        message = f"No inventory mapping for '{product_name}' in store {store_id}."
        if reason:
            message = f"{message} {reason}"
        details = {
            "product_name": product_name,
            "store_id": store_id,
            "requires_manual_review": True
        }

        super().__init__(message, "NO_INVENTORY_MAPPING", details)


class InsufficientStockError(InventoryDeductionError):
    """Raised when there's not enough stock to cover a deduction"""

    error_kind = ErrorKind.INSUFFICIENT_STOCK

    def __init__(self, items: List[Shortfall], sale_ref: str):
        self.items = items
        self.sale_ref = sale_ref

        message = f"Insufficient stock for sale {sale_ref}. {len(items)} item(s) have insufficient stock."
        details = {
            "sale_ref": sale_ref,
            "insufficient_items": [
                {**item.model_dump(), "shortage": item.shortage} for item in items
            ]
        }

        super().__init__(message, "INSUFFICIENT_STOCK", details)


class ComboExpansionError(InventoryDeductionError):
    """Raised when a combo product cannot be expanded into its components"""

    error_kind = ErrorKind.COMBINATION_EXPANSION_FAILED

    def __init__(self, product_id: Optional[int], product_name: str, reason: str,
                 combo_chain: Optional[List[int]] = None):
        self.product_id = product_id
        self.product_name = product_name
        self.reason = reason
        self.combo_chain = combo_chain or []

        message = f"Cannot expand combo '{product_name}': {reason}"
        details = {
            "product_id": product_id,
            "product_name": product_name,
            "combo_chain": self.combo_chain,
        }

        super().__init__(message, "COMBINATION_EXPANSION_FAILED", details)


class AuditWriteError(InventoryDeductionError):
    """Raised when the ledger entry for a stock mutation cannot be persisted"""

    error_kind = ErrorKind.AUDIT_WRITE_FAILED

    def __init__(self, inventory_item_id: int, sale_ref: str, cause: Optional[Exception] = None):
        self.inventory_item_id = inventory_item_id
        self.sale_ref = sale_ref
        self.cause = cause

        message = (
            f"Audit record for item {inventory_item_id} (sale {sale_ref}) could not be "
            f"written; stock update rolled back."
        )
        details = {
            "inventory_item_id": inventory_item_id,
            "sale_ref": sale_ref,
            "cause": str(cause) if cause else None,
            "stock_rolled_back": True
        }

        super().__init__(message, "AUDIT_WRITE_FAILED", details)


class DeductionTimeoutError(InventoryDeductionError):
    """Raised when a sale does not finish before the caller's deadline"""

    error_kind = ErrorKind.TIMEOUT

    def __init__(self, sale_ref: str, timeout_seconds: float, state: str):
        self.sale_ref = sale_ref
        self.timeout_seconds = timeout_seconds
        self.state = state

        message = f"Deadline of {timeout_seconds}s expired for sale {sale_ref} while {state}."
        details = {
            "sale_ref": sale_ref,
            "timeout_seconds": timeout_seconds,
            "state": state,
        }

        super().__init__(message, "TIMEOUT", details)


class AuthenticationMissingError(InventoryDeductionError):
    """Raised when no actor identity accompanies a stock mutation request"""

    error_kind = ErrorKind.AUTHENTICATION_MISSING

    def __init__(self, sale_ref: Optional[str] = None):
        self.sale_ref = sale_ref

        message = "An actor identity is required to mutate stock."
        details = {"sale_ref": sale_ref}

        super().__init__(message, "AUTHENTICATION_MISSING", details)


class StaleStockError(InventoryDeductionError):
    """Raised when conditional updates keep losing to concurrent writers"""

    error_kind = ErrorKind.CONCURRENT_MODIFICATION

    def __init__(self, inventory_item_id: int, attempts: int):
        self.inventory_item_id = inventory_item_id
        self.attempts = attempts

        message = (
            f"Stock for item {inventory_item_id} changed concurrently on each of "
            f"{attempts} attempt(s)."
        )
        details = {
            "inventory_item_id": inventory_item_id,
            "attempts": attempts,
        }

        super().__init__(message, "CONCURRENT_MODIFICATION", details)


class LedgerImmutabilityError(InventoryDeductionError):
    """Raised when code attempts to edit or delete a ledger entry"""

    def __init__(self, record_id: Optional[int], operation: str):
        self.record_id = record_id
        self.operation = operation

        message = f"Deduction record {record_id} is immutable; {operation} refused."
        details = {"record_id": record_id, "operation": operation}

        super().__init__(message, "LEDGER_IMMUTABLE", details)


class SaleDeductionFailedError(InventoryDeductionError):
    """
    Raised when a sale terminates in the FAILED state.

    The sale's inventory effect is not trustworthy: callers must not mark
    the sale complete, or must reverse it if it was recorded tentatively.
    """

    def __init__(self, outcome: "DeductionOutcome"):
        self.outcome = outcome

        kinds = sorted({error.kind.value for error in outcome.errors})
        message = (
            f"Inventory deduction failed for sale {outcome.sale_ref}: "
            f"{len(outcome.errors)} error(s) ({', '.join(kinds) or 'unknown'})."
        )
        details = outcome.model_dump(mode="json")

        super().__init__(message, "SALE_DEDUCTION_FAILED", details)
