# backend/modules/sales_inventory/utils/inventory_logging.py

import json
import logging
import time
import traceback
from datetime import datetime, timezone
from functools import wraps
from typing import Any, Dict, List, Optional


class InventoryLogger:
    """Structured logger for sale-to-stock deduction events"""

    def __init__(self, name: str = "stock_deduction"):
        self.logger = logging.getLogger(name)
        self.logger.setLevel(logging.INFO)

        formatter = logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s - %(extra_data)s'
        )

        if not self.logger.handlers:
            handler = logging.StreamHandler()
            handler.setFormatter(formatter)
            self.logger.addHandler(handler)

    def _format_extra_data(self, **kwargs) -> Dict:
        return {
            'timestamp': datetime.now(timezone.utc).isoformat(),
            'extra_data': json.dumps(kwargs, default=str)
        }

    def log_sale_start(self, sale_ref: str, actor_id: Optional[int], store_id: int,
                       line_count: int):
        self.logger.info(
            f"Starting stock deduction for sale {sale_ref}",
            extra=self._format_extra_data(
                event="sale_start",
                sale_ref=sale_ref,
                actor_id=actor_id,
                store_id=store_id,
                line_count=line_count
            )
        )

    def log_state_transition(self, sale_ref: str, from_state: str, to_state: str):
        self.logger.debug(
            f"Sale {sale_ref}: {from_state} -> {to_state}",
            extra=self._format_extra_data(
                event="state_transition",
                sale_ref=sale_ref,
                from_state=from_state,
                to_state=to_state
            )
        )

    def log_resolution_failure(self, sale_ref: str, line_index: int,
                               product_name: str, error: Exception):
        """Log a sale line that could not be resolved to ingredients"""
        self.logger.error(
            f"Could not resolve '{product_name}' for sale {sale_ref}: {error}",
            extra=self._format_extra_data(
                event="resolution_failure",
                sale_ref=sale_ref,
                line_index=line_index,
                product_name=product_name,
                error_class=error.__class__.__name__,
                requires_manual_review=True
            )
        )

    def log_shortfalls(self, sale_ref: str, shortfalls: List[Dict], blocking: bool):
        self.logger.warning(
            f"Insufficient stock for sale {sale_ref}",
            extra=self._format_extra_data(
                event="shortfall",
                sale_ref=sale_ref,
                blocking=blocking,
                shortfall_count=len(shortfalls),
                shortfalls=shortfalls
            )
        )

    def log_deduction_applied(self, sale_ref: str, inventory_item_id: int,
                              quantity: float, previous_total: float, new_total: float):
        self.logger.info(
            f"Deducted {quantity} from item {inventory_item_id} for sale {sale_ref}",
            extra=self._format_extra_data(
                event="deduction_applied",
                sale_ref=sale_ref,
                inventory_item_id=inventory_item_id,
                quantity=quantity,
                previous_total=previous_total,
                new_total=new_total
            )
        )

    def log_deduction_failed(self, sale_ref: str, inventory_item_id: Optional[int],
                             error: Exception):
        self.logger.error(
            f"Deduction failed for item {inventory_item_id} (sale {sale_ref}): {error}",
            extra=self._format_extra_data(
                event="deduction_failed",
                sale_ref=sale_ref,
                inventory_item_id=inventory_item_id,
                error_message=str(error),
                error_class=error.__class__.__name__
            )
        )

    def log_audit_write_failure(self, sale_ref: str, inventory_item_id: int,
                                error: Exception):
        """Log a ledger append failure; the stock update it guarded was rolled back"""
        self.logger.error(
            f"Audit write failed for item {inventory_item_id} (sale {sale_ref})",
            extra=self._format_extra_data(
                event="audit_write_failure",
                sale_ref=sale_ref,
                inventory_item_id=inventory_item_id,
                error_message=str(error),
                error_class=error.__class__.__name__,
                traceback=traceback.format_exc(),
                requires_manual_review=True
            )
        )

    def log_low_stock(self, inventory_item_id: int, item_name: str,
                      current_quantity: float, threshold: float):
        self.logger.warning(
            f"Low stock alert: {item_name} (ID: {inventory_item_id})",
            extra=self._format_extra_data(
                event="low_stock_alert",
                inventory_item_id=inventory_item_id,
                item_name=item_name,
                current_quantity=current_quantity,
                threshold=threshold
            )
        )

    def log_sale_completed(self, sale_ref: str, deducted_count: int,
                           warning_count: int, processing_time_ms: float):
        self.logger.info(
            f"Stock deduction completed for sale {sale_ref}",
            extra=self._format_extra_data(
                event="sale_completed",
                sale_ref=sale_ref,
                deducted_count=deducted_count,
                warning_count=warning_count,
                processing_time_ms=processing_time_ms
            )
        )

    def log_sale_failed(self, sale_ref: str, errors: List[Dict],
                        deducted_count: int, processing_time_ms: float):
        self.logger.error(
            f"Stock deduction failed for sale {sale_ref}",
            extra=self._format_extra_data(
                event="sale_failed",
                sale_ref=sale_ref,
                error_count=len(errors),
                errors=errors,
                deducted_count=deducted_count,
                processing_time_ms=processing_time_ms,
                requires_manual_review=deducted_count > 0
            )
        )

    def log_reversal(self, sale_ref: str, actor_id: int, reason: str,
                     reversed_count: int, already_reversed: int):
        self.logger.info(
            f"Reversed {reversed_count} deduction(s) for sale {sale_ref}",
            extra=self._format_extra_data(
                event="reversal",
                sale_ref=sale_ref,
                actor_id=actor_id,
                reason=reason,
                reversed_count=reversed_count,
                already_reversed=already_reversed
            )
        )


def log_inventory_operation(operation_type: str):
    """Decorator logging start, completion and errors of an async operation"""
    def decorator(func):
        @wraps(func)
        async def wrapper(*args, **kwargs):
            logger = InventoryLogger()
            started = time.perf_counter()

            sale_ref = kwargs.get('sale_ref', args[1] if len(args) > 1 else 'unknown')
            actor_id = kwargs.get('actor_id', 'unknown')

            logger.logger.info(
                f"Starting {operation_type} operation",
                extra=logger._format_extra_data(
                    event=f"{operation_type}_start",
                    sale_ref=sale_ref,
                    actor_id=actor_id,
                    function=func.__name__
                )
            )

            try:
                result = await func(*args, **kwargs)
            except Exception as e:
                processing_time_ms = (time.perf_counter() - started) * 1000
                logger.logger.error(
                    f"Error in {operation_type} operation: {str(e)}",
                    extra=logger._format_extra_data(
                        event=f"{operation_type}_error",
                        sale_ref=sale_ref,
                        actor_id=actor_id,
                        processing_time_ms=processing_time_ms,
                        function=func.__name__,
                        error=str(e),
                        error_type=e.__class__.__name__
                    )
                )
                raise

            processing_time_ms = (time.perf_counter() - started) * 1000
            logger.logger.info(
                f"Completed {operation_type} operation",
                extra=logger._format_extra_data(
                    event=f"{operation_type}_complete",
                    sale_ref=sale_ref,
                    actor_id=actor_id,
                    processing_time_ms=processing_time_ms,
                    function=func.__name__
                )
            )
            return result

        return wrapper
    return decorator
