# backend/modules/sales_inventory/config/__init__.py

from .deduction_config import StockDeductionConfig, get_stock_deduction_config, reset_config

__all__ = ["StockDeductionConfig", "get_stock_deduction_config", "reset_config"]
