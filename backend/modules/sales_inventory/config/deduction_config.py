# backend/modules/sales_inventory/config/deduction_config.py

"""
Configuration for sale-to-stock deduction behavior.
"""

from typing import Optional
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class StockDeductionConfig(BaseSettings):
    """
    Settings controlling how a completed sale is turned into stock mutations.
    """

    model_config = SettingsConfigDict(
        env_prefix="STOCK_DEDUCTION_", case_sensitive=False
    )

    # Validation policy
    # False = shortfalls found during validation are warnings; the executor's
    #         own re-check at mutation time decides each deduction
    # True  = any shortfall fails the sale before anything is mutated
    BLOCK_ON_SHORTFALL: bool = False

    # Skip the deduction phase when any line could not be resolved
    ABORT_ON_RESOLUTION_ERRORS: bool = True

    # Conditional update retries when a concurrent writer changed the row
    MAX_CONFLICT_RETRIES: int = Field(default=10, ge=0)

    # Retries on database lock / deadlock / serialization errors
    MAX_LOCK_RETRIES: int = Field(default=3, ge=0)
    LOCK_RETRY_INITIAL_DELAY: float = 0.05

    # Deadline applied when the caller supplies none (None = no deadline)
    DEFAULT_TIMEOUT_SECONDS: Optional[float] = None

    # Add a warning when stock falls to or below an item's minimum threshold
    ENABLE_LOW_STOCK_WARNINGS: bool = True

    # Decimal places kept when normalising stock totals
    QUANTITY_PRECISION: int = Field(default=6, ge=0, le=12)


_config: Optional[StockDeductionConfig] = None


def get_stock_deduction_config() -> StockDeductionConfig:
    """Get stock deduction settings singleton"""
    global _config
    if _config is None:
        _config = StockDeductionConfig()
    return _config


def reset_config():
    """Reset settings (mainly for testing)"""
    global _config
    _config = None
