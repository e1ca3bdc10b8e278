# backend/modules/sales_inventory/schemas/deduction_schemas.py

"""
Schemas for the sale-to-stock deduction engine.

Internal value objects (parsed names, resolved requirements, outcomes) and
the request/response bodies of the stock deduction endpoints.
"""

from typing import List, Dict, Any, Optional
from datetime import datetime
from pydantic import BaseModel, ConfigDict, Field, field_validator

from core.inventory_models import MovementType

from ..enums.deduction_enums import (
    AddonCategory,
    DeductionState,
    ErrorKind,
    RecipeSource,
)


# Sale input
class SaleItem(BaseModel):
    """One line of a sale as submitted by the point of sale"""

    product_id: Optional[int] = Field(None, gt=0)
    product_name: str = Field(..., min_length=1, max_length=200)
    quantity: int = Field(..., gt=0)

    @field_validator("product_name")
    @classmethod
    def validate_product_name(cls, v):
        if not v.strip():
            raise ValueError("Product name must not be blank")
        return v


class SaleLine(BaseModel):
    """Sale line bound to its store; combo components carry the combo's name"""

    model_config = ConfigDict(frozen=True)

    product_id: Optional[int] = None
    product_name: str
    quantity: int = Field(..., gt=0)
    store_id: int
    parent_combo: Optional[str] = None


# Resolution
class ParsedProduct(BaseModel):
    """Base product plus addon descriptors extracted from a product name"""

    base_name: str
    addons: List[str] = Field(default_factory=list)
    original_name: str
    is_mix_and_match: bool = False


class ResolvedAddon(BaseModel):
    descriptor: str
    name: str
    category: AddonCategory
    quantity: float = 1.0
    unit: str = "pieces"


class IngredientRequirement(BaseModel):
    """Per-unit ingredient need of one sale line"""

    ingredient_name: str
    quantity_per_unit: float = Field(..., gt=0)
    unit: str = "pieces"
    inventory_item_id: Optional[int] = None
    source: RecipeSource
    is_addon: bool = False

    @property
    def is_mapped(self) -> bool:
        return self.inventory_item_id is not None


class LineResolution(BaseModel):
    """Result of resolving one expanded sale line"""

    line_index: int
    line: SaleLine
    parsed: Optional[ParsedProduct] = None
    source: Optional[RecipeSource] = None
    requirements: List[IngredientRequirement] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)

    @property
    def mapped_requirements(self) -> List[IngredientRequirement]:
        return [req for req in self.requirements if req.is_mapped]


# Validation
class Shortfall(BaseModel):
    """Stock shortfall for a single inventory item"""

    inventory_item_id: int
    item_name: str
    required: float
    available: float
    unit: str = "pieces"

    @property
    def shortage(self) -> float:
        return self.required - self.available


class AvailabilityReport(BaseModel):
    can_proceed: bool
    shortfalls: List[Shortfall] = Field(default_factory=list)
    required_totals: Dict[int, float] = Field(default_factory=dict)


# Outcomes
class DeductionSummary(BaseModel):
    """One applied stock mutation"""

    record_id: int
    inventory_item_id: int
    item_name: str
    quantity_deducted: float
    previous_total: float
    new_total: float
    unit: str = "pieces"
    product_name: Optional[str] = None
    ingredient_name: Optional[str] = None
    line_index: Optional[int] = None
    minimum_threshold: Optional[float] = None

    @property
    def is_low_stock(self) -> bool:
        if self.minimum_threshold is None:
            return False
        return self.new_total <= self.minimum_threshold


class DeductionError(BaseModel):
    """Structured error collected while processing a sale"""

    kind: ErrorKind
    message: str
    product_name: Optional[str] = None
    line_index: Optional[int] = None
    inventory_item_id: Optional[int] = None
    details: Dict[str, Any] = Field(default_factory=dict)


class DeductionOutcome(BaseModel):
    """Terminal result of running one sale through the pipeline"""

    sale_ref: str
    store_id: int
    actor_id: int
    state: DeductionState
    success: bool
    succeeded_items: List[DeductionSummary] = Field(default_factory=list)
    errors: List[DeductionError] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
    shortfalls: List[Shortfall] = Field(default_factory=list)
    processing_time_ms: Optional[float] = None


class SalePreview(BaseModel):
    """Dry run of a sale: resolution and availability, no mutation"""

    sale_ref: str
    store_id: int
    state: DeductionState
    can_proceed: bool
    lines: List[LineResolution] = Field(default_factory=list)
    availability: Optional[AvailabilityReport] = None
    errors: List[DeductionError] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)


class ReversalOutcome(BaseModel):
    sale_ref: str
    actor_id: int
    success: bool
    reversed_items: List[DeductionSummary] = Field(default_factory=list)
    already_reversed: int = 0
    errors: List[DeductionError] = Field(default_factory=list)


# Request schemas
class SaleDeductionRequest(BaseModel):
    """Request to deduct stock for a completed sale"""

    store_id: int = Field(..., gt=0)
    items: List[SaleItem] = Field(..., min_length=1)
    timeout_seconds: Optional[float] = Field(
        None, gt=0, description="Deadline for the whole pipeline"
    )


class SalePreviewRequest(BaseModel):
    store_id: int = Field(..., gt=0)
    items: List[SaleItem] = Field(..., min_length=1)


class ReversalRequest(BaseModel):
    """Request to compensate a sale's deductions"""

    reason: str = Field(
        ..., min_length=1, max_length=500, description="Reason for the reversal"
    )


# Response schemas
class LedgerEntryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    inventory_item_id: int
    store_id: int
    sale_ref: str
    actor_id: int
    movement_type: MovementType
    quantity_deducted: float
    previous_total: float
    new_total: float
    product_name: Optional[str] = None
    ingredient_name: Optional[str] = None
    reverses_record_id: Optional[int] = None
    notes: Optional[str] = None
    created_at: datetime
