from datetime import datetime, timezone
from typing import Dict, List, Literal, Optional
import uuid

from pydantic import BaseModel, Field


IssueKind = Literal["sold_out", "insufficient_stock"]

SingleItemReason = Literal[
    "reduced",
    "not_tracked",
    "sold_out",
    "no_inventory_record",
    "invalid_template_id",
    "reduction_error",
]


class InventoryIssue(BaseModel):
    template_id: uuid.UUID
    item_name: str
    issue: IssueKind
    required: int
    available: int


class InventoryValidationResult(BaseModel):
    success: bool
    # template id -> required quantity, in first-seen order
    inventory_map: Dict[uuid.UUID, int] = Field(default_factory=dict)
    issues: List[InventoryIssue] = Field(default_factory=list)
    # References skipped while building the demand map (fail-open)
    warnings: List[str] = Field(default_factory=list)


class ReductionErrorItem(BaseModel):
    template_id: str
    item_name: Optional[str] = None
    quantity: int
    error: str
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class InventoryReductionResult(BaseModel):
    success: bool = True
    processed: int = 0
    skipped: int = 0
    errors: List[ReductionErrorItem] = Field(default_factory=list)


ConsumptionOutcome = Literal["not_eligible", "already_consumed", "unavailable", "reduced"]


class OrderConsumption(BaseModel):
    """Outcome of consuming stock for one paid delivery order."""
    outcome: ConsumptionOutcome
    validation: Optional[InventoryValidationResult] = None
    reduction: Optional[InventoryReductionResult] = None


class RestorationResult(BaseModel):
    success: bool
    message: str
    error: Optional[str] = None
    restored: int = 0


class SingleItemReduction(BaseModel):
    success: bool
    reason: SingleItemReason
    item_name: Optional[str] = None
    reduced_quantity: Optional[int] = None
    error: Optional[str] = None


class SingleItemCheck(BaseModel):
    available: bool
    reason: str
    required: Optional[int] = None
    available_stock: Optional[int] = None


class OrderStockCheckResponse(BaseModel):
    """What order-facing callers see: no raw error kinds, only item names."""
    available: bool
    unavailable_items: List[str] = Field(default_factory=list)


class OrderConsumptionResponse(BaseModel):
    processed: int = 0
    skipped: int = 0
    failed_items: List[str] = Field(default_factory=list)
