import uuid
from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from stock_ledger.models.inventory import ChangeType, InventoryType, StockType


class InventoryKey(BaseModel):
    """Identity of an inventory record: one per (store, item, type)."""
    model_config = ConfigDict(frozen=True)

    store_id: uuid.UUID
    item_ref: uuid.UUID
    inventory_type: InventoryType = InventoryType.DISH_TEMPLATE


class InventoryRecordOut(BaseModel):
    """Snapshot of an inventory record as read from storage."""
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    store_id: uuid.UUID
    inventory_type: InventoryType
    item_ref: uuid.UUID
    item_name: str
    total_stock: int = 0
    available_stock: int = 0
    min_stock_alert: int = 0
    target_stock_level: Optional[int] = None
    is_inventory_tracked: bool = False
    enable_available_stock: bool = False
    is_sold_out: bool = False
    auto_replenish: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def key(self) -> InventoryKey:
        return InventoryKey(store_id=self.store_id, item_ref=self.item_ref, inventory_type=self.inventory_type)

    @property
    def needs_restock(self) -> bool:
        return self.is_inventory_tracked and self.total_stock <= self.min_stock_alert

    @property
    def effective_stock(self) -> int:
        """The counter that gates sales."""
        return self.available_stock if self.enable_available_stock else self.total_stock

    def stock_of(self, stock_type: StockType) -> int:
        return self.total_stock if stock_type == StockType.TOTAL else self.available_stock


class StockLedgerEntryOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    store_id: uuid.UUID
    inventory_type: InventoryType
    item_ref: uuid.UUID
    item_name: str
    stock_type: StockType
    change_type: ChangeType
    previous_stock: int
    new_stock: int
    change_amount: int
    reason: str = ""
    order_id: Optional[uuid.UUID] = None
    admin_id: Optional[str] = None
    created_at: datetime


# ----------- Mutation instructions (service -> repository) -----------

class StockChange(BaseModel):
    """One counter change. Exactly one of `delta` / `value` is set."""
    stock_type: StockType
    delta: Optional[int] = None
    value: Optional[int] = None
    # Overrides StockMutation.change_type for this row
    change_type: Optional[ChangeType] = None


class StockMutation(BaseModel):
    """
    Everything a repository applies in a single transaction: counter changes,
    setting updates and the audit data copied onto each ledger row.
    """
    changes: List[StockChange] = Field(default_factory=list)
    settings: dict = Field(default_factory=dict)
    change_type: ChangeType
    reason: str = ""
    order_id: Optional[uuid.UUID] = None
    admin_id: Optional[str] = None
    # Reject when the resulting available stock exceeds total stock
    enforce_available_cap: bool = False


class MutationOutcome(BaseModel):
    record: InventoryRecordOut
    entries: List[StockLedgerEntryOut] = Field(default_factory=list)
    applied: bool = True


class NewInventoryRecord(BaseModel):
    store_id: uuid.UUID
    inventory_type: InventoryType = InventoryType.DISH_TEMPLATE
    item_ref: uuid.UUID
    item_name: str
    total_stock: int = Field(0, ge=0)
    available_stock: int = Field(0, ge=0)
    min_stock_alert: int = Field(0, ge=0)
    target_stock_level: Optional[int] = Field(None, ge=0)
    is_inventory_tracked: bool = False
    enable_available_stock: bool = False
    is_sold_out: bool = False
    auto_replenish: bool = False


class LedgerQuery(BaseModel):
    store_id: uuid.UUID
    item_ref: Optional[uuid.UUID] = None
    inventory_type: Optional[InventoryType] = None
    stock_type: Optional[StockType] = None
    change_type: Optional[ChangeType] = None
    order_id: Optional[uuid.UUID] = None
    created_from: Optional[datetime] = None
    created_to: Optional[datetime] = None


# ----------- API request bodies -----------

class InventoryCreateRequest(BaseModel):
    inventory_type: InventoryType = InventoryType.DISH_TEMPLATE
    item_ref: uuid.UUID = Field(..., description="Dish template (or voucher template) this record tracks.")
    item_name: Optional[str] = Field(None, description="Defaults to the dish template name.")
    initial_total_stock: int = Field(0, ge=0)
    initial_available_stock: int = Field(0, ge=0)
    min_stock_alert: int = Field(0, ge=0)
    target_stock_level: Optional[int] = Field(None, ge=0)
    is_inventory_tracked: bool = True
    enable_available_stock: bool = False
    is_sold_out: bool = False
    auto_replenish: bool = False


class InventoryUpdateRequest(BaseModel):
    """Absolute update of counters and settings. Unset fields are left alone."""
    stock_type: Literal["both", "total_stock", "available_stock"] = "both"
    stock: Optional[int] = Field(None, ge=0)
    available_stock: Optional[int] = Field(None, ge=0)
    reason: Optional[str] = None
    min_stock_alert: Optional[int] = Field(None, ge=0)
    target_stock_level: Optional[int] = Field(None, ge=0)
    is_inventory_tracked: Optional[bool] = None
    enable_available_stock: Optional[bool] = None
    is_sold_out: Optional[bool] = None
    auto_replenish: Optional[bool] = None


class StockQuantityRequest(BaseModel):
    quantity: int = Field(..., description="Units to move; must be positive.")
    reason: Optional[str] = None
    stock_type: StockType = StockType.TOTAL
    order_id: Optional[uuid.UUID] = None


class SetAvailableStockRequest(BaseModel):
    available_stock: int = Field(..., ge=0)
    reason: Optional[str] = None


class SoldOutRequest(BaseModel):
    is_sold_out: bool


class BulkInventoryItem(InventoryUpdateRequest):
    inventory_id: Optional[uuid.UUID] = None
    # Used to create the record when no inventory_id matches
    item_ref: Optional[uuid.UUID] = None
    item_name: Optional[str] = None
    inventory_type: InventoryType = InventoryType.DISH_TEMPLATE


class BulkUpdateRequest(BaseModel):
    items: List[BulkInventoryItem]


# ----------- Service results -----------

class InitializeResult(BaseModel):
    total: int = 0
    created: int = 0
    updated: int = 0
    skipped: int = 0
    errors: List[dict] = Field(default_factory=list)


class BulkItemResult(BaseModel):
    index: int
    inventory_id: Optional[uuid.UUID] = None
    success: bool
    action: Optional[Literal["updated", "created"]] = None
    error: Optional[str] = None


class BulkUpdateResult(BaseModel):
    updated: int = 0
    created: int = 0
    failed: int = 0
    results: List[BulkItemResult] = Field(default_factory=list)


class RestoreSummary(BaseModel):
    order_id: uuid.UUID
    restored: int = 0
    skipped: int = 0
    already_restored: bool = False
