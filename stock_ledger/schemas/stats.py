from datetime import datetime
from typing import Dict, List, Optional
import uuid

from pydantic import BaseModel, Field

from stock_ledger.models.inventory import InventoryType
from stock_ledger.schemas.inventory import StockLedgerEntryOut


class Pagination(BaseModel):
    total: int
    total_pages: int
    current_page: int
    limit: int
    has_next_page: bool
    has_prev_page: bool


class LedgerPage(BaseModel):
    logs: List[StockLedgerEntryOut]
    pagination: Pagination


class WindowStats(BaseModel):
    consumed: int = 0
    added: int = 0
    damaged: int = 0
    net_change: int = 0


class ItemInventoryStats(BaseModel):
    current_total_stock: int = 0
    current_available_stock: int = 0
    min_stock_alert: int = 0
    target_stock_level: Optional[int] = None
    is_tracked: bool = False
    enable_available_stock: bool = False
    is_sold_out: bool = False
    consumption_rate: float = 0.0
    # None: nothing consumed in the lookback window, stock lasts indefinitely
    estimated_days_left: Optional[int] = None
    last_update: Optional[datetime] = None
    needs_restock: bool = False
    last_7_days: WindowStats = Field(default_factory=WindowStats)
    last_30_days: WindowStats = Field(default_factory=WindowStats)


class HealthItem(BaseModel):
    id: uuid.UUID
    item_type: InventoryType
    item_name: str
    total_stock: int
    available_stock: int
    daily_consumption: float
    estimated_days_left: Optional[int] = None
    enable_available_stock: bool
    is_tracked: bool
    is_sold_out: bool
    status: str


class HealthReport(BaseModel):
    total: int = 0
    needs_restock: List[HealthItem] = Field(default_factory=list)
    critical: List[HealthItem] = Field(default_factory=list)
    sold_out: List[HealthItem] = Field(default_factory=list)
    healthy: List[HealthItem] = Field(default_factory=list)


class ChangeSummaryBucket(BaseModel):
    total_changes: int = 0
    total_amount: int = 0
    increases: int = 0
    decreases: int = 0 # positive magnitude


class CounterCheck(BaseModel):
    expected: int
    actual: int


class LedgerConsistencyReport(BaseModel):
    inventory_id: uuid.UUID
    consistent: bool
    entries_checked: int
    total_stock: CounterCheck
    available_stock: CounterCheck


ChangeSummary = Dict[str, ChangeSummaryBucket]
