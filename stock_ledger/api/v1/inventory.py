import logging
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status

from stock_ledger.api.deps import get_admin_id, get_stats_service, get_stock_service
from stock_ledger.core.config import CRITICAL_DAYS_THRESHOLD, DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE
from stock_ledger.models.inventory import ChangeType, InventoryType, StockType
from stock_ledger.schemas.inventory import (
    BulkUpdateRequest,
    InventoryCreateRequest,
    InventoryUpdateRequest,
    MutationOutcome,
    SetAvailableStockRequest,
    SoldOutRequest,
    StockQuantityRequest,
)
from stock_ledger.schemas.response import SuccessResponse
from stock_ledger.services.stock_service import StockMutationService
from stock_ledger.services.stock_stats import StockStatsService

log = logging.getLogger("uvicorn")

router = APIRouter()


def _outcome(outcome: MutationOutcome, message: str) -> SuccessResponse:
    if not outcome.applied:
        message = f"'{outcome.record.item_name}' is not inventory tracked; nothing changed."
    return SuccessResponse(message=message, data=outcome.model_dump(mode="json"))


# ----------- Collection routes (declared before /{inventory_id}) -----------

@router.get("", response_model=SuccessResponse)
async def list_inventory(
    store_id: UUID,
    inventory_type: Optional[InventoryType] = None,
    only_available: bool = False,
    search: str = "",
    service: StockMutationService = Depends(get_stock_service),
):
    """Inventory records of a store, sorted by item name."""
    records = await service.get_store_inventory(store_id, inventory_type, only_available, search)
    return SuccessResponse(data=[r.model_dump(mode="json") for r in records])


@router.post("", status_code=status.HTTP_201_CREATED, response_model=SuccessResponse)
async def create_inventory(
    store_id: UUID,
    payload: InventoryCreateRequest,
    admin_id: Optional[str] = Depends(get_admin_id),
    service: StockMutationService = Depends(get_stock_service),
):
    outcome = await service.create_inventory(store_id, payload, admin_id)
    log.info(f"Inventory record {outcome.record.id} created in store {store_id}.")
    return SuccessResponse(message="Inventory record created.", data=outcome.model_dump(mode="json"))


@router.post("/initialize", response_model=SuccessResponse)
async def initialize_inventory(
    store_id: UUID,
    admin_id: Optional[str] = Depends(get_admin_id),
    service: StockMutationService = Depends(get_stock_service),
):
    """Create untracked records for every dish template of the store's brand."""
    result = await service.initialize_dish_inventory(store_id, admin_id)
    return SuccessResponse(
        message=f"Initialised {result.created} record(s), {result.updated} updated, {result.skipped} skipped.",
        data=result.model_dump(mode="json"),
    )


@router.post("/bulk", response_model=SuccessResponse)
async def bulk_update(
    store_id: UUID,
    payload: BulkUpdateRequest,
    admin_id: Optional[str] = Depends(get_admin_id),
    service: StockMutationService = Depends(get_stock_service),
):
    result = await service.bulk_update_inventory(store_id, payload.items, admin_id)
    return SuccessResponse(data=result.model_dump(mode="json"))


@router.get("/logs", response_model=SuccessResponse)
async def inventory_logs(
    store_id: UUID,
    inventory_id: Optional[UUID] = None,
    inventory_type: Optional[InventoryType] = None,
    stock_type: Optional[StockType] = None,
    change_type: Optional[ChangeType] = None,
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    stats: StockStatsService = Depends(get_stats_service),
):
    result = await stats.get_inventory_logs(
        store_id,
        inventory_id=inventory_id,
        inventory_type=inventory_type,
        stock_type=stock_type,
        change_type=change_type,
        start_date=start_date,
        end_date=end_date,
        page=page,
        limit=limit,
    )
    return SuccessResponse(data=result.model_dump(mode="json"))


@router.get("/health", response_model=SuccessResponse)
async def inventory_health(
    store_id: UUID,
    inventory_type: Optional[InventoryType] = None,
    critical_days_threshold: int = Query(CRITICAL_DAYS_THRESHOLD, ge=0),
    stats: StockStatsService = Depends(get_stats_service),
):
    report = await stats.get_inventory_health_report(store_id, inventory_type, critical_days_threshold)
    return SuccessResponse(data=report.model_dump(mode="json"))


@router.get("/summary", response_model=SuccessResponse)
async def stock_change_summary(
    store_id: UUID,
    period: Optional[str] = None,
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
    inventory_type: Optional[InventoryType] = None,
    group_by: str = "change_type",
    stats: StockStatsService = Depends(get_stats_service),
):
    summary = await stats.get_stock_change_summary(
        store_id,
        period=period,
        start_date=start_date,
        end_date=end_date,
        inventory_type=inventory_type,
        group_by=group_by,
    )
    return SuccessResponse(data={key: bucket.model_dump() for key, bucket in summary.items()})


# ----------- Single record routes -----------

@router.get("/{inventory_id}", response_model=SuccessResponse)
async def get_inventory(
    store_id: UUID,
    inventory_id: UUID,
    service: StockMutationService = Depends(get_stock_service),
):
    record = await service.get_inventory_item(store_id, inventory_id)
    return SuccessResponse(data=record.model_dump(mode="json"))


@router.put("/{inventory_id}", response_model=SuccessResponse)
async def update_inventory(
    store_id: UUID,
    inventory_id: UUID,
    payload: InventoryUpdateRequest,
    admin_id: Optional[str] = Depends(get_admin_id),
    service: StockMutationService = Depends(get_stock_service),
):
    outcome = await service.update_inventory(store_id, inventory_id, payload, admin_id)
    return SuccessResponse(message="Inventory updated.", data=outcome.model_dump(mode="json"))


@router.post("/{inventory_id}/reduce", response_model=SuccessResponse)
async def reduce_stock(
    store_id: UUID,
    inventory_id: UUID,
    payload: StockQuantityRequest,
    admin_id: Optional[str] = Depends(get_admin_id),
    service: StockMutationService = Depends(get_stock_service),
):
    """Manual reduction; linked to an order when `order_id` is given."""
    outcome = await service.reduce_stock(
        store_id,
        inventory_id,
        payload.quantity,
        reason=payload.reason or "",
        change_type=ChangeType.ORDER if payload.order_id else ChangeType.MANUAL_SUBTRACT,
        order_id=payload.order_id,
        admin_id=admin_id,
    )
    return _outcome(outcome, f"Reduced stock by {payload.quantity}.")


@router.post("/{inventory_id}/add", response_model=SuccessResponse)
async def add_stock(
    store_id: UUID,
    inventory_id: UUID,
    payload: StockQuantityRequest,
    admin_id: Optional[str] = Depends(get_admin_id),
    service: StockMutationService = Depends(get_stock_service),
):
    outcome = await service.add_stock(
        store_id,
        inventory_id,
        payload.quantity,
        reason=payload.reason or "",
        stock_type=payload.stock_type,
        change_type=ChangeType.MANUAL_ADD,
        admin_id=admin_id,
    )
    return _outcome(outcome, f"Added {payload.quantity} to {payload.stock_type.value}.")


@router.post("/{inventory_id}/damage", response_model=SuccessResponse)
async def record_damage(
    store_id: UUID,
    inventory_id: UUID,
    payload: StockQuantityRequest,
    admin_id: Optional[str] = Depends(get_admin_id),
    service: StockMutationService = Depends(get_stock_service),
):
    outcome = await service.process_damage(
        store_id,
        inventory_id,
        payload.quantity,
        reason=payload.reason or "",
        stock_type=payload.stock_type,
        admin_id=admin_id,
    )
    return _outcome(outcome, f"Recorded {payload.quantity} damaged unit(s).")


@router.put("/{inventory_id}/available-stock", response_model=SuccessResponse)
async def set_available_stock(
    store_id: UUID,
    inventory_id: UUID,
    payload: SetAvailableStockRequest,
    admin_id: Optional[str] = Depends(get_admin_id),
    service: StockMutationService = Depends(get_stock_service),
):
    outcome = await service.set_available_stock(
        store_id, inventory_id, payload.available_stock, reason=payload.reason or "", admin_id=admin_id
    )
    return _outcome(outcome, f"Available stock set to {payload.available_stock}.")


@router.put("/{inventory_id}/sold-out", response_model=SuccessResponse)
async def toggle_sold_out(
    store_id: UUID,
    inventory_id: UUID,
    payload: SoldOutRequest,
    admin_id: Optional[str] = Depends(get_admin_id),
    service: StockMutationService = Depends(get_stock_service),
):
    outcome = await service.toggle_sold_out(store_id, inventory_id, payload.is_sold_out, admin_id)
    message = "Marked as sold out." if payload.is_sold_out else "Sold-out flag cleared."
    return SuccessResponse(message=message, data=outcome.model_dump(mode="json"))


@router.get("/{inventory_id}/stats", response_model=SuccessResponse)
async def item_stats(
    store_id: UUID,
    inventory_id: UUID,
    stats: StockStatsService = Depends(get_stats_service),
):
    result = await stats.get_item_inventory_stats(store_id, inventory_id)
    return SuccessResponse(data=result.model_dump(mode="json"))


@router.get("/{inventory_id}/consistency", response_model=SuccessResponse)
async def ledger_consistency(
    store_id: UUID,
    inventory_id: UUID,
    stats: StockStatsService = Depends(get_stats_service),
):
    report = await stats.verify_ledger_consistency(store_id, inventory_id)
    if not report.consistent:
        log.warning(f"Ledger of inventory {inventory_id} does not replay to its counters.")
    return SuccessResponse(data=report.model_dump(mode="json"))
