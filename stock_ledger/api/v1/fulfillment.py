"""
Order-facing inventory routes.

Callers only ever learn whether stock is available and which items are not;
error kinds stay internal.
"""
import logging
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status
from tortoise.transactions import in_transaction

from stock_ledger.api.deps import get_order_reader, get_resolver
from stock_ledger.core.errors import OrderNotFoundError
from stock_ledger.events.outbox_utility import enqueue_delivery_order_paid, enqueue_order_cancelled
from stock_ledger.repositories.base import OrderReader
from stock_ledger.schemas.fulfillment import OrderConsumptionResponse, OrderStockCheckResponse
from stock_ledger.schemas.order import OrderSnapshot
from stock_ledger.schemas.response import SuccessResponse
from stock_ledger.services.order_inventory import OrderInventoryResolver

log = logging.getLogger("uvicorn")

router = APIRouter()


async def _load_order(store_id: UUID, order_id: UUID, orders: OrderReader) -> OrderSnapshot:
    order = await orders.get_order(order_id)
    if order is None or order.store_id != store_id:
        raise OrderNotFoundError(f"Order {order_id} not found in this store.")
    return order


@router.post("/check", response_model=SuccessResponse)
async def check_order_stock(
    store_id: UUID,
    order_id: UUID,
    orders: OrderReader = Depends(get_order_reader),
    resolver: OrderInventoryResolver = Depends(get_resolver),
):
    """Advisory availability check; nothing is reserved."""
    order = await _load_order(store_id, order_id, orders)
    validation = await resolver.validate_delivery_order_inventory(order)
    data = OrderStockCheckResponse(
        available=validation.success,
        unavailable_items=[issue.item_name for issue in validation.issues],
    )
    return SuccessResponse(data=data.model_dump())


@router.post("/consume", response_model=SuccessResponse)
async def consume_order_stock(
    store_id: UUID,
    order_id: UUID,
    deferred: bool = False,
    orders: OrderReader = Depends(get_order_reader),
    resolver: OrderInventoryResolver = Depends(get_resolver),
):
    """
    Validate and reduce stock for a paid order.

    With `deferred=true` the work is queued on the outbox and the call returns
    immediately.
    """
    order = await _load_order(store_id, order_id, orders)
    if deferred:
        async with in_transaction() as conn:
            await enqueue_delivery_order_paid(order.id, conn=conn)
        return SuccessResponse(message="Inventory consumption queued.")

    consumption = await resolver.consume_paid_delivery_order(order)
    if consumption.outcome == "not_eligible":
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={
                "code": "order_not_eligible",
                "message": "Only paid delivery-platform orders consume inventory.",
            },
        )
    if consumption.outcome == "already_consumed":
        return SuccessResponse(message="Inventory already consumed.", data=OrderConsumptionResponse().model_dump())
    if consumption.outcome == "unavailable":
        log.info(f"Order {order_id} rejected: stock unavailable.")
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={
                "code": "stock_unavailable",
                "unavailable_items": [issue.item_name for issue in consumption.validation.issues],
            },
        )

    reduction = consumption.reduction
    data = OrderConsumptionResponse(
        processed=reduction.processed,
        skipped=reduction.skipped,
        failed_items=[e.item_name or e.template_id for e in reduction.errors],
    )
    return SuccessResponse(
        message="Inventory consumed." if reduction.success else "Inventory partially consumed.",
        data=data.model_dump(),
    )


@router.post("/restore", response_model=SuccessResponse)
async def restore_order_stock(
    store_id: UUID,
    order_id: UUID,
    deferred: bool = False,
    orders: OrderReader = Depends(get_order_reader),
    resolver: OrderInventoryResolver = Depends(get_resolver),
):
    """Give back the stock of a cancelled order. A failed restore is reported, not raised."""
    order = await _load_order(store_id, order_id, orders)
    if deferred:
        async with in_transaction() as conn:
            await enqueue_order_cancelled(order.id, conn=conn)
        return SuccessResponse(message="Inventory restoration queued.")

    result = await resolver.restore_delivery_order_inventory(order)
    return SuccessResponse(success=result.success, message=result.message, data=result.model_dump())
