import logging
from typing import Any, Dict
from uuid import UUID

from tortoise.transactions import in_transaction

from stock_ledger.core.errors import InvalidOrderStateError
from stock_ledger.events.outbox_utility import (
    DELIVERY_ORDER_PAID,
    INVENTORY_DEDUCTED,
    INVENTORY_SHORTAGE,
    LOW_STOCK_ALERT,
    ORDER_CANCELLED,
    create_outbox_event,
)
from stock_ledger.models.processed_event import ProcessedEvent
from stock_ledger.schemas.inventory import InventoryRecordOut
from stock_ledger.services.factory import build_order_reader, build_resolver, build_stock_service

log = logging.getLogger(__name__)


async def check_for_low_stock(record: InventoryRecordOut, order_id: UUID, conn: Any):
    """Emits an alert when a tracked record is at or below its restock threshold."""
    if not record.needs_restock:
        return
    log.warning(f"Low stock for '{record.item_name}' ({record.id}): total={record.total_stock}")
    await create_outbox_event(
        aggregate_type="inventory",
        aggregate_id=record.id,
        event_type=LOW_STOCK_ALERT,
        payload={
            "inventory_id": str(record.id),
            "store_id": str(record.store_id),
            "item_name": record.item_name,
            "total_stock": record.total_stock,
            "available_stock": record.available_stock,
            "min_stock_alert": record.min_stock_alert,
            "triggered_by_order_id": str(order_id),
        },
        conn=conn
    )


async def _mark_processed(event_id: str, event_type: str, conn: Any = None):
    await ProcessedEvent.create(event_id=event_id, event_type=event_type, using_db=conn)


async def handle_delivery_order_paid(event_payload: Dict[str, Any], event_id: UUID):
    """
    Consumer logic for 'delivery.order.paid.v1': validate the order's demand
    and, when everything is available, reduce stock.
    """
    order_id = UUID(event_payload.get("order_id"))
    event_id_str = str(event_id)

    # Idempotency Check
    if await ProcessedEvent.filter(event_id=event_id_str).exists():
        return

    log.info(f"Consuming inventory for order {order_id}")
    order = await build_order_reader().get_order(order_id)
    if order is None:
        log.warning(f"Order {order_id} not found; skipping inventory consumption")
        await _mark_processed(event_id_str, DELIVERY_ORDER_PAID)
        return

    resolver = build_resolver()
    consumption = await resolver.consume_paid_delivery_order(order)
    if consumption.outcome in ("not_eligible", "already_consumed"):
        await _mark_processed(event_id_str, DELIVERY_ORDER_PAID)
        return

    validation, reduction = consumption.validation, consumption.reduction

    records = []
    if reduction is not None:
        for template_id in validation.inventory_map:
            record = await resolver.stock_service.get_inventory_item_by_dish_template(order.store_id, template_id)
            if record is not None:
                records.append(record)

    async with in_transaction() as conn:
        if reduction is None:
            await create_outbox_event(
                aggregate_type="order", aggregate_id=order.id,
                event_type=INVENTORY_SHORTAGE,
                payload={
                    "order_id": str(order.id),
                    "unavailable_items": [issue.item_name for issue in validation.issues],
                },
                conn=conn
            )
            log.info(f"Order {order_id}: stock unavailable, nothing reduced")
        else:
            for record in records:
                await check_for_low_stock(record, order.id, conn)
            await create_outbox_event(
                aggregate_type="order", aggregate_id=order.id,
                event_type=INVENTORY_DEDUCTED,
                payload={
                    "order_id": str(order.id),
                    "success": reduction.success,
                    "processed": reduction.processed,
                    "skipped": reduction.skipped,
                    "errors": [e.model_dump(mode="json") for e in reduction.errors],
                },
                conn=conn
            )
        await _mark_processed(event_id_str, DELIVERY_ORDER_PAID, conn)


async def handle_order_cancelled(event_payload: Dict[str, Any], event_id: UUID):
    """
    Consumer logic for 'order.cancelled.v1'. Restores inventory.
    Failures propagate so the poller retries the event.
    """
    order_id = UUID(event_payload.get("order_id"))
    event_id_str = str(event_id)

    # Idempotency Check
    if await ProcessedEvent.filter(event_id=event_id_str).exists():
        return

    order = await build_order_reader().get_order(order_id)
    if order is None:
        log.warning(f"Cancelled order {order_id} not found; nothing to restore")
        await _mark_processed(event_id_str, ORDER_CANCELLED)
        return

    try:
        summary = await build_stock_service().restore_inventory_for_cancelled_order(order)
    except InvalidOrderStateError as e:
        log.warning(f"Not restoring inventory for order {order_id}: {e.message}")
        await _mark_processed(event_id_str, ORDER_CANCELLED)
        return

    await _mark_processed(event_id_str, ORDER_CANCELLED)
    log.info(f"Inventory restored for order {order_id}: {summary.restored} restored, {summary.skipped} skipped")
