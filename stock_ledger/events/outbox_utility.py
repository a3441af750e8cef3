from typing import Any, Dict, Optional
from uuid import UUID

from stock_ledger.models.outbox import OutboxEvent

# Consumed
DELIVERY_ORDER_PAID = "delivery.order.paid.v1"
ORDER_CANCELLED = "order.cancelled.v1"

# Emitted
INVENTORY_DEDUCTED = "inventory.deducted.success.v1"
INVENTORY_SHORTAGE = "inventory.shortage.v1"
LOW_STOCK_ALERT = "inventory.low_stock_alert.v1"
RESTORE_FAILED = "inventory.restore.failed.v1"


async def create_outbox_event(
    aggregate_type: str,
    aggregate_id: Optional[UUID],
    event_type: str,
    payload: Dict[str, Any],
    conn: Any = None
) -> OutboxEvent:
    """
    Creates a new Outbox event record using the provided database connection (transaction).

    Passing 'conn' makes the event part of the caller's transaction.
    """
    return await OutboxEvent.create(
        aggregate_type=aggregate_type,
        aggregate_id=aggregate_id,
        event_type=event_type,
        payload=payload,
        published=False,
        attempts=0,
        using_db=conn
    )


async def enqueue_delivery_order_paid(order_id: UUID, conn: Any = None) -> OutboxEvent:
    return await create_outbox_event("order", order_id, DELIVERY_ORDER_PAID, {"order_id": str(order_id)}, conn)


async def enqueue_order_cancelled(order_id: UUID, conn: Any = None) -> OutboxEvent:
    return await create_outbox_event("order", order_id, ORDER_CANCELLED, {"order_id": str(order_id)}, conn)
