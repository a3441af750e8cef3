import asyncio
import logging

from stock_ledger.consumers.inventory_consumer import handle_delivery_order_paid, handle_order_cancelled
from stock_ledger.core.config import BATCH_SIZE, LOG_LEVEL, MAX_ATTEMPTS, POLLING_INTERVAL
from stock_ledger.core.db import init_db
from stock_ledger.events.outbox_utility import (
    DELIVERY_ORDER_PAID,
    INVENTORY_DEDUCTED,
    INVENTORY_SHORTAGE,
    LOW_STOCK_ALERT,
    ORDER_CANCELLED,
    RESTORE_FAILED,
    create_outbox_event,
)
from stock_ledger.models.outbox import OutboxEvent

log = logging.getLogger(__name__)


async def mock_dispatch_event(event: OutboxEvent):
    """
    Routes an OutboxEvent to the correct business logic handler.
    This simulates a message broker (like Kafka/RabbitMQ) dispatcher.
    """
    event_type = event.event_type
    event_id = event.id
    payload = event.payload

    log.debug(f"Poller DISPATCHING: {event_type} (ID: {event_id.hex[:8]}...)")

    if event_type == DELIVERY_ORDER_PAID:
        await handle_delivery_order_paid(payload, event_id)

    elif event_type == ORDER_CANCELLED:
        await handle_order_cancelled(payload, event_id)

    elif event_type in (INVENTORY_DEDUCTED, INVENTORY_SHORTAGE, RESTORE_FAILED):
        # Order pipeline / notifications subscribe to these (simulated here)
        log.info(f"EXTERNAL NOTIFICATION: {event_type} for order {payload.get('order_id')}")

    elif event_type == LOW_STOCK_ALERT:
        log.warning(
            f"SYSTEM ALERT: '{payload.get('item_name')}' has low stock "
            f"({payload.get('total_stock')} left, alert at {payload.get('min_stock_alert')})."
        )

    else:
        log.warning(f"No handler found for event type: {event_type}")


async def _give_up(event: OutboxEvent):
    """Last attempt failed. A lost restoration must stay visible."""
    log.error(f"Event {event.id} ({event.event_type}) failed {event.attempts} times, giving up")
    if event.event_type == ORDER_CANCELLED:
        await create_outbox_event(
            aggregate_type="order",
            aggregate_id=event.aggregate_id,
            event_type=RESTORE_FAILED,
            payload={"order_id": event.payload.get("order_id"), "error": event.last_error},
        )


async def poll_outbox_for_new_events():
    """
    Queries the Outbox table for unpublished events and attempts to dispatch them.
    """
    events = await OutboxEvent.filter(published=False, attempts__lt=MAX_ATTEMPTS).limit(BATCH_SIZE).order_by('created_at')

    if not events:
        return

    for event in events:
        try:
            await mock_dispatch_event(event)

            event.published = True
            await event.save(update_fields=['published'])

        except Exception as e:
            event.attempts += 1
            event.last_error = str(e)
            await event.save(update_fields=['attempts', 'last_error'])
            log.exception(f"Handler for {event.event_type} failed (attempt {event.attempts}/{MAX_ATTEMPTS})")
            if event.attempts >= MAX_ATTEMPTS:
                await _give_up(event)


async def start_outbox_poller():
    """Main loop for the poller service."""
    await init_db()
    log.info("--- Outbox Poller Service Started ---")

    while True:
        try:
            await poll_outbox_for_new_events()
        except Exception as e:
            log.error(f"Poller encountered a critical DB error: {e}.")

        await asyncio.sleep(POLLING_INTERVAL)

if __name__ == "__main__":
    logging.basicConfig(level=LOG_LEVEL, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
    try:
        asyncio.run(start_outbox_poller())
    except KeyboardInterrupt:
        log.info("Poller service stopped.")
