from tortoise import fields, models
import uuid


class OutboxEvent(models.Model):
    """
    Event written in the same transaction as the business change that caused it.
    Fulfillment callers enqueue `delivery.order.paid.v1` / `order.cancelled.v1`
    here; the poller hands them to the inventory consumer.
    """
    id = fields.UUIDField(primary_key=True, default=uuid.uuid4)
    aggregate_type = fields.CharField(max_length=64) # 'order' | 'inventory'
    aggregate_id = fields.UUIDField(null=True)
    event_type = fields.CharField(max_length=128) # e.g. 'inventory.low_stock_alert.v1'
    payload = fields.JSONField()
    published = fields.BooleanField(default=False)
    attempts = fields.IntField(default=0)
    last_error = fields.TextField(null=True)
    created_at = fields.DatetimeField(auto_now_add=True)

    class Meta:
        table = "outbox_events"
        indexes = [
            ("published", "attempts", "created_at"),
        ]
