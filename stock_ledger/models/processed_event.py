from tortoise import fields, models
import uuid


class ProcessedEvent(models.Model):
    """
    Consumer idempotency marker. A paid-order event must never reduce stock
    twice, and a cancellation must never restore twice.
    """
    id = fields.UUIDField(primary_key=True, default=uuid.uuid4)
    event_id = fields.CharField(max_length=128, unique=True)
    event_type = fields.CharField(max_length=128, default="")
    created_at = fields.DatetimeField(auto_now_add=True)

    class Meta:
        table = "processed_events"
