from tortoise import fields, models
import uuid


class InboundEvent(models.Model):
    """
    Audit row for every provider delivery, written before any domain mutation.
    The unique ``event_id`` is the idempotency boundary for webhook handling:
    a second delivery with the same id is answered without side effects.
    """
    id = fields.UUIDField(primary_key=True, default=uuid.uuid4)
    provider = fields.CharField(max_length=32)
    event_id = fields.CharField(max_length=128, unique=True, null=True)  # Provider-assigned
    event_type = fields.CharField(max_length=128, null=True)  # e.g. 'charge.success'
    event_kind = fields.CharField(max_length=32, null=True)  # EventKind value
    reference = fields.CharField(max_length=128, null=True)
    signature = fields.CharField(max_length=256, null=True)
    headers = fields.JSONField(default=dict)
    raw_body = fields.BinaryField()  # Exact bytes as received, for replay
    payload = fields.JSONField(null=True)
    received_at = fields.DatetimeField(auto_now_add=True)
    processed = fields.BooleanField(default=False)
    processed_at = fields.DatetimeField(null=True)
    order_id = fields.UUIDField(null=True)
    refund_id = fields.UUIDField(null=True)
    dispute_id = fields.UUIDField(null=True)

    class Meta:
        table = "webhook_events"
        indexes = [
            ("processed", "received_at"),
            ("reference",),
        ]
