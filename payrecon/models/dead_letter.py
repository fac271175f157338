from tortoise import fields, models
import uuid


class DeadLetterEntry(models.Model):
    """
    A delivery whose handling raised. Rows are never deleted: after a successful
    replay ``replayed_at`` is set and the row stays as the forensic record.
    """
    id = fields.UUIDField(primary_key=True, default=uuid.uuid4)
    provider = fields.CharField(max_length=32)
    event_type = fields.CharField(max_length=128, null=True)
    event_kind = fields.CharField(max_length=32, null=True)  # EventKind value, drives replay selection
    reference = fields.CharField(max_length=128, null=True)
    payload = fields.JSONField(default=dict)
    raw_body = fields.BinaryField(null=True)
    headers = fields.JSONField(default=dict)
    error_text = fields.TextField()
    attempts = fields.IntField(default=1)
    last_error_at = fields.DatetimeField()
    replayed_at = fields.DatetimeField(null=True)
    created_at = fields.DatetimeField(auto_now_add=True)

    class Meta:
        table = "webhook_failures"
        indexes = [
            ("event_kind", "created_at"),
            ("last_error_at",),
        ]
