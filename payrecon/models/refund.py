from enum import Enum
from tortoise import fields, models
import uuid


class RefundStatus(str, Enum):
    CREATED = "created"        # Recorded from a provider refund event
    REQUESTED = "requested"    # Issued by an admin, provider not yet called
    PENDING = "pending"        # Retry-eligible: the next reconciliation run calls the provider
    PROCESSING = "processing"  # Provider accepted, waiting for its settlement webhook
    COMPLETED = "completed"    # Settled, set only from a provider webhook
    FAILED = "failed"          # Attempt cap exhausted or provider reported failure


TERMINAL_REFUND_STATUSES = (RefundStatus.COMPLETED, RefundStatus.FAILED)

# Refunds the reconciliation worker still has to push through the provider API
RETRYABLE_REFUND_STATUSES = (RefundStatus.REQUESTED, RefundStatus.PENDING)


class Refund(models.Model):
    id = fields.UUIDField(primary_key=True, default=uuid.uuid4)
    order = fields.ForeignKeyField("models.Order", related_name="refunds", null=True)
    provider = fields.CharField(max_length=32, default="paystack")
    provider_ref = fields.CharField(max_length=128, null=True)
    amount = fields.DecimalField(max_digits=14, decimal_places=2, default=0)
    currency = fields.CharField(max_length=8, default="NGN")
    is_full_refund = fields.BooleanField(default=False)
    reason = fields.TextField(null=True)
    status = fields.CharEnumField(RefundStatus, default=RefundStatus.REQUESTED)
    attempts = fields.IntField(default=0)
    admin_notes = fields.TextField(null=True)  # Verbatim provider response of the last attempt
    last_reconciled_at = fields.DatetimeField(null=True)
    created_at = fields.DatetimeField(auto_now_add=True)
    updated_at = fields.DatetimeField(auto_now=True)

    class Meta:
        table = "refunds"
        indexes = [
            ("status", "created_at"),  # Worker batch selection
            ("order_id",),
            ("provider_ref",),
        ]
