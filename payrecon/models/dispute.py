from enum import Enum
from tortoise import fields, models
import uuid


class DisputeStatus(str, Enum):
    OPEN = "open"
    SUBMITTED = "submitted"
    UNDER_REVIEW = "under_review"
    ESCALATED = "escalated"
    WON = "won"
    LOST = "lost"
    RESOLVED = "resolved"


TERMINAL_DISPUTE_STATUSES = (DisputeStatus.WON, DisputeStatus.LOST, DisputeStatus.RESOLVED)

# Disputes the automation worker still acts on
ACTIONABLE_DISPUTE_STATUSES = (DisputeStatus.OPEN, DisputeStatus.SUBMITTED, DisputeStatus.UNDER_REVIEW)


class Dispute(models.Model):
    id = fields.UUIDField(primary_key=True, default=uuid.uuid4)
    order = fields.ForeignKeyField("models.Order", related_name="disputes", null=True)
    provider = fields.CharField(max_length=32, default="paystack")
    provider_ref = fields.CharField(max_length=128, null=True)
    status = fields.CharEnumField(DisputeStatus, default=DisputeStatus.OPEN)
    evidence_submitted = fields.BooleanField(default=False)
    details = fields.JSONField(default=dict)  # Raw provider payload
    admin_notes = fields.TextField(null=True)
    last_reconciled_at = fields.DatetimeField(null=True)
    created_at = fields.DatetimeField(auto_now_add=True)
    updated_at = fields.DatetimeField(auto_now=True)

    class Meta:
        table = "disputes"
        indexes = [
            ("status", "created_at"),
            ("order_id",),
            ("provider_ref",),
        ]


class DisputeEvidence(models.Model):
    """Append-only evidence artifact attached by an admin."""
    id = fields.UUIDField(primary_key=True, default=uuid.uuid4)
    dispute = fields.ForeignKeyField("models.Dispute", related_name="evidence")
    evidence_type = fields.CharField(max_length=64, default="document")
    description = fields.TextField()
    file_url = fields.CharField(max_length=1024, null=True)
    admin_id = fields.CharField(max_length=64, null=True)
    uploaded_at = fields.DatetimeField(auto_now_add=True)

    class Meta:
        table = "dispute_evidence"
        indexes = [
            ("dispute_id",),
        ]
