from enum import Enum
from tortoise import fields, models
import uuid


class SupplierOrderStatus(str, Enum):
    PENDING = "pending"
    PLACED = "placed"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"
    CLOSED = "closed"


class SettlementStatus(str, Enum):
    PENDING = "pending"  # Proposal, paid out by a manual process
    PAID = "paid"


class SupplierOrder(models.Model):
    """An Order's items as submitted to the fulfillment marketplace."""
    id = fields.UUIDField(primary_key=True, default=uuid.uuid4)
    order = fields.ForeignKeyField("models.Order", related_name="supplier_orders")
    supplier_name = fields.CharField(max_length=255)
    supplier_order_id = fields.CharField(max_length=128, null=True)
    supplier_cost = fields.DecimalField(max_digits=12, decimal_places=2, default=0)  # Unit cost
    quantity = fields.IntField(default=1)
    status = fields.CharEnumField(SupplierOrderStatus, default=SupplierOrderStatus.PENDING)
    last_status_update = fields.DatetimeField(null=True)
    created_at = fields.DatetimeField(auto_now_add=True)

    class Meta:
        table = "supplier_orders"
        indexes = [
            ("order_id",),
            ("supplier_name", "created_at"),
            ("status", "last_status_update"),
        ]


class SupplierSettlement(models.Model):
    id = fields.UUIDField(primary_key=True, default=uuid.uuid4)
    settlement_date = fields.DateField()
    supplier_name = fields.CharField(max_length=255)
    total_amount = fields.DecimalField(max_digits=14, decimal_places=2)
    order_count = fields.IntField()
    status = fields.CharEnumField(SettlementStatus, default=SettlementStatus.PENDING)
    details = fields.JSONField(default=dict)
    created_at = fields.DatetimeField(auto_now_add=True)

    class Meta:
        table = "supplier_settlements"
        unique_together = (("settlement_date", "supplier_name"),)


class SupplierMetric(models.Model):
    """Scored snapshot of a supplier; a new row per run, never updated."""
    id = fields.UUIDField(primary_key=True, default=uuid.uuid4)
    supplier_name = fields.CharField(max_length=255)
    period_days = fields.IntField(default=30)
    total_orders = fields.IntField(default=0)
    fulfilled_orders = fields.IntField(default=0)
    cancelled_orders = fields.IntField(default=0)
    fulfillment_rate = fields.FloatField(default=0)
    on_time_delivery_rate = fields.FloatField(default=0)
    cancellation_rate = fields.FloatField(default=0)
    return_rate = fields.FloatField(default=0)
    satisfaction_score = fields.FloatField(default=0)
    dispute_count = fields.IntField(default=0)
    return_count = fields.IntField(default=0)
    sla_score = fields.FloatField(default=0)
    sla_grade = fields.CharField(max_length=1)
    calculated_at = fields.DatetimeField()

    class Meta:
        table = "supplier_metrics"
        indexes = [
            ("supplier_name", "calculated_at"),
        ]
