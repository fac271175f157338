from enum import Enum
from tortoise import fields, models
import uuid


class OrderStatus(str, Enum):
    PENDING = "pending"        # Checkout started, waiting for the provider
    PAID = "paid"              # charge.success confirmed
    FAILED = "failed"          # charge.failed confirmed
    PROCESSING = "processing"  # Submitted to the fulfillment marketplace
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"


# Statuses reached only after the charge succeeded; a late charge.failed must not regress them.
POST_PAYMENT_STATUSES = (
    OrderStatus.PAID,
    OrderStatus.PROCESSING,
    OrderStatus.SHIPPED,
    OrderStatus.DELIVERED,
    OrderStatus.REFUNDED,
)


class TransactionStatus(str, Enum):
    PENDING = "pending"
    SUCCESS = "success"  # Terminal for reconciliation, never regressed
    FAILED = "failed"
    REFUNDED = "refunded"


class Order(models.Model):
    id = fields.UUIDField(primary_key=True, default=uuid.uuid4)
    order_number = fields.CharField(max_length=128, unique=True)  # Provider payment reference
    user_id = fields.CharField(max_length=64, null=True)
    customer_email = fields.CharField(max_length=255, null=True)
    shipping_address = fields.JSONField(default=dict)
    subtotal = fields.DecimalField(max_digits=14, decimal_places=2, default=0)
    tax_total = fields.DecimalField(max_digits=14, decimal_places=2, default=0)
    shipping_total = fields.DecimalField(max_digits=14, decimal_places=2, default=0)
    discount_total = fields.DecimalField(max_digits=14, decimal_places=2, default=0)
    grand_total = fields.DecimalField(max_digits=14, decimal_places=2, default=0)
    total_cost = fields.DecimalField(max_digits=14, decimal_places=2, default=0)
    total_profit = fields.DecimalField(max_digits=14, decimal_places=2, default=0)
    currency = fields.CharField(max_length=8, default="NGN")
    status = fields.CharEnumField(OrderStatus, default=OrderStatus.PENDING)
    created_at = fields.DatetimeField(auto_now_add=True)
    updated_at = fields.DatetimeField(auto_now=True)

    class Meta:
        table = "orders"
        indexes = [
            ("status",),                 # Status-based filtering
            ("user_id",),                # User order history
            ("created_at",),             # Daily settlement window
            ("status", "created_at"),    # Composite: paid orders per day
        ]


class OrderItem(models.Model):
    id = fields.UUIDField(primary_key=True, default=uuid.uuid4)
    order = fields.ForeignKeyField("models.Order", related_name="items")
    product_name = fields.CharField(max_length=255)
    quantity = fields.IntField(default=1)
    unit_price = fields.DecimalField(max_digits=12, decimal_places=2, default=0)
    unit_cost = fields.DecimalField(max_digits=12, decimal_places=2, default=0)
    line_total = fields.DecimalField(max_digits=14, decimal_places=2, default=0)

    class Meta:
        table = "order_items"
        indexes = [
            ("order_id",),
        ]


class Transaction(models.Model):
    """One provider charge attempt for an Order."""
    id = fields.UUIDField(primary_key=True, default=uuid.uuid4)
    order = fields.ForeignKeyField("models.Order", related_name="transactions")
    provider = fields.CharField(max_length=32, default="paystack")
    provider_reference = fields.CharField(max_length=128, unique=True, null=True)
    amount = fields.DecimalField(max_digits=14, decimal_places=2, default=0)
    currency = fields.CharField(max_length=8, default="NGN")
    status = fields.CharEnumField(TransactionStatus, default=TransactionStatus.PENDING)
    provider_response = fields.JSONField(null=True)
    created_at = fields.DatetimeField(auto_now_add=True)
    updated_at = fields.DatetimeField(auto_now=True)

    class Meta:
        table = "transactions"
        indexes = [
            ("order_id", "created_at"),  # Latest transaction per order
        ]
