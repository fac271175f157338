from enum import Enum
from tortoise import fields, models
import uuid


class LedgerCategory(str, Enum):
    REVENUE = "revenue"
    EXPENSE = "expense"


class LedgerEntryType(str, Enum):
    ORDER_REVENUE = "order_revenue"
    PAYMENT_PROCESSOR_FEE = "payment_processor_fee"
    PLATFORM_COMMISSION = "platform_commission"
    SUPPLIER_PAYOUT = "supplier_payout"


class LedgerEntry(models.Model):
    """One signed monetary movement. Written once by the financial worker, never updated."""
    id = fields.UUIDField(primary_key=True, default=uuid.uuid4)
    date = fields.DateField()
    entry_type = fields.CharEnumField(LedgerEntryType)
    order = fields.ForeignKeyField("models.Order", related_name="ledger_entries", null=True)
    description = fields.CharField(max_length=255)
    amount = fields.DecimalField(max_digits=14, decimal_places=2)  # Signed: expenses are negative
    category = fields.CharEnumField(LedgerCategory)
    currency = fields.CharField(max_length=8, default="NGN")
    created_at = fields.DatetimeField(auto_now_add=True)

    class Meta:
        table = "financial_ledger"
        indexes = [
            ("date",),
            ("order_id", "date"),
        ]
