# payrecon/models/__init__.py
from .order import Order, OrderItem, OrderStatus, Transaction, TransactionStatus
from .refund import Refund, RefundStatus
from .dispute import Dispute, DisputeEvidence, DisputeStatus
from .supplier import SupplierOrder, SupplierOrderStatus, SupplierSettlement, SupplierMetric
from .ledger import LedgerEntry, LedgerCategory, LedgerEntryType
from .inbound_event import InboundEvent
from .dead_letter import DeadLetterEntry
from .job_lease import JobLease

# Export all models
__all__ = [
    "Order",
    "OrderItem",
    "OrderStatus",
    "Transaction",
    "TransactionStatus",
    "Refund",
    "RefundStatus",
    "Dispute",
    "DisputeEvidence",
    "DisputeStatus",
    "SupplierOrder",
    "SupplierOrderStatus",
    "SupplierSettlement",
    "SupplierMetric",
    "LedgerEntry",
    "LedgerCategory",
    "LedgerEntryType",
    "InboundEvent",
    "DeadLetterEntry",
    "JobLease",
]
