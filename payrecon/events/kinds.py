from enum import Enum
from typing import Any, Dict, Optional


class EventKind(str, Enum):
    """Provider event families the receiver knows how to handle."""
    CHARGE_SUCCESS = "charge_success"
    CHARGE_FAILED = "charge_failed"
    REFUND_INITIATED = "refund_initiated"
    REFUND_PROCESSED = "refund_processed"
    REFUND_FAILED = "refund_failed"
    DISPUTE_OPENED = "dispute_opened"
    DISPUTE_RESOLVED = "dispute_resolved"
    UNKNOWN = "unknown"


REFUND_KINDS = (EventKind.REFUND_INITIATED, EventKind.REFUND_PROCESSED, EventKind.REFUND_FAILED)
DISPUTE_KINDS = (EventKind.DISPUTE_OPENED, EventKind.DISPUTE_RESOLVED)

# Paystack event names -> kind. Anything not listed is UNKNOWN and only audited.
PAYSTACK_EVENT_KINDS: Dict[str, EventKind] = {
    "charge.success": EventKind.CHARGE_SUCCESS,
    "charge.failed": EventKind.CHARGE_FAILED,
    "refund.pending": EventKind.REFUND_INITIATED,
    "refund.processing": EventKind.REFUND_INITIATED,
    "refund.processed": EventKind.REFUND_PROCESSED,
    "refund.failed": EventKind.REFUND_FAILED,
    "charge.dispute.create": EventKind.DISPUTE_OPENED,
    "charge.dispute.remind": EventKind.DISPUTE_OPENED,
    "charge.dispute.resolve": EventKind.DISPUTE_RESOLVED,
}


def classify_event(event_type: Optional[str]) -> EventKind:
    if not event_type:
        return EventKind.UNKNOWN
    return PAYSTACK_EVENT_KINDS.get(event_type.strip().lower(), EventKind.UNKNOWN)


def extract_reference(data: Dict[str, Any]) -> Optional[str]:
    """Payment reference carried by an event's ``data`` block, if any."""
    if not isinstance(data, dict):
        return None
    reference = data.get("reference") or data.get("tx_ref")
    if not reference and isinstance(data.get("transaction"), dict):
        # Dispute and refund payloads nest the original charge
        reference = data["transaction"].get("reference")
    if not reference and isinstance(data.get("transaction_reference"), str):
        reference = data["transaction_reference"]
    return str(reference) if reference else None


def extract_provider_ref(data: Dict[str, Any]) -> Optional[str]:
    """The provider's own id for the refund/dispute object, falling back to the reference."""
    if not isinstance(data, dict):
        return None
    value = data.get("id") or extract_reference(data)
    return str(value) if value is not None else None
