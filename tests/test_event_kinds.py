import pytest

from payrecon.events.kinds import EventKind, classify_event, extract_provider_ref, extract_reference


@pytest.mark.parametrize("event_type,kind", [
    ("charge.success", EventKind.CHARGE_SUCCESS),
    ("charge.failed", EventKind.CHARGE_FAILED),
    ("refund.pending", EventKind.REFUND_INITIATED),
    ("refund.processing", EventKind.REFUND_INITIATED),
    ("refund.processed", EventKind.REFUND_PROCESSED),
    ("refund.failed", EventKind.REFUND_FAILED),
    ("charge.dispute.create", EventKind.DISPUTE_OPENED),
    ("charge.dispute.remind", EventKind.DISPUTE_OPENED),
    ("charge.dispute.resolve", EventKind.DISPUTE_RESOLVED),
    ("Charge.Success", EventKind.CHARGE_SUCCESS),
    ("transfer.success", EventKind.UNKNOWN),
    ("", EventKind.UNKNOWN),
    (None, EventKind.UNKNOWN),
])
def test_classify_event(event_type, kind):
    assert classify_event(event_type) == kind


def test_reference_lookup_order():
    assert extract_reference({"reference": "A", "tx_ref": "B"}) == "A"
    assert extract_reference({"tx_ref": "B"}) == "B"
    assert extract_reference({"transaction": {"reference": "C"}}) == "C"
    assert extract_reference({"transaction_reference": "D"}) == "D"
    assert extract_reference({}) is None
    assert extract_reference("not-a-dict") is None


def test_provider_ref_prefers_object_id():
    assert extract_provider_ref({"id": 42, "reference": "A"}) == "42"
    assert extract_provider_ref({"transaction": {"reference": "C"}}) == "C"
    assert extract_provider_ref({}) is None
