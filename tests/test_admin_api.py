import json
from datetime import timedelta
from decimal import Decimal
from uuid import uuid4

import pytest

from conftest import NOW, make_paid_order, paystack_client, rejected_handler
from payrecon.core.rate_limit import InMemoryRateLimiter
from payrecon.core.security import require_admin
from payrecon.events.dead_letter import record_dead_letter
from payrecon.main import app
from payrecon.models.dispute import Dispute, DisputeEvidence, DisputeStatus
from payrecon.models.order import OrderItem
from payrecon.models.refund import Refund, RefundStatus
from payrecon.models.supplier import SupplierMetric, SupplierOrder


@pytest.mark.asyncio
class TestAdminAuth:
    async def test_missing_token_is_401(self, api_client):
        response = await api_client.get("/api/v1/admin/refunds")

        assert response.status_code == 401
        body = response.json()
        assert body["success"] is False
        assert body["error"] == "missing_authorization"

    async def test_wrong_token_is_401(self, api_client):
        response = await api_client.get("/api/v1/admin/refunds", headers={"Authorization": "Bearer wrong"})
        assert response.status_code == 401
        assert response.json()["error"] == "invalid_token"

    async def test_auth_dependency_can_be_overridden(self, api_client):
        app.dependency_overrides[require_admin] = lambda: "test-admin"
        response = await api_client.get("/api/v1/admin/orders")
        assert response.status_code == 200

    async def test_rate_limit_returns_429_with_retry_after(self, api_client, admin_headers):
        app.state.rate_limiter = InMemoryRateLimiter(points=2, duration=60)

        statuses = [(await api_client.get("/api/v1/admin/refunds", headers=admin_headers)).status_code
                    for _ in range(3)]

        assert statuses == [200, 200, 429]
        response = await api_client.get("/api/v1/admin/refunds", headers=admin_headers)
        assert response.json()["error"] == "rate_limited"
        assert int(response.headers["retry-after"]) >= 1

    async def test_rotating_tokens_share_one_bucket(self, api_client):
        app.state.rate_limiter = InMemoryRateLimiter(points=3, duration=60)

        statuses = [(await api_client.get("/api/v1/admin/refunds",
                                          headers={"Authorization": f"Bearer fake-{i}"})).status_code
                    for i in range(5)]

        assert statuses == [401, 401, 401, 429, 429]

    async def test_forwarded_for_header_does_not_open_a_new_bucket(self, api_client, admin_headers):
        app.state.rate_limiter = InMemoryRateLimiter(points=1, duration=60)

        first = await api_client.get("/api/v1/admin/refunds", headers=admin_headers)
        second = await api_client.get("/api/v1/admin/refunds",
                                      headers=dict(admin_headers, **{"X-Forwarded-For": "10.9.8.7"}))

        assert (first.status_code, second.status_code) == (200, 429)


@pytest.mark.asyncio
class TestAdminListings:
    async def test_refunds_filtered_by_status(self, api_client, admin_headers):
        order, _ = await make_paid_order()
        await Refund.create(order=order, amount=Decimal("10.00"), status=RefundStatus.PENDING)
        await Refund.create(order=order, amount=Decimal("20.00"), status=RefundStatus.COMPLETED)

        response = await api_client.get("/api/v1/admin/refunds", params={"status": "pending"}, headers=admin_headers)

        assert response.status_code == 200
        body = response.json()
        assert body["count"] == 1
        assert body["data"][0]["amount"] == "10.00"
        assert body["data"][0]["status"] == "pending"
        assert response.headers["x-ratelimit-limit"] == "100"

    async def test_invalid_status_filter_is_400(self, api_client, admin_headers):
        response = await api_client.get("/api/v1/admin/refunds", params={"status": "bogus"}, headers=admin_headers)
        assert response.status_code == 400
        assert response.json()["error"] == "validation_error"

    async def test_orders_and_disputes(self, api_client, admin_headers):
        order, _ = await make_paid_order()
        await Dispute.create(order=order, provider_ref="D-1")

        orders = (await api_client.get("/api/v1/admin/orders", headers=admin_headers)).json()
        disputes = (await api_client.get("/api/v1/admin/disputes", headers=admin_headers)).json()

        assert orders["data"][0]["order_number"] == "AUR-1001"
        assert disputes["data"][0]["provider_ref"] == "D-1"

    async def test_dead_letters_hide_replayed(self, api_client, admin_headers):
        await record_dead_letter("paystack", "refund.pending", {"event": "refund.pending"}, "boom", reference="A")
        replayed = await record_dead_letter("paystack", "charge.success", {"event": "charge.success"}, "boom")
        replayed.replayed_at = NOW
        await replayed.save()

        default = (await api_client.get("/api/v1/admin/dead-letters", headers=admin_headers)).json()
        everything = (await api_client.get("/api/v1/admin/dead-letters", params={"include_replayed": "true"},
                                           headers=admin_headers)).json()
        refunds_only = (await api_client.get("/api/v1/admin/dead-letters", params={"kind": "refund_initiated"},
                                             headers=admin_headers)).json()

        assert default["count"] == 1
        assert everything["count"] == 2
        assert refunds_only["data"][0]["reference"] == "A"


@pytest.mark.asyncio
class TestIssueRefund:
    async def test_accepted_refund_is_processing(self, api_client, admin_headers):
        order, _ = await make_paid_order()

        response = await api_client.post("/api/v1/admin/refunds/issue", headers=admin_headers,
                                         json={"order_id": str(order.id), "refund_amount": "2500", "reason": "damaged"})

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["provider"]["status"] is True
        refund = await Refund.get(id=data["refund"]["id"])
        assert refund.status == RefundStatus.PROCESSING
        assert refund.amount == Decimal("2500.00")
        assert refund.is_full_refund is False
        assert refund.attempts == 1
        assert refund.reason == "damaged"

    async def test_provider_rejection_leaves_refund_pending(self, api_client, admin_headers):
        app.state.provider_client = paystack_client(rejected_handler)
        order, _ = await make_paid_order()

        response = await api_client.post("/api/v1/admin/refunds/issue", headers=admin_headers,
                                         json={"order_id": str(order.id), "refund_amount": "10000.00"})

        refund = await Refund.get(id=response.json()["data"]["refund"]["id"])
        assert refund.status == RefundStatus.PENDING
        assert refund.attempts == 1
        assert refund.is_full_refund is True
        assert json.loads(refund.admin_notes)["status"] is False

    async def test_unknown_order_is_404(self, api_client, admin_headers):
        response = await api_client.post("/api/v1/admin/refunds/issue", headers=admin_headers,
                                         json={"order_id": str(uuid4()), "refund_amount": "1.00"})
        assert response.status_code == 404
        assert response.json()["error"] == "order_not_found"

    async def test_non_positive_amount_is_400(self, api_client, admin_headers):
        order, _ = await make_paid_order()
        response = await api_client.post("/api/v1/admin/refunds/issue", headers=admin_headers,
                                         json={"order_id": str(order.id), "refund_amount": "0"})
        assert response.status_code == 400
        assert await Refund.all().count() == 0


@pytest.mark.asyncio
class TestDisputeConsole:
    async def test_detail_includes_evidence(self, api_client, admin_headers):
        order, _ = await make_paid_order()
        dispute = await Dispute.create(order=order, provider_ref="D-1")
        await DisputeEvidence.create(dispute=dispute, description="Tracking number 1Z999")

        response = await api_client.get(f"/api/v1/admin/disputes/{dispute.id}", headers=admin_headers)

        data = response.json()["data"]
        assert data["dispute"]["id"] == str(dispute.id)
        assert data["evidence"][0]["description"] == "Tracking number 1Z999"

    async def test_attach_evidence_marks_dispute(self, api_client, admin_headers):
        dispute = await Dispute.create(provider_ref="D-2")

        response = await api_client.post(f"/api/v1/admin/disputes/{dispute.id}/evidence", headers=admin_headers,
                                         json={"description": "Courier receipt", "evidence_type": "delivery_proof",
                                               "admin_id": "adm-7"})

        assert response.status_code == 201
        assert response.json()["data"]["evidence_type"] == "delivery_proof"
        assert (await Dispute.get(id=dispute.id)).evidence_submitted is True

    async def test_patch_updates_status_and_notes(self, api_client, admin_headers):
        dispute = await Dispute.create(provider_ref="D-3")

        response = await api_client.patch(f"/api/v1/admin/disputes/{dispute.id}", headers=admin_headers,
                                          json={"status": "won", "admin_notes": "Bank ruled for merchant"})

        assert response.status_code == 200
        dispute = await Dispute.get(id=dispute.id)
        assert dispute.status == DisputeStatus.WON
        assert dispute.admin_notes == "Bank ruled for merchant"
        assert dispute.last_reconciled_at is not None

    async def test_patch_requires_a_change(self, api_client, admin_headers):
        dispute = await Dispute.create(provider_ref="D-4")
        response = await api_client.patch(f"/api/v1/admin/disputes/{dispute.id}", headers=admin_headers, json={})
        assert response.status_code == 400

    async def test_unknown_dispute_is_404(self, api_client, admin_headers):
        response = await api_client.get(f"/api/v1/admin/disputes/{uuid4()}", headers=admin_headers)
        assert response.status_code == 404
        assert response.json()["error"] == "not_found"


@pytest.mark.asyncio
class TestSupplierEndpoints:
    async def test_latest_metric_per_supplier(self, api_client, admin_headers):
        for name, score, grade, age in (("Shenzhen Co", 70.0, "C", 2), ("Shenzhen Co", 91.0, "A", 1),
                                        ("Lagos Ltd", 85.0, "B", 1)):
            await SupplierMetric.create(supplier_name=name, sla_score=score, sla_grade=grade,
                                        calculated_at=NOW - timedelta(days=age))

        data = (await api_client.get("/api/v1/admin/suppliers", headers=admin_headers)).json()["data"]

        assert [(m["supplier_name"], m["sla_grade"]) for m in data] == [("Shenzhen Co", "A"), ("Lagos Ltd", "B")]

    async def test_supplier_detail(self, api_client, admin_headers):
        order, _ = await make_paid_order()
        await SupplierOrder.create(order=order, supplier_name="Lagos Ltd", supplier_cost=Decimal("12.50"))
        await SupplierMetric.create(supplier_name="Lagos Ltd", sla_score=85.0, sla_grade="B", calculated_at=NOW)

        data = (await api_client.get("/api/v1/admin/suppliers/Lagos Ltd", headers=admin_headers)).json()["data"]

        assert data["metrics"]["sla_grade"] == "B"
        assert data["orders"][0]["supplier_cost"] == "12.50"

    async def test_unknown_supplier_is_404(self, api_client, admin_headers):
        response = await api_client.get("/api/v1/admin/suppliers/Nobody", headers=admin_headers)
        assert response.status_code == 404


@pytest.mark.asyncio
class TestConfirmPayment:
    async def test_lookup_by_reference(self, api_client):
        order, _ = await make_paid_order(tx_reference="PSK-REF-1")
        await OrderItem.create(order=order, product_name="Desk Lamp", quantity=1,
                               unit_price=Decimal("10000.00"), line_total=Decimal("10000.00"))

        by_tx = (await api_client.get("/api/v1/payments/confirm", params={"reference": "PSK-REF-1"})).json()["data"]
        by_order = (await api_client.get("/api/v1/payments/confirm", params={"ref": "AUR-1001"})).json()["data"]

        for data in (by_tx, by_order):
            assert data["order"]["order_number"] == "AUR-1001"
            assert data["transaction"]["provider_reference"] == "PSK-REF-1"
            assert data["items"][0]["product_name"] == "Desk Lamp"

    async def test_unknown_reference_returns_nulls(self, api_client):
        data = (await api_client.get("/api/v1/payments/confirm", params={"reference": "nope"})).json()["data"]
        assert data == {"order": None, "items": [], "transaction": None}

    async def test_missing_reference_is_400(self, api_client):
        response = await api_client.get("/api/v1/payments/confirm")
        assert response.status_code == 400
        assert response.json()["error"] == "missing_reference"
