import json
from datetime import datetime, timezone
from decimal import Decimal

import httpx
import pytest
import pytest_asyncio

from payrecon.core import config
from payrecon.core.db import close_db, init_db
from payrecon.core.rate_limit import InMemoryRateLimiter
from payrecon.core.security import require_admin, sign_payload
from payrecon.main import app
from payrecon.models.order import Order, OrderStatus, Transaction, TransactionStatus
from payrecon.services.provider import PaystackClient

WEBHOOK_SECRET = "whsec_test"
ADMIN_TOKEN = "admin-test-token"
NOW = datetime(2024, 6, 15, 12, 0, tzinfo=timezone.utc)


@pytest_asyncio.fixture
async def db():
    """Fresh in-memory database per test."""
    await init_db("sqlite://:memory:")
    yield
    await close_db()


@pytest.fixture(autouse=True)
def webhook_secret(monkeypatch):
    monkeypatch.setitem(config.WEBHOOK_SECRETS, "paystack", WEBHOOK_SECRET)
    monkeypatch.setattr(config, "ADMIN_API_TOKEN", ADMIN_TOKEN)
    return WEBHOOK_SECRET


def signed_delivery(event: dict, secret: str = WEBHOOK_SECRET):
    """Raw body plus the headers Paystack would send for it."""
    raw = json.dumps(event).encode("utf-8")
    return raw, {"x-paystack-signature": sign_payload(raw, secret), "content-type": "application/json"}


def provider_transport(handler):
    """MockTransport recording every request it answers on ``transport.calls``."""
    calls = []

    def _handle(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return handler(request)

    transport = httpx.MockTransport(_handle)
    transport.calls = calls
    return transport


def paystack_client(handler) -> PaystackClient:
    return PaystackClient(secret_key="sk_test", base_url="https://paystack.test",
                          transport=provider_transport(handler))


def ok_refund_handler(request: httpx.Request) -> httpx.Response:
    return httpx.Response(200, json={"status": True, "message": "Refund has been queued for processing",
                                     "data": {"id": 3018284, "status": "pending"}})


def rejected_handler(request: httpx.Request) -> httpx.Response:
    return httpx.Response(400, json={"status": False, "message": "Transaction has been fully reversed"})


async def backdate(model, obj_id, **fields):
    """Overrides auto_now timestamps on an existing row."""
    await model.filter(id=obj_id).update(**fields)
    return await model.get(id=obj_id)


async def make_paid_order(reference: str = "AUR-1001", grand_total: str = "10000.00",
                          status: OrderStatus = OrderStatus.PAID, tx_reference: str = None):
    order = await Order.create(
        order_number=reference,
        customer_email="buyer@example.com",
        subtotal=Decimal(grand_total),
        grand_total=Decimal(grand_total),
        status=status,
    )
    tx = await Transaction.create(
        order=order,
        provider_reference=tx_reference or reference,
        amount=Decimal(grand_total),
        status=TransactionStatus.SUCCESS,
        provider_response={"status": "success"},
    )
    return order, tx


@pytest.fixture
def admin_headers():
    return {"Authorization": f"Bearer {ADMIN_TOKEN}"}


@pytest_asyncio.fixture
async def api_client(db):
    """ASGI client with a fresh rate limiter and a mocked provider."""
    app.state.rate_limiter = InMemoryRateLimiter(points=100, duration=60)
    app.state.provider_client = paystack_client(ok_refund_handler)
    transport = httpx.ASGITransport(app=app, raise_app_exceptions=False)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as client:
        yield client
    app.dependency_overrides.pop(require_admin, None)
