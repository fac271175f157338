import json
import logging
from datetime import datetime
from typing import Any, Dict, Optional, Tuple
from uuid import UUID

from payrecon.core.clock import utcnow
from payrecon.core.config import MAX_ATTEMPTS
from payrecon.core.money import quantize_money, to_minor_units
from payrecon.models.order import Order, Transaction
from payrecon.models.refund import Refund, RefundStatus
from payrecon.services.provider import PaystackClient, ProviderError, ProviderResult

log = logging.getLogger("payrecon.refunds")


async def latest_transaction(order_id: Optional[UUID]) -> Optional[Transaction]:
    """Most recent charge attempt for an order; its reference keys provider refunds."""
    if not order_id:
        return None
    return await Transaction.filter(order_id=order_id).order_by("-created_at").first()


async def record_refund_attempt(
    refund: Refund,
    result: Optional[ProviderResult],
    error: Optional[str] = None,
    now: Optional[datetime] = None,
    max_attempts: int = MAX_ATTEMPTS,
) -> RefundStatus:
    """
    Applies one provider refund attempt to ``refund``.

    Accepted -> `processing`. Rejected or raised -> `pending`, or `failed` once
    ``attempts`` reaches the cap. The provider body is kept verbatim in admin_notes.
    """
    now = now or utcnow()
    refund.attempts = (refund.attempts or 0) + 1
    refund.last_reconciled_at = now
    update_fields = ['status', 'attempts', 'admin_notes', 'last_reconciled_at', 'updated_at']

    if result is not None and result.ok:
        refund.status = RefundStatus.PROCESSING
        refund.admin_notes = json.dumps(result.body, default=str)
        provider_data = result.body.get("data")
        if not refund.provider_ref and isinstance(provider_data, dict) and provider_data.get("id") is not None:
            # Lets the provider's refund.processed webhook find this row
            refund.provider_ref = str(provider_data["id"])
            update_fields.append('provider_ref')
    else:
        refund.status = RefundStatus.FAILED if refund.attempts >= max_attempts else RefundStatus.PENDING
        notes: Dict[str, Any] = dict(result.body) if result is not None else {"error": error}
        notes["last_attempt"] = now.isoformat()
        refund.admin_notes = json.dumps(notes, default=str)

    await refund.save(update_fields=update_fields)
    return refund.status


async def issue_refund(
    order_id: UUID,
    amount: Any,
    client: PaystackClient,
    reason: Optional[str] = None,
    is_full_refund: Optional[bool] = None,
) -> Tuple[Refund, Optional[Dict[str, Any]]]:
    """
    Admin-triggered refund: records a `requested` refund, then tries the provider
    immediately. Returns the refund and the provider response (None when no call was made).
    """
    order = await Order.get_or_none(id=order_id)
    if not order:
        raise LookupError("order_not_found")

    amount = quantize_money(amount)
    if amount <= 0:
        raise ValueError("refund_amount must be positive")
    if is_full_refund is None:
        is_full_refund = amount >= quantize_money(order.grand_total)

    refund = await Refund.create(
        order=order,
        amount=amount,
        currency=order.currency,
        reason=reason,
        is_full_refund=is_full_refund,
        status=RefundStatus.REQUESTED,
    )
    log.info(f"Refund {refund.id} requested for order {order.id} ({amount} {order.currency}).")

    if not client.configured:
        log.warning(f"PAYSTACK_SECRET_KEY not set; refund {refund.id} left for reconciliation.")
        return refund, None

    tx = await latest_transaction(order.id)
    if not tx or not tx.provider_reference:
        log.warning(f"No provider reference for order {order.id}; refund {refund.id} left for reconciliation.")
        return refund, None

    try:
        result = await client.create_refund(tx.provider_reference, to_minor_units(amount))
    except ProviderError as e:
        log.error(f"Provider refund call failed for refund {refund.id}: {e}")
        await record_refund_attempt(refund, None, error=str(e))
        return refund, {"error": str(e)}

    await record_refund_attempt(refund, result)
    return refund, result.body
