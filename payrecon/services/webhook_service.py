"""
Webhook receiver: verify -> idempotency check -> audit write -> dispatch -> mark processed.

The audit row is written before any domain mutation so a crash mid-handling
leaves a known re-entry point; a failure captures the delivery to the
dead-letter queue and answers 500 so the provider re-delivers.
"""

import json
import logging
from typing import Any, Dict, Mapping, Optional
from uuid import UUID

from pydantic import BaseModel
from tortoise.exceptions import IntegrityError
from tortoise.transactions import in_transaction

from payrecon.core import config
from payrecon.core.clock import utcnow
from payrecon.core.money import from_minor_units
from payrecon.core.security import verify_signature
from payrecon.events.dead_letter import record_dead_letter
from payrecon.events.kinds import (
    DISPUTE_KINDS,
    REFUND_KINDS,
    EventKind,
    classify_event,
    extract_provider_ref,
    extract_reference,
)
from payrecon.models.dispute import Dispute, DisputeStatus, TERMINAL_DISPUTE_STATUSES
from payrecon.models.inbound_event import InboundEvent
from payrecon.models.order import (
    POST_PAYMENT_STATUSES,
    Order,
    OrderStatus,
    Transaction,
    TransactionStatus,
)
from payrecon.models.refund import Refund, RefundStatus, TERMINAL_REFUND_STATUSES

log = logging.getLogger("payrecon.webhook")

Links = Dict[str, Optional[UUID]]


class WebhookOutcome(BaseModel):
    status_code: int
    message: str
    event_id: Optional[str] = None
    audit_id: Optional[UUID] = None


def _event_id(event: Dict[str, Any], data: Dict[str, Any]) -> Optional[str]:
    """
    Idempotency key for a delivery. Paystack sends no delivery id, and ``data.id``
    is shared by every lifecycle event of one refund or dispute, so the event
    name is part of the key.
    """
    if event.get("id") is not None:
        return str(event["id"])
    if data.get("id") is None:
        return None
    return f"{event.get('event') or 'unknown'}:{data['id']}"


async def _order_for_reference(reference: Optional[str]) -> Optional[Order]:
    if not reference:
        return None
    return await Order.get_or_none(order_number=reference)


# ----------- Domain handlers -----------

async def handle_charge_success(data: Dict[str, Any]) -> Links:
    """Marks the charge's Transaction `success` and its Order `paid`."""
    reference = extract_reference(data)
    if not reference:
        log.warning("charge.success without a reference; nothing to reconcile.")
        return {}

    tx = await Transaction.get_or_none(provider_reference=reference)
    if tx:
        if tx.status in (TransactionStatus.PENDING, TransactionStatus.FAILED):
            tx.status = TransactionStatus.SUCCESS
            tx.provider_response = data
            await tx.save(update_fields=['status', 'provider_response', 'updated_at'])
        order = await Order.get_or_none(id=tx.order_id)
        if order and order.status in (OrderStatus.PENDING, OrderStatus.FAILED):
            order.status = OrderStatus.PAID
            await order.save(update_fields=['status', 'updated_at'])
        log.info(f"Transaction {reference} confirmed; order {tx.order_id} paid.")
        return {"order_id": tx.order_id}

    # Fallback: the checkout request that should have created these rows was lost.
    amount = from_minor_units(data.get("amount"))
    currency = data.get("currency") or config.DEFAULT_CURRENCY
    customer = data.get("customer") if isinstance(data.get("customer"), dict) else {}
    try:
        async with in_transaction() as conn:
            order = await Order.get_or_none(order_number=reference).using_db(conn)
            if order is None:
                order = await Order.create(
                    order_number=reference,
                    customer_email=customer.get("email"),
                    subtotal=amount,
                    grand_total=amount,
                    currency=currency,
                    status=OrderStatus.PAID,
                    using_db=conn
                )
            elif order.status in (OrderStatus.PENDING, OrderStatus.FAILED):
                order.status = OrderStatus.PAID
                await order.save(update_fields=['status', 'updated_at'], using_db=conn)
            await Transaction.create(
                order=order,
                provider_reference=reference,
                amount=amount,
                currency=currency,
                status=TransactionStatus.SUCCESS,
                provider_response=data,
                using_db=conn
            )
        log.info(f"Created order/transaction pair for unseen reference {reference}.")
    except IntegrityError:
        # A racing delivery inserted the same reference first: already satisfied.
        log.info(f"Reference {reference} already recorded by a concurrent delivery.")
        order = await Order.get_or_none(order_number=reference)
    return {"order_id": order.id if order else None}


async def handle_charge_failed(data: Dict[str, Any]) -> Links:
    reference = extract_reference(data)
    order = await _order_for_reference(reference)
    tx = await Transaction.get_or_none(provider_reference=reference) if reference else None

    if tx and tx.status == TransactionStatus.PENDING:
        tx.status = TransactionStatus.FAILED
        tx.provider_response = data
        await tx.save(update_fields=['status', 'provider_response', 'updated_at'])

    if not order:
        log.warning(f"charge.failed for unknown reference {reference}; skipping.")
        return {}
    if order.status in POST_PAYMENT_STATUSES:
        # Out-of-order delivery: a success already landed for this order
        log.warning(f"Ignoring charge.failed for order {order.id} already in {order.status.value}.")
    elif order.status != OrderStatus.FAILED:
        order.status = OrderStatus.FAILED
        await order.save(update_fields=['status', 'updated_at'])
        log.info(f"Order {order.id} marked failed.")
    return {"order_id": order.id}


async def _refund_to_settle(order: Optional[Order], provider_ref: Optional[str]) -> Optional[Refund]:
    if provider_ref:
        refund = await Refund.filter(provider_ref=provider_ref).exclude(
            status__in=TERMINAL_REFUND_STATUSES).order_by("-created_at").first()
        if refund:
            return refund
    if order:
        return await Refund.filter(order_id=order.id, status=RefundStatus.PROCESSING).order_by("-created_at").first()
    return None


async def handle_refund_event(kind: EventKind, data: Dict[str, Any]) -> Links:
    """
    Provider refund notifications. Settlement events complete (or fail) the
    matching in-flight refund; anything else is recorded as a `created` refund.
    """
    reference = extract_reference(data)
    provider_ref = extract_provider_ref(data)
    if not reference and not provider_ref:
        log.warning(f"Refund event ({kind.value}) carries no reference; skipping.")
        return {}
    order = await _order_for_reference(reference)

    if kind in (EventKind.REFUND_PROCESSED, EventKind.REFUND_FAILED):
        refund = await _refund_to_settle(order, provider_ref)
        if refund:
            refund.status = RefundStatus.COMPLETED if kind == EventKind.REFUND_PROCESSED else RefundStatus.FAILED
            refund.admin_notes = json.dumps(data, default=str)
            refund.last_reconciled_at = utcnow()
            await refund.save(update_fields=['status', 'admin_notes', 'last_reconciled_at', 'updated_at'])
            if refund.status == RefundStatus.COMPLETED and refund.is_full_refund and refund.order_id:
                await Order.filter(id=refund.order_id).update(status=OrderStatus.REFUNDED)
            log.info(f"Refund {refund.id} settled by provider as {refund.status.value}.")
            return {"order_id": refund.order_id, "refund_id": refund.id}

    if provider_ref:
        existing = await Refund.filter(provider_ref=provider_ref).first()
        if existing:
            log.info(f"Refund {provider_ref} already recorded as {existing.id}.")
            return {"order_id": existing.order_id, "refund_id": existing.id}

    if order is None:
        log.warning(f"Refund event for unresolved reference {reference}; recording without order.")
    refund = await Refund.create(
        order=order,
        provider="paystack",
        provider_ref=provider_ref,
        amount=from_minor_units(data.get("amount")),
        currency=data.get("currency") or config.DEFAULT_CURRENCY,
        status=RefundStatus.CREATED,
    )
    return {"order_id": order.id if order else None, "refund_id": refund.id}


async def handle_dispute_event(kind: EventKind, data: Dict[str, Any]) -> Links:
    reference = extract_reference(data)
    provider_ref = extract_provider_ref(data)
    if not reference and not provider_ref:
        log.warning(f"Dispute event ({kind.value}) carries no reference; skipping.")
        return {}
    order = await _order_for_reference(reference)
    existing = await Dispute.filter(provider_ref=provider_ref).first() if provider_ref else None

    if kind == EventKind.DISPUTE_RESOLVED:
        if existing:
            if existing.status not in TERMINAL_DISPUTE_STATUSES:
                existing.status = DisputeStatus.RESOLVED
                existing.details = data
                existing.admin_notes = f"Resolved by provider: {data.get('resolution') or 'unspecified'}"
                existing.last_reconciled_at = utcnow()
                await existing.save(update_fields=['status', 'details', 'admin_notes', 'last_reconciled_at', 'updated_at'])
            return {"order_id": existing.order_id, "dispute_id": existing.id}
        dispute = await Dispute.create(order=order, provider_ref=provider_ref, status=DisputeStatus.RESOLVED, details=data)
        return {"order_id": order.id if order else None, "dispute_id": dispute.id}

    if existing:
        # Reminders re-send the same dispute
        return {"order_id": existing.order_id, "dispute_id": existing.id}
    dispute = await Dispute.create(order=order, provider_ref=provider_ref, status=DisputeStatus.OPEN, details=data)
    log.info(f"Dispute {dispute.id} opened for reference {reference}.")
    return {"order_id": order.id if order else None, "dispute_id": dispute.id}


async def dispatch_event(kind: EventKind, data: Dict[str, Any]) -> Links:
    """Routes a classified event to its handler. UNKNOWN events are audited only."""
    if kind == EventKind.CHARGE_SUCCESS:
        return await handle_charge_success(data)
    elif kind == EventKind.CHARGE_FAILED:
        return await handle_charge_failed(data)
    elif kind in REFUND_KINDS:
        return await handle_refund_event(kind, data)
    elif kind in DISPUTE_KINDS:
        return await handle_dispute_event(kind, data)
    elif kind == EventKind.UNKNOWN:
        return {}
    raise ValueError(f"No handler for event kind {kind!r}")


# ----------- Delivery orchestration -----------

async def _mark_processed(audit: InboundEvent, links: Links):
    audit.processed = True
    audit.processed_at = utcnow()
    audit.order_id = links.get("order_id") or audit.order_id
    audit.refund_id = links.get("refund_id") or audit.refund_id
    audit.dispute_id = links.get("dispute_id") or audit.dispute_id
    await audit.save(update_fields=['processed', 'processed_at', 'order_id', 'refund_id', 'dispute_id'])


async def process_delivery(provider: str, raw_body: bytes, headers: Mapping[str, str]) -> WebhookOutcome:
    """Handles one webhook delivery end to end and returns the HTTP outcome for the provider."""
    headers = {k.lower(): v for k, v in headers.items()}
    signature = headers.get(f"x-{provider}-signature")
    if not verify_signature(raw_body, config.WEBHOOK_SECRETS.get(provider), signature):
        log.warning(f"{provider} signature verification failed.")
        return WebhookOutcome(status_code=400, message="invalid signature")

    try:
        event = json.loads(raw_body)
    except ValueError:
        log.warning(f"Authenticated {provider} delivery is not valid JSON.")
        return WebhookOutcome(status_code=400, message="invalid payload")
    if not isinstance(event, dict):
        return WebhookOutcome(status_code=400, message="invalid payload")

    event_type = event.get("event")
    data = event.get("data") if isinstance(event.get("data"), dict) else {}
    event_id = _event_id(event, data)
    kind = classify_event(event_type)
    reference = extract_reference(data)

    try:
        # Idempotency check
        audit = await InboundEvent.get_or_none(event_id=event_id) if event_id else None
        if audit and audit.processed:
            log.info(f"Idempotency: event {event_id} already processed.")
            return WebhookOutcome(status_code=200, message="duplicate", event_id=event_id, audit_id=audit.id)
        if audit:
            log.info(f"Re-processing event {event_id}; previous delivery never completed.")
        else:
            try:
                audit = await InboundEvent.create(
                    provider=provider,
                    event_id=event_id,
                    event_type=event_type,
                    event_kind=kind.value,
                    reference=reference,
                    signature=signature,
                    headers=headers,
                    raw_body=bytes(raw_body),
                    payload=event,
                )
            except IntegrityError:
                log.info(f"Idempotency: event {event_id} recorded by a concurrent delivery.")
                return WebhookOutcome(status_code=200, message="duplicate", event_id=event_id)

        log.info(f"Handling {event_type} ({kind.value}) event {event_id}.")
        links = await dispatch_event(kind, data)
        await _mark_processed(audit, links)
        message = "ignored" if kind == EventKind.UNKNOWN else "ok"
        return WebhookOutcome(status_code=200, message=message, event_id=event_id, audit_id=audit.id)

    except Exception as e:
        log.error(f"Webhook handler error for event {event_id}: {e}", exc_info=True)
        try:
            await record_dead_letter(
                provider=provider,
                event_type=event_type,
                payload=event,
                error_text=str(e) or type(e).__name__,
                raw_body=bytes(raw_body),
                headers=headers,
                reference=reference,
            )
        except Exception:
            log.error(f"Failed to write event {event_id} to the dead-letter queue.", exc_info=True)
        return WebhookOutcome(status_code=500, message="error", event_id=event_id)
