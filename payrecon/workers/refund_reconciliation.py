"""
Refund reconciliation worker.

Phase 1 replays refund events from the dead-letter queue into `pending` refunds.
Phase 2 pushes `requested`/`pending` refunds through the provider refund API
with a bounded attempt count. The worker never marks a refund `completed`;
only the provider's settlement webhook does.
"""

import logging
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from payrecon.core import config
from payrecon.core.clock import utcnow
from payrecon.core.money import from_minor_units, to_minor_units
from payrecon.events.kinds import REFUND_KINDS, extract_provider_ref, extract_reference
from payrecon.models.dead_letter import DeadLetterEntry
from payrecon.models.order import Order
from payrecon.models.refund import Refund, RefundStatus, RETRYABLE_REFUND_STATUSES, TERMINAL_REFUND_STATUSES
from payrecon.services.leases import job_lease
from payrecon.services.provider import PaystackClient
from payrecon.services.refund_service import latest_transaction, record_refund_attempt

log = logging.getLogger("payrecon.refund_reconciliation")

JOB_NAME = "refund_reconciliation"


async def _replay_dead_letter(entry: DeadLetterEntry, now: datetime) -> str:
    payload = entry.payload if isinstance(entry.payload, dict) else {}
    data = payload.get("data") if isinstance(payload.get("data"), dict) else {}
    reference = entry.reference or extract_reference(data)
    if not reference:
        log.warning(f"Dead letter {entry.id} has no reference; cannot replay.")
        return "missing_reference"

    order = await Order.get_or_none(order_number=reference)
    if not order:
        # Often an ordering race: the order may become queryable on a later run
        log.warning(f"Order not found for dead letter {entry.id} (reference {reference}).")
        return "order_not_found"

    provider_ref = extract_provider_ref(data)
    existing = await Refund.filter(provider_ref=provider_ref).first() if provider_ref else None
    if existing:
        log.info(f"Dead letter {entry.id} already materialized as refund {existing.id}.")
        return "replayed"

    refund = await Refund.create(
        order=order,
        provider=entry.provider,
        provider_ref=provider_ref,
        amount=from_minor_units(data.get("amount")),
        currency=data.get("currency") or order.currency,
        status=RefundStatus.PENDING,
    )
    log.info(f"Dead letter {entry.id} replayed as refund {refund.id}.")
    return "replayed"


async def replay_dead_letters(now: Optional[datetime] = None) -> Dict[str, int]:
    """Replays recent refund dead letters below the attempt cap, oldest error first."""
    now = now or utcnow()
    cutoff = now - timedelta(hours=config.DLQ_LOOKBACK_HOURS)
    failures = await DeadLetterEntry.filter(
        event_kind__in=[k.value for k in REFUND_KINDS],
        created_at__gte=cutoff,
        attempts__lt=config.MAX_ATTEMPTS,
        replayed_at__isnull=True,
    ).order_by("last_error_at").limit(config.DLQ_BATCH_SIZE)

    if not failures:
        log.info("No webhook failures to retry.")
        return {"attempted": 0, "succeeded": 0, "failed": 0}

    succeeded = failed = 0
    for entry in failures:
        try:
            outcome = await _replay_dead_letter(entry, now)
        except Exception as e:
            log.error(f"Error retrying dead letter {entry.id}: {e}", exc_info=True)
            outcome = f"replay_error: {e}"

        # Every replay counts toward the cap, successful or not
        entry.attempts += 1
        entry.last_error_at = now
        update_fields = ['attempts', 'last_error_at']
        if outcome == "replayed":
            entry.replayed_at = now
            update_fields.append('replayed_at')
            succeeded += 1
        else:
            entry.error_text = outcome
            update_fields.append('error_text')
            failed += 1
        await entry.save(update_fields=update_fields)

    return {"attempted": len(failures), "succeeded": succeeded, "failed": failed}


async def reconcile_refund(refund: Refund, client: PaystackClient, now: Optional[datetime] = None) -> Dict[str, Any]:
    """Attempts one provider refund call for ``refund`` and records the outcome."""
    now = now or utcnow()
    refund_id = str(refund.id)

    if refund.status in TERMINAL_REFUND_STATUSES:
        return {"refund_id": refund_id, "action": "skip", "reason": f"already_{refund.status.value}"}
    if refund.status not in RETRYABLE_REFUND_STATUSES:
        return {"refund_id": refund_id, "action": "skip", "reason": f"awaiting_provider_{refund.status.value}"}
    if refund.attempts >= config.MAX_ATTEMPTS:
        refund.status = RefundStatus.FAILED
        refund.last_reconciled_at = now
        await refund.save(update_fields=['status', 'last_reconciled_at', 'updated_at'])
        log.warning(f"Refund {refund_id} already at the attempt cap; marked failed.")
        return {"refund_id": refund_id, "action": "retry", "status": RefundStatus.FAILED.value, "attempt": refund.attempts}

    tx = await latest_transaction(refund.order_id)
    if not tx:
        log.warning(f"No transaction found for refund {refund_id} (order {refund.order_id}).")
        return {"refund_id": refund_id, "action": "skip", "reason": "no_transaction_found"}
    if not tx.provider_reference:
        log.warning(f"No provider reference on transaction for refund {refund_id}.")
        return {"refund_id": refund_id, "action": "skip", "reason": "no_provider_reference"}
    if not client.configured:
        log.warning(f"PAYSTACK_SECRET_KEY not set, cannot reconcile refund {refund_id}.")
        return {"refund_id": refund_id, "action": "skip", "reason": "no_secret_key"}

    try:
        result = await client.create_refund(tx.provider_reference, to_minor_units(refund.amount))
    except Exception as e:
        log.error(f"Exception during refund reconciliation for {refund_id}: {e}")
        status = await record_refund_attempt(refund, None, error=str(e), now=now)
        return {"refund_id": refund_id, "action": "error", "status": status.value,
                "reason": str(e), "attempt": refund.attempts}

    status = await record_refund_attempt(refund, result, now=now)
    if status == RefundStatus.PROCESSING:
        log.info(f"Refund {refund_id} accepted by provider; now processing.")
        return {"refund_id": refund_id, "action": "success", "status": status.value}
    log.warning(f"Provider refund API returned error for {refund_id} (HTTP {result.status_code}).")
    return {"refund_id": refund_id, "action": "retry", "status": status.value, "attempt": refund.attempts}


async def run_refund_reconciliation(client: Optional[PaystackClient] = None,
                                    now: Optional[datetime] = None) -> Dict[str, Any]:
    """One bounded batch: dead-letter replay, then pending refund settlement."""
    client = client or PaystackClient()
    now = now or utcnow()
    log.info("Starting refund reconciliation worker.")

    async with job_lease(JOB_NAME, now=now) as acquired:
        if not acquired:
            return {"skipped": "lease_held"}

        replay = await replay_dead_letters(now)
        log.info(f"Webhook failure retry result: {replay}")

        refunds = await Refund.filter(status__in=RETRYABLE_REFUND_STATUSES).order_by(
            "created_at").limit(config.REFUND_BATCH_SIZE)
        results = []
        for refund in refunds:
            result = await reconcile_refund(refund, client, now)
            log.info(f"Refund reconciliation result: {result}")
            results.append(result)

    summary = {
        "dead_letters": replay,
        "total": len(results),
        "successes": sum(1 for r in results if r["action"] == "success"),
        "retries": sum(1 for r in results if r["action"] == "retry"),
        "errors": sum(1 for r in results if r["action"] == "error"),
        "skipped": sum(1 for r in results if r["action"] == "skip"),
    }
    log.info(f"Refund reconciliation complete: {summary}")
    return summary


if __name__ == "__main__":
    from payrecon.workers.runner import main
    main(["refunds"])
