"""
Dispute & chargeback automation worker.

Disputes younger than the response TTL get an evidence package submitted to the
provider and move to `submitted` (or `escalated` once they are older than the
escalation threshold). Disputes past the TTL are escalated to support.
"""

import json
import logging
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from payrecon.core import config
from payrecon.core.clock import ensure_utc, utcnow
from payrecon.models.dispute import (
    ACTIONABLE_DISPUTE_STATUSES,
    TERMINAL_DISPUTE_STATUSES,
    Dispute,
    DisputeEvidence,
    DisputeStatus,
)
from payrecon.models.order import Order, OrderItem
from payrecon.services.leases import job_lease
from payrecon.services.provider import PaystackClient, ProviderError
from payrecon.services.refund_service import latest_transaction

log = logging.getLogger("payrecon.dispute_automation")

JOB_NAME = "dispute_automation"
TTL_ESCALATION_NOTE = "Response TTL exceeded - escalating to support team"


async def collect_dispute_evidence(dispute: Dispute) -> Dict[str, Any]:
    """Gathers the order, its items, the latest charge and any admin-attached artifacts."""
    evidence: Dict[str, Any] = {
        "order": None,
        "items": [],
        "transaction": None,
        "attached_files": [],
    }
    if dispute.order_id:
        evidence["order"] = await Order.get_or_none(id=dispute.order_id)
        evidence["items"] = await OrderItem.filter(order_id=dispute.order_id)
        evidence["transaction"] = await latest_transaction(dispute.order_id)
    evidence["attached_files"] = await DisputeEvidence.filter(dispute_id=dispute.id).order_by("uploaded_at")
    return evidence


def build_evidence_payload(evidence: Dict[str, Any]) -> Dict[str, Any]:
    order: Optional[Order] = evidence.get("order")
    tx = evidence.get("transaction")

    lines = [f"Order #{order.order_number if order else 'unknown'}", "", "Order Items:"]
    for item in evidence.get("items") or []:
        lines.append(f"- {item.product_name} x{item.quantity} @ {item.unit_price}")
    if order:
        lines.extend(["", f"Total: {order.grand_total} {order.currency}"])
    attachments = evidence.get("attached_files") or []
    if attachments:
        lines.extend(["", "Attached evidence:"])
        for artifact in attachments:
            suffix = f" ({artifact.file_url})" if artifact.file_url else ""
            lines.append(f"- [{artifact.evidence_type}] {artifact.description}{suffix}")

    shipping = order.shipping_address if order and isinstance(order.shipping_address, dict) else {}
    return {
        "customer_email": (order.customer_email if order else None) or "unknown@example.com",
        "customer_name": shipping.get("name") or "AuraCart Customer",
        "customer_phone": shipping.get("phone") or "",
        "proof_of_delivery": json.dumps(tx.provider_response, default=str) if tx and tx.provider_response else None,
        "dispute_response_body": "\n".join(lines),
    }


async def submit_evidence(dispute: Dispute, client: PaystackClient) -> bool:
    """
    Sends the evidence package. Returns whether the provider accepted it.
    Missing configuration returns False; transport failures raise ``ProviderError``.
    """
    if not client.configured or not dispute.provider_ref:
        log.warning(f"Cannot submit evidence for dispute {dispute.id}: missing secret key or provider ref.")
        return False

    evidence = await collect_dispute_evidence(dispute)
    result = await client.submit_dispute_evidence(dispute.provider_ref, build_evidence_payload(evidence))
    if result.ok:
        log.info(f"Dispute evidence submitted for {dispute.id} ({dispute.provider_ref}).")
    else:
        log.warning(f"Dispute evidence submission failed for {dispute.id} (HTTP {result.status_code}).")
    return result.ok


async def reconcile_dispute(dispute: Dispute, client: PaystackClient,
                            now: Optional[datetime] = None) -> Dict[str, Any]:
    now = now or utcnow()
    dispute_id = str(dispute.id)

    if dispute.status in TERMINAL_DISPUTE_STATUSES:
        return {"dispute_id": dispute_id, "action": "skip", "reason": f"already_{dispute.status.value}"}

    age = now - ensure_utc(dispute.created_at)

    if age < timedelta(days=config.DISPUTE_TTL_DAYS):
        try:
            submitted = await submit_evidence(dispute, client)
        except ProviderError as e:
            log.error(f"Error reconciling dispute {dispute_id}: {e}")
            return {"dispute_id": dispute_id, "action": "error", "reason": str(e)}

        new_status = (DisputeStatus.ESCALATED if age > timedelta(days=config.DISPUTE_ESCALATION_DAYS)
                      else DisputeStatus.SUBMITTED)
        dispute.status = new_status
        dispute.evidence_submitted = True
        dispute.last_reconciled_at = now
        await dispute.save(update_fields=['status', 'evidence_submitted', 'last_reconciled_at', 'updated_at'])
        log.info(f"Dispute {dispute_id} moved to {new_status.value} (provider accepted: {submitted}).")
        return {"dispute_id": dispute_id, "action": "success", "status": new_status.value, "submitted": submitted}

    if not dispute.evidence_submitted:
        # Last chance before handing over; the escalation happens regardless
        try:
            await submit_evidence(dispute, client)
        except ProviderError as e:
            log.error(f"Final evidence submission failed for dispute {dispute_id}: {e}")

    dispute.status = DisputeStatus.ESCALATED
    dispute.admin_notes = TTL_ESCALATION_NOTE
    dispute.last_reconciled_at = now
    await dispute.save(update_fields=['status', 'admin_notes', 'last_reconciled_at', 'updated_at'])
    log.info(f"Dispute {dispute_id} escalated (TTL exceeded).")
    return {"dispute_id": dispute_id, "action": "escalated", "reason": "response_ttl_exceeded"}


async def run_dispute_automation(client: Optional[PaystackClient] = None,
                                 now: Optional[datetime] = None) -> Dict[str, Any]:
    client = client or PaystackClient()
    now = now or utcnow()
    log.info("Starting dispute automation worker.")

    async with job_lease(JOB_NAME, now=now) as acquired:
        if not acquired:
            return {"skipped": "lease_held"}

        disputes = await Dispute.filter(status__in=ACTIONABLE_DISPUTE_STATUSES).order_by(
            "created_at").limit(config.DISPUTE_BATCH_SIZE)
        if not disputes:
            log.info("No open disputes to process.")

        results = []
        for dispute in disputes:
            try:
                result = await reconcile_dispute(dispute, client, now)
            except Exception as e:
                log.error(f"Failed to reconcile dispute {dispute.id}: {e}", exc_info=True)
                result = {"dispute_id": str(dispute.id), "action": "error", "reason": str(e)}
            log.info(f"Dispute reconciliation result: {result}")
            results.append(result)

    summary = {
        "total": len(results),
        "successes": sum(1 for r in results if r["action"] == "success"),
        "escalated": sum(1 for r in results if r["action"] == "escalated"),
        "errors": sum(1 for r in results if r["action"] == "error"),
        "skipped": sum(1 for r in results if r["action"] == "skip"),
    }
    log.info(f"Dispute automation complete: {summary}")
    return summary


if __name__ == "__main__":
    from payrecon.workers.runner import main
    main(["disputes"])
