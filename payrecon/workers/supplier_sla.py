"""
Supplier SLA scoring worker.

Scores every supplier with orders in the trailing window on fulfillment,
on-time delivery, cancellations, returns and disputes, and appends a
SupplierMetric snapshot per supplier per run.
"""

import logging
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from payrecon.core import config
from payrecon.core.clock import ensure_utc, utcnow
from payrecon.models.dispute import Dispute
from payrecon.models.refund import Refund
from payrecon.models.supplier import SupplierMetric, SupplierOrder, SupplierOrderStatus
from payrecon.schemas.supplier import SupplierPerformance
from payrecon.services.leases import job_lease

log = logging.getLogger("payrecon.supplier_sla")

JOB_NAME = "supplier_sla"

SCORE_WEIGHTS = {
    "fulfillment_rate": 0.30,
    "on_time_delivery_rate": 0.25,
    "cancellation_rate": 0.20,   # Inverted
    "return_rate": 0.15,         # Inverted
    "satisfaction_score": 0.10,
}

GRADE_THRESHOLDS = ((90, "A"), (80, "B"), (70, "C"), (60, "D"))


def compute_supplier_score(metrics: SupplierPerformance) -> float:
    """Weighted 0-100 score, rounded to 2 dp."""
    score = (
        metrics.fulfillment_rate * SCORE_WEIGHTS["fulfillment_rate"]
        + metrics.on_time_delivery_rate * SCORE_WEIGHTS["on_time_delivery_rate"]
        + (1 - metrics.cancellation_rate) * SCORE_WEIGHTS["cancellation_rate"]
        + (1 - metrics.return_rate) * SCORE_WEIGHTS["return_rate"]
        + metrics.satisfaction_score * SCORE_WEIGHTS["satisfaction_score"]
    )
    return round(score * 100, 2)


def grade_for_score(score: float) -> str:
    for threshold, grade in GRADE_THRESHOLDS:
        if score >= threshold:
            return grade
    return "F"


async def calculate_supplier_metrics(supplier_name: str, period_days: int = config.SLA_PERIOD_DAYS,
                                     now: Optional[datetime] = None) -> SupplierPerformance:
    now = now or utcnow()
    since = now - timedelta(days=period_days)
    supplier_orders = await SupplierOrder.filter(supplier_name=supplier_name, created_at__gte=since)

    metrics = SupplierPerformance(supplier_name=supplier_name, period_days=period_days)
    if not supplier_orders:
        return metrics

    on_time_window = timedelta(days=config.ON_TIME_DELIVERY_DAYS)
    metrics.total_orders = len(supplier_orders)
    for so in supplier_orders:
        if so.status == SupplierOrderStatus.DELIVERED:
            metrics.fulfilled_orders += 1
            if so.last_status_update and (
                    ensure_utc(so.last_status_update) - ensure_utc(so.created_at) <= on_time_window):
                metrics.on_time_deliveries += 1
        elif so.status == SupplierOrderStatus.CANCELLED:
            metrics.cancelled_orders += 1

    order_ids = list({so.order_id for so in supplier_orders})
    metrics.dispute_count = await Dispute.filter(order_id__in=order_ids).count()
    metrics.return_count = await Refund.filter(order_id__in=order_ids, is_full_refund=True).count()

    total = metrics.total_orders
    metrics.fulfillment_rate = metrics.fulfilled_orders / total
    metrics.on_time_delivery_rate = (
        metrics.on_time_deliveries / metrics.fulfilled_orders if metrics.fulfilled_orders else 0.0
    )
    metrics.cancellation_rate = metrics.cancelled_orders / total
    metrics.return_rate = metrics.return_count / total
    metrics.satisfaction_score = max(0.0, 1 - (metrics.dispute_count / total) * 0.5)
    return metrics


async def score_supplier(supplier_name: str, period_days: int, now: datetime) -> SupplierMetric:
    metrics = await calculate_supplier_metrics(supplier_name, period_days, now)
    score = compute_supplier_score(metrics)
    return await SupplierMetric.create(
        supplier_name=supplier_name,
        period_days=period_days,
        total_orders=metrics.total_orders,
        fulfilled_orders=metrics.fulfilled_orders,
        cancelled_orders=metrics.cancelled_orders,
        fulfillment_rate=round(metrics.fulfillment_rate, 4),
        on_time_delivery_rate=round(metrics.on_time_delivery_rate, 4),
        cancellation_rate=round(metrics.cancellation_rate, 4),
        return_rate=round(metrics.return_rate, 4),
        satisfaction_score=round(metrics.satisfaction_score, 4),
        dispute_count=metrics.dispute_count,
        return_count=metrics.return_count,
        sla_score=score,
        sla_grade=grade_for_score(score),
        calculated_at=now,
    )


async def run_supplier_scoring(now: Optional[datetime] = None,
                               period_days: int = config.SLA_PERIOD_DAYS) -> Dict[str, Any]:
    now = now or utcnow()
    log.info("Starting supplier SLA scoring worker.")

    async with job_lease(JOB_NAME, now=now) as acquired:
        if not acquired:
            return {"skipped": "lease_held"}

        since = now - timedelta(days=period_days)
        names = await SupplierOrder.filter(created_at__gte=since).distinct().values_list(
            "supplier_name", flat=True)
        suppliers = sorted({name for name in names if name})
        if not suppliers:
            log.info("No suppliers found.")

        grades: Dict[str, str] = {}
        errors = 0
        for supplier_name in suppliers:
            try:
                metric = await score_supplier(supplier_name, period_days, now)
            except Exception as e:
                log.error(f"Failed to score supplier {supplier_name}: {e}", exc_info=True)
                errors += 1
                continue
            log.info(f"Supplier scored: {supplier_name} -> {metric.sla_score} ({metric.sla_grade})")
            grades[supplier_name] = metric.sla_grade

    summary = {"total": len(suppliers), "scored": len(grades), "errors": errors, "grades": grades}
    log.info(f"Supplier SLA scoring complete: {summary}")
    return summary


if __name__ == "__main__":
    from payrecon.workers.runner import main
    main(["suppliers"])
