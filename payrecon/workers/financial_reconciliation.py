"""
Financial reconciliation & settlement worker.

Runs once a day for the previous UTC day: writes per-order ledger rows (revenue,
provider fee, platform commission, supplier payout) and one settlement proposal
per supplier whose orders were delivered that day. Re-running for a date that
is already reconciled writes nothing new.
"""

import logging
from collections import defaultdict
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Any, Dict, List, Optional

from tortoise.exceptions import IntegrityError
from tortoise.transactions import in_transaction

from payrecon.core import config
from payrecon.core.clock import day_bounds, utcnow
from payrecon.core.money import quantize_money, to_decimal
from payrecon.models.ledger import LedgerCategory, LedgerEntry, LedgerEntryType
from payrecon.models.order import Order, OrderStatus
from payrecon.models.supplier import SupplierOrder, SupplierOrderStatus, SupplierSettlement
from payrecon.schemas.finance import FinancialReport, LedgerTotals, OrderFinancials, SettlementSummary
from payrecon.services.leases import job_lease

log = logging.getLogger("payrecon.financial_reconciliation")

JOB_NAME = "financial_reconciliation"

# Paid and everything fulfillment moves it to afterwards; refunded orders are excluded
RECONCILABLE_ORDER_STATUSES = (
    OrderStatus.PAID,
    OrderStatus.PROCESSING,
    OrderStatus.SHIPPED,
    OrderStatus.DELIVERED,
)


async def order_supplier_cost(order_id) -> Decimal:
    supplier_orders = await SupplierOrder.filter(order_id=order_id)
    return quantize_money(sum(
        (to_decimal(so.supplier_cost) * so.quantity for so in supplier_orders),
        Decimal("0"),
    ))


def compute_financials(order_id, grand_total: Any, supplier_cost: Any) -> OrderFinancials:
    """Pure fee arithmetic. Each figure is rounded before the next one uses it."""
    gross_total = quantize_money(grand_total)
    supplier_cost = quantize_money(supplier_cost)
    paystack_fee = quantize_money(gross_total * Decimal(config.PAYSTACK_COMMISSION_RATE))
    gross_profit = quantize_money(gross_total - supplier_cost)
    platform_fee = quantize_money(gross_profit * Decimal(config.PLATFORM_COMMISSION_RATE))
    net_revenue = quantize_money(gross_total - paystack_fee - platform_fee)
    aura_net = quantize_money(net_revenue - supplier_cost)
    return OrderFinancials(
        order_id=order_id,
        gross_total=gross_total,
        supplier_cost=supplier_cost,
        paystack_fee=paystack_fee,
        gross_profit=gross_profit,
        platform_fee=platform_fee,
        net_revenue=net_revenue,
        aura_net=aura_net,
    )


async def calculate_order_financials(order: Order) -> OrderFinancials:
    supplier_cost = await order_supplier_cost(order.id)
    return compute_financials(order.id, order.grand_total, supplier_cost)


def build_ledger_entries(order: Order, financials: OrderFinancials, report_date: date) -> List[LedgerEntry]:
    """Unsaved ledger rows for one order; zero-valued components are left out."""
    components = (
        (LedgerEntryType.ORDER_REVENUE, financials.aura_net, LedgerCategory.REVENUE,
         f"Revenue from order {order.order_number}"),
        (LedgerEntryType.PAYMENT_PROCESSOR_FEE, -financials.paystack_fee, LedgerCategory.EXPENSE,
         f"Paystack fee for order {order.order_number}"),
        (LedgerEntryType.PLATFORM_COMMISSION, financials.platform_fee, LedgerCategory.REVENUE,
         f"Platform commission for order {order.order_number}"),
        (LedgerEntryType.SUPPLIER_PAYOUT, -financials.supplier_cost, LedgerCategory.EXPENSE,
         f"Supplier cost for order {order.order_number}"),
    )
    return [
        LedgerEntry(
            date=report_date,
            entry_type=entry_type,
            order_id=order.id,
            description=description,
            amount=amount,
            category=category,
            currency=order.currency or config.DEFAULT_CURRENCY,
        )
        for entry_type, amount, category, description in components
        if amount != 0
    ]


async def write_order_ledger(order: Order, report_date: date) -> Optional[OrderFinancials]:
    """Writes the order's ledger rows for ``report_date``; None when it already has them."""
    if await LedgerEntry.exists(order_id=order.id, date=report_date):
        log.info(f"Order {order.order_number} already in the ledger for {report_date}; skipping.")
        return None

    financials = await calculate_order_financials(order)
    entries = build_ledger_entries(order, financials, report_date)
    if entries:
        async with in_transaction() as conn:
            await LedgerEntry.bulk_create(entries, using_db=conn)
    return financials


async def generate_supplier_settlements(report_date: date) -> SettlementSummary:
    start, end = day_bounds(report_date)
    delivered = await SupplierOrder.filter(
        status=SupplierOrderStatus.DELIVERED,
        last_status_update__gte=start,
        last_status_update__lt=end,
    ).order_by("created_at")

    summary = SettlementSummary()
    if not delivered:
        log.info(f"No supplier orders settled on {report_date}.")
        return summary

    by_supplier: Dict[str, List[SupplierOrder]] = defaultdict(list)
    for supplier_order in delivered:
        by_supplier[supplier_order.supplier_name].append(supplier_order)

    for supplier_name, supplier_orders in by_supplier.items():
        if await SupplierSettlement.exists(settlement_date=report_date, supplier_name=supplier_name):
            summary.skipped_suppliers += 1
            continue

        total = quantize_money(sum(
            (to_decimal(so.supplier_cost) * so.quantity for so in supplier_orders),
            Decimal("0"),
        ))
        try:
            await SupplierSettlement.create(
                settlement_date=report_date,
                supplier_name=supplier_name,
                total_amount=total,
                order_count=len(supplier_orders),
                details={"orders": [str(so.id) for so in supplier_orders]},
            )
        except IntegrityError:
            # Settled by a concurrent run between the check and the insert
            summary.skipped_suppliers += 1
            continue
        summary.proposals += 1
        summary.amount += total

    log.info(f"Supplier settlements created for {report_date}: {summary.proposals} "
             f"totalling {summary.amount}.")
    return summary


async def generate_daily_report(report_date: date) -> FinancialReport:
    start, end = day_bounds(report_date)
    orders = await Order.filter(
        status__in=RECONCILABLE_ORDER_STATUSES,
        created_at__gte=start,
        created_at__lt=end,
    ).order_by("created_at")

    report = FinancialReport(report_date=report_date.isoformat())
    totals = LedgerTotals()
    for order in orders:
        financials = await write_order_ledger(order, report_date)
        if financials is None:
            report.orders_skipped += 1
            continue
        report.orders_count += 1
        report.ledger_entries += len(build_ledger_entries(order, financials, report_date))
        totals.add(financials)
    report.totals = totals

    if not orders:
        log.info(f"No completed orders on {report_date}.")

    settlements = await generate_supplier_settlements(report_date)
    report.supplier_settlements = settlements.proposals
    report.settlement_amount = settlements.amount
    return report


async def run_financial_reconciliation(now: Optional[datetime] = None,
                                       report_date: Optional[date] = None) -> Dict[str, Any]:
    now = now or utcnow()
    # Yesterday by default, so late webhooks for the day have landed
    report_date = report_date or (now - timedelta(days=1)).date()
    log.info(f"Starting financial reconciliation worker for {report_date}.")

    async with job_lease(JOB_NAME, now=now) as acquired:
        if not acquired:
            return {"skipped": "lease_held"}
        report = await generate_daily_report(report_date)

    log.info(f"Daily financial report generated: {report.model_dump()}")
    return report.model_dump()


if __name__ == "__main__":
    from payrecon.workers.runner import main
    main(["financials"])
