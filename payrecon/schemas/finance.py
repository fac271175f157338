from pydantic import BaseModel, Field
from typing import Optional
from decimal import Decimal
import uuid


class OrderFinancials(BaseModel):
    """Per-order breakdown; every amount already rounded half-up to 2 dp."""
    order_id: Optional[uuid.UUID] = None
    gross_total: Decimal
    supplier_cost: Decimal
    paystack_fee: Decimal
    gross_profit: Decimal
    platform_fee: Decimal
    net_revenue: Decimal
    aura_net: Decimal


class LedgerTotals(BaseModel):
    gross: Decimal = Decimal("0.00")
    paystack_fees: Decimal = Decimal("0.00")
    platform_fees: Decimal = Decimal("0.00")
    supplier_costs: Decimal = Decimal("0.00")
    net: Decimal = Decimal("0.00")

    def add(self, financials: OrderFinancials) -> None:
        self.gross += financials.gross_total
        self.paystack_fees += financials.paystack_fee
        self.platform_fees += financials.platform_fee
        self.supplier_costs += financials.supplier_cost
        self.net += financials.aura_net


class SettlementSummary(BaseModel):
    proposals: int = 0
    amount: Decimal = Decimal("0.00")
    skipped_suppliers: int = 0


class FinancialReport(BaseModel):
    """Result of one daily financial reconciliation run."""
    report_date: str
    orders_count: int = 0
    orders_skipped: int = 0
    ledger_entries: int = 0
    supplier_settlements: int = 0
    settlement_amount: Decimal = Decimal("0.00")
    totals: LedgerTotals = Field(default_factory=LedgerTotals)
