"""Domain models - pure Python dataclasses representing ledger entities and read-models"""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Dict, List, Optional


class Category(str, Enum):
    """Customer risk tier, Alpha being the most reliable"""

    ALPHA = "Alpha"
    BETA = "Beta"
    GAMMA = "Gamma"
    DELTA = "Delta"


class FollowUpBucket(str, Enum):
    """Where the next scheduled follow-up falls relative to today"""

    OVERDUE = "overdue"
    DUE_TODAY = "due_today"
    DUE_TOMORROW = "due_tomorrow"
    DUE_THIS_WEEK = "due_this_week"
    DUE_THIS_MONTH = "due_this_month"
    NO_FOLLOW_UP = "no_follow_up"
    UNSCHEDULED_FUTURE = "unscheduled_future"


class RiskBand(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


# Ledger entities (owned by the persistence collaborator)


@dataclass
class Customer:
    id: str
    tenant_id: str
    name: str
    category: Category
    opening_balance_cents: int = 0
    credit_limit_cents: Optional[int] = None
    payment_terms_days: int = 0
    category_manual_override: bool = False


@dataclass
class Invoice:
    id: str
    tenant_id: str
    customer_id: str
    amount_cents: int
    invoice_date: date
    invoice_number: Optional[str] = None
    payment_terms_days: Optional[int] = None  # overrides the customer's terms when set


@dataclass
class Receipt:
    id: str
    tenant_id: str
    customer_id: str
    amount_cents: int
    date: date
    linked_invoice_id: Optional[str] = None
    receipt_type: Optional[str] = None


@dataclass
class FollowUp:
    id: str
    tenant_id: str
    customer_id: str
    follow_up_at: datetime
    next_follow_up_at: Optional[datetime] = None
    status: str = "Pending"
    remarks: Optional[str] = None


@dataclass
class CategoryRule:
    """Tier rule; every bound is inclusive and None means unbounded"""

    priority: int
    target_category: Category
    min_balance_cents: Optional[int] = None
    max_balance_cents: Optional[int] = None
    min_overdue_days: Optional[int] = None
    max_overdue_days: Optional[int] = None


@dataclass
class CustomerLedger:
    """Everything the engine knows about one customer at query time"""

    customer: Customer
    invoices: List[Invoice] = field(default_factory=list)
    receipts: List[Receipt] = field(default_factory=list)
    follow_ups: List[FollowUp] = field(default_factory=list)


@dataclass
class TenantLedger:
    """Row-level snapshot of one tenant's ledger"""

    tenant_id: str
    customers: List[Customer]
    invoices: List[Invoice] = field(default_factory=list)
    receipts: List[Receipt] = field(default_factory=list)
    follow_ups: List[FollowUp] = field(default_factory=list)

    def by_customer(self) -> List[CustomerLedger]:
        """Group rows per customer, preserving customer order"""
        ledgers: Dict[str, CustomerLedger] = {
            c.id: CustomerLedger(customer=c) for c in self.customers
        }
        for inv in self.invoices:
            if inv.customer_id in ledgers:
                ledgers[inv.customer_id].invoices.append(inv)
        for rec in self.receipts:
            if rec.customer_id in ledgers:
                ledgers[rec.customer_id].receipts.append(rec)
        for fu in self.follow_ups:
            if fu.customer_id in ledgers:
                ledgers[fu.customer_id].follow_ups.append(fu)
        return list(ledgers.values())


@dataclass
class LedgerTotals:
    """Per-customer sums and counts aggregated on the database side"""

    customer_id: str
    invoice_total_cents: int = 0
    invoice_count: int = 0
    min_invoice_cents: Optional[int] = None
    last_invoice_date: Optional[date] = None
    receipt_total_cents: int = 0
    receipt_count: int = 0
    min_receipt_cents: Optional[int] = None
    last_payment_date: Optional[date] = None


@dataclass
class ReceiptTypeTotal:
    receipt_type: str
    count: int
    total_cents: int


@dataclass
class TenantTotals:
    """Database-aggregated snapshot of one tenant, for reports that only need sums"""

    tenant_id: str
    customers: List[Customer]
    totals: Dict[str, LedgerTotals] = field(default_factory=dict)
    follow_ups: List[FollowUp] = field(default_factory=list)  # latest per customer only
    receipt_breakdown: List[ReceiptTypeTotal] = field(default_factory=list)


# Computed read-models


@dataclass(frozen=True)
class LedgerBalance:
    """Reconciled balance for one customer"""

    customer_id: str
    opening_balance_cents: int
    invoice_total_cents: int
    receipt_total_cents: int
    outstanding_balance_cents: int
    invoice_count: int
    receipt_count: int
    last_invoice_date: Optional[date]
    last_payment_date: Optional[date]


@dataclass(frozen=True)
class DebtorSnapshot:
    customer_id: str
    customer_name: str
    category: Category
    balance: LedgerBalance
    next_follow_up_at: Optional[datetime]
    follow_up_bucket: FollowUpBucket

    @property
    def outstanding_balance_cents(self) -> int:
        return self.balance.outstanding_balance_cents


@dataclass(frozen=True)
class InvoiceAllocation:
    """How much of an invoice has been settled by receipts, and when it closed"""

    invoice: Invoice
    due_date: date
    amount_cents: int
    paid_cents: int
    settled_on: Optional[date]

    @property
    def is_paid_in_full(self) -> bool:
        return self.paid_cents >= self.amount_cents

    @property
    def open_cents(self) -> int:
        return self.amount_cents - self.paid_cents


@dataclass(frozen=True)
class RiskForecast:
    customer_id: str
    customer_name: str
    category: Category
    stuck_probability: int
    risk_band: RiskBand
    expected_payment_date: Optional[date]
    on_time_rate: Optional[Decimal]  # None when no invoice is paid in full
    avg_delay_days: Decimal
    unpaid_invoices: int
    unpaid_amount_cents: int


@dataclass(frozen=True)
class ClassificationOutcome:
    customer_id: str
    previous_category: Category
    new_category: Category
    rule_priority: Optional[int]  # None when no rule matched
    skipped_override: bool = False

    @property
    def changed(self) -> bool:
        return self.new_category != self.previous_category
