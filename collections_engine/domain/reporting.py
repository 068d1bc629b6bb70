"""Aggregation reporting - composes per-customer results into dashboard read-models"""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple, TypeVar

from collections_engine.domain.classifier import parse_category
from collections_engine.domain.exceptions import AggregationFailed, DataError, TenantIsolationError
from collections_engine.domain.followups import BUCKET_ORDER, classify_follow_up, latest_next_follow_up
from collections_engine.domain.forecasting import (
    DEFAULT_POLICY,
    ScoringPolicy,
    forecast_payment_risk,
    rank_forecasts,
)
from collections_engine.domain.ledger import allocate_receipts, balance_from_totals
from collections_engine.domain.models import (
    Category,
    Customer,
    CustomerLedger,
    DebtorSnapshot,
    FollowUp,
    FollowUpBucket,
    InvoiceAllocation,
    LedgerBalance,
    ReceiptTypeTotal,
    RiskBand,
    RiskForecast,
    TenantLedger,
    TenantTotals,
)
from collections_engine.utils.date_utils import add_days, floor_day
from collections_engine.utils.money import divide_cents

T = TypeVar("T")
R = TypeVar("R")


@dataclass(frozen=True)
class SkippedCustomer:
    customer_id: str
    field: str
    reason: str

    @classmethod
    def from_error(cls, error: DataError) -> "SkippedCustomer":
        return cls(customer_id=error.customer_id, field=error.field, reason=error.message)


@dataclass
class Tally:
    """Count plus summed amount, used by every card-style roll-up"""

    count: int = 0
    total_cents: int = 0

    def add(self, amount_cents: int) -> None:
        self.count += 1
        self.total_cents += amount_cents


@dataclass
class DebtorFilters:
    category: Optional[Category] = None
    bucket: Optional[FollowUpBucket] = None
    search: Optional[str] = None
    include_settled: bool = False

    def accepts(self, snapshot: DebtorSnapshot) -> bool:
        if not self.include_settled and snapshot.outstanding_balance_cents <= 0:
            return False
        if self.category is not None and snapshot.category != self.category:
            return False
        if self.bucket is not None and snapshot.follow_up_bucket != self.bucket:
            return False
        if self.search and self.search.casefold() not in snapshot.customer_name.casefold():
            return False
        return True


@dataclass
class DebtorsReport:
    debtors: List[DebtorSnapshot]
    category_rollup: Dict[Category, Tally]
    total_outstanding_cents: int
    skipped: List[SkippedCustomer] = field(default_factory=list)


@dataclass
class FollowUpStats:
    buckets: Dict[FollowUpBucket, Tally]
    skipped: List[SkippedCustomer] = field(default_factory=list)


@dataclass
class ForecastReport:
    forecasts: List[RiskForecast]
    summary: Dict[RiskBand, int]
    skipped: List[SkippedCustomer] = field(default_factory=list)


@dataclass
class TenantSummary:
    tenant_id: str
    customer_count: int
    opening_balance_cents: int
    invoice_total_cents: int
    receipt_total_cents: int
    outstanding_balance_cents: int
    invoice_count: int
    receipt_count: int
    avg_invoice_value_cents: int
    avg_receipt_value_cents: int
    category_breakdown: Dict[Category, int]
    receipt_breakdown: List[ReceiptTypeTotal]
    skipped: List[SkippedCustomer] = field(default_factory=list)


class InvoiceStatus(str, Enum):
    UPCOMING = "upcoming"
    DUE_TODAY = "due_today"
    IN_GRACE = "in_grace"
    OVERDUE = "overdue"
    PAID_ON_TIME = "paid_on_time"
    PAID_LATE = "paid_late"


@dataclass
class InvoiceStatusCards:
    cards: Dict[InvoiceStatus, Tally]
    grace_days: int
    skipped: List[SkippedCustomer] = field(default_factory=list)


@dataclass(frozen=True)
class CreditUtilization:
    customer_id: str
    customer_name: str
    category: Category
    credit_limit_cents: Optional[int]
    utilized_cents: int
    available_cents: Optional[int]
    utilization_percent: Decimal


# Pure folds


def category_rollup(snapshots: Iterable[DebtorSnapshot]) -> Dict[Category, Tally]:
    """Count and balance per category; every category is present even when empty"""
    rollup = {category: Tally() for category in Category}
    for snapshot in snapshots:
        rollup[snapshot.category].add(snapshot.outstanding_balance_cents)
    return rollup


def follow_up_tallies(snapshots: Iterable[DebtorSnapshot]) -> Dict[FollowUpBucket, Tally]:
    buckets = {bucket: Tally() for bucket in BUCKET_ORDER}
    for snapshot in snapshots:
        buckets[snapshot.follow_up_bucket].add(snapshot.outstanding_balance_cents)
    return buckets


def forecast_summary(forecasts: Iterable[RiskForecast]) -> Dict[RiskBand, int]:
    summary = {band: 0 for band in RiskBand}
    for forecast in forecasts:
        summary[forecast.risk_band] += 1
    return summary


def classify_invoice_status(alloc: InvoiceAllocation, today: date, grace_days: int) -> InvoiceStatus:
    """
    Settled invoices are judged against due date plus grace; open ones
    against today. Each invoice lands in exactly one status.
    """
    grace_end = add_days(alloc.due_date, grace_days)
    if alloc.is_paid_in_full:
        if alloc.settled_on <= grace_end:
            return InvoiceStatus.PAID_ON_TIME
        return InvoiceStatus.PAID_LATE
    if alloc.due_date == today:
        return InvoiceStatus.DUE_TODAY
    if alloc.due_date > today:
        return InvoiceStatus.UPCOMING
    if today <= grace_end:
        return InvoiceStatus.IN_GRACE
    return InvoiceStatus.OVERDUE


def credit_utilization(customer: Customer, balance: LedgerBalance) -> CreditUtilization:
    limit = customer.credit_limit_cents
    utilized = balance.outstanding_balance_cents
    if limit:
        available: Optional[int] = limit - utilized
        percent = (Decimal(utilized) * 100 / Decimal(limit)).quantize(Decimal("0.01"))
    else:
        available = None
        percent = Decimal("0.00")
    return CreditUtilization(
        customer_id=customer.id,
        customer_name=customer.name,
        category=parse_category(customer.category, customer.id),
        credit_limit_cents=limit,
        utilized_cents=utilized,
        available_cents=available,
        utilization_percent=percent,
    )


def ensure_tenant(tenant_id: str, records: Iterable[Tuple[str, Sequence]]) -> None:
    """
    Refuse to compute over rows from another tenant.

    Raises:
        TenantIsolationError: any record carries a different tenant_id
    """
    for kind, rows in records:
        for row in rows:
            if row.tenant_id != tenant_id:
                raise TenantIsolationError(tenant_id, row.tenant_id, f"{kind} {row.id}")


def build_debtor_snapshot(
    customer: Customer, balance: LedgerBalance, follow_ups: Iterable[FollowUp], now: datetime
) -> DebtorSnapshot:
    next_follow_up_at = latest_next_follow_up(follow_ups)
    return DebtorSnapshot(
        customer_id=customer.id,
        customer_name=customer.name,
        category=parse_category(customer.category, customer.id),
        balance=balance,
        next_follow_up_at=next_follow_up_at,
        follow_up_bucket=classify_follow_up(next_follow_up_at, now),
    )


class AggregationReporter:
    """
    Runs per-customer computations on the worker pool and folds the results.

    Per-customer DataErrors skip that customer and are reported back; a batch
    where every customer fails raises AggregationFailed.
    """

    def __init__(self, pool, policy: ScoringPolicy = DEFAULT_POLICY, grace_days: int = 7):
        self.pool = pool
        self.policy = policy
        self.grace_days = grace_days

    def _fan_out(
        self, tenant_id: str, fn: Callable[[T], R], items: List[T]
    ) -> Tuple[List[R], List[SkippedCustomer]]:
        futures = self.pool.submit_all(tenant_id, fn, items)
        results: List[R] = []
        errors: List[DataError] = []
        for future in futures:
            try:
                results.append(future.result())
            except DataError as e:
                errors.append(e)
        if errors and len(errors) == len(futures):
            raise AggregationFailed(errors)
        return results, [SkippedCustomer.from_error(e) for e in errors]

    def _snapshots(self, snapshot: TenantTotals, now: datetime) -> Tuple[List[DebtorSnapshot], List[SkippedCustomer]]:
        ensure_tenant(snapshot.tenant_id, [("customer", snapshot.customers), ("follow_up", snapshot.follow_ups)])
        follow_ups: Dict[str, List[FollowUp]] = {}
        for fu in snapshot.follow_ups:
            follow_ups.setdefault(fu.customer_id, []).append(fu)

        def build(customer: Customer) -> DebtorSnapshot:
            balance = balance_from_totals(customer, snapshot.totals.get(customer.id))
            return build_debtor_snapshot(customer, balance, follow_ups.get(customer.id, []), now)

        return self._fan_out(snapshot.tenant_id, build, snapshot.customers)

    def debtors(self, snapshot: TenantTotals, now: datetime, filters: Optional[DebtorFilters] = None) -> DebtorsReport:
        """Debtor list with the category roll-up computed over exactly the rows returned"""
        filters = filters or DebtorFilters()
        snapshots, skipped = self._snapshots(snapshot, now)
        visible = [s for s in snapshots if filters.accepts(s)]
        return DebtorsReport(
            debtors=visible,
            category_rollup=category_rollup(visible),
            total_outstanding_cents=sum(s.outstanding_balance_cents for s in visible),
            skipped=skipped,
        )

    def follow_up_stats(self, snapshot: TenantTotals, now: datetime, include_settled: bool = False) -> FollowUpStats:
        report = self.debtors(snapshot, now, DebtorFilters(include_settled=include_settled))
        return FollowUpStats(buckets=follow_up_tallies(report.debtors), skipped=report.skipped)

    def credit_utilization(self, snapshot: TenantTotals) -> Tuple[List[CreditUtilization], List[SkippedCustomer]]:
        ensure_tenant(snapshot.tenant_id, [("customer", snapshot.customers)])

        def build(customer: Customer) -> CreditUtilization:
            return credit_utilization(customer, balance_from_totals(customer, snapshot.totals.get(customer.id)))

        return self._fan_out(snapshot.tenant_id, build, snapshot.customers)

    def tenant_summary(self, snapshot: TenantTotals) -> TenantSummary:
        ensure_tenant(snapshot.tenant_id, [("customer", snapshot.customers)])

        def build(customer: Customer) -> Tuple[Category, LedgerBalance]:
            category = parse_category(customer.category, customer.id)
            return category, balance_from_totals(customer, snapshot.totals.get(customer.id))

        results, skipped = self._fan_out(snapshot.tenant_id, build, snapshot.customers)
        balances = [balance for _, balance in results]
        breakdown = {category: 0 for category in Category}
        for category, _ in results:
            breakdown[category] += 1

        invoice_total = sum(b.invoice_total_cents for b in balances)
        receipt_total = sum(b.receipt_total_cents for b in balances)
        invoice_count = sum(b.invoice_count for b in balances)
        receipt_count = sum(b.receipt_count for b in balances)
        return TenantSummary(
            tenant_id=snapshot.tenant_id,
            customer_count=len(balances),
            opening_balance_cents=sum(b.opening_balance_cents for b in balances),
            invoice_total_cents=invoice_total,
            receipt_total_cents=receipt_total,
            outstanding_balance_cents=sum(b.outstanding_balance_cents for b in balances),
            invoice_count=invoice_count,
            receipt_count=receipt_count,
            avg_invoice_value_cents=divide_cents(invoice_total, invoice_count),
            avg_receipt_value_cents=divide_cents(receipt_total, receipt_count),
            category_breakdown=breakdown,
            receipt_breakdown=snapshot.receipt_breakdown,
            skipped=skipped,
        )

    def forecasts(self, ledger: TenantLedger, now: datetime) -> ForecastReport:
        """Ranked forecasts for every customer with invoice history"""
        self._check_ledger(ledger)
        today = floor_day(now)

        def build(customer_ledger: CustomerLedger) -> Optional[RiskForecast]:
            return forecast_payment_risk(customer_ledger, today, self.policy)

        results, skipped = self._fan_out(ledger.tenant_id, build, ledger.by_customer())
        forecasts = rank_forecasts([f for f in results if f is not None])
        return ForecastReport(forecasts=forecasts, summary=forecast_summary(forecasts), skipped=skipped)

    def invoice_status_cards(self, ledger: TenantLedger, now: datetime) -> InvoiceStatusCards:
        self._check_ledger(ledger)
        today = floor_day(now)

        def build(customer_ledger: CustomerLedger) -> List[Tuple[InvoiceStatus, int]]:
            return [
                (classify_invoice_status(alloc, today, self.grace_days), alloc.amount_cents)
                for alloc in allocate_receipts(customer_ledger)
            ]

        results, skipped = self._fan_out(ledger.tenant_id, build, ledger.by_customer())
        cards = {status: Tally() for status in InvoiceStatus}
        for statuses in results:
            for status, amount in statuses:
                cards[status].add(amount)
        return InvoiceStatusCards(cards=cards, grace_days=self.grace_days, skipped=skipped)

    def _check_ledger(self, ledger: TenantLedger) -> None:
        ensure_tenant(
            ledger.tenant_id,
            [
                ("customer", ledger.customers),
                ("invoice", ledger.invoices),
                ("receipt", ledger.receipts),
                ("follow_up", ledger.follow_ups),
            ],
        )
