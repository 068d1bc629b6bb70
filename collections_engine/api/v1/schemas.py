"""Pydantic schemas for API responses. Currency is rendered with exactly 2 decimal places."""

from datetime import date, datetime
from decimal import Decimal
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from collections_engine.domain.models import DebtorSnapshot, RiskBand, RiskForecast
from collections_engine.domain.reporting import CreditUtilization, SkippedCustomer, Tally
from collections_engine.utils.money import CENT, cents_to_decimal


class SkippedCustomerSchema(BaseModel):
    """Customer left out because of unusable ledger data"""

    customer_id: str
    field: str
    reason: str


class TallySchema(BaseModel):
    count: int
    total_amount: Decimal


class DebtorItem(BaseModel):
    """One row of GET /debtors"""

    customer_id: str
    customer_name: str
    category: str
    opening_balance: Decimal
    invoice_total: Decimal
    receipt_total: Decimal
    outstanding_balance: Decimal
    invoice_count: int
    receipt_count: int
    last_invoice_date: Optional[date] = None
    last_payment_date: Optional[date] = None
    next_follow_up_at: Optional[datetime] = None
    follow_up_bucket: str


class DebtorsResponse(BaseModel):
    """Response for GET /debtors"""

    tenant_id: str
    count: int
    total_outstanding: Decimal
    category_rollup: Dict[str, TallySchema]
    debtors: List[DebtorItem]
    skipped: List[SkippedCustomerSchema] = []


class FollowUpStatsResponse(BaseModel):
    """Response for GET /debtors/followup-stats"""

    tenant_id: str
    counts: Dict[str, int]
    total_amounts: Dict[str, Decimal]
    skipped: List[SkippedCustomerSchema] = []


class CreditUtilizationItem(BaseModel):
    customer_id: str
    customer_name: str
    category: str
    credit_limit: Optional[Decimal] = None
    utilized: Decimal
    available: Optional[Decimal] = None
    utilization_percent: Decimal


class CreditUtilizationResponse(BaseModel):
    """Response for GET /debtors/credit"""

    tenant_id: str
    customers: List[CreditUtilizationItem]
    skipped: List[SkippedCustomerSchema] = []


class ForecastItem(BaseModel):
    customer_id: str
    customer_name: str
    category: str
    stuck_probability: int = Field(..., ge=0, le=100)
    risk_band: str
    expected_payment_date: Optional[date] = None
    on_time_rate: Optional[Decimal] = Field(None, description="Percent of settled invoices paid by due date")
    avg_delay_days: Decimal
    unpaid_invoices: int
    unpaid_amount: Decimal


class ForecastSummary(BaseModel):
    high_risk: int
    medium_risk: int
    low_risk: int


class ForecastResponse(BaseModel):
    """Response for GET /risk/payment-forecaster"""

    tenant_id: str
    forecasts: List[ForecastItem]
    summary: ForecastSummary
    skipped: List[SkippedCustomerSchema] = []


class ReceiptTypeItem(BaseModel):
    receipt_type: str
    count: int
    total: Decimal


class TenantSummaryResponse(BaseModel):
    """Response for GET /tenants/{tenant_id}/summary"""

    tenant_id: str
    customer_count: int
    opening_balance: Decimal
    invoice_total: Decimal
    receipt_total: Decimal
    outstanding_balance: Decimal
    invoice_count: int
    receipt_count: int
    avg_invoice_value: Decimal
    avg_receipt_value: Decimal
    category_breakdown: Dict[str, int]
    receipt_breakdown: List[ReceiptTypeItem]
    skipped: List[SkippedCustomerSchema] = []


class CategoryChangeItem(BaseModel):
    customer_id: str
    previous_category: str
    new_category: str
    rule_priority: Optional[int] = None


class RecalculationResponse(BaseModel):
    """Response for POST /category-rules/recalculate"""

    tenant_id: str
    reassigned: int
    unchanged: int
    skipped_override: int
    failed: int
    processed: int
    complete: bool
    next_cursor: Optional[str] = None
    invalidated_read_models: List[str]
    changes: List[CategoryChangeItem]
    skipped: List[SkippedCustomerSchema] = []


class InvoiceStatusCardsResponse(BaseModel):
    """Response for GET /invoices/status-cards"""

    tenant_id: str
    grace_days: int
    cards: Dict[str, TallySchema]
    skipped: List[SkippedCustomerSchema] = []


# Domain -> schema conversion


def skipped_items(skipped: List[SkippedCustomer]) -> List[SkippedCustomerSchema]:
    return [SkippedCustomerSchema(customer_id=s.customer_id, field=s.field, reason=s.reason) for s in skipped]


def tally_schema(tally: Tally) -> TallySchema:
    return TallySchema(count=tally.count, total_amount=cents_to_decimal(tally.total_cents))


def debtor_item(snapshot: DebtorSnapshot) -> DebtorItem:
    b = snapshot.balance
    return DebtorItem(
        customer_id=snapshot.customer_id,
        customer_name=snapshot.customer_name,
        category=snapshot.category.value,
        opening_balance=cents_to_decimal(b.opening_balance_cents),
        invoice_total=cents_to_decimal(b.invoice_total_cents),
        receipt_total=cents_to_decimal(b.receipt_total_cents),
        outstanding_balance=cents_to_decimal(b.outstanding_balance_cents),
        invoice_count=b.invoice_count,
        receipt_count=b.receipt_count,
        last_invoice_date=b.last_invoice_date,
        last_payment_date=b.last_payment_date,
        next_follow_up_at=snapshot.next_follow_up_at,
        follow_up_bucket=snapshot.follow_up_bucket.value,
    )


def forecast_item(forecast: RiskForecast) -> ForecastItem:
    on_time = None
    if forecast.on_time_rate is not None:
        on_time = (forecast.on_time_rate * 100).quantize(CENT)
    return ForecastItem(
        customer_id=forecast.customer_id,
        customer_name=forecast.customer_name,
        category=forecast.category.value,
        stuck_probability=forecast.stuck_probability,
        risk_band=forecast.risk_band.value,
        expected_payment_date=forecast.expected_payment_date,
        on_time_rate=on_time,
        avg_delay_days=forecast.avg_delay_days.quantize(CENT),
        unpaid_invoices=forecast.unpaid_invoices,
        unpaid_amount=cents_to_decimal(forecast.unpaid_amount_cents),
    )


def forecast_summary_schema(summary: Dict[RiskBand, int]) -> ForecastSummary:
    return ForecastSummary(
        high_risk=summary[RiskBand.HIGH],
        medium_risk=summary[RiskBand.MEDIUM],
        low_risk=summary[RiskBand.LOW],
    )


def credit_item(row: CreditUtilization) -> CreditUtilizationItem:
    return CreditUtilizationItem(
        customer_id=row.customer_id,
        customer_name=row.customer_name,
        category=row.category.value,
        credit_limit=cents_to_decimal(row.credit_limit_cents) if row.credit_limit_cents is not None else None,
        utilized=cents_to_decimal(row.utilized_cents),
        available=cents_to_decimal(row.available_cents) if row.available_cents is not None else None,
        utilization_percent=row.utilization_percent,
    )
