"""GET /v1/tenants/{tenant_id}/summary - tenant-wide totals"""

import time

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from collections_engine.api.dependencies import get_reporter, get_request_id, get_tenant_id
from collections_engine.api.v1.errors import domain_errors
from collections_engine.api.v1.schemas import ReceiptTypeItem, TenantSummaryResponse, skipped_items
from collections_engine.domain.exceptions import TenantIsolationError
from collections_engine.domain.reporting import AggregationReporter
from collections_engine.infrastructure.database.repositories import LedgerRepository
from collections_engine.infrastructure.database.session import get_db
from collections_engine.infrastructure.observability.logging import log_report, log_skipped_customers
from collections_engine.infrastructure.observability.metrics import record_skipped, report_duration_histogram
from collections_engine.utils.money import cents_to_decimal

router = APIRouter()


@router.get("/tenants/{tenant_id}/summary", response_model=TenantSummaryResponse)
def tenant_summary(
    tenant_id: str,
    request: Request,
    header_tenant_id: str = Depends(get_tenant_id),
    db: Session = Depends(get_db),
    reporter: AggregationReporter = Depends(get_reporter),
):
    """
    Ledger totals, averages, category breakdown and receipt types for one tenant.

    The path must name the tenant in X-Tenant-ID; any other tenant is refused.
    """
    start_time = time.time()
    request_id = get_request_id(request)

    with domain_errors(request_id, header_tenant_id, db):
        if tenant_id != header_tenant_id:
            raise TenantIsolationError(header_tenant_id, tenant_id, "tenant summary path")
        totals = LedgerRepository(db).get_totals(tenant_id)
        summary = reporter.tenant_summary(totals)

    duration = time.time() - start_time
    report_duration_histogram.labels(report="tenant_summary").observe(duration)
    record_skipped("tenant_summary", summary.skipped)
    log_skipped_customers(request_id, tenant_id, "tenant_summary", summary.skipped)
    log_report(request_id, tenant_id, "tenant_summary", summary.customer_count, duration * 1000)

    return TenantSummaryResponse(
        tenant_id=tenant_id,
        customer_count=summary.customer_count,
        opening_balance=cents_to_decimal(summary.opening_balance_cents),
        invoice_total=cents_to_decimal(summary.invoice_total_cents),
        receipt_total=cents_to_decimal(summary.receipt_total_cents),
        outstanding_balance=cents_to_decimal(summary.outstanding_balance_cents),
        invoice_count=summary.invoice_count,
        receipt_count=summary.receipt_count,
        avg_invoice_value=cents_to_decimal(summary.avg_invoice_value_cents),
        avg_receipt_value=cents_to_decimal(summary.avg_receipt_value_cents),
        category_breakdown={c.value: n for c, n in summary.category_breakdown.items()},
        receipt_breakdown=[
            ReceiptTypeItem(receipt_type=r.receipt_type, count=r.count, total=cents_to_decimal(r.total_cents))
            for r in summary.receipt_breakdown
        ],
        skipped=skipped_items(summary.skipped),
    )
