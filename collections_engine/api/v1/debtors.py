"""GET /v1/debtors - debtor list, follow-up stats, credit utilization and Excel export"""

import time
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session
from starlette.responses import Response

from collections_engine.api.dependencies import get_now, get_reporter, get_request_id, get_tenant_id
from collections_engine.api.v1.errors import domain_errors
from collections_engine.api.v1.schemas import (
    CreditUtilizationResponse,
    DebtorsResponse,
    FollowUpStatsResponse,
    credit_item,
    debtor_item,
    skipped_items,
    tally_schema,
)
from collections_engine.domain.models import Category, FollowUpBucket
from collections_engine.domain.reporting import AggregationReporter, DebtorFilters
from collections_engine.infrastructure.database.repositories import LedgerRepository
from collections_engine.infrastructure.database.session import get_db
from collections_engine.infrastructure.export.spreadsheet import XLSX_MEDIA_TYPE, debtors_workbook
from collections_engine.infrastructure.observability.logging import log_report, log_skipped_customers
from collections_engine.infrastructure.observability.metrics import record_skipped, report_duration_histogram
from collections_engine.utils.money import cents_to_decimal

router = APIRouter()


def _filters(
    category: Optional[Category] = Query(None),
    bucket: Optional[FollowUpBucket] = Query(None),
    search: Optional[str] = Query(None, description="Case-insensitive match on customer name"),
    include_settled: bool = Query(False, description="Include customers with no outstanding balance"),
) -> DebtorFilters:
    return DebtorFilters(category=category, bucket=bucket, search=search, include_settled=include_settled)


@router.get("/debtors", response_model=DebtorsResponse)
def list_debtors(
    request: Request,
    filters: DebtorFilters = Depends(_filters),
    tenant_id: str = Depends(get_tenant_id),
    now: datetime = Depends(get_now),
    db: Session = Depends(get_db),
    reporter: AggregationReporter = Depends(get_reporter),
):
    """
    Debtors with their balance, latest follow-up and bucket.

    The category roll-up is computed over exactly the rows returned, so
    filters apply to both.
    """
    start_time = time.time()
    request_id = get_request_id(request)

    with domain_errors(request_id, tenant_id, db):
        totals = LedgerRepository(db).get_totals(tenant_id)
        report = reporter.debtors(totals, now, filters)

    duration = time.time() - start_time
    report_duration_histogram.labels(report="debtors").observe(duration)
    record_skipped("debtors", report.skipped)
    log_skipped_customers(request_id, tenant_id, "debtors", report.skipped)
    log_report(request_id, tenant_id, "debtors", len(report.debtors), duration * 1000)

    return DebtorsResponse(
        tenant_id=tenant_id,
        count=len(report.debtors),
        total_outstanding=cents_to_decimal(report.total_outstanding_cents),
        category_rollup={c.value: tally_schema(t) for c, t in report.category_rollup.items()},
        debtors=[debtor_item(d) for d in report.debtors],
        skipped=skipped_items(report.skipped),
    )


@router.get("/debtors/followup-stats", response_model=FollowUpStatsResponse)
def follow_up_stats(
    request: Request,
    include_settled: bool = Query(False),
    tenant_id: str = Depends(get_tenant_id),
    now: datetime = Depends(get_now),
    db: Session = Depends(get_db),
    reporter: AggregationReporter = Depends(get_reporter),
):
    """Count and outstanding amount per follow-up bucket; every bucket is present"""
    start_time = time.time()
    request_id = get_request_id(request)

    with domain_errors(request_id, tenant_id, db):
        totals = LedgerRepository(db).get_totals(tenant_id)
        stats = reporter.follow_up_stats(totals, now, include_settled=include_settled)

    duration = time.time() - start_time
    report_duration_histogram.labels(report="follow_up_stats").observe(duration)
    record_skipped("follow_up_stats", stats.skipped)
    log_skipped_customers(request_id, tenant_id, "follow_up_stats", stats.skipped)
    log_report(request_id, tenant_id, "follow_up_stats", len(stats.buckets), duration * 1000)

    return FollowUpStatsResponse(
        tenant_id=tenant_id,
        counts={b.value: t.count for b, t in stats.buckets.items()},
        total_amounts={b.value: cents_to_decimal(t.total_cents) for b, t in stats.buckets.items()},
        skipped=skipped_items(stats.skipped),
    )


@router.get("/debtors/credit", response_model=CreditUtilizationResponse)
def credit_utilization(
    request: Request,
    tenant_id: str = Depends(get_tenant_id),
    db: Session = Depends(get_db),
    reporter: AggregationReporter = Depends(get_reporter),
):
    """Outstanding balance against each customer's credit limit, highest utilization first"""
    start_time = time.time()
    request_id = get_request_id(request)

    with domain_errors(request_id, tenant_id, db):
        totals = LedgerRepository(db).get_totals(tenant_id)
        rows, skipped = reporter.credit_utilization(totals)

    rows = sorted(rows, key=lambda r: (-r.utilization_percent, r.customer_id))
    duration = time.time() - start_time
    report_duration_histogram.labels(report="credit_utilization").observe(duration)
    record_skipped("credit_utilization", skipped)
    log_skipped_customers(request_id, tenant_id, "credit_utilization", skipped)
    log_report(request_id, tenant_id, "credit_utilization", len(rows), duration * 1000)

    return CreditUtilizationResponse(
        tenant_id=tenant_id,
        customers=[credit_item(r) for r in rows],
        skipped=skipped_items(skipped),
    )


@router.get("/debtors/export")
def export_debtors(
    request: Request,
    filters: DebtorFilters = Depends(_filters),
    tenant_id: str = Depends(get_tenant_id),
    now: datetime = Depends(get_now),
    db: Session = Depends(get_db),
    reporter: AggregationReporter = Depends(get_reporter),
):
    """Same rows as GET /debtors, as an .xlsx workbook"""
    start_time = time.time()
    request_id = get_request_id(request)

    with domain_errors(request_id, tenant_id, db):
        totals = LedgerRepository(db).get_totals(tenant_id)
        report = reporter.debtors(totals, now, filters)
        content = debtors_workbook(report.debtors, report.category_rollup)

    duration = time.time() - start_time
    report_duration_histogram.labels(report="debtors_export").observe(duration)
    record_skipped("debtors_export", report.skipped)
    log_skipped_customers(request_id, tenant_id, "debtors_export", report.skipped)
    log_report(request_id, tenant_id, "debtors_export", len(report.debtors), duration * 1000)

    filename = f"debtors-{now.date().isoformat()}.xlsx"
    return Response(
        content=content,
        media_type=XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
