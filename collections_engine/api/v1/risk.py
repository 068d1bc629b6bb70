"""GET /v1/risk/payment-forecaster - stuck probability per customer"""

import time
from datetime import datetime

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from collections_engine.api.dependencies import get_now, get_reporter, get_request_id, get_tenant_id
from collections_engine.api.v1.errors import domain_errors
from collections_engine.api.v1.schemas import (
    ForecastResponse,
    forecast_item,
    forecast_summary_schema,
    skipped_items,
)
from collections_engine.domain.reporting import AggregationReporter
from collections_engine.infrastructure.database.repositories import LedgerRepository
from collections_engine.infrastructure.database.session import get_db
from collections_engine.infrastructure.observability.logging import log_report, log_skipped_customers
from collections_engine.infrastructure.observability.metrics import (
    record_forecasts,
    record_skipped,
    report_duration_histogram,
)

router = APIRouter()


@router.get("/risk/payment-forecaster", response_model=ForecastResponse)
def payment_forecaster(
    request: Request,
    tenant_id: str = Depends(get_tenant_id),
    now: datetime = Depends(get_now),
    db: Session = Depends(get_db),
    reporter: AggregationReporter = Depends(get_reporter),
):
    """
    Forecast payment risk for every customer with invoice history.

    Flow:
    1. Load invoices and receipts for the tenant
    2. Allocate receipts to invoices and derive punctuality per customer
    3. Score, band and rank (highest probability first)
    """
    start_time = time.time()
    request_id = get_request_id(request)

    with domain_errors(request_id, tenant_id, db):
        ledger = LedgerRepository(db).get_ledger(tenant_id)
        report = reporter.forecasts(ledger, now)

    duration = time.time() - start_time
    report_duration_histogram.labels(report="risk_forecast").observe(duration)
    record_forecasts(f.risk_band.value for f in report.forecasts)
    record_skipped("risk_forecast", report.skipped)
    log_skipped_customers(request_id, tenant_id, "risk_forecast", report.skipped)
    log_report(request_id, tenant_id, "risk_forecast", len(report.forecasts), duration * 1000)

    return ForecastResponse(
        tenant_id=tenant_id,
        forecasts=[forecast_item(f) for f in report.forecasts],
        summary=forecast_summary_schema(report.summary),
        skipped=skipped_items(report.skipped),
    )
