"""GET /v1/invoices/status-cards - invoice counts and amounts by payment status"""

import time
from datetime import datetime

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from collections_engine.api.dependencies import get_now, get_reporter, get_request_id, get_tenant_id
from collections_engine.api.v1.errors import domain_errors
from collections_engine.api.v1.schemas import InvoiceStatusCardsResponse, skipped_items, tally_schema
from collections_engine.domain.reporting import AggregationReporter
from collections_engine.infrastructure.database.repositories import LedgerRepository
from collections_engine.infrastructure.database.session import get_db
from collections_engine.infrastructure.observability.logging import log_report, log_skipped_customers
from collections_engine.infrastructure.observability.metrics import record_skipped, report_duration_histogram

router = APIRouter()


@router.get("/invoices/status-cards", response_model=InvoiceStatusCardsResponse)
def invoice_status_cards(
    request: Request,
    tenant_id: str = Depends(get_tenant_id),
    now: datetime = Depends(get_now),
    db: Session = Depends(get_db),
    reporter: AggregationReporter = Depends(get_reporter),
):
    start_time = time.time()
    request_id = get_request_id(request)

    with domain_errors(request_id, tenant_id, db):
        ledger = LedgerRepository(db).get_ledger(tenant_id)
        cards = reporter.invoice_status_cards(ledger, now)

    duration = time.time() - start_time
    report_duration_histogram.labels(report="invoice_status_cards").observe(duration)
    record_skipped("invoice_status_cards", cards.skipped)
    log_skipped_customers(request_id, tenant_id, "invoice_status_cards", cards.skipped)
    log_report(
        request_id, tenant_id, "invoice_status_cards", sum(t.count for t in cards.cards.values()), duration * 1000
    )

    return InvoiceStatusCardsResponse(
        tenant_id=tenant_id,
        grace_days=cards.grace_days,
        cards={status.value: tally_schema(t) for status, t in cards.cards.items()},
        skipped=skipped_items(cards.skipped),
    )
