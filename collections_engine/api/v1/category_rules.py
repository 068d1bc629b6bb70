"""POST /v1/category-rules/recalculate - re-run tier rules over a tenant"""

import time
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from collections_engine.api.dependencies import get_now, get_request_id, get_tenant_id, get_worker_pool
from collections_engine.api.v1.errors import domain_errors
from collections_engine.api.v1.schemas import CategoryChangeItem, RecalculationResponse, skipped_items
from collections_engine.config import settings
from collections_engine.infrastructure.database.repositories import CategoryRepository, LedgerRepository
from collections_engine.infrastructure.database.session import get_db
from collections_engine.infrastructure.observability.logging import log_recalculation, log_skipped_customers
from collections_engine.infrastructure.observability.metrics import (
    record_recalculation,
    record_skipped,
    report_duration_histogram,
)
from collections_engine.infrastructure.workers import TenantWorkerPool
from collections_engine.services.recalculation import recalculate_categories
from collections_engine.utils.date_utils import floor_day

router = APIRouter()


@router.post("/category-rules/recalculate", response_model=RecalculationResponse)
def recalculate(
    request: Request,
    cursor: Optional[str] = Query(None, description="Resume after this customer id"),
    tenant_id: str = Depends(get_tenant_id),
    now: datetime = Depends(get_now),
    db: Session = Depends(get_db),
    pool: TenantWorkerPool = Depends(get_worker_pool),
):
    """
    Reassign categories from the tenant's rules.

    Customers with a manual override are left alone. When a page misses its
    deadline the response has ``complete=false`` and a ``next_cursor`` to
    resume from.
    """
    start_time = time.time()
    request_id = get_request_id(request)

    with domain_errors(request_id, tenant_id, db):
        summary = recalculate_categories(
            LedgerRepository(db),
            CategoryRepository(db),
            pool,
            tenant_id,
            floor_day(now),
            page_size=settings.recalc_page_size,
            page_deadline_seconds=settings.recalc_page_deadline_seconds,
            cursor=cursor,
        )

    duration = time.time() - start_time
    report_duration_histogram.labels(report="category_recalculation").observe(duration)
    record_recalculation(summary)
    record_skipped("category_recalculation", summary.skipped)
    log_skipped_customers(request_id, tenant_id, "category_recalculation", summary.skipped)
    log_recalculation(request_id, tenant_id, summary, duration * 1000)

    return RecalculationResponse(
        tenant_id=tenant_id,
        reassigned=summary.reassigned,
        unchanged=summary.unchanged,
        skipped_override=summary.skipped_override,
        failed=summary.failed,
        processed=summary.processed,
        complete=summary.complete,
        next_cursor=summary.next_cursor,
        invalidated_read_models=[m.value for m in summary.invalidated_read_models],
        changes=[
            CategoryChangeItem(
                customer_id=c.customer_id,
                previous_category=c.previous_category.value,
                new_category=c.new_category.value,
                rule_priority=c.rule_priority,
            )
            for c in summary.changes
        ],
        skipped=skipped_items(summary.skipped),
    )
