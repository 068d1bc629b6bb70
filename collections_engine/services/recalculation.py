"""Batch category recalculation over a tenant, one page of customers at a time"""

import logging
import time
from concurrent.futures import wait
from dataclasses import dataclass, field
from datetime import date
from typing import List, Optional, Tuple

from collections_engine.domain.classifier import classify_customer, sort_rules
from collections_engine.domain.exceptions import AggregationFailed, DataError
from collections_engine.domain.invalidation import LedgerEntity, ReadModel, invalidated_by
from collections_engine.domain.models import CategoryRule, ClassificationOutcome, CustomerLedger, TenantLedger
from collections_engine.domain.reporting import SkippedCustomer, ensure_tenant
from collections_engine.infrastructure.database.repositories import CategoryRepository, LedgerRepository
from collections_engine.infrastructure.workers import TenantWorkerPool


@dataclass
class RecalculationSummary:
    tenant_id: str
    reassigned: int = 0
    unchanged: int = 0
    skipped_override: int = 0
    failed: int = 0
    complete: bool = True
    next_cursor: Optional[str] = None  # resume point when the run stopped early
    changes: List[ClassificationOutcome] = field(default_factory=list)
    skipped: List[SkippedCustomer] = field(default_factory=list)
    errors: List[DataError] = field(default_factory=list)

    @property
    def processed(self) -> int:
        return self.reassigned + self.unchanged + self.skipped_override + self.failed

    @property
    def invalidated_read_models(self) -> List[ReadModel]:
        if self.reassigned == 0:
            return []
        return invalidated_by(LedgerEntity.CUSTOMER_CATEGORY)


def _classify_page(
    pool: TenantWorkerPool,
    ledger: TenantLedger,
    rules: List[CategoryRule],
    today: date,
    deadline: float,
) -> Tuple[List[ClassificationOutcome], List[DataError]]:
    """
    Classify one page on the worker pool.

    Raises:
        TimeoutError: the page did not finish before ``deadline``
    """

    def classify(customer_ledger: CustomerLedger) -> ClassificationOutcome:
        return classify_customer(customer_ledger, rules, today)

    futures = pool.submit_all(ledger.tenant_id, classify, ledger.by_customer(), deadline=deadline)
    _, not_done = wait(futures, timeout=max(0.0, deadline - time.monotonic()))
    if not_done:
        for future in not_done:
            future.cancel()
        raise TimeoutError(f"Category page for tenant {ledger.tenant_id} missed its deadline")

    outcomes: List[ClassificationOutcome] = []
    errors: List[DataError] = []
    for future in futures:
        try:
            outcomes.append(future.result())
        except DataError as e:
            errors.append(e)
    return outcomes, errors


def recalculate_categories(
    ledger_repo: LedgerRepository,
    category_repo: CategoryRepository,
    pool: TenantWorkerPool,
    tenant_id: str,
    today: date,
    page_size: int = 200,
    page_deadline_seconds: float = 10.0,
    cursor: Optional[str] = None,
) -> RecalculationSummary:
    """
    Re-run the tier rules over every customer of a tenant.

    Flow, per page of customers ordered by id:
    1. Load the page's invoices and receipts (follow-ups are not needed)
    2. Classify on the worker pool within the page deadline
    3. Write each changed category in its own transaction

    A page that misses its deadline is not written; the summary comes back
    with ``complete=False`` and ``next_cursor`` pointing at the last customer
    already handled. Re-running is safe: customers already moved are unchanged
    the second time.

    Raises:
        AggregationFailed: every customer that was looked at failed on bad data
    """
    rules = sort_rules(category_repo.get_rules(tenant_id))
    summary = RecalculationSummary(tenant_id=tenant_id)
    after = cursor

    while True:
        customers = ledger_repo.get_customers(tenant_id, after=after, limit=page_size)
        if not customers:
            break

        ledger = ledger_repo.get_ledger(tenant_id, customers, with_follow_ups=False)
        ensure_tenant(
            tenant_id,
            [("customer", ledger.customers), ("invoice", ledger.invoices), ("receipt", ledger.receipts)],
        )

        try:
            outcomes, errors = _classify_page(
                pool, ledger, rules, today, time.monotonic() + page_deadline_seconds
            )
        except TimeoutError:
            logging.warning(
                "Category recalculation page missed its deadline",
                extra={"tenant_id": tenant_id, "cursor": after, "page_size": len(customers)},
            )
            summary.complete = False
            summary.next_cursor = after
            break

        for outcome in outcomes:
            if outcome.skipped_override:
                summary.skipped_override += 1
            elif not outcome.changed:
                summary.unchanged += 1
            elif category_repo.apply_change(tenant_id, outcome):
                summary.reassigned += 1
                summary.changes.append(outcome)
            else:
                # Changed underneath us (manual edit or override); leave it alone
                summary.unchanged += 1

        summary.failed += len(errors)
        summary.errors.extend(errors)
        summary.skipped.extend(SkippedCustomer.from_error(e) for e in errors)

        after = customers[-1].id
        if len(customers) < page_size:
            break

    if summary.failed and summary.failed == summary.processed:
        raise AggregationFailed(summary.errors)
    return summary
