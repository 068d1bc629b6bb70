"""Data access layer for the tenant-scoped ledger"""

import logging
from contextlib import contextmanager
from typing import Iterator, List, Optional, Sequence

from sqlalchemy import and_, func, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from collections_engine.domain.exceptions import DependencyUnavailable
from collections_engine.domain.models import (
    Category,
    CategoryRule,
    ClassificationOutcome,
    Customer,
    FollowUp,
    Invoice,
    LedgerTotals,
    Receipt,
    ReceiptTypeTotal,
    TenantLedger,
    TenantTotals,
)
from collections_engine.infrastructure.database.models import (
    CategoryChangeLogRecord,
    CategoryRuleRecord,
    CustomerRecord,
    FollowUpRecord,
    InvoiceRecord,
    ReceiptRecord,
)

UNSPECIFIED_RECEIPT_TYPE = "Unspecified"


@contextmanager
def storage_errors(action: str) -> Iterator[None]:
    """Surface database failures as DependencyUnavailable; retrying is the caller's call"""
    try:
        yield
    except SQLAlchemyError as e:
        raise DependencyUnavailable(f"Storage unavailable while {action}: {e}") from e


def _to_customer(r: CustomerRecord) -> Customer:
    return Customer(
        id=r.id,
        tenant_id=r.tenant_id,
        name=r.name,
        category=r.category,  # validated by the engine so a bad value skips only this customer
        opening_balance_cents=r.opening_balance_cents,
        credit_limit_cents=r.credit_limit_cents,
        payment_terms_days=r.payment_terms_days,
        category_manual_override=bool(r.category_manual_override),
    )


def _to_invoice(r: InvoiceRecord) -> Invoice:
    return Invoice(
        id=r.id,
        tenant_id=r.tenant_id,
        customer_id=r.customer_id,
        amount_cents=r.amount_cents,
        invoice_date=r.invoice_date,
        invoice_number=r.invoice_number,
        payment_terms_days=r.payment_terms_days,
    )


def _to_receipt(r: ReceiptRecord) -> Receipt:
    return Receipt(
        id=r.id,
        tenant_id=r.tenant_id,
        customer_id=r.customer_id,
        amount_cents=r.amount_cents,
        date=r.date,
        linked_invoice_id=r.linked_invoice_id,
        receipt_type=r.receipt_type,
    )


def _to_follow_up(r: FollowUpRecord) -> FollowUp:
    return FollowUp(
        id=r.id,
        tenant_id=r.tenant_id,
        customer_id=r.customer_id,
        follow_up_at=r.follow_up_at,
        next_follow_up_at=r.next_follow_up_at,
        status=r.status,
        remarks=r.remarks,
    )


class LedgerRepository:
    """Read access to one tenant's customers, invoices, receipts and follow-ups"""

    def __init__(self, db: Session):
        self.db = db

    def get_customers(
        self,
        tenant_id: str,
        after: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[Customer]:
        """Customers ordered by id; ``after``/``limit`` page through large tenants"""
        with storage_errors("loading customers"):
            query = self.db.query(CustomerRecord).filter(CustomerRecord.tenant_id == tenant_id)
            if after is not None:
                query = query.filter(CustomerRecord.id > after)
            query = query.order_by(CustomerRecord.id)
            if limit is not None:
                query = query.limit(limit)
            return [_to_customer(r) for r in query.all()]

    def get_ledger(
        self,
        tenant_id: str,
        customers: Optional[List[Customer]] = None,
        with_follow_ups: bool = True,
    ) -> TenantLedger:
        """
        Row-level snapshot, for computations that need per-invoice timing.

        When ``customers`` is given only their rows are loaded. Classification
        never reads follow-ups, so it passes ``with_follow_ups=False``.
        """
        if customers is None:
            customers = self.get_customers(tenant_id)
        customer_ids = [c.id for c in customers]

        with storage_errors("loading ledger rows"):
            invoices = self._rows_for(InvoiceRecord, tenant_id, customer_ids)
            receipts = self._rows_for(ReceiptRecord, tenant_id, customer_ids)
            follow_ups = self._rows_for(FollowUpRecord, tenant_id, customer_ids) if with_follow_ups else []

        return TenantLedger(
            tenant_id=tenant_id,
            customers=customers,
            invoices=[_to_invoice(r) for r in invoices],
            receipts=[_to_receipt(r) for r in receipts],
            follow_ups=[_to_follow_up(r) for r in follow_ups],
        )

    def _rows_for(self, model, tenant_id: str, customer_ids: Sequence[str]) -> list:
        if not customer_ids:
            return []
        return (
            self.db.query(model)
            .filter(model.tenant_id == tenant_id, model.customer_id.in_(customer_ids))
            .order_by(model.id)
            .all()
        )

    def get_totals(self, tenant_id: str) -> TenantTotals:
        """Sums, counts and last-activity dates aggregated in SQL, plus each customer's latest follow-up"""
        customers = self.get_customers(tenant_id)

        with storage_errors("aggregating ledger totals"):
            invoice_rows = (
                self.db.query(
                    InvoiceRecord.customer_id,
                    func.sum(InvoiceRecord.amount_cents),
                    func.count(InvoiceRecord.id),
                    func.min(InvoiceRecord.amount_cents),
                    func.max(InvoiceRecord.invoice_date),
                )
                .filter(InvoiceRecord.tenant_id == tenant_id)
                .group_by(InvoiceRecord.customer_id)
                .all()
            )
            receipt_rows = (
                self.db.query(
                    ReceiptRecord.customer_id,
                    func.sum(ReceiptRecord.amount_cents),
                    func.count(ReceiptRecord.id),
                    func.min(ReceiptRecord.amount_cents),
                    func.max(ReceiptRecord.date),
                )
                .filter(ReceiptRecord.tenant_id == tenant_id)
                .group_by(ReceiptRecord.customer_id)
                .all()
            )
            receipt_type = func.coalesce(ReceiptRecord.receipt_type, UNSPECIFIED_RECEIPT_TYPE)
            breakdown_rows = (
                self.db.query(receipt_type, func.count(ReceiptRecord.id), func.sum(ReceiptRecord.amount_cents))
                .filter(ReceiptRecord.tenant_id == tenant_id)
                .group_by(receipt_type)
                .order_by(receipt_type)
                .all()
            )
            latest = (
                self.db.query(
                    FollowUpRecord.customer_id,
                    func.max(FollowUpRecord.follow_up_at).label("latest_at"),
                )
                .filter(FollowUpRecord.tenant_id == tenant_id)
                .group_by(FollowUpRecord.customer_id)
                .subquery()
            )
            # Several rows per customer only when they share the latest timestamp
            follow_ups = (
                self.db.query(FollowUpRecord)
                .join(
                    latest,
                    and_(
                        FollowUpRecord.customer_id == latest.c.customer_id,
                        FollowUpRecord.follow_up_at == latest.c.latest_at,
                    ),
                )
                .filter(FollowUpRecord.tenant_id == tenant_id)
                .order_by(FollowUpRecord.id)
                .all()
            )

        totals = {}
        for customer_id, total, count, minimum, last_date in invoice_rows:
            totals[customer_id] = LedgerTotals(
                customer_id=customer_id,
                invoice_total_cents=int(total),
                invoice_count=count,
                min_invoice_cents=int(minimum),
                last_invoice_date=last_date,
            )
        for customer_id, total, count, minimum, last_date in receipt_rows:
            entry = totals.setdefault(customer_id, LedgerTotals(customer_id=customer_id))
            entry.receipt_total_cents = int(total)
            entry.receipt_count = count
            entry.min_receipt_cents = int(minimum)
            entry.last_payment_date = last_date

        return TenantTotals(
            tenant_id=tenant_id,
            customers=customers,
            totals=totals,
            follow_ups=[_to_follow_up(r) for r in follow_ups],
            receipt_breakdown=[
                ReceiptTypeTotal(receipt_type=kind, count=count, total_cents=int(total))
                for kind, count, total in breakdown_rows
            ],
        )


class CategoryRepository:
    """Tier rules and the only write the engine performs: Customer.category"""

    def __init__(self, db: Session):
        self.db = db

    def get_rules(self, tenant_id: str) -> List[CategoryRule]:
        with storage_errors("loading category rules"):
            rows = (
                self.db.query(CategoryRuleRecord)
                .filter(CategoryRuleRecord.tenant_id == tenant_id)
                .order_by(CategoryRuleRecord.priority, CategoryRuleRecord.id)
                .all()
            )
        rules = []
        for r in rows:
            try:
                target = Category(r.target_category)
            except ValueError:
                logging.warning(
                    f"Ignoring category rule with unknown target {r.target_category!r}",
                    extra={"tenant_id": tenant_id, "rule_id": r.id},
                )
                continue
            rules.append(
                CategoryRule(
                    priority=r.priority,
                    target_category=target,
                    min_balance_cents=r.min_balance_cents,
                    max_balance_cents=r.max_balance_cents,
                    min_overdue_days=r.min_overdue_days,
                    max_overdue_days=r.max_overdue_days,
                )
            )
        return rules

    def apply_change(self, tenant_id: str, outcome: ClassificationOutcome) -> bool:
        """
        Move one customer to its new category and log it, in a single transaction.

        The update only lands if the customer still has the category we read
        and no manual override was set meanwhile; returns whether it landed.
        """
        with storage_errors(f"updating category for customer {outcome.customer_id}"):
            try:
                result = self.db.execute(
                    update(CustomerRecord)
                    .where(
                        CustomerRecord.tenant_id == tenant_id,
                        CustomerRecord.id == outcome.customer_id,
                        CustomerRecord.category == outcome.previous_category.value,
                        CustomerRecord.category_manual_override.is_(False),
                    )
                    .values(category=outcome.new_category.value)
                )
                if result.rowcount != 1:
                    self.db.rollback()
                    return False
                self.db.add(
                    CategoryChangeLogRecord(
                        tenant_id=tenant_id,
                        customer_id=outcome.customer_id,
                        previous_category=outcome.previous_category.value,
                        new_category=outcome.new_category.value,
                        rule_priority=outcome.rule_priority,
                    )
                )
                self.db.commit()
                return True
            except SQLAlchemyError:
                self.db.rollback()
                raise

    def get_change_log(self, tenant_id: str, customer_id: str) -> List[CategoryChangeLogRecord]:
        with storage_errors("loading category change log"):
            return (
                self.db.query(CategoryChangeLogRecord)
                .filter(
                    CategoryChangeLogRecord.tenant_id == tenant_id,
                    CategoryChangeLogRecord.customer_id == customer_id,
                )
                .order_by(CategoryChangeLogRecord.changed_at.desc())
                .all()
            )
