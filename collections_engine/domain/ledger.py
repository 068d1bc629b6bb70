"""Ledger aggregation - reconciles opening balance, invoices and receipts per customer"""

from datetime import date, datetime
from typing import Dict, List, Optional

from collections_engine.domain.exceptions import DataError
from collections_engine.domain.models import (
    Customer,
    CustomerLedger,
    Invoice,
    InvoiceAllocation,
    LedgerBalance,
    LedgerTotals,
)
from collections_engine.utils.date_utils import add_days, parse_iso_date


def require_cents(value: object, customer_id: str, field: str, allow_negative: bool = False) -> int:
    """Validate an amount in integer cents.

    Raises:
        DataError: value is not an integer, or is negative where that is not allowed
    """
    if isinstance(value, bool) or not isinstance(value, int):
        raise DataError(customer_id, field, f"expected integer cents, got {value!r}")
    if value < 0 and not allow_negative:
        raise DataError(customer_id, field, f"negative amount {value}")
    return value


def require_date(value: object, customer_id: str, field: str) -> date:
    """Validate a ledger date; ISO-8601 strings are accepted"""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return parse_iso_date(value)
        except ValueError as e:
            raise DataError(customer_id, field, f"unparseable date {value!r}") from e
    raise DataError(customer_id, field, f"expected a date, got {value!r}")


def aggregate_balance(ledger: CustomerLedger) -> LedgerBalance:
    """Reduce one customer's rows to a reconciled balance (row-level path)"""
    customer = ledger.customer
    opening = require_cents(
        customer.opening_balance_cents, customer.id, "opening_balance", allow_negative=True
    )

    invoice_total = 0
    last_invoice_date: Optional[date] = None
    for inv in ledger.invoices:
        invoice_total += require_cents(inv.amount_cents, customer.id, "invoice.amount")
        issued = require_date(inv.invoice_date, customer.id, "invoice.invoice_date")
        if last_invoice_date is None or issued > last_invoice_date:
            last_invoice_date = issued

    receipt_total = 0
    last_payment_date: Optional[date] = None
    for rec in ledger.receipts:
        receipt_total += require_cents(rec.amount_cents, customer.id, "receipt.amount")
        received = require_date(rec.date, customer.id, "receipt.date")
        if last_payment_date is None or received > last_payment_date:
            last_payment_date = received

    return LedgerBalance(
        customer_id=customer.id,
        opening_balance_cents=opening,
        invoice_total_cents=invoice_total,
        receipt_total_cents=receipt_total,
        outstanding_balance_cents=opening + invoice_total - receipt_total,
        invoice_count=len(ledger.invoices),
        receipt_count=len(ledger.receipts),
        last_invoice_date=last_invoice_date,
        last_payment_date=last_payment_date,
    )


def balance_from_totals(customer: Customer, totals: Optional[LedgerTotals]) -> LedgerBalance:
    """Build the same balance from database-side sums and counts.

    ``MIN(amount)`` travels with the totals so negative rows are rejected
    without loading them.
    """
    opening = require_cents(
        customer.opening_balance_cents, customer.id, "opening_balance", allow_negative=True
    )
    totals = totals or LedgerTotals(customer_id=customer.id)

    if totals.min_invoice_cents is not None:
        require_cents(totals.min_invoice_cents, customer.id, "invoice.amount")
    if totals.min_receipt_cents is not None:
        require_cents(totals.min_receipt_cents, customer.id, "receipt.amount")
    invoice_total = require_cents(totals.invoice_total_cents, customer.id, "invoice.amount")
    receipt_total = require_cents(totals.receipt_total_cents, customer.id, "receipt.amount")

    return LedgerBalance(
        customer_id=customer.id,
        opening_balance_cents=opening,
        invoice_total_cents=invoice_total,
        receipt_total_cents=receipt_total,
        outstanding_balance_cents=opening + invoice_total - receipt_total,
        invoice_count=totals.invoice_count,
        receipt_count=totals.receipt_count,
        last_invoice_date=totals.last_invoice_date,
        last_payment_date=totals.last_payment_date,
    )


def due_date_for(invoice: Invoice, customer: Customer) -> date:
    """Invoice date plus the invoice's own terms, falling back to the customer's"""
    issued = require_date(invoice.invoice_date, customer.id, "invoice.invoice_date")
    terms = invoice.payment_terms_days
    if terms is None:
        terms = customer.payment_terms_days or 0
    return add_days(issued, terms)


def allocate_receipts(ledger: CustomerLedger) -> List[InvoiceAllocation]:
    """
    Settle invoices from receipts in receipt-date order.

    A receipt linked to an invoice pays that invoice first; whatever is left,
    and every unlinked receipt, pays the oldest open invoice (FIFO by invoice
    date). An invoice is settled on the date of the receipt that closes it.
    Overpayment beyond the last open invoice stays unallocated.

    Returns allocations ordered oldest invoice first.
    """
    customer = ledger.customer

    entries = []
    for inv in ledger.invoices:
        amount = require_cents(inv.amount_cents, customer.id, "invoice.amount")
        issued = require_date(inv.invoice_date, customer.id, "invoice.invoice_date")
        entries.append((issued, inv.id, inv, amount))
    entries.sort(key=lambda e: (e[0], e[1]))

    open_cents: Dict[str, int] = {}
    paid_cents: Dict[str, int] = {}
    settled_on: Dict[str, Optional[date]] = {}
    for issued, inv_id, _, amount in entries:
        open_cents[inv_id] = amount
        paid_cents[inv_id] = 0
        # Nothing to pay on a zero invoice; it closes the day it is issued
        settled_on[inv_id] = issued if amount == 0 else None

    def settle(invoice_id: str, available: int, on: date) -> int:
        take = min(available, open_cents[invoice_id])
        if take > 0:
            open_cents[invoice_id] -= take
            paid_cents[invoice_id] += take
            if open_cents[invoice_id] == 0:
                settled_on[invoice_id] = on
        return available - take

    receipts = sorted(
        (
            (
                require_date(rec.date, customer.id, "receipt.date"),
                rec.id,
                rec,
                require_cents(rec.amount_cents, customer.id, "receipt.amount"),
            )
            for rec in ledger.receipts
        ),
        key=lambda r: (r[0], r[1]),
    )

    for received, _, receipt, amount in receipts:
        remaining = amount
        if receipt.linked_invoice_id in open_cents:
            remaining = settle(receipt.linked_invoice_id, remaining, received)
        for _, inv_id, _, _ in entries:
            if remaining == 0:
                break
            remaining = settle(inv_id, remaining, received)

    return [
        InvoiceAllocation(
            invoice=inv,
            due_date=due_date_for(inv, customer),
            amount_cents=amount,
            paid_cents=paid_cents[inv_id],
            settled_on=settled_on[inv_id],
        )
        for _, inv_id, inv, amount in entries
    ]


def overdue_days(allocations: List[InvoiceAllocation], today: date) -> int:
    """Days since the oldest unpaid invoice fell due; 0 when nothing is overdue"""
    unpaid_due_dates = [a.due_date for a in allocations if not a.is_paid_in_full]
    if not unpaid_due_dates:
        return 0
    return max(0, (today - min(unpaid_due_dates)).days)
