"""Excel export of the debtor view"""

from io import BytesIO
from typing import Iterable

from openpyxl import Workbook
from openpyxl.styles import Font

from collections_engine.domain.models import DebtorSnapshot
from collections_engine.utils.money import cents_to_decimal

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
CURRENCY_FORMAT = "#,##0.00"

COLUMNS = [
    ("Customer", 32),
    ("Category", 10),
    ("Opening Balance", 16),
    ("Invoices", 16),
    ("Receipts", 16),
    ("Outstanding", 16),
    ("Invoice Count", 13),
    ("Receipt Count", 13),
    ("Last Invoice", 13),
    ("Last Payment", 13),
    ("Next Follow-up", 18),
    ("Follow-up Bucket", 18),
]
CURRENCY_COLUMNS = (3, 4, 5, 6)  # 1-based


def debtors_workbook(debtors: Iterable[DebtorSnapshot], category_rollup: dict) -> bytes:
    """Two sheets: one row per debtor, then the category totals for the same rows"""
    wb = Workbook()
    sheet = wb.active
    sheet.title = "Debtors"
    sheet.append([title for title, _ in COLUMNS])
    for cell in sheet[1]:
        cell.font = Font(bold=True)
    for idx, (_, width) in enumerate(COLUMNS, start=1):
        sheet.column_dimensions[sheet.cell(row=1, column=idx).column_letter].width = width

    for d in debtors:
        b = d.balance
        sheet.append(
            [
                d.customer_name,
                d.category.value,
                cents_to_decimal(b.opening_balance_cents),
                cents_to_decimal(b.invoice_total_cents),
                cents_to_decimal(b.receipt_total_cents),
                cents_to_decimal(b.outstanding_balance_cents),
                b.invoice_count,
                b.receipt_count,
                b.last_invoice_date,
                b.last_payment_date,
                # Excel has no timezone support
                d.next_follow_up_at.replace(tzinfo=None) if d.next_follow_up_at else None,
                d.follow_up_bucket.value,
            ]
        )
    for row in sheet.iter_rows(min_row=2):
        for col in CURRENCY_COLUMNS:
            row[col - 1].number_format = CURRENCY_FORMAT
    sheet.freeze_panes = "A2"

    summary = wb.create_sheet("By Category")
    summary.append(["Category", "Debtors", "Outstanding"])
    for cell in summary[1]:
        cell.font = Font(bold=True)
    for category, tally in category_rollup.items():
        summary.append([category.value, tally.count, cents_to_decimal(tally.total_cents)])
        summary.cell(row=summary.max_row, column=3).number_format = CURRENCY_FORMAT

    buffer = BytesIO()
    wb.save(buffer)
    return buffer.getvalue()
