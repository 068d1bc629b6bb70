"""Fixed-point currency helpers. Amounts travel as integer cents."""

from decimal import Decimal, ROUND_HALF_UP

CENT = Decimal("0.01")


def cents_to_decimal(cents: int) -> Decimal:
    """Render integer cents as a Decimal with exactly two places"""
    return (Decimal(cents) / 100).quantize(CENT)


def divide_cents(total_cents: int, count: int) -> int:
    """Average in cents, rounded half-up; 0 when there is nothing to divide by"""
    if count <= 0:
        return 0
    return int((Decimal(total_cents) / Decimal(count)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def round_half_up(value: Decimal) -> int:
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))
