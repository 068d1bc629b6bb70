"""Category classification - prioritized tier rules over balance and overdue days"""

from datetime import date
from typing import Iterable, List, Optional

from collections_engine.domain.exceptions import DataError
from collections_engine.domain.ledger import aggregate_balance, allocate_receipts, overdue_days
from collections_engine.domain.models import (
    Category,
    CategoryRule,
    ClassificationOutcome,
    CustomerLedger,
)


def sort_rules(rules: Iterable[CategoryRule]) -> List[CategoryRule]:
    """Ascending priority; the sort is stable so equal priorities keep their order"""
    return sorted(rules, key=lambda r: r.priority)


def _within(value: int, lower: Optional[int], upper: Optional[int]) -> bool:
    if lower is not None and value < lower:
        return False
    if upper is not None and value > upper:
        return False
    return True


def rule_matches(rule: CategoryRule, balance_cents: int, days_overdue: int) -> bool:
    return _within(balance_cents, rule.min_balance_cents, rule.max_balance_cents) and _within(
        days_overdue, rule.min_overdue_days, rule.max_overdue_days
    )


def first_matching_rule(
    rules: List[CategoryRule], balance_cents: int, days_overdue: int
) -> Optional[CategoryRule]:
    """``rules`` must already be in priority order"""
    for rule in rules:
        if rule_matches(rule, balance_cents, days_overdue):
            return rule
    return None


def classify(
    customer_id: str,
    current: Category,
    manual_override: bool,
    rules: List[CategoryRule],
    balance_cents: int,
    days_overdue: int,
) -> ClassificationOutcome:
    """
    Decide a customer's category.

    A manual override always wins, and no matching rule leaves the category
    as it is. Neither case is an error.
    """
    if manual_override:
        return ClassificationOutcome(
            customer_id=customer_id,
            previous_category=current,
            new_category=current,
            rule_priority=None,
            skipped_override=True,
        )

    rule = first_matching_rule(rules, balance_cents, days_overdue)
    if rule is None:
        return ClassificationOutcome(customer_id, current, current, None)
    return ClassificationOutcome(customer_id, current, rule.target_category, rule.priority)


def parse_category(value: object, customer_id: str) -> Category:
    try:
        return Category(value)
    except ValueError as e:
        raise DataError(customer_id, "category", f"unknown category {value!r}") from e


def classify_customer(
    ledger: CustomerLedger, rules: List[CategoryRule], today: date
) -> ClassificationOutcome:
    """Row-level classification of one customer; overrides skip ledger work entirely"""
    customer = ledger.customer
    current = parse_category(customer.category, customer.id)
    if customer.category_manual_override:
        return classify(customer.id, current, True, rules, 0, 0)

    balance = aggregate_balance(ledger)
    days = overdue_days(allocate_receipts(ledger), today)
    return classify(
        customer.id,
        current,
        False,
        rules,
        balance.outstanding_balance_cents,
        days,
    )
