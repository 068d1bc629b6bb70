"""Unit tests for category rules"""

import pytest
from datetime import date
from collections_engine.domain.classifier import (
    classify,
    classify_customer,
    first_matching_rule,
    parse_category,
    rule_matches,
    sort_rules,
)
from collections_engine.domain.exceptions import DataError
from collections_engine.domain.models import Category, CategoryRule, Customer, CustomerLedger, Invoice


def test_high_balance_long_overdue_customer_moves_to_delta():
    rules = [CategoryRule(priority=1, target_category=Category.DELTA, min_balance_cents=500000, min_overdue_days=60)]

    outcome = classify("c1", Category.BETA, False, rules, balance_cents=600000, days_overdue=90)

    assert outcome.new_category == Category.DELTA
    assert outcome.previous_category == Category.BETA
    assert outcome.rule_priority == 1
    assert outcome.changed


def test_manual_override_is_never_reclassified():
    rules = [CategoryRule(priority=1, target_category=Category.DELTA)]

    outcome = classify("c1", Category.ALPHA, True, rules, balance_cents=10**9, days_overdue=365)

    assert outcome.skipped_override
    assert outcome.new_category == Category.ALPHA
    assert not outcome.changed


def test_no_matching_rule_keeps_category():
    rules = [CategoryRule(priority=1, target_category=Category.DELTA, min_balance_cents=1_000_000)]

    outcome = classify("c1", Category.GAMMA, False, rules, balance_cents=10, days_overdue=0)

    assert outcome.new_category == Category.GAMMA
    assert outcome.rule_priority is None
    assert not outcome.changed


def test_lowest_priority_number_wins():
    rules = sort_rules(
        [
            CategoryRule(priority=5, target_category=Category.GAMMA),
            CategoryRule(priority=2, target_category=Category.BETA, max_overdue_days=30),
        ]
    )

    assert first_matching_rule(rules, 100, 10).target_category == Category.BETA
    assert first_matching_rule(rules, 100, 31).target_category == Category.GAMMA


def test_bounds_are_inclusive():
    rule = CategoryRule(
        priority=1,
        target_category=Category.BETA,
        min_balance_cents=100,
        max_balance_cents=200,
        min_overdue_days=10,
        max_overdue_days=20,
    )

    assert rule_matches(rule, 100, 10)
    assert rule_matches(rule, 200, 20)
    assert not rule_matches(rule, 99, 15)
    assert not rule_matches(rule, 150, 21)


def test_unknown_category_is_a_data_error():
    with pytest.raises(DataError) as exc_info:
        parse_category("Omega", "c9")
    assert exc_info.value.field == "category"
    assert exc_info.value.customer_id == "c9"


def test_classify_customer_uses_ledger_balance_and_overdue_days():
    customer = Customer(
        id="c1", tenant_id="t1", name="Acme", category="Beta",
        opening_balance_cents=0, payment_terms_days=30,
    )
    ledger = CustomerLedger(
        customer=customer,
        invoices=[
            Invoice(id="i1", tenant_id="t1", customer_id="c1", amount_cents=600000, invoice_date=date(2025, 1, 1))
        ],
    )
    rules = [CategoryRule(priority=1, target_category=Category.DELTA, min_balance_cents=500000, min_overdue_days=60)]

    # Due 2025-01-31; 90 days later is 2025-05-01
    assert classify_customer(ledger, rules, date(2025, 5, 1)).new_category == Category.DELTA
    assert classify_customer(ledger, rules, date(2025, 3, 1)).new_category == Category.BETA


def test_override_customer_skips_ledger_validation():
    customer = Customer(id="c1", tenant_id="t1", name="Acme", category="Alpha", category_manual_override=True)
    broken = CustomerLedger(
        customer=customer,
        invoices=[Invoice(id="i1", tenant_id="t1", customer_id="c1", amount_cents=-5, invoice_date=date(2025, 1, 1))],
    )

    outcome = classify_customer(broken, [CategoryRule(priority=1, target_category=Category.DELTA)], date(2025, 3, 1))

    assert outcome.skipped_override
