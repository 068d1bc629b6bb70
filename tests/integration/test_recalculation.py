"""Integration tests for batch category recalculation"""

import time
import pytest
from datetime import date
from collections_engine.domain.exceptions import AggregationFailed
from collections_engine.domain.invalidation import ReadModel
from collections_engine.domain.models import Category
from collections_engine.infrastructure.database.models import CustomerRecord, InvoiceRecord
from collections_engine.infrastructure.database.repositories import CategoryRepository, LedgerRepository
from collections_engine.services.recalculation import recalculate_categories

pytestmark = pytest.mark.integration

TODAY = date(2025, 3, 10)


def _run(db, pool, tenant_id="tenant_a", **kwargs):
    return recalculate_categories(LedgerRepository(db), CategoryRepository(db), pool, tenant_id, TODAY, **kwargs)


def _category(db, customer_id: str) -> str:
    db.expire_all()
    return db.get(CustomerRecord, customer_id).category


def test_recalculation_moves_matching_customers(seeded_ledger, pool):
    summary = _run(seeded_ledger, pool)

    assert summary.reassigned == 1
    assert summary.unchanged == 2
    assert summary.failed == 0
    assert summary.complete
    assert summary.next_cursor is None
    assert summary.processed == 3
    assert _category(seeded_ledger, "cust_1") == "Delta"
    assert ReadModel.CATEGORY_ROLLUP in summary.invalidated_read_models


def test_pages_are_loaded_without_follow_ups(seeded_ledger, pool, monkeypatch):
    calls = []
    real_get_ledger = LedgerRepository.get_ledger

    def recording_get_ledger(self, tenant_id, customers=None, with_follow_ups=True):
        calls.append(with_follow_ups)
        return real_get_ledger(self, tenant_id, customers, with_follow_ups)

    monkeypatch.setattr(LedgerRepository, "get_ledger", recording_get_ledger)

    _run(seeded_ledger, pool, page_size=2)

    assert calls == [False, False]


def test_change_is_logged(seeded_ledger, pool):
    _run(seeded_ledger, pool)

    (entry,) = CategoryRepository(seeded_ledger).get_change_log("tenant_a", "cust_1")
    assert entry.previous_category == "Beta"
    assert entry.new_category == "Delta"
    assert entry.rule_priority == 1


def test_rerun_changes_nothing(seeded_ledger, pool):
    _run(seeded_ledger, pool)
    second = _run(seeded_ledger, pool)

    assert second.reassigned == 0
    assert second.unchanged == 3
    assert second.invalidated_read_models == []
    assert len(CategoryRepository(seeded_ledger).get_change_log("tenant_a", "cust_1")) == 1


def test_manual_override_is_left_alone(seeded_ledger, pool):
    seeded_ledger.get(CustomerRecord, "cust_1").category_manual_override = True
    seeded_ledger.commit()

    summary = _run(seeded_ledger, pool)

    assert summary.skipped_override == 1
    assert summary.reassigned == 0
    assert _category(seeded_ledger, "cust_1") == "Beta"


def test_small_pages_cover_every_customer(seeded_ledger, pool):
    summary = _run(seeded_ledger, pool, page_size=1)

    assert summary.processed == 3
    assert summary.reassigned == 1


def test_cursor_resumes_after_a_customer(seeded_ledger, pool):
    summary = _run(seeded_ledger, pool, cursor="cust_1")

    assert summary.processed == 2
    assert summary.reassigned == 0


def test_missed_deadline_returns_a_cursor(seeded_ledger, pool, monkeypatch):
    import collections_engine.services.recalculation as recalculation

    def slow_classify(ledger, rules, today):
        time.sleep(0.2)
        return real_classify(ledger, rules, today)

    real_classify = recalculation.classify_customer
    monkeypatch.setattr(recalculation, "classify_customer", slow_classify)

    summary = _run(seeded_ledger, pool, page_deadline_seconds=0.05)

    assert summary.complete is False
    assert summary.next_cursor is None  # first page never finished
    assert summary.reassigned == 0
    assert _category(seeded_ledger, "cust_1") == "Beta"


def test_bad_customer_is_counted_as_failed(seeded_ledger, pool):
    seeded_ledger.add(CustomerRecord(id="cust_9", tenant_id="tenant_a", name="Broken Ltd", category="Beta"))
    seeded_ledger.add(
        InvoiceRecord(id="inv_9", tenant_id="tenant_a", customer_id="cust_9", amount_cents=-100, invoice_date=date(2025, 1, 1))
    )
    seeded_ledger.commit()

    summary = _run(seeded_ledger, pool)

    assert summary.failed == 1
    assert summary.reassigned == 1
    assert summary.skipped[0].customer_id == "cust_9"
    assert summary.skipped[0].field == "invoice.amount"


def test_every_customer_failing_raises(db, pool):
    db.add(CustomerRecord(id="cust_x", tenant_id="tenant_c", name="Broken Ltd", category="Omega"))
    db.commit()

    with pytest.raises(AggregationFailed):
        _run(db, pool, tenant_id="tenant_c")


def test_unknown_rule_target_is_ignored(seeded_ledger, pool):
    from collections_engine.infrastructure.database.models import CategoryRuleRecord

    seeded_ledger.add(CategoryRuleRecord(id="rule_0", tenant_id="tenant_a", priority=0, target_category="Omega"))
    seeded_ledger.commit()

    rules = CategoryRepository(seeded_ledger).get_rules("tenant_a")

    assert [r.target_category for r in rules] == [Category.DELTA, Category.ALPHA]
