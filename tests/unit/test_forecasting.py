"""Unit tests for payment risk forecasting"""

import pytest
from datetime import date
from decimal import Decimal
from collections_engine.domain.forecasting import (
    ScoringPolicy,
    analyze_payment_history,
    calculate_stuck_probability,
    determine_risk_band,
    forecast_payment_risk,
    rank_forecasts,
)
from collections_engine.domain.models import (
    Category,
    Customer,
    CustomerLedger,
    Invoice,
    Receipt,
    RiskBand,
)

TODAY = date(2025, 3, 10)


def _ledger(invoices, receipts=(), **customer_kwargs) -> CustomerLedger:
    defaults = dict(id="c1", tenant_id="t1", name="Acme", category=Category.BETA, payment_terms_days=10)
    defaults.update(customer_kwargs)
    return CustomerLedger(
        customer=Customer(**defaults),
        invoices=[
            Invoice(id=f"i{n}", tenant_id="t1", customer_id=defaults["id"], amount_cents=amount, invoice_date=issued)
            for n, (amount, issued) in enumerate(invoices)
        ],
        receipts=[
            Receipt(id=f"r{n}", tenant_id="t1", customer_id=defaults["id"], amount_cents=amount, date=received)
            for n, (amount, received) in enumerate(receipts)
        ],
    )


def test_weighted_score_for_mixed_history():
    """0.4*0.6 + 0.3*0.5 + 0.15*0.5 + 0.15*0.5 = 0.54"""
    score = calculate_stuck_probability(
        on_time_rate=Decimal("0.4"),
        avg_delay_days=30,
        unpaid_invoices=5,
        unpaid_amount_cents=50_000,
        credit_limit_cents=100_000,
    )

    assert score == 54
    assert determine_risk_band(score) == RiskBand.MEDIUM


def test_no_settled_invoices_falls_back_to_neutral_rate():
    score = calculate_stuck_probability(None, 0, 0, 0, None)

    assert score == 20
    assert determine_risk_band(score) == RiskBand.LOW


@pytest.mark.parametrize(
    "score,band",
    [(0, RiskBand.LOW), (29, RiskBand.LOW), (30, RiskBand.MEDIUM), (69, RiskBand.MEDIUM), (70, RiskBand.HIGH), (100, RiskBand.HIGH)],
)
def test_band_boundaries(score, band):
    assert determine_risk_band(score) == band


def test_factors_saturate_and_score_stays_in_range():
    worst = calculate_stuck_probability(Decimal(0), 600, 500, 10**9, 1)
    best = calculate_stuck_probability(Decimal(1), 0, 0, 0, 100)

    assert worst == 100
    assert best == 0


def test_zero_credit_limit_contributes_nothing():
    assert calculate_stuck_probability(Decimal(1), 0, 0, 999_999, 0) == 0


def test_score_is_non_decreasing_in_delay_and_unpaid_count():
    previous = -1
    for delay in range(0, 90, 5):
        score = calculate_stuck_probability(Decimal("0.5"), delay, 3, 1000, 10_000)
        assert score >= previous
        previous = score

    previous = -1
    for unpaid in range(0, 15):
        score = calculate_stuck_probability(Decimal("0.5"), 10, unpaid, 1000, 10_000)
        assert score >= previous
        previous = score


def test_half_point_rounds_up():
    # 0.4*0.5 + 0.15*0.1 = 0.215 -> 21.5 -> 22
    assert calculate_stuck_probability(None, 0, 1, 0, None) == 22


def test_custom_policy_changes_weights():
    policy = ScoringPolicy(late_payment_weight=1, delay_weight=0, volume_weight=0, amount_weight=0)
    assert calculate_stuck_probability(Decimal("0.25"), 50, 5, 0, None, policy) == 75


def test_policy_rejects_negative_weight():
    with pytest.raises(ValueError):
        ScoringPolicy(delay_weight=-0.1)


def test_payment_history_splits_on_time_and_late():
    ledger = _ledger(
        invoices=[(1_000, date(2025, 1, 1)), (1_000, date(2025, 1, 15)), (2_000, date(2025, 2, 1))],
        receipts=[(1_000, date(2025, 1, 5)), (1_000, date(2025, 2, 4)), (500, date(2025, 2, 20))],
    )

    history = analyze_payment_history(ledger)

    # i0 due 01-11 paid 01-05; i1 due 01-25 paid 02-04 (10 days late); i2 part-paid
    assert history.paid_in_full == 2
    assert history.paid_on_time == 1
    assert history.late_delays == [10]
    assert history.on_time_rate == Decimal("0.5")
    assert history.avg_delay_days == Decimal(10)
    assert history.unpaid_invoices == 1
    assert history.unpaid_amount_cents == 1_500


def test_forecast_for_customer_with_open_invoices():
    ledger = _ledger(
        invoices=[(1_000, date(2025, 1, 1)), (1_000, date(2025, 1, 15)), (2_000, date(2025, 2, 1))],
        receipts=[(1_000, date(2025, 1, 5)), (1_000, date(2025, 2, 4)), (500, date(2025, 2, 20))],
        credit_limit_cents=3_000,
    )

    forecast = forecast_payment_risk(ledger, TODAY)

    # 0.4*0.5 + 0.3*(10/60) + 0.15*0.1 + 0.15*0.5 = 0.34
    assert forecast.stuck_probability == 34
    assert forecast.risk_band == RiskBand.MEDIUM
    assert forecast.expected_payment_date == date(2025, 3, 20)
    assert forecast.unpaid_amount_cents == 1_500


def test_no_expected_date_when_everything_is_paid():
    ledger = _ledger(invoices=[(1_000, date(2025, 1, 1))], receipts=[(1_000, date(2025, 1, 2))])

    forecast = forecast_payment_risk(ledger, TODAY)

    assert forecast.expected_payment_date is None
    assert forecast.stuck_probability == 0


def test_customer_without_invoices_has_no_forecast():
    assert forecast_payment_risk(_ledger(invoices=[]), TODAY) is None


def test_forecast_is_deterministic():
    ledger = _ledger(invoices=[(1_000, date(2025, 1, 1))], receipts=[(400, date(2025, 2, 1))])
    assert forecast_payment_risk(ledger, TODAY) == forecast_payment_risk(ledger, TODAY)


def test_ranking_puts_riskiest_first():
    risky = forecast_payment_risk(_ledger(invoices=[(5_000, date(2024, 12, 1))], id="c2", name="Zed"), TODAY)
    safe = forecast_payment_risk(
        _ledger(invoices=[(1_000, date(2025, 1, 1))], receipts=[(1_000, date(2025, 1, 2))], name="Able"), TODAY
    )

    assert [f.customer_id for f in rank_forecasts([safe, risky])] == ["c2", "c1"]
