"""Payment risk forecasting - stuck probability and expected payment date"""

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import List, Optional, Union

from collections_engine.domain.ledger import allocate_receipts, require_cents
from collections_engine.domain.classifier import parse_category
from collections_engine.domain.models import CustomerLedger, RiskBand, RiskForecast
from collections_engine.utils.date_utils import add_days
from collections_engine.utils.money import round_half_up

Number = Union[int, float, Decimal]

NEUTRAL_ON_TIME_RATE = Decimal("0.5")


def _dec(value: Number) -> Decimal:
    # str() keeps 0.4 as 0.4 instead of its binary expansion
    return value if isinstance(value, Decimal) else Decimal(str(value))


@dataclass(frozen=True)
class ScoringPolicy:
    """
    Weights and saturation horizons for the stuck-probability score.

    Defaults:
    - 40%: late payment rate (share of settled invoices paid after due date)
    - 30%: average delay, saturating at 60 days
    - 15%: number of unpaid invoices, saturating at 10
    - 15%: unpaid amount relative to credit limit, saturating at 100%
    """

    late_payment_weight: Decimal = Decimal("0.40")
    delay_weight: Decimal = Decimal("0.30")
    volume_weight: Decimal = Decimal("0.15")
    amount_weight: Decimal = Decimal("0.15")
    delay_horizon_days: int = 60
    volume_horizon_invoices: int = 10

    def __post_init__(self):
        for name in ("late_payment_weight", "delay_weight", "volume_weight", "amount_weight"):
            weight = _dec(getattr(self, name))
            if weight < 0:
                raise ValueError(f"{name} must be non-negative")
            object.__setattr__(self, name, weight)
        if self.delay_horizon_days <= 0 or self.volume_horizon_invoices <= 0:
            raise ValueError("Risk horizons must be positive")


DEFAULT_POLICY = ScoringPolicy()


@dataclass
class PaymentHistory:
    """Punctuality metrics derived from allocated invoices"""

    paid_in_full: int = 0
    paid_on_time: int = 0
    late_delays: List[int] = field(default_factory=list)  # days late, per late-paid invoice
    unpaid_invoices: int = 0
    unpaid_amount_cents: int = 0

    @property
    def on_time_rate(self) -> Optional[Decimal]:
        if self.paid_in_full == 0:
            return None
        return Decimal(self.paid_on_time) / Decimal(self.paid_in_full)

    @property
    def avg_delay_days(self) -> Decimal:
        if not self.late_delays:
            return Decimal(0)
        return Decimal(sum(self.late_delays)) / Decimal(len(self.late_delays))


def analyze_payment_history(ledger: CustomerLedger) -> PaymentHistory:
    """
    Walk allocated invoices and collect punctuality metrics.

    - Paid in full on or before its due date counts as on time
    - Paid in full after its due date contributes its delay in days
    - Anything not fully paid is unpaid; only the open remainder is summed
    """
    history = PaymentHistory()
    for alloc in allocate_receipts(ledger):
        if alloc.is_paid_in_full:
            history.paid_in_full += 1
            delay = (alloc.settled_on - alloc.due_date).days
            if delay <= 0:
                history.paid_on_time += 1
            else:
                history.late_delays.append(delay)
        else:
            history.unpaid_invoices += 1
            history.unpaid_amount_cents += alloc.open_cents
    return history


def calculate_stuck_probability(
    on_time_rate: Optional[Number],
    avg_delay_days: Number,
    unpaid_invoices: int,
    unpaid_amount_cents: int,
    credit_limit_cents: Optional[int],
    policy: ScoringPolicy = DEFAULT_POLICY,
) -> int:
    """
    Score 0 (pays promptly) to 100 (payment very likely to get stuck).

    Missing punctuality history falls back to a neutral 50% on-time rate and a
    missing or zero credit limit contributes nothing. Non-decreasing in delay
    and unpaid invoice count for fixed other inputs.
    """
    rate = NEUTRAL_ON_TIME_RATE if on_time_rate is None else _dec(on_time_rate)
    late_payment_rate = 1 - rate
    delay_factor = min(Decimal(1), _dec(avg_delay_days) / policy.delay_horizon_days)
    volume_factor = min(Decimal(1), Decimal(unpaid_invoices) / policy.volume_horizon_invoices)
    if credit_limit_cents and credit_limit_cents > 0:
        amount_factor = min(Decimal(1), Decimal(unpaid_amount_cents) / Decimal(credit_limit_cents))
    else:
        amount_factor = Decimal(0)

    score = (
        policy.late_payment_weight * late_payment_rate
        + policy.delay_weight * delay_factor
        + policy.volume_weight * volume_factor
        + policy.amount_weight * amount_factor
    )
    return max(0, min(100, round_half_up(score * 100)))


def determine_risk_band(stuck_probability: int) -> RiskBand:
    """
    Bands:
    - [0, 30):   low
    - [30, 70):  medium
    - [70, 100]: high
    """
    if stuck_probability < 30:
        return RiskBand.LOW
    elif stuck_probability < 70:
        return RiskBand.MEDIUM
    else:
        return RiskBand.HIGH


def forecast_payment_risk(
    ledger: CustomerLedger, today: date, policy: ScoringPolicy = DEFAULT_POLICY
) -> Optional[RiskForecast]:
    """
    Main entry point: score a customer's payment history.

    Returns None for a customer with no invoices, since there is nothing to forecast.
    """
    customer = ledger.customer
    if not ledger.invoices:
        return None

    category = parse_category(customer.category, customer.id)
    credit_limit = customer.credit_limit_cents
    if credit_limit is not None:
        credit_limit = require_cents(credit_limit, customer.id, "credit_limit")

    history = analyze_payment_history(ledger)
    avg_delay = history.avg_delay_days
    score = calculate_stuck_probability(
        history.on_time_rate,
        avg_delay,
        history.unpaid_invoices,
        history.unpaid_amount_cents,
        credit_limit,
        policy,
    )

    expected_payment_date = None
    if history.unpaid_invoices > 0:
        expected_payment_date = add_days(today, round_half_up(avg_delay))

    return RiskForecast(
        customer_id=customer.id,
        customer_name=customer.name,
        category=category,
        stuck_probability=score,
        risk_band=determine_risk_band(score),
        expected_payment_date=expected_payment_date,
        on_time_rate=history.on_time_rate,
        avg_delay_days=avg_delay,
        unpaid_invoices=history.unpaid_invoices,
        unpaid_amount_cents=history.unpaid_amount_cents,
    )


def rank_forecasts(forecasts: List[RiskForecast]) -> List[RiskForecast]:
    """Riskiest first; ties by larger unpaid amount, then name"""
    return sorted(
        forecasts,
        key=lambda f: (-f.stuck_probability, -f.unpaid_amount_cents, f.customer_name, f.customer_id),
    )
