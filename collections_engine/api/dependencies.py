"""Dependency injection for FastAPI endpoints"""

from datetime import datetime
from functools import lru_cache
from typing import Optional
from zoneinfo import ZoneInfo

from fastapi import Depends, Header, Query, Request

from collections_engine.config import settings
from collections_engine.domain.forecasting import ScoringPolicy
from collections_engine.domain.reporting import AggregationReporter
from collections_engine.infrastructure.workers import TenantWorkerPool


def get_request_id(request: Request) -> str:
    """Extract request ID from request state"""
    return getattr(request.state, "request_id", "unknown")


def get_tenant_id(x_tenant_id: str = Header(..., min_length=1)) -> str:
    """Tenant scope for every read-model; supplied by the caller on each request"""
    return x_tenant_id


def get_now(
    as_of: Optional[datetime] = Query(None, description="Evaluate as of this instant instead of now"),
) -> datetime:
    """Clock for bucket and due-date math, in the business timezone"""
    tz = ZoneInfo(settings.business_timezone)
    if as_of is None:
        return datetime.now(tz)
    if as_of.tzinfo is None:
        return as_of.replace(tzinfo=tz)
    return as_of.astimezone(tz)


@lru_cache(maxsize=1)
def get_worker_pool() -> TenantWorkerPool:
    """Process-wide pool; created on first use"""
    return TenantWorkerPool(
        max_workers=settings.worker_pool_size,
        per_tenant_limit=settings.tenant_concurrency_limit,
    )


def get_scoring_policy() -> ScoringPolicy:
    return ScoringPolicy(
        late_payment_weight=settings.risk_weight_late_payment,
        delay_weight=settings.risk_weight_delay,
        volume_weight=settings.risk_weight_volume,
        amount_weight=settings.risk_weight_amount,
        delay_horizon_days=settings.risk_delay_horizon_days,
        volume_horizon_invoices=settings.risk_volume_horizon_invoices,
    )


def get_reporter(
    pool: TenantWorkerPool = Depends(get_worker_pool),
    policy: ScoringPolicy = Depends(get_scoring_policy),
) -> AggregationReporter:
    return AggregationReporter(pool, policy=policy, grace_days=settings.invoice_grace_days)
