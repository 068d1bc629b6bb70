"""Follow-up bucketing - places a customer's next follow-up in one time bucket"""

from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Iterable, Optional

from collections_engine.domain.models import FollowUp, FollowUpBucket
from collections_engine.utils.date_utils import end_of_month, end_of_week, floor_day

# Dashboard order
BUCKET_ORDER = [
    FollowUpBucket.OVERDUE,
    FollowUpBucket.DUE_TODAY,
    FollowUpBucket.DUE_TOMORROW,
    FollowUpBucket.DUE_THIS_WEEK,
    FollowUpBucket.DUE_THIS_MONTH,
    FollowUpBucket.NO_FOLLOW_UP,
    FollowUpBucket.UNSCHEDULED_FUTURE,
]


@dataclass(frozen=True)
class BucketBoundaries:
    today: date
    tomorrow: date
    end_of_week: date
    end_of_month: date


def bucket_boundaries(now: datetime) -> BucketBoundaries:
    today = floor_day(now)
    return BucketBoundaries(
        today=today,
        tomorrow=today + timedelta(days=1),
        end_of_week=end_of_week(today),
        end_of_month=end_of_month(today),
    )


def classify_follow_up(next_follow_up_at: Optional[datetime], now: datetime) -> FollowUpBucket:
    """
    Assign exactly one bucket. Rules are checked in order; first match wins:

    1. no next follow-up          -> no_follow_up
    2. before today               -> overdue
    3. today                      -> due_today
    4. tomorrow                   -> due_tomorrow
    5. after today, <= Sunday     -> due_this_week
    6. after Sunday, <= month end -> due_this_month
    7. anything later             -> unscheduled_future
    """
    if next_follow_up_at is None:
        return FollowUpBucket.NO_FOLLOW_UP

    bounds = bucket_boundaries(now)
    tz = now.tzinfo if isinstance(now, datetime) else None
    day = floor_day(next_follow_up_at, tz)

    if day < bounds.today:
        return FollowUpBucket.OVERDUE
    if day == bounds.today:
        return FollowUpBucket.DUE_TODAY
    if day == bounds.tomorrow:
        return FollowUpBucket.DUE_TOMORROW
    if day <= bounds.end_of_week:
        return FollowUpBucket.DUE_THIS_WEEK
    if day <= bounds.end_of_month:
        return FollowUpBucket.DUE_THIS_MONTH
    return FollowUpBucket.UNSCHEDULED_FUTURE


def latest_next_follow_up(follow_ups: Iterable[FollowUp]) -> Optional[datetime]:
    """Next date scheduled on the most recent follow-up (ties broken by id)"""
    latest: Optional[FollowUp] = None
    for fu in follow_ups:
        if latest is None or (fu.follow_up_at, fu.id) > (latest.follow_up_at, latest.id):
            latest = fu
    return latest.next_follow_up_at if latest else None
