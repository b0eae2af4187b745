"""Repository activity policy.

Pure functions that turn commit timestamps into a repository status and
compute the week identifier used for weekly statistics. Both are product
policy shared by the scheduler, manual sync and tests.
"""

import math
from datetime import datetime, timezone
from typing import Iterable, Optional

from app.models.base import ensure_utc
from app.models.repository import RepositoryStatus

# A repository is active while its last commit is at most this many days old
ACTIVE_THRESHOLD_DAYS: int = 7
# ...and in warning up to this age; anything older is inactive
WARNING_THRESHOLD_DAYS: int = 14

SECONDS_PER_DAY: int = 86400

# Viber of the Week scoring weights
VIBER_ACTIVE_WEIGHT: int = 10
VIBER_WARNING_WEIGHT: int = -3
VIBER_INACTIVE_WEIGHT: int = -7

# Share of active users below which the system is reported as warning or critical
WARNING_HEALTH_RATIO: float = 0.6
CRITICAL_HEALTH_RATIO: float = 0.3


def calculate_repository_status(
    last_commit_date: Optional[datetime],
    now: Optional[datetime] = None,
) -> RepositoryStatus:
    """
    Classify a repository by the age of its last commit.

    Boundaries are inclusive on the healthier status: exactly 7 days is
    still active and exactly 14 days is still warning.

    Args:
        last_commit_date: Timestamp of the most recent commit, or None if unknown
        now: Reference time (defaults to the current UTC time)

    Returns:
        RepositoryStatus: pending, active, warning or inactive

    Example:
        >>> calculate_repository_status(None)
        <RepositoryStatus.PENDING: 'pending'>
    """
    if last_commit_date is None:
        return RepositoryStatus.PENDING

    now = ensure_utc(now) or datetime.now(timezone.utc)
    days_ago = (now - ensure_utc(last_commit_date)).total_seconds() / SECONDS_PER_DAY

    if days_ago <= ACTIVE_THRESHOLD_DAYS:
        return RepositoryStatus.ACTIVE
    if days_ago <= WARNING_THRESHOLD_DAYS:
        return RepositoryStatus.WARNING
    return RepositoryStatus.INACTIVE


def calculate_viber_score(statuses: Iterable[RepositoryStatus]) -> int:
    """Score a user's repositories for the Viber of the Week."""
    score = 0
    for status in statuses:
        if status == RepositoryStatus.ACTIVE:
            score += VIBER_ACTIVE_WEIGHT
        elif status == RepositoryStatus.WARNING:
            score += VIBER_WARNING_WEIGHT
        elif status == RepositoryStatus.INACTIVE:
            score += VIBER_INACTIVE_WEIGHT
    return score


def get_week_identifier(now: Optional[datetime] = None) -> str:
    """
    Week identifier in YYYY-WW form.

    This is not ISO-8601 week numbering. Stored week strings were always
    produced by `ceil((days_since_jan_1 + weekday_of_jan_1 + 1) / 7)`, where
    days_since_jan_1 is fractional and weekday_of_jan_1 counts from Sunday = 0,
    so the same formula must keep being used.
    """
    now = now or datetime.now(timezone.utc)
    first_day = now.replace(month=1, day=1, hour=0, minute=0, second=0, microsecond=0)

    past_days = (now - first_day).total_seconds() / SECONDS_PER_DAY
    # datetime.weekday() is Monday = 0; shift to Sunday = 0
    first_weekday = (first_day.weekday() + 1) % 7
    week_number = math.ceil((past_days + first_weekday + 1) / 7)

    return f"{now.year}-{week_number:02d}"


def classify_system_health(active_users: int, total_users: int) -> str:
    """System health from the share of active users: healthy, warning or critical."""
    score = active_users / max(total_users, 1)
    if score < CRITICAL_HEALTH_RATIO:
        return "critical"
    if score < WARNING_HEALTH_RATIO:
        return "warning"
    return "healthy"
