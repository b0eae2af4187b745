"""
Unit tests for the repository activity policy.

Covers status classification boundaries, Viber scoring, the week
identifier and the system health rating.
"""

from datetime import datetime, timedelta, timezone

import pytest

from app.models import RepositoryStatus
from app.services.status import (
    ACTIVE_THRESHOLD_DAYS,
    WARNING_THRESHOLD_DAYS,
    calculate_repository_status,
    calculate_viber_score,
    classify_system_health,
    get_week_identifier,
)

NOW = datetime(2024, 6, 15, 12, 0, 0, tzinfo=timezone.utc)


@pytest.mark.unit
class TestCalculateRepositoryStatus:
    """Test classification of repositories by last commit age."""

    def test_no_commit_is_pending(self):
        assert calculate_repository_status(None, NOW) == RepositoryStatus.PENDING

    @pytest.mark.parametrize(
        "days, expected",
        [
            (0, RepositoryStatus.ACTIVE),
            (7, RepositoryStatus.ACTIVE),
            (8, RepositoryStatus.WARNING),
            (14, RepositoryStatus.WARNING),
            (15, RepositoryStatus.INACTIVE),
            (90, RepositoryStatus.INACTIVE),
        ],
    )
    def test_day_boundaries(self, days, expected):
        """Exactly 7 days is still active and exactly 14 days is still warning."""
        assert calculate_repository_status(NOW - timedelta(days=days), NOW) == expected

    def test_just_past_active_threshold_is_warning(self):
        last_commit = NOW - timedelta(days=ACTIVE_THRESHOLD_DAYS, seconds=1)
        assert calculate_repository_status(last_commit, NOW) == RepositoryStatus.WARNING

    def test_just_past_warning_threshold_is_inactive(self):
        last_commit = NOW - timedelta(days=WARNING_THRESHOLD_DAYS, seconds=1)
        assert calculate_repository_status(last_commit, NOW) == RepositoryStatus.INACTIVE

    def test_naive_timestamps_are_treated_as_utc(self):
        """Datetimes read back from MongoDB without tzinfo are UTC."""
        last_commit = (NOW - timedelta(days=3)).replace(tzinfo=None)
        assert calculate_repository_status(last_commit, NOW) == RepositoryStatus.ACTIVE

    def test_defaults_to_current_time(self):
        recent = datetime.now(timezone.utc) - timedelta(hours=1)
        assert calculate_repository_status(recent) == RepositoryStatus.ACTIVE


@pytest.mark.unit
class TestViberScore:
    """Test the Viber of the Week scoring."""

    def test_weights(self):
        statuses = [
            RepositoryStatus.ACTIVE,
            RepositoryStatus.ACTIVE,
            RepositoryStatus.WARNING,
            RepositoryStatus.INACTIVE,
        ]
        assert calculate_viber_score(statuses) == 10 + 10 - 3 - 7

    def test_pending_does_not_count(self):
        assert calculate_viber_score([RepositoryStatus.PENDING]) == 0

    def test_only_inactive_is_negative(self):
        assert calculate_viber_score([RepositoryStatus.INACTIVE]) < 0


@pytest.mark.unit
class TestWeekIdentifier:
    """Golden values for the week identifier formula."""

    @pytest.mark.parametrize(
        "moment, expected",
        [
            # 2024-01-01 is a Monday
            (datetime(2024, 1, 1, tzinfo=timezone.utc), "2024-01"),
            (datetime(2024, 1, 6, tzinfo=timezone.utc), "2024-01"),
            (datetime(2024, 1, 7, tzinfo=timezone.utc), "2024-02"),
            # 2023-01-01 is a Sunday
            (datetime(2023, 1, 1, tzinfo=timezone.utc), "2023-01"),
            (datetime(2024, 12, 31, tzinfo=timezone.utc), "2024-53"),
        ],
    )
    def test_golden_values(self, moment, expected):
        assert get_week_identifier(moment) == expected

    def test_not_iso_week(self):
        """ISO numbering puts 2024-01-07 in week 1; this formula does not."""
        moment = datetime(2024, 1, 7, tzinfo=timezone.utc)
        assert moment.isocalendar()[1] == 1
        assert get_week_identifier(moment) == "2024-02"

    def test_format(self):
        identifier = get_week_identifier(NOW)
        year, week = identifier.split("-")
        assert year == "2024"
        assert len(week) == 2


@pytest.mark.unit
class TestSystemHealth:
    """Test the admin system health rating."""

    @pytest.mark.parametrize(
        "active, total, expected",
        [
            (10, 10, "healthy"),
            (6, 10, "healthy"),
            (5, 10, "warning"),
            (3, 10, "warning"),
            (2, 10, "critical"),
            (0, 0, "critical"),
        ],
    )
    def test_thresholds(self, active, total, expected):
        assert classify_system_health(active, total) == expected
