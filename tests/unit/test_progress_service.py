"""
Unit tests for progress accumulation and weekly statistics.

Uses mongomock_motor so the MongoDB update operators ($inc, $max,
$setOnInsert) are exercised for real.
"""

from datetime import date, timedelta

import pytest
from bson import ObjectId

from app.models import ProgressUpdate, UserProgressInDB
from app.services.progress import ProgressService
from app.services.scheduler import EXPERIENCE_PER_COMMIT, summarize_progress

TODAY = date(2024, 3, 15)


def stored_progress(**fields) -> UserProgressInDB:
    return UserProgressInDB(user_id=ObjectId(), **fields)


@pytest.mark.unit
@pytest.mark.asyncio
class TestUpdateUserProgressStats:
    """Test ProgressService.update_user_progress_stats."""

    async def test_commits_accumulate(self, test_db):
        service = ProgressService(test_db)
        user_id = ObjectId()

        await service.update_user_progress_stats(user_id, ProgressUpdate(commits=5))
        progress = await service.update_user_progress_stats(user_id, ProgressUpdate(commits=3))

        assert progress.total_commits == 8

    async def test_longest_streak_is_kept(self, test_db):
        service = ProgressService(test_db)
        user_id = ObjectId()

        await service.update_user_progress_stats(user_id, ProgressUpdate(current_streak=10))
        progress = await service.update_user_progress_stats(user_id, ProgressUpdate(current_streak=2))

        assert progress.current_streak == 2
        assert progress.longest_streak == 10
        assert progress.longest_streak >= progress.current_streak

    async def test_level_follows_experience(self, test_db):
        service = ProgressService(test_db)
        user_id = ObjectId()

        progress = await service.update_user_progress_stats(user_id, ProgressUpdate(experience=90))
        assert progress.level == 1

        progress = await service.update_user_progress_stats(user_id, ProgressUpdate(experience=60))
        assert progress.experience == 150
        assert progress.level == 2

    async def test_active_days_never_decrease(self, test_db):
        service = ProgressService(test_db)
        user_id = ObjectId()

        await service.update_user_progress_stats(user_id, ProgressUpdate(active_days=5))
        progress = await service.update_user_progress_stats(user_id, ProgressUpdate(active_days=3))

        assert progress.active_days == 5

    async def test_creates_document_on_first_update(self, test_db):
        service = ProgressService(test_db)
        user_id = ObjectId()

        assert await service.get_user_progress(user_id) is None

        await service.update_user_progress_stats(user_id, ProgressUpdate(commits=1, last_commit_day="2024-03-15"))

        progress = await service.get_user_progress(user_id)
        assert progress.total_commits == 1
        assert progress.last_commit_day == "2024-03-15"
        assert await test_db.user_progress.count_documents({"user_id": user_id}) == 1


@pytest.mark.unit
@pytest.mark.asyncio
class TestWeeklyStats:
    """Test the weekly statistics rows."""

    async def test_upsert_with_defaults(self, test_db):
        service = ProgressService(test_db)
        user_id = ObjectId()

        stat = await service.update_weekly_stats(user_id, "2024-11", {"streak_days": 3}, increments={"commit_count": 4})

        assert stat.week == "2024-11"
        assert stat.commit_count == 4
        assert stat.streak_days == 3
        assert stat.is_viber is False
        assert stat.stats == {}

    async def test_commit_count_accumulates_within_week(self, test_db):
        service = ProgressService(test_db)
        user_id = ObjectId()

        await service.update_weekly_stats(user_id, "2024-11", {"streak_days": 1}, increments={"commit_count": 4})
        stat = await service.update_weekly_stats(user_id, "2024-11", {"streak_days": 2}, increments={"commit_count": 2})

        assert stat.commit_count == 6
        assert stat.streak_days == 2
        assert await test_db.weekly_stats.count_documents({"user_id": user_id}) == 1

    async def test_rows_most_recent_first(self, test_db):
        service = ProgressService(test_db)
        user_id = ObjectId()

        for week in ("2024-09", "2024-11", "2024-10"):
            await service.update_weekly_stats(user_id, week, {"streak_days": 0})

        stats = await service.get_weekly_stats_by_user(user_id)

        assert [stat.week for stat in stats] == ["2024-11", "2024-10", "2024-09"]

    async def test_clear_vibers_only_touches_given_week(self, test_db):
        service = ProgressService(test_db)
        first, second, other = ObjectId(), ObjectId(), ObjectId()

        await service.update_weekly_stats(first, "2024-11", {"is_viber": True})
        await service.update_weekly_stats(second, "2024-11", {"is_viber": True})
        await service.update_weekly_stats(other, "2024-10", {"is_viber": True})

        cleared = await service.clear_vibers("2024-11")

        assert cleared == 2
        assert await service.get_current_viber_stat("2024-11") is None
        previous = await service.get_current_viber_stat("2024-10")
        assert previous.user_id == other


@pytest.mark.unit
class TestSummarizeProgress:
    """Test the conversion of new commit days into a progress increment."""

    def test_first_commit(self):
        update = summarize_progress(None, [TODAY], commit_count=2, today=TODAY)

        assert update.commits == 2
        assert update.active_days == 1
        assert update.current_streak == 1
        assert update.experience == 2 * EXPERIENCE_PER_COMMIT
        assert update.last_commit_day == "2024-03-15"

    def test_consecutive_days_extend_streak(self):
        previous = stored_progress(current_streak=4, active_days=4, last_commit_day="2024-03-14")

        update = summarize_progress(previous, [TODAY], commit_count=1, today=TODAY)

        assert update.current_streak == 5
        assert update.active_days == 5

    def test_gap_restarts_streak(self):
        previous = stored_progress(current_streak=4, active_days=4, last_commit_day="2024-03-12")

        update = summarize_progress(previous, [TODAY], commit_count=1, today=TODAY)

        assert update.current_streak == 1

    def test_several_new_days_in_one_check(self):
        days = [TODAY - timedelta(days=2), TODAY, TODAY - timedelta(days=1), TODAY]

        update = summarize_progress(None, days, commit_count=4, today=TODAY)

        assert update.current_streak == 3
        assert update.active_days == 3

    def test_streak_survives_until_end_of_next_day(self):
        previous = stored_progress(current_streak=3, active_days=3, last_commit_day="2024-03-14")

        update = summarize_progress(previous, [], commit_count=0, today=TODAY)

        assert update.current_streak == 3
        assert update.commits == 0

    def test_stale_streak_is_reset(self):
        previous = stored_progress(current_streak=3, active_days=3, last_commit_day="2024-03-10")

        update = summarize_progress(previous, [], commit_count=0, today=TODAY)

        assert update.current_streak == 0
        assert update.active_days == 3
        assert update.last_commit_day == "2024-03-10"

    def test_already_recorded_days_are_ignored(self):
        previous = stored_progress(current_streak=2, active_days=7, last_commit_day="2024-03-15")

        update = summarize_progress(previous, [TODAY], commit_count=1, today=TODAY)

        assert update.active_days == 7
        assert update.current_streak == 2

    def test_no_history(self):
        update = summarize_progress(None, [], commit_count=0, today=TODAY)

        assert update.current_streak == 0
        assert update.last_commit_day is None
