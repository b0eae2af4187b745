"""
Daily repository check.

The DailyCheckScheduler walks every user, refreshes the status of each of
their repositories from GitHub, records new commits in the activity feed,
accumulates progress, sends inactivity notifications and finally elects
the Viber of the Week. The same `run_check` is used by the periodic timer
and by the admin trigger.

Users and repositories are processed sequentially. Any failure while
checking one repository is logged and recorded in the result; it never
stops the rest of the run.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Set, Tuple

from motor.motor_asyncio import AsyncIOMotorDatabase

from app.core.cache import UserCache
from app.core.config import Settings, get_settings
from app.core.security import TokenCipher
from app.models import (
    ActivityFeedEntry,
    CheckDetail,
    CheckResult,
    ProgressUpdate,
    RepositoryInDB,
    RepositoryStatus,
    UserInDB,
    UserProgressInDB,
)
from app.models.base import ensure_utc
from app.services.activity_feed import ActivityFeedService
from app.services.github import GitHubAPIError, GitHubService
from app.services.notification import NotificationDispatcher
from app.services.progress import ProgressService
from app.services.repository import RepositoryService
from app.services.status import calculate_repository_status, calculate_viber_score, get_week_identifier
from app.services.user import UserService

logger = logging.getLogger(__name__)

EXPERIENCE_PER_COMMIT = 10
# Only the newest commits of a batch are written to the activity feed
FEED_COMMITS_PER_CHECK = 5
SUMMARY_FAILED_TEXT = "Could not analyze the changes"

# Produces a short description of a batch of commits
Summarizer = Callable[[List[Dict[str, Any]]], Awaitable[Optional[str]]]


def parse_commit_date(commit: Dict[str, Any]) -> Optional[datetime]:
    """Author timestamp of a GitHub commit object."""
    raw = ((commit.get("commit") or {}).get("author") or {}).get("date")
    if not raw:
        return None
    return ensure_utc(datetime.fromisoformat(raw.replace("Z", "+00:00")))


def is_own_commit(commit: Dict[str, Any], username: str) -> bool:
    """Whether a commit was authored by the given GitHub user (login or author name)."""
    wanted = username.lower()
    login = (commit.get("author") or {}).get("login")
    name = ((commit.get("commit") or {}).get("author") or {}).get("name")
    return any(candidate and candidate.lower() == wanted for candidate in (login, name))


def summarize_progress(
    previous: Optional[UserProgressInDB],
    own_commit_days: Iterable[date],
    commit_count: int,
    today: date,
) -> ProgressUpdate:
    """
    Turn the commits found in one check into a progress increment.

    Only days after the last recorded commit day are new. Consecutive new
    days extend the stored streak, a gap restarts it at 1, and a streak
    whose last day is older than yesterday is reported as 0.

    Args:
        previous: Stored progress of the user, if any
        own_commit_days: UTC days of the user's new commits
        commit_count: Number of the user's new commits
        today: Current UTC day

    Returns:
        ProgressUpdate ready for ProgressService.update_user_progress_stats
    """
    last_day = date.fromisoformat(previous.last_commit_day) if previous and previous.last_commit_day else None
    streak = previous.current_streak if previous else 0
    active_days = previous.active_days if previous else 0

    new_days = sorted(day for day in set(own_commit_days) if last_day is None or day > last_day)
    for day in new_days:
        if last_day is not None and streak > 0 and day - last_day == timedelta(days=1):
            streak += 1
        else:
            streak = 1
        last_day = day

    if last_day is None or today - last_day > timedelta(days=1):
        streak = 0

    return ProgressUpdate(
        commits=commit_count,
        active_days=active_days + len(new_days),
        current_streak=streak,
        experience=commit_count * EXPERIENCE_PER_COMMIT,
        last_commit_day=last_day.isoformat() if last_day else None,
    )


def select_viber(candidates: Iterable[Tuple[UserInDB, int]]) -> Optional[Tuple[UserInDB, int]]:
    """
    Pick the Viber of the Week from (user, score) pairs.

    The highest score wins and ties go to the first candidate. Nobody wins
    without a positive score.
    """
    winner: Optional[Tuple[UserInDB, int]] = None
    for user, score in candidates:
        if score > 0 and (winner is None or score > winner[1]):
            winner = (user, score)
    return winner


@dataclass
class _UserCommits:
    """Own commits of a user collected across their repositories."""

    count: int = 0
    days: Set[date] = field(default_factory=set)


class DailyCheckScheduler:
    """
    Periodic repository check.

    Built once at application startup and kept on `app.state`. `start`
    runs a check right away and then every `check_interval_hours`; `stop`
    makes a running check finish its current repository and return.
    """

    def __init__(
        self,
        db: AsyncIOMotorDatabase,
        github_service: GitHubService,
        notifications: NotificationDispatcher,
        token_cipher: TokenCipher,
        settings: Optional[Settings] = None,
        user_cache: Optional[UserCache] = None,
        summarizer: Optional[Summarizer] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self.github = github_service
        self.notifications = notifications
        self.token_cipher = token_cipher
        self.summarizer = summarizer
        self._clock = clock or (lambda: datetime.now(timezone.utc))

        self.users = UserService(db, user_cache)
        self.repositories = RepositoryService(db)
        self.progress = ProgressService(db)
        self.activity_feed = ActivityFeedService(db)

        self._lock = asyncio.Lock()
        self._stop_event = asyncio.Event()
        self._task: Optional[asyncio.Task] = None
        self.last_result: Optional[CheckResult] = None

    @property
    def interval_seconds(self) -> float:
        return self._settings.check_interval_hours * 3600

    @property
    def is_running(self) -> bool:
        """Whether the periodic task is alive."""
        return self._task is not None and not self._task.done()

    @property
    def is_checking(self) -> bool:
        """Whether a check is in progress right now."""
        return self._lock.locked()

    def start(self) -> None:
        """Start the periodic check in a background task."""
        if self.is_running:
            logger.warning("Repository scheduler already running")
            return

        self._stop_event.clear()
        self._task = asyncio.create_task(self._run_forever(), name="daily-repository-check")
        logger.info(f"Repository scheduler started (every {self._settings.check_interval_hours}h)")

    async def stop(self) -> None:
        """Stop the periodic check and wait for a running check to wind down."""
        self._stop_event.set()
        if self._task is not None:
            await self._task
            self._task = None
        logger.info("Repository scheduler stopped")

    async def _run_forever(self) -> None:
        while not self._stop_event.is_set():
            try:
                await self.run_check()
            except Exception as e:
                logger.error(f"Scheduled repository check failed: {e}", exc_info=True)

            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self.interval_seconds)
            except asyncio.TimeoutError:
                continue

    async def run_check(self) -> CheckResult:
        """
        Check every user once.

        Concurrent calls are serialized; a second caller waits for the
        running check and then performs its own.

        Returns:
            CheckResult with counters and per-item details
        """
        async with self._lock:
            now = self._clock()
            result = CheckResult(started_at=now)
            logger.info("Starting repository check")

            for user in await self.users.get_users():
                if self._stop_event.is_set():
                    result.cancelled = True
                    break

                try:
                    await self._check_user(user, now, result)
                except Exception as e:
                    logger.error(f"Error checking user {user.username}: {e}", exc_info=True)
                    result.errors += 1
                    result.details.append(CheckDetail(user=user.username, error=str(e)))

            if not result.cancelled:
                try:
                    result.viber = await self._elect_viber(now)
                except Exception as e:
                    logger.error(f"Error selecting Viber of the Week: {e}", exc_info=True)
                    result.errors += 1
                    result.details.append(CheckDetail(user="-", error=f"Viber selection failed: {e}"))

            result.finished_at = self._clock()
            self.last_result = result
            logger.info(
                f"Repository check completed: {result.users_checked} users, "
                f"{result.repositories_updated} repositories updated, {result.errors} errors"
            )
            return result

    async def _check_user(self, user: UserInDB, now: datetime, result: CheckResult) -> None:
        if user.on_vacation:
            vacation_until = ensure_utc(user.vacation_until)
            if vacation_until is None or vacation_until > now:
                logger.info(f"Skipping {user.username}: on vacation")
                result.details.append(CheckDetail(user=user.username, skipped="on vacation"))
                return
            if await self.users.end_vacation_if_expired(str(user.id), now):
                logger.info(f"Vacation ended for user: {user.username}")

        access_token = self.token_cipher.decrypt(user.github_access_token)
        if not access_token:
            logger.info(f"Skipping {user.username}: no GitHub token stored")
            result.details.append(CheckDetail(user=user.username, skipped="no GitHub token"))
            return

        result.users_checked += 1
        repositories = await self.repositories.get_repositories_by_user(user.id)
        if not repositories:
            return

        commits = _UserCommits()
        checked: Set[RepositoryStatus] = set()
        for repository in repositories:
            if self._stop_event.is_set():
                result.cancelled = True
                return
            status = await self._check_repository(user, repository, access_token, commits, result)
            if status is not None:
                checked.add(status)

        await self._record_progress(user, commits, now, result)

        # Notify on statuses classified this cycle; the message lists the stored repositories
        repositories = await self.repositories.get_repositories_by_user(user.id)
        await self._notify(user, repositories, checked)

        if any(repo.status == RepositoryStatus.ACTIVE for repo in repositories):
            await self.users.update_user(str(user.id), {"last_active": now})

    async def _check_repository(
        self,
        user: UserInDB,
        repository: RepositoryInDB,
        access_token: str,
        commits: _UserCommits,
        result: CheckResult,
    ) -> Optional[RepositoryStatus]:
        """
        Refresh one repository.

        Returns:
            The status classified this cycle, or None when the repository was
            not classified (no commits, undated commit or a failed check)
        """
        try:
            latest = await self.github.get_latest_commit(access_token, repository.full_name)
            if latest is None:
                logger.info(f"No commits found for repository {repository.full_name}")
                return None

            last_commit_date = parse_commit_date(latest)
            if last_commit_date is None:
                logger.warning(f"Latest commit of {repository.full_name} has no author date")
                return None
            new_status = calculate_repository_status(last_commit_date, self._clock())
            changes: Dict[str, Any] = {}

            new_sha = latest["sha"] != repository.last_commit_sha
            if new_sha:
                logger.info(f"New commits detected in {repository.full_name}")
                changes.update(await self._process_new_commits(user, repository, access_token, commits))

            stored_date = ensure_utc(repository.last_commit_date)
            if new_sha or changes or new_status != repository.status or last_commit_date != stored_date:
                changes.update(
                    {
                        "status": new_status,
                        "last_commit_date": last_commit_date,
                        "last_commit_sha": latest["sha"],
                    }
                )
                await self.repositories.update_repository(repository.id, changes)
                result.repositories_updated += 1
                result.details.append(
                    CheckDetail(
                        user=user.username,
                        repository=repository.full_name,
                        old_status=repository.status,
                        new_status=new_status,
                    )
                )
            logger.info(f"Repository {repository.full_name} status: {new_status.value}")
            return new_status
        except GitHubAPIError as e:
            logger.error(f"GitHub error checking repository {repository.full_name}: {e.message}")
            result.errors += 1
            result.details.append(CheckDetail(user=user.username, repository=repository.full_name, error=e.message))
        except Exception as e:
            logger.error(f"Error checking repository {repository.full_name}: {e}", exc_info=True)
            result.errors += 1
            result.details.append(CheckDetail(user=user.username, repository=repository.full_name, error=str(e)))
        return None

    async def _process_new_commits(
        self,
        user: UserInDB,
        repository: RepositoryInDB,
        access_token: str,
        commits: _UserCommits,
    ) -> Dict[str, Any]:
        """
        Count the user's new commits and write the newest ones to the feed.

        Returns:
            Summary fields to store on the repository (empty when no summary was produced)
        """
        try:
            new_commits = await self.github.get_commits_since(
                access_token, repository.full_name, repository.last_commit_sha
            )
        except GitHubAPIError as e:
            logger.error(f"Could not read new commits of {repository.full_name}: {e.message}")
            return {}

        for commit in new_commits:
            commit_date = parse_commit_date(commit)
            if commit_date is not None and is_own_commit(commit, user.username):
                commits.count += 1
                commits.days.add(commit_date.date())

        if not new_commits:
            return {}

        summary: Optional[str] = None
        fields: Dict[str, Any] = {}
        if self.summarizer is not None:
            try:
                summary = await self.summarizer(new_commits)
            except Exception as e:
                logger.error(f"Error generating summary for {repository.full_name}: {e}")
                summary = SUMMARY_FAILED_TEXT
            fields = {"changes_summary": summary, "summary_generated_at": self._clock()}

        for commit in new_commits[:FEED_COMMITS_PER_CHECK]:
            await self._add_feed_entry(user, repository, access_token, commit, summary)

        return fields

    async def _add_feed_entry(
        self,
        user: UserInDB,
        repository: RepositoryInDB,
        access_token: str,
        commit: Dict[str, Any],
        summary: Optional[str],
    ) -> None:
        # The list endpoint has no files or stats
        try:
            detailed = await self.github.get_commit(access_token, repository.full_name, commit["sha"])
        except GitHubAPIError as e:
            logger.warning(f"Using commit listing for {commit['sha'][:7]}: {e.message}")
            detailed = commit

        commit_date = parse_commit_date(detailed) or self._clock()
        stats = detailed.get("stats") or {}
        await self.activity_feed.create_entry(
            ActivityFeedEntry(
                user_id=user.id,
                repository_id=repository.id,
                commit_sha=commit["sha"],
                commit_message=(detailed.get("commit") or {}).get("message", ""),
                files_changed=len(detailed.get("files") or []),
                lines_added=stats.get("additions", 0),
                lines_deleted=stats.get("deletions", 0),
                ai_summary=summary,
                commit_date=commit_date,
            )
        )

    async def _record_progress(self, user: UserInDB, commits: _UserCommits, now: datetime, result: CheckResult) -> None:
        try:
            previous = await self.progress.get_user_progress(user.id)
            update = summarize_progress(previous, commits.days, commits.count, now.date())
            await self.progress.update_user_progress_stats(user.id, update)
            await self.progress.update_weekly_stats(
                user.id,
                get_week_identifier(now),
                {"streak_days": update.current_streak},
                increments={"commit_count": commits.count},
            )
            logger.info(
                f"Updated progress for user {user.username}: {update.commits} commits, "
                f"{update.active_days} active days, {update.current_streak} streak"
            )
        except Exception as e:
            logger.error(f"Error updating progress for user {user.username}: {e}", exc_info=True)
            result.errors += 1
            result.details.append(CheckDetail(user=user.username, error=f"Progress update failed: {e}"))

    async def _notify(
        self, user: UserInDB, repositories: List[RepositoryInDB], statuses: Set[RepositoryStatus]
    ) -> None:
        service = self.notifications.for_user(user)

        if RepositoryStatus.INACTIVE in statuses:
            sent = await service.send_inactivity_alert(user, repositories)
            logger.info(f"Inactivity alert for {user.username} via {service.channel.value}, sent={sent}")
        elif RepositoryStatus.WARNING in statuses:
            sent = await service.send_inactivity_warning(user, repositories)
            logger.info(f"Inactivity warning for {user.username} via {service.channel.value}, sent={sent}")

    async def _elect_viber(self, now: datetime) -> Optional[str]:
        """Clear this week's Viber and record the new one, if anybody scores."""
        week = get_week_identifier(now)

        candidates: List[Tuple[UserInDB, int]] = []
        for user in await self.users.get_active_users(now):
            repositories = await self.repositories.get_repositories_by_user(user.id)
            if repositories:
                candidates.append((user, calculate_viber_score(repo.status for repo in repositories)))

        winner = select_viber(candidates)
        await self.progress.clear_vibers(week)

        if winner is None:
            logger.info(f"No Viber of the Week for {week}")
            return None

        user, score = winner
        await self.progress.update_weekly_stats(user.id, week, {"is_viber": True, "stats": {"viber_score": score}})
        logger.info(f"Viber of the Week for {week}: {user.username} (score {score})")
        return user.username
