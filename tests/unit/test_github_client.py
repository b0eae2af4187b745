"""
Unit tests for the GitHub API client.

Requests are answered by an httpx.MockTransport, so the wire format
(headers, paths, query parameters) is exercised without network access.
"""

from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List

import httpx
import pytest

from app.services.github import (
    GitHubAPIError,
    GitHubAuthenticationError,
    GitHubNotFoundError,
    GitHubRateLimiter,
    GitHubRateLimitError,
    GitHubService,
    GitHubTransientError,
)

TOKEN = "gho_test_token"


def commit_payload(sha: str, date: str = "2024-03-10T10:00:00Z") -> Dict:
    return {"sha": sha, "commit": {"message": f"commit {sha}", "author": {"name": "testuser", "date": date}}}


def build_service(test_settings, handler: Callable[[httpx.Request], httpx.Response], limit: int = 5000) -> GitHubService:
    return GitHubService(
        test_settings,
        rate_limiter=GitHubRateLimiter(limit),
        transport=httpx.MockTransport(handler),
    )


@pytest.mark.unit
@pytest.mark.github
@pytest.mark.asyncio
class TestRequestHeaders:
    """Test the headers sent with every request."""

    async def test_token_and_user_agent(self, test_settings):
        seen: List[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"login": "testuser"})

        service = build_service(test_settings, handler)
        await service.get_user_info(TOKEN)
        await service.close()

        assert seen[0].url.path == "/user"
        assert seen[0].headers["Authorization"] == f"token {TOKEN}"
        assert seen[0].headers["User-Agent"] == GitHubService.USER_AGENT


@pytest.mark.unit
@pytest.mark.github
@pytest.mark.asyncio
class TestErrorMapping:
    """Test translation of GitHub failures into typed errors."""

    @pytest.mark.parametrize(
        "status_code, error_type",
        [
            (401, GitHubAuthenticationError),
            (403, GitHubRateLimitError),
            (429, GitHubRateLimitError),
            (404, GitHubNotFoundError),
            (500, GitHubTransientError),
            (502, GitHubTransientError),
            (422, GitHubAPIError),
        ],
    )
    async def test_status_codes(self, test_settings, status_code, error_type):
        service = build_service(test_settings, lambda request: httpx.Response(status_code, json={"message": "nope"}))

        with pytest.raises(error_type) as exc_info:
            await service.get_latest_commit(TOKEN, "octo/repo")

        assert exc_info.value.status_code == status_code

    async def test_timeout_is_transient(self, test_settings):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        service = build_service(test_settings, handler)

        with pytest.raises(GitHubTransientError):
            await service.get_latest_commit(TOKEN, "octo/repo")

    async def test_network_failure_is_transient(self, test_settings):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        service = build_service(test_settings, handler)

        with pytest.raises(GitHubTransientError):
            await service.get_latest_commit(TOKEN, "octo/repo")

    async def test_non_json_error_body(self, test_settings):
        service = build_service(test_settings, lambda request: httpx.Response(404, text="Not Found"))

        with pytest.raises(GitHubNotFoundError) as exc_info:
            await service.get_repository(TOKEN, "octo/missing")

        assert exc_info.value.message == "Not Found"


@pytest.mark.unit
@pytest.mark.github
@pytest.mark.asyncio
class TestLatestCommit:
    """Test get_latest_commit."""

    async def test_returns_most_recent_commit(self, test_settings):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/repos/octo/repo/commits"
            assert request.url.params["per_page"] == "1"
            return httpx.Response(200, json=[commit_payload("abc")])

        service = build_service(test_settings, handler)

        commit = await service.get_latest_commit(TOKEN, "octo/repo")

        assert commit["sha"] == "abc"

    async def test_empty_repository_returns_none(self, test_settings):
        """GitHub answers 409 for a repository without commits."""
        service = build_service(
            test_settings, lambda request: httpx.Response(409, json={"message": "Git Repository is empty."})
        )

        assert await service.get_latest_commit(TOKEN, "octo/empty") is None

    async def test_empty_list_returns_none(self, test_settings):
        service = build_service(test_settings, lambda request: httpx.Response(200, json=[]))

        assert await service.get_latest_commit(TOKEN, "octo/repo") is None


@pytest.mark.unit
@pytest.mark.github
@pytest.mark.asyncio
class TestCommitsSince:
    """Test incremental and paginated commit listings."""

    async def test_since_sha_excludes_reference_commit(self, test_settings):
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path == "/repos/octo/repo/commits/old":
                return httpx.Response(200, json=commit_payload("old", "2024-03-01T08:00:00Z"))
            assert request.url.params["since"] == "2024-03-01T08:00:00Z"
            return httpx.Response(200, json=[commit_payload("new2"), commit_payload("new1"), commit_payload("old")])

        service = build_service(test_settings, handler)

        commits = await service.get_commits_since(TOKEN, "octo/repo", "old")

        assert [commit["sha"] for commit in commits] == ["new2", "new1"]

    async def test_missing_reference_falls_back_to_history(self, test_settings):
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path.endswith("/commits/gone"):
                return httpx.Response(404, json={"message": "No commit found"})
            assert "since" not in request.url.params
            return httpx.Response(200, json=[commit_payload("a"), commit_payload("b")])

        service = build_service(test_settings, handler)

        commits = await service.get_commits_since(TOKEN, "octo/repo", "gone")

        assert [commit["sha"] for commit in commits] == ["a", "b"]

    async def test_pagination_stops_on_short_page(self, test_settings):
        pages: List[int] = []

        def handler(request: httpx.Request) -> httpx.Response:
            page = int(request.url.params["page"])
            pages.append(page)
            size = GitHubService.COMMITS_PER_PAGE if page < 3 else 7
            return httpx.Response(200, json=[commit_payload(f"{page}-{i}") for i in range(size)])

        service = build_service(test_settings, handler)

        commits = await service.get_commits_since(TOKEN, "octo/repo")

        assert pages == [1, 2, 3]
        assert len(commits) == 2 * GitHubService.COMMITS_PER_PAGE + 7

    async def test_pagination_caps_at_max_pages(self, test_settings):
        pages: List[int] = []

        def handler(request: httpx.Request) -> httpx.Response:
            pages.append(int(request.url.params["page"]))
            return httpx.Response(200, json=[commit_payload("x")] * GitHubService.COMMITS_PER_PAGE)

        service = build_service(test_settings, handler)

        commits = await service.get_commits_since(TOKEN, "octo/repo")

        assert len(pages) == GitHubService.MAX_COMMIT_PAGES
        assert len(commits) == GitHubService.MAX_COMMIT_PAGES * GitHubService.COMMITS_PER_PAGE

    async def test_pagination_failure_returns_collected_commits(self, test_settings):
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.params["page"] == "2":
                return httpx.Response(502, json={"message": "Bad gateway"})
            return httpx.Response(200, json=[commit_payload("x")] * GitHubService.COMMITS_PER_PAGE)

        service = build_service(test_settings, handler)

        commits = await service.get_commits_since(TOKEN, "octo/repo")

        assert len(commits) == GitHubService.COMMITS_PER_PAGE


@pytest.mark.unit
@pytest.mark.github
@pytest.mark.asyncio
class TestRepositoryLookups:
    """Test repository existence and file content lookups."""

    async def test_check_repository_exists(self, test_settings):
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path == "/repos/octo/repo":
                return httpx.Response(200, json={"full_name": "octo/repo"})
            return httpx.Response(404, json={"message": "Not Found"})

        service = build_service(test_settings, handler)

        assert await service.check_repository_exists(TOKEN, "octo/repo") is True
        assert await service.check_repository_exists(TOKEN, "octo/missing") is False

    async def test_check_repository_exists_propagates_other_errors(self, test_settings):
        service = build_service(test_settings, lambda request: httpx.Response(401, json={"message": "Bad credentials"}))

        with pytest.raises(GitHubAuthenticationError):
            await service.check_repository_exists(TOKEN, "octo/repo")

    async def test_get_file_content_decodes_base64(self, test_settings):
        service = build_service(
            test_settings,
            lambda request: httpx.Response(200, json={"encoding": "base64", "content": "aGVsbG8gd29ybGQ=\n"}),
        )

        assert await service.get_file_content(TOKEN, "octo/repo", "README.md") == "hello world"

    async def test_get_file_content_missing_file(self, test_settings):
        service = build_service(test_settings, lambda request: httpx.Response(404, json={"message": "Not Found"}))

        assert await service.get_file_content(TOKEN, "octo/repo", "nope.txt") is None


@pytest.mark.unit
@pytest.mark.github
@pytest.mark.asyncio
class TestOAuth:
    """Test the OAuth helpers."""

    async def test_authorization_url(self, test_settings):
        service = build_service(test_settings, lambda request: httpx.Response(200))

        url = service.get_authorization_url("state123")

        assert url.startswith("https://github.com/login/oauth/authorize?")
        assert "client_id=test_client_id" in url
        assert "state=state123" in url

    async def test_exchange_code_error_field(self, test_settings):
        service = build_service(
            test_settings,
            lambda request: httpx.Response(
                200, json={"error": "bad_verification_code", "error_description": "The code is incorrect"}
            ),
        )

        with pytest.raises(GitHubAuthenticationError):
            await service.exchange_code_for_token("bad")

    async def test_exchange_code_success(self, test_settings):
        service = build_service(
            test_settings, lambda request: httpx.Response(200, json={"access_token": "gho_abc", "token_type": "bearer"})
        )

        token_data = await service.exchange_code_for_token("good")

        assert token_data["access_token"] == "gho_abc"


@pytest.mark.unit
@pytest.mark.github
@pytest.mark.asyncio
class TestRateLimiter:
    """Test the hourly request budget."""

    async def test_budget_exhaustion_raises(self):
        limiter = GitHubRateLimiter(limit_per_hour=2)

        await limiter.acquire()
        await limiter.acquire()

        with pytest.raises(GitHubRateLimitError) as exc_info:
            await limiter.acquire()
        assert exc_info.value.status_code == 429
        assert limiter.remaining == 0

    async def test_window_resets_on_hour_boundary(self):
        now = [datetime(2024, 3, 15, 10, 59, 30, tzinfo=timezone.utc)]
        limiter = GitHubRateLimiter(limit_per_hour=1, clock=lambda: now[0])

        await limiter.acquire()
        with pytest.raises(GitHubRateLimitError):
            await limiter.acquire()

        now[0] = now[0] + timedelta(seconds=45)

        await limiter.acquire()
        assert limiter.reset_at == datetime(2024, 3, 15, 12, 0, tzinfo=timezone.utc)

    async def test_service_does_not_call_github_when_exhausted(self, test_settings):
        calls: List[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(200, json=[])

        service = build_service(test_settings, handler, limit=1)

        await service.get_latest_commit(TOKEN, "octo/repo")
        with pytest.raises(GitHubRateLimitError):
            await service.get_latest_commit(TOKEN, "octo/repo")

        assert len(calls) == 1
