"""GitHub API service for OAuth authentication and repository activity.

This module provides the service layer for GitHub's REST API: the OAuth
flow, user and repository lookups, and the commit history queries the
repository scheduler relies on. The service is stateless with respect to
credentials: every call takes the access token it should use, so one
instance can be shared across users and concurrent tasks.
"""

import asyncio
import base64
import binascii
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional
from urllib.parse import urlencode

import httpx

from app.core.config import Settings, get_settings

# Initialize logger
logger = logging.getLogger(__name__)


class GitHubAPIError(Exception):
    """Base exception for GitHub API errors."""

    def __init__(self, message: str, status_code: int, response_data: Optional[Dict[str, Any]] = None):
        self.message = message
        self.status_code = status_code
        self.response_data = response_data
        super().__init__(self.message)


class GitHubAuthenticationError(GitHubAPIError):
    """Token expired or revoked; the user has to log in again."""

    pass


class GitHubRateLimitError(GitHubAPIError):
    """Exception raised when GitHub API rate limit is exceeded."""

    pass


class GitHubNotFoundError(GitHubAPIError):
    """Repository or commit deleted, renamed or not accessible."""

    pass


class GitHubTransientError(GitHubAPIError):
    """Timeout, network failure or GitHub server error."""

    pass


class GitHubRateLimiter:
    """
    Per-process request budget for the GitHub API.

    A fixed window aligned to the clock hour: the counter resets when the
    hour changes. Once the budget is spent, `acquire` fails fast with
    GitHubRateLimitError instead of sleeping, so the call is simply skipped
    until the next window.
    """

    def __init__(
        self,
        limit_per_hour: int = 5000,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.limit_per_hour = limit_per_hour
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._lock = asyncio.Lock()
        self._window_start = self._current_window()
        self._count = 0

    def _current_window(self) -> datetime:
        return self._clock().replace(minute=0, second=0, microsecond=0)

    def _roll_window(self) -> None:
        window = self._current_window()
        if window != self._window_start:
            self._window_start = window
            self._count = 0

    @property
    def remaining(self) -> int:
        """Requests left in the current window."""
        self._roll_window()
        return max(self.limit_per_hour - self._count, 0)

    @property
    def reset_at(self) -> datetime:
        """Start of the next window."""
        return self._window_start + timedelta(hours=1)

    async def acquire(self) -> None:
        """
        Reserve one request from the current window.

        Raises:
            GitHubRateLimitError: If the hourly budget is exhausted
        """
        async with self._lock:
            self._roll_window()
            if self._count >= self.limit_per_hour:
                raise GitHubRateLimitError(
                    message=f"Local GitHub request budget exhausted until {self.reset_at.isoformat()}",
                    status_code=429,
                )
            self._count += 1


class GitHubService:
    """Service for interacting with GitHub API.

    Attributes:
        BASE_URL: GitHub API base URL
        OAUTH_URL: GitHub OAuth base URL
        USER_AGENT: User-Agent sent with every request
        COMMITS_PER_PAGE: Page size for commit listings
        MAX_COMMIT_PAGES: Page cap when walking recent history (2000 commits)
    """

    BASE_URL: str = "https://api.github.com"
    OAUTH_URL: str = "https://github.com/login/oauth"
    USER_AGENT: str = "VibeCoding-App/1.0.0"
    COMMITS_PER_PAGE: int = 100
    MAX_COMMIT_PAGES: int = 20

    def __init__(
        self,
        settings: Optional[Settings] = None,
        rate_limiter: Optional[GitHubRateLimiter] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        """Initialize the GitHub service.

        Args:
            settings: Application settings (defaults to the cached settings)
            rate_limiter: Shared request budget (defaults to one sized from settings)
            transport: Optional httpx transport, used by tests
        """
        self._settings = settings or get_settings()
        self._rate_limiter = rate_limiter or GitHubRateLimiter(self._settings.github_rate_limit_per_hour)
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None
        logger.info("GitHubService initialized")

    @property
    def rate_limiter(self) -> GitHubRateLimiter:
        return self._rate_limiter

    @property
    def client(self) -> httpx.AsyncClient:
        """Get or create the shared HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self._settings.github_request_timeout),
                follow_redirects=True,
                transport=self._transport,
                headers={
                    "Accept": "application/vnd.github.v3+json",
                    "User-Agent": self.USER_AGENT,
                },
            )
            logger.debug("Created new httpx.AsyncClient")
        return self._client

    async def close(self) -> None:
        """Close the HTTP client and cleanup resources."""
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
            logger.debug("Closed httpx.AsyncClient")

    @staticmethod
    def _auth_headers(access_token: str) -> Dict[str, str]:
        return {"Authorization": f"token {access_token}"}

    def _handle_github_error(self, response: httpx.Response, default_message: str) -> None:
        """Translate a GitHub error response into the matching exception.

        Raises:
            GitHubAuthenticationError: 401
            GitHubRateLimitError: 403 or 429
            GitHubNotFoundError: 404
            GitHubTransientError: 5xx
            GitHubAPIError: anything else
        """
        try:
            error_data = response.json()
        except ValueError:
            error_data = {"message": response.text}
        if not isinstance(error_data, dict):
            error_data = {"message": str(error_data)}

        error_message = error_data.get("message") or default_message
        code = response.status_code

        logger.debug(f"GitHub API error: status={code}, message={error_message}")

        if code == 401:
            raise GitHubAuthenticationError(error_message, code, error_data)
        if code in (403, 429):
            raise GitHubRateLimitError(
                message=f"GitHub API rate limit exceeded: {error_message}",
                status_code=code,
                response_data=error_data,
            )
        if code == 404:
            raise GitHubNotFoundError(error_message, code, error_data)
        if code >= 500:
            raise GitHubTransientError(error_message, code, error_data)
        raise GitHubAPIError(error_message, code, error_data)

    async def _request(
        self,
        path: str,
        access_token: str,
        params: Optional[Dict[str, Any]] = None,
        default_message: str = "GitHub API request failed",
    ) -> httpx.Response:
        """Perform an authenticated GET against the REST API.

        Raises:
            GitHubAPIError: Or one of its subclasses
        """
        await self._rate_limiter.acquire()

        try:
            response = await self.client.get(
                f"{self.BASE_URL}{path}",
                headers=self._auth_headers(access_token),
                params=params,
            )
        except httpx.TimeoutException as e:
            logger.warning(f"Timeout calling GitHub {path}: {e}")
            raise GitHubTransientError("GitHub API request timed out", 504)
        except httpx.TransportError as e:
            logger.warning(f"Network error calling GitHub {path}: {e}")
            raise GitHubTransientError(f"GitHub API unreachable: {e}", 503)

        if response.status_code >= 400:
            self._handle_github_error(response, default_message)

        logger.debug(f"GET {path} -> {response.status_code}")
        return response

    def get_authorization_url(self, state: str) -> str:
        """Generate GitHub OAuth authorization URL.

        Args:
            state: CSRF protection state token

        Returns:
            str: Complete GitHub OAuth authorization URL
        """
        params = {
            "client_id": self._settings.github_client_id,
            "redirect_uri": self._settings.github_redirect_uri,
            "scope": "repo read:user user:email",
            "state": state,
        }

        auth_url = f"{self.OAUTH_URL}/authorize?{urlencode(params)}"

        logger.info(f"Generated authorization URL for state: {state[:8]}...")
        return auth_url

    async def exchange_code_for_token(self, code: str) -> Dict[str, Any]:
        """Exchange OAuth authorization code for access token.

        Args:
            code: OAuth authorization code from GitHub callback

        Returns:
            Dict[str, Any]: Token response containing access_token, token_type, and scope

        Raises:
            GitHubAuthenticationError: If code exchange fails
            GitHubTransientError: If GitHub cannot be reached
        """
        logger.info("Exchanging OAuth code for access token")

        try:
            response = await self.client.post(
                f"{self.OAUTH_URL}/access_token",
                headers={"Accept": "application/json"},
                data={
                    "client_id": self._settings.github_client_id,
                    "client_secret": self._settings.github_client_secret,
                    "code": code,
                    "redirect_uri": self._settings.github_redirect_uri,
                },
            )
        except httpx.TimeoutException as e:
            logger.error(f"Timeout while exchanging code for token: {e}")
            raise GitHubTransientError("GitHub OAuth request timed out", 504)
        except httpx.TransportError as e:
            logger.error(f"Network error while exchanging code for token: {e}")
            raise GitHubTransientError(f"GitHub OAuth unreachable: {e}", 503)

        if response.status_code != 200:
            try:
                self._handle_github_error(response, "Failed to exchange code for token")
            except GitHubTransientError:
                raise
            except GitHubAPIError as e:
                raise GitHubAuthenticationError(e.message, e.status_code, e.response_data)

        token_data = response.json()

        # GitHub reports OAuth failures with a 200 and an error field
        if "error" in token_data:
            logger.error(f"OAuth error: {token_data.get('error_description', token_data['error'])}")
            raise GitHubAuthenticationError(
                message=token_data.get("error_description", token_data["error"]),
                status_code=400,
                response_data=token_data,
            )

        logger.info("Successfully exchanged code for access token")
        return token_data

    async def get_user_info(self, access_token: str) -> Dict[str, Any]:
        """Get authenticated user information from GitHub (`GET /user`).

        Raises:
            GitHubAuthenticationError: If token is invalid
        """
        response = await self._request("/user", access_token, default_message="Invalid GitHub token")
        user_data = response.json()
        logger.info(f"Fetched user info for: {user_data.get('login')}")
        return user_data

    async def verify_token_validity(self, access_token: str) -> bool:
        """Verify if a GitHub access token is valid."""
        try:
            await self._request("/user", access_token)
            return True
        except GitHubAPIError as e:
            logger.debug(f"Token validity check failed: {e.message}")
            return False

    async def get_user_repos(
        self,
        access_token: str,
        sort: str = "updated",
        per_page: int = 100,
    ) -> List[Dict[str, Any]]:
        """Get repositories for the authenticated user (`GET /user/repos`)."""
        response = await self._request(
            "/user/repos",
            access_token,
            params={"sort": sort, "per_page": per_page},
            default_message="Failed to fetch repositories",
        )
        repos = response.json()
        logger.info(f"Fetched {len(repos)} repositories")
        return repos

    async def get_repository(self, access_token: str, full_name: str) -> Dict[str, Any]:
        """Get repository metadata (`GET /repos/{full_name}`).

        Raises:
            GitHubNotFoundError: If the repository does not exist or is not visible
        """
        response = await self._request(
            f"/repos/{full_name}",
            access_token,
            default_message=f"Repository {full_name} not found",
        )
        return response.json()

    async def check_repository_exists(self, access_token: str, full_name: str) -> bool:
        """Whether a repository is visible with this token.

        Only a 404 answers "no"; other failures propagate so callers can
        tell a missing repository from an unreachable GitHub.
        """
        try:
            await self.get_repository(access_token, full_name)
            return True
        except GitHubNotFoundError:
            return False

    async def get_latest_commit(self, access_token: str, full_name: str) -> Optional[Dict[str, Any]]:
        """Get the most recent commit of a repository.

        Returns:
            The commit object, or None if the repository has no commits

        Raises:
            GitHubAuthenticationError, GitHubRateLimitError, GitHubNotFoundError,
            GitHubTransientError
        """
        try:
            response = await self._request(
                f"/repos/{full_name}/commits",
                access_token,
                params={"per_page": 1},
                default_message=f"Failed to fetch commits for {full_name}",
            )
        except GitHubAPIError as e:
            # GitHub answers 409 for a repository without any commits
            if e.status_code == 409:
                logger.info(f"Repository {full_name} is empty")
                return None
            raise

        commits = response.json()
        return commits[0] if commits else None

    async def get_commit(self, access_token: str, full_name: str, sha: str) -> Dict[str, Any]:
        """Get a single commit including files and stats (`GET .../commits/{sha}`)."""
        response = await self._request(
            f"/repos/{full_name}/commits/{sha}",
            access_token,
            default_message=f"Commit {sha} not found in {full_name}",
        )
        return response.json()

    async def get_commits_since(
        self,
        access_token: str,
        full_name: str,
        since_sha: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        """Get commits newer than a known commit, or the recent history.

        With `since_sha`, returns the commits authored after that commit's
        timestamp, excluding the commit itself. If the reference commit no
        longer exists, falls back to the recent history.

        Without it, walks up to MAX_COMMIT_PAGES pages of COMMITS_PER_PAGE,
        stopping at the first short page. A failing page ends the walk and
        whatever was collected so far is returned.
        """
        if since_sha:
            try:
                reference = await self.get_commit(access_token, full_name, since_sha)
            except GitHubNotFoundError:
                logger.warning(f"Commit {since_sha} no longer in {full_name}, reading recent history")
            else:
                since = reference["commit"]["author"]["date"]
                response = await self._request(
                    f"/repos/{full_name}/commits",
                    access_token,
                    params={"since": since, "per_page": self.COMMITS_PER_PAGE},
                    default_message=f"Failed to fetch commits for {full_name}",
                )
                return [commit for commit in response.json() if commit.get("sha") != since_sha]

        commits: List[Dict[str, Any]] = []
        for page in range(1, self.MAX_COMMIT_PAGES + 1):
            try:
                response = await self._request(
                    f"/repos/{full_name}/commits",
                    access_token,
                    params={"per_page": self.COMMITS_PER_PAGE, "page": page},
                )
            except GitHubAPIError as e:
                logger.warning(f"Stopped reading {full_name} history at page {page}: {e.message}")
                break

            batch = response.json()
            commits.extend(batch)
            if len(batch) < self.COMMITS_PER_PAGE:
                break

        logger.debug(f"Collected {len(commits)} commits from {full_name}")
        return commits

    async def get_file_content(self, access_token: str, full_name: str, path: str) -> Optional[str]:
        """Read a text file from the default branch (`GET .../contents/{path}`).

        Returns:
            The decoded file content, or None if the file does not exist or is not text
        """
        try:
            response = await self._request(f"/repos/{full_name}/contents/{path}", access_token)
        except GitHubNotFoundError:
            return None

        payload = response.json()
        if not isinstance(payload, dict) or payload.get("encoding") != "base64":
            return None

        try:
            return base64.b64decode(payload.get("content", "")).decode("utf-8")
        except (binascii.Error, UnicodeDecodeError):
            logger.debug(f"{full_name}/{path} is not a UTF-8 text file")
            return None
