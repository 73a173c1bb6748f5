"""GitHub API client.

Fetches repository metadata, organization repository lists and repository
archives, and probes arbitrary URLs for existence. Every request honors the
429 "too many requests" answer by waiting for the Retry-After delay.
"""

import asyncio
import json
import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Optional

import aiohttp

from addin_discoverer import constants
from addin_discoverer.clients.http import USER_AGENT, HttpClient
from addin_discoverer.exceptions import GitHubApiError, RateLimitError

logger = logging.getLogger(__name__)


@dataclass
class ApiResponse:
    """A fully read HTTP response."""

    status: int
    headers: Mapping[str, str]
    body: bytes

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300


class GitHubClient(HttpClient):
    """Client for the GitHub REST API.

    Supports authentication via GitHub token for higher rate limits.

    Attributes:
        github_token: Optional GitHub personal access token for authentication.
        api_url: Base URL of the API.
        max_attempts: Attempts per request when rate limited.
        default_retry_after: Seconds to wait when a 429 has no Retry-After header.
    """

    def __init__(
        self,
        github_token: Optional[str] = None,
        session: Optional[aiohttp.ClientSession] = None,
        api_url: str = constants.GITHUB_API_URL,
        max_attempts: int = constants.MAX_RATE_LIMIT_ATTEMPTS,
        default_retry_after: int = constants.DEFAULT_RETRY_AFTER_SECONDS,
    ) -> None:
        """Initialize GitHubClient.

        Args:
            github_token: Optional GitHub personal access token for API authentication.
                Increases rate limit from 60 to 5000 requests/hour.
            session: Optional shared aiohttp session.
            api_url: Base URL of the API.
            max_attempts: Attempts per request when rate limited.
            default_retry_after: Seconds to wait when a 429 has no Retry-After header.
        """
        super().__init__(session)
        self.github_token = github_token
        self.api_url = api_url.rstrip("/")
        self.max_attempts = max_attempts
        self.default_retry_after = default_retry_after

    def _headers(self, api: bool = True) -> dict[str, str]:
        headers = {"User-Agent": USER_AGENT}
        if api:
            headers["Accept"] = "application/vnd.github+json"
            if self.github_token:
                headers["Authorization"] = f"Bearer {self.github_token}"
        return headers

    async def _send(
        self,
        method: str,
        url: str,
        api: bool = True,
        params: Optional[dict] = None,
        retry_count: int = 0,
    ) -> ApiResponse:
        """Send a request, retrying on 429.

        Args:
            method: HTTP method.
            url: Absolute URL.
            api: Send the API headers (token, accept).
            params: Query string parameters.
            retry_count: Current retry attempt.

        Returns:
            The response of the first attempt that was not rate limited.

        Raises:
            RateLimitError: If every attempt was rate limited.
        """
        session = await self._get_session()

        async with session.request(
            method, url, headers=self._headers(api), params=params
        ) as response:
            headers = response.headers.copy()
            body = b"" if method == "HEAD" else await response.read()
            status = response.status

        if status != 429:
            return ApiResponse(status, headers, body)

        if retry_count + 1 >= self.max_attempts:
            raise RateLimitError(status, url, f"Rate limited {self.max_attempts} times by {url}")

        retry_after = headers.get("Retry-After")
        wait_time = int(retry_after) if retry_after and retry_after.isdigit() else self.default_retry_after

        logger.info("Rate limited by %s, retrying in %d seconds", url, wait_time)
        await asyncio.sleep(wait_time)
        return await self._send(method, url, api, params, retry_count + 1)

    async def _get_api_json(self, path: str, params: Optional[dict] = None) -> Any:
        url = f"{self.api_url}/{path.lstrip('/')}"
        response = await self._send("GET", url, params=params)
        if not response.ok:
            raise GitHubApiError(response.status, url)
        return json.loads(response.body)

    async def get_repository(self, owner: str, name: str) -> dict[str, Any]:
        """Fetch a repository.

        Redirects for renamed or transferred repositories are followed, so the
        returned html_url and clone_url are canonical.

        Raises:
            GitHubApiError: If the repository does not exist (status 404) or
                the API fails.
        """
        return await self._get_api_json(f"repos/{owner}/{name}")

    async def list_org_repositories(self, owner: str) -> list[dict[str, Any]]:
        """List every public repository of a user or organization."""
        repositories: list[dict[str, Any]] = []
        page = 1
        while True:
            batch = await self._get_api_json(
                f"users/{owner}/repos", params={"per_page": "100", "page": str(page)}
            )
            repositories.extend(batch)
            if len(batch) < 100:
                break
            page += 1

        logger.debug("Found %d repositories for %s", len(repositories), owner)
        return repositories

    async def get_archive(self, owner: str, name: str) -> bytes:
        """Download the zipball of the default branch.

        Raises:
            GitHubApiError: If the repository does not exist or the API fails.
        """
        url = f"{self.api_url}/repos/{owner}/{name}/zipball"
        response = await self._send("GET", url)
        if not response.ok:
            raise GitHubApiError(response.status, url)
        return response.body

    async def probe_url(self, url: str) -> int:
        """Check that a URL exists with a HEAD request.

        Returns:
            The HTTP status of the last attempt.

        Raises:
            RateLimitError: If every attempt was rate limited.
        """
        response = await self._send("HEAD", url, api=False)
        return response.status
