"""Repository resolution.

Derives the canonical GitHub owner/repository of each addin from the URLs
declared in its package, validates them against the GitHub API and
normalizes whatever survives.
"""

import asyncio
import io
import logging
import zipfile
from typing import Any, Optional
from urllib.parse import urlparse, urlunparse

from addin_discoverer import constants
from addin_discoverer.clients.github import GitHubClient
from addin_discoverer.concurrency import AsyncMemo
from addin_discoverer.exceptions import GitHubApiError
from addin_discoverer.models import AddinMetadata

logger = logging.getLogger(__name__)


def is_github_url(url: Optional[str], include_documentation: bool = True) -> bool:
    """Check for github.com URLs (and github.io pages unless excluded)."""
    if not url:
        return False
    host = urlparse(url).netloc.lower()
    if "github.com" in host:
        return True
    return include_documentation and "github.io" in host


def is_bitbucket_url(url: Optional[str]) -> bool:
    if not url:
        return False
    return "bitbucket.org" in urlparse(url).netloc.lower()


def parse_owner_and_name(url: Optional[str]) -> Optional[tuple[str, str]]:
    """Extract (owner, repository) from a GitHub URL.

    Handles web URLs, clone URLs ending in ``.git`` and API URLs of the form
    ``/repos/{owner}/{name}``.

    Args:
        url: GitHub URL.

    Returns:
        Tuple of (owner, repo) if valid GitHub URL, None otherwise.
    """
    if not is_github_url(url):
        return None

    parts = [p for p in urlparse(url).path.split("/") if p]
    if len(parts) >= 3 and parts[0].lower() == "repos":
        parts = parts[1:]
    if len(parts) < 2:
        return None

    owner, name = parts[0], parts[1]
    if name.lower().endswith(".git"):
        name = name[:-4]
    if not owner or not name:
        return None

    return (owner, name)


def standardize_github_url(url: Optional[str]) -> Optional[str]:
    """Normalize a GitHub URL: https scheme and a trailing slash.

    Clone URLs (ending in ``.git``) keep their path untouched. The query
    string is preserved, the fragment dropped. Other URLs are returned as is.
    """
    if not url or not is_github_url(url):
        return url

    parsed = urlparse(url)
    path = parsed.path
    if not path.lower().endswith(".git"):
        path = path.rstrip("/") + "/"

    return urlunparse(("https", parsed.netloc, path, "", parsed.query, ""))


class RepositoryCache:
    """Process-wide memoization of GitHub lookups.

    Addins that share a repository (one per version, sometimes several
    packages per repository) trigger a single API call per key.
    """

    def __init__(self, github: GitHubClient) -> None:
        self.github = github
        self._repositories: AsyncMemo[str, dict[str, Any]] = AsyncMemo()
        self._url_statuses: AsyncMemo[str, int] = AsyncMemo()
        self._contents: AsyncMemo[str, dict[str, bytes]] = AsyncMemo()

    async def get_repository(self, owner: str, name: str) -> dict[str, Any]:
        """Fetch a repository, once per owner/name.

        Raises:
            GitHubApiError: If the repository does not exist or the API fails.
        """
        return await self._repositories.get_or_add(
            f"{owner}/{name}".lower(),
            lambda _key: self.github.get_repository(owner, name),
        )

    async def get_url_status(self, url: str) -> int:
        """HEAD a URL, once per URL."""
        return await self._url_statuses.get_or_add(url, self.github.probe_url)

    async def get_repository_content(self, owner: str, name: str) -> dict[str, bytes]:
        """Download and unpack the default branch of a repository, once per owner/name.

        Returns:
            Mapping of repository-relative path to file content.

        Raises:
            GitHubApiError: If the repository does not exist or the API fails.
        """

        async def download(_key: str) -> dict[str, bytes]:
            archive = await self.github.get_archive(owner, name)
            return await asyncio.to_thread(unzip_repository_archive, archive)

        return await self._contents.get_or_add(f"{owner}/{name}".lower(), download)


def unzip_repository_archive(archive: bytes) -> dict[str, bytes]:
    """Unpack a GitHub zipball, dropping its ``{owner}-{repo}-{sha}/`` root folder."""
    content: dict[str, bytes] = {}
    with zipfile.ZipFile(io.BytesIO(archive)) as zip_file:
        for info in zip_file.infolist():
            if info.is_dir():
                continue
            _root, _sep, relative = info.filename.partition("/")
            content[relative or info.filename] = zip_file.read(info)
    return content


class RepositoryResolver:
    """Resolves and validates the repository of each addin.

    Attributes:
        cache: Memoized GitHub lookups.
        org_repositories: Repositories of the cake-contrib organization.
    """

    def __init__(self, cache: RepositoryCache, org_repositories: list[dict[str, Any]]) -> None:
        self.cache = cache
        self.org_repositories = org_repositories

    def find_org_repository(self, addin_name: str) -> Optional[dict[str, Any]]:
        lower = addin_name.lower()
        return next(
            (r for r in self.org_repositories if r.get("name", "").lower() == lower), None
        )

    @staticmethod
    def _adopt_repository(addin: AddinMetadata, repository: dict[str, Any]) -> None:
        # Custom domains (an issue tracker, a docs site...) are kept
        if is_github_url(addin.project_url, include_documentation=False) or is_bitbucket_url(
            addin.project_url
        ):
            addin.project_url = repository.get("html_url") or addin.project_url
        addin.inferred_repository_url = repository.get("clone_url") or addin.inferred_repository_url

    @staticmethod
    def _derive_ownership(addin: AddinMetadata) -> Optional[tuple[str, str]]:
        ownership = parse_owner_and_name(
            addin.inferred_repository_url or addin.repository_url or addin.project_url
        )
        if ownership is not None:
            addin.repository_owner, addin.repository_name = ownership
        return ownership

    async def resolve(self, addin: AddinMetadata) -> AddinMetadata:
        """Resolve the repository of one addin, updating it in place.

        1. A cake-contrib repository named after the addin wins.
        2. Owner and name are parsed from the best available URL.
        3. Without an organization match, the parsed repository is fetched;
           a 404 clears the project URL.
        4. A project URL outside GitHub is probed; a 404 clears it.
        5. Surviving GitHub URLs are standardized.

        Raises:
            GitHubApiError: On API failures other than 404.
            RateLimitError: If the API kept rate limiting the requests.
        """
        org_repository = self.find_org_repository(addin.name)
        if org_repository is not None:
            self._adopt_repository(addin, org_repository)

        ownership = self._derive_ownership(addin)

        if org_repository is None and ownership is not None:
            owner, name = ownership
            try:
                repository = await self.cache.get_repository(owner, name)
            except GitHubApiError as e:
                if not e.is_not_found:
                    raise
                logger.debug("%s: repository %s/%s not found", addin.name, owner, name)
                addin.project_url = None
            else:
                self._adopt_repository(addin, repository)
                self._derive_ownership(addin)

        if addin.project_url and not is_github_url(addin.project_url, include_documentation=False):
            status = await self.cache.get_url_status(addin.project_url)
            if status == 404:
                logger.debug("%s: project URL %s not found", addin.name, addin.project_url)
                addin.project_url = None

        addin.inferred_repository_url = standardize_github_url(addin.inferred_repository_url)
        addin.repository_url = standardize_github_url(addin.repository_url)
        addin.project_url = standardize_github_url(addin.project_url)

        return addin


async def fetch_org_repositories(github: GitHubClient) -> list[dict[str, Any]]:
    """Repositories of the cake-contrib organization."""
    return await github.list_org_repositories(constants.CAKE_CONTRIB_REPO_OWNER)
