"""Run configuration and the state shared by the pipeline steps."""

import asyncio
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

from addin_discoverer import constants
from addin_discoverer.cache import AnalysisCache
from addin_discoverer.clients.github import GitHubClient
from addin_discoverer.clients.http import HttpClient
from addin_discoverer.clients.nuget import NuGetClient
from addin_discoverer.models import AddinMetadata
from addin_discoverer.resolver import RepositoryCache, fetch_org_repositories


def default_temp_folder() -> Path:
    return Path(tempfile.gettempdir()) / "CakeAddinDiscoverer"


@dataclass
class Options:
    """Run options.

    Attributes:
        temp_folder: Working folder for packages, snapshots and reports.
        addin_name: Only process this package (case-insensitive).
        clear_cache: Delete downloaded packages and previous results first.
        analyze_all: Ignore previous results and analyze every version again.
        exclude_slow_steps: Skip the Cake.Recipe usage check.
        generate_markdown: Write the markdown audit report.
        github_token: GitHub personal access token.
        use_local_resources: Read the exclusion and inclusion lists from
            ``resources_folder`` instead of the bundled ones.
        resources_folder: Folder holding ``exclusionlist.json`` and ``inclusionlist.json``.
        nuget_concurrency: Maximum concurrent registry calls.
        github_concurrency: Maximum concurrent GitHub calls.
        recipe_check_delay: Seconds to wait after each Cake.Recipe usage check.
        rate_limit_default_wait: Seconds to wait on a 429 without Retry-After.
    """

    temp_folder: Path = field(default_factory=default_temp_folder)
    addin_name: Optional[str] = None
    clear_cache: bool = False
    analyze_all: bool = False
    exclude_slow_steps: bool = False
    generate_markdown: bool = True
    github_token: Optional[str] = None
    use_local_resources: bool = False
    resources_folder: Optional[Path] = None
    nuget_concurrency: int = constants.MAX_NUGET_CONCURRENCY
    github_concurrency: int = constants.MAX_GITHUB_CONCURRENCY
    recipe_check_delay: float = constants.RECIPE_CHECK_DELAY_SECONDS
    rate_limit_default_wait: int = constants.DEFAULT_RETRY_AFTER_SECONDS


class DiscoveryContext:
    """Mutable state threaded through every step.

    Attributes:
        options: Run options.
        nuget: Registry client.
        github: GitHub client.
        http: Client for plain downloads (reference icons).
        addins: Every known package version, enriched step by step.
        included_addins: Packages to include even if not named ``Cake.*``.
        excluded_addins: Package name patterns to exclude (``*`` and ``?`` wildcards).
        excluded_tags: Packages carrying one of these tags are excluded.
        org_repositories: Repositories of the cake-contrib organization,
            fetched on first use.
        cancel_event: Set to stop scheduling new work.
    """

    def __init__(
        self,
        options: Options,
        nuget: Optional[NuGetClient] = None,
        github: Optional[GitHubClient] = None,
    ) -> None:
        self.options = options
        self.nuget = nuget or NuGetClient()
        self.github = github or GitHubClient(
            github_token=options.github_token,
            default_retry_after=options.rate_limit_default_wait,
        )
        self.http = HttpClient()
        self.addins: list[AddinMetadata] = []
        self.included_addins: list[str] = []
        self.excluded_addins: list[str] = []
        self.excluded_tags: list[str] = []
        self.org_repositories: Optional[list[dict[str, Any]]] = None
        self.cancel_event = asyncio.Event()
        self.repository_cache = RepositoryCache(self.github)
        self.analysis_cache = AnalysisCache(self.analysis_folder, self.analysis_result_path)

    @property
    def temp_folder(self) -> Path:
        return self.options.temp_folder

    @property
    def packages_folder(self) -> Path:
        return self.temp_folder / "packages"

    @property
    def analysis_folder(self) -> Path:
        return self.temp_folder / "analysis"

    @property
    def analysis_result_path(self) -> Path:
        return self.temp_folder / "Analysis_result.json"

    @property
    def markdown_report_path(self) -> Path:
        return self.temp_folder / "Audit.md"

    def package_path(self, addin: AddinMetadata) -> Path:
        return self.packages_folder / f"{addin.name}.{addin.version}.nupkg"

    def symbols_path(self, addin: AddinMetadata) -> Path:
        return self.packages_folder / f"{addin.name}.{addin.version}.snupkg"

    async def get_org_repositories(self) -> list[dict[str, Any]]:
        """Repositories of the cake-contrib organization, fetched once per run."""
        if self.org_repositories is None:
            self.org_repositories = await fetch_org_repositories(self.github)
        return self.org_repositories

    async def close(self) -> None:
        await self.nuget.close()
        await self.github.close()
        await self.http.close()

    async def __aenter__(self) -> "DiscoveryContext":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()
