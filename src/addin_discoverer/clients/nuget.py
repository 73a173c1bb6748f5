"""NuGet registry client.

Wraps the search, registration and flat-container endpoints of the NuGet
v3 API, plus the v2 symbols endpoint.
"""

import asyncio
import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Optional

import aiohttp

from addin_discoverer import constants
from addin_discoverer.clients.http import HttpClient
from addin_discoverer.versioning import SemVersion

logger = logging.getLogger(__name__)


class DownloadStatus(Enum):
    """Outcome of a package download."""

    SUCCESS = "success"
    NOT_FOUND = "not-found"
    CANCELLED = "cancelled"


@dataclass
class DownloadResult:
    """Result of NuGetClient.download.

    Attributes:
        status: Download outcome.
        path: Local archive path when the status is SUCCESS.
        from_cache: True when the archive was already on disk.
    """

    status: DownloadStatus
    path: Optional[Path] = None
    from_cache: bool = False


@dataclass
class PackageSummary:
    """One search hit.

    Attributes:
        id: Package id.
        version: Latest version.
        owners: Registry accounts owning the package.
        tags: Package tags.
        versions: All versions listed in the search hit.
    """

    id: str
    version: str
    owners: list[str] = field(default_factory=list)
    tags: list[str] = field(default_factory=list)
    versions: list[str] = field(default_factory=list)

    @classmethod
    def from_json(cls, data: dict[str, Any]) -> "PackageSummary":
        return cls(
            id=data["id"],
            version=data.get("version", ""),
            owners=split_values(data.get("owners")),
            tags=split_values(data.get("tags")),
            versions=[v["version"] for v in data.get("versions", []) if "version" in v],
        )


def split_values(value: Any) -> list[str]:
    """Normalize the registry's "string or list" fields."""
    if value is None:
        return []
    if isinstance(value, str):
        return [item.strip() for item in value.replace(",", " ").split() if item.strip()]
    return [str(item).strip() for item in value if str(item).strip()]


class NuGetClient(HttpClient):
    """Client for the NuGet registry.

    Attributes:
        search_url: Search query service endpoint.
        registration_url: Registration base URL.
        flat_container_url: Package content base URL.
        symbols_url: Symbols package download base URL.
    """

    def __init__(
        self,
        session: Optional[aiohttp.ClientSession] = None,
        search_url: str = constants.NUGET_SEARCH_URL,
        registration_url: str = constants.NUGET_REGISTRATION_URL,
        flat_container_url: str = constants.NUGET_FLAT_CONTAINER_URL,
        symbols_url: str = constants.NUGET_SYMBOLS_URL,
        page_size: int = constants.NUGET_SEARCH_PAGE_SIZE,
    ) -> None:
        super().__init__(session)
        self.search_url = search_url
        self.registration_url = registration_url.rstrip("/")
        self.flat_container_url = flat_container_url.rstrip("/")
        self.symbols_url = symbols_url.rstrip("/")
        self.page_size = page_size

    async def _get_json(self, url: str, params: Optional[dict] = None) -> Optional[Any]:
        session = await self._get_session()
        async with session.get(url, params=params) as response:
            if response.status == 404:
                return None
            response.raise_for_status()
            return await response.json(content_type=None)

    async def search(
        self, term: str, skip: int = 0, take: Optional[int] = None, prerelease: bool = True
    ) -> list[PackageSummary]:
        """Fetch one page of search results."""
        params = {
            "q": term,
            "skip": str(skip),
            "take": str(take or self.page_size),
            "prerelease": "true" if prerelease else "false",
            "semVerLevel": "2.0.0",
        }
        payload = await self._get_json(self.search_url, params=params)
        if not payload:
            return []
        return [PackageSummary.from_json(item) for item in payload.get("data", [])]

    async def search_all(self, term: str, prerelease: bool = True) -> list[PackageSummary]:
        """Page through every search result for ``term``.

        The search service may repeat a package on two adjacent pages, so
        results are grouped by package id and the first hit is kept.

        Args:
            term: Search term.
            prerelease: Include prerelease versions.

        Returns:
            One summary per distinct package id, in first-seen order.
        """
        unique: dict[str, PackageSummary] = {}
        skip = 0

        while True:
            page = await self.search(term, skip=skip, take=self.page_size, prerelease=prerelease)
            logger.debug("Search '%s' skip=%d returned %d hits", term, skip, len(page))

            for summary in page:
                unique.setdefault(summary.id.lower(), summary)

            if len(page) < self.page_size:
                break
            skip += self.page_size

        return list(unique.values())

    async def search_package(self, name: str) -> Optional[PackageSummary]:
        """Search for one exact package id.

        Owners are only returned by the search service, not by the
        registration endpoint, hence this lookup.
        """
        hits = await self.search(f"packageid:{name}", take=1)
        for hit in hits:
            if hit.id.lower() == name.lower():
                return hit
        return None

    async def get_all_versions(self, name: str) -> list[dict[str, Any]]:
        """Return the catalog entry of every version of a package.

        Args:
            name: Package id.

        Returns:
            Catalog entries as returned by the registration endpoint; empty if
            the package is unknown.
        """
        index = await self._get_json(f"{self.registration_url}/{name.lower()}/index.json")
        if not index:
            return []

        entries: list[dict[str, Any]] = []
        for page in index.get("items", []):
            leaves = page.get("items")
            if leaves is None:
                page_payload = await self._get_json(page["@id"])
                leaves = (page_payload or {}).get("items", [])
            entries.extend(leaf["catalogEntry"] for leaf in leaves if "catalogEntry" in leaf)

        return entries

    def package_url(self, name: str, version: str, extension: str = "nupkg") -> str:
        lower_name = name.lower()
        lower_version = version.lower()
        return (
            f"{self.flat_container_url}/{lower_name}/{lower_version}/"
            f"{lower_name}.{lower_version}.{extension}"
        )

    async def download(
        self,
        name: str,
        version: str,
        destination: Path,
        keep_versions: Iterable[str] = (),
        cancel_event: Optional[asyncio.Event] = None,
    ) -> DownloadResult:
        """Download a package archive into ``destination``.

        Nothing is downloaded when ``{name}.{version}.nupkg`` already exists.
        Otherwise, the package and symbols archives of other versions of the
        same package are deleted first, except those listed in ``keep_versions``.

        Args:
            name: Package id.
            version: Package version.
            destination: Package cache folder.
            keep_versions: Versions of the same package that must not be deleted.
            cancel_event: Process-wide cancellation signal.

        Returns:
            The download outcome.
        """
        target = destination / f"{name}.{version}.nupkg"
        if target.exists():
            return DownloadResult(DownloadStatus.SUCCESS, target, from_cache=True)

        if cancel_event is not None and cancel_event.is_set():
            return DownloadResult(DownloadStatus.CANCELLED)

        self._delete_stale_archives(name, version, destination, set(keep_versions))

        session = await self._get_session()
        try:
            async with session.get(self.package_url(name, version)) as response:
                if response.status == 404:
                    return DownloadResult(DownloadStatus.NOT_FOUND)
                response.raise_for_status()
                content = await response.read()
        except asyncio.TimeoutError:
            logger.warning("Download of %s %s timed out", name, version)
            return DownloadResult(DownloadStatus.CANCELLED)

        partial = target.with_suffix(".nupkg.partial")
        partial.write_bytes(content)
        partial.replace(target)

        logger.debug("Downloaded %s %s (%d bytes)", name, version, len(content))
        return DownloadResult(DownloadStatus.SUCCESS, target)

    async def download_symbols(self, name: str, version: str, destination: Path) -> Optional[Path]:
        """Download the symbols package, if the registry has one.

        Returns:
            Path of the ``.snupkg`` file, or None when there are no symbols.
        """
        target = destination / f"{name}.{version}.snupkg"
        if target.exists():
            return target

        session = await self._get_session()
        async with session.get(f"{self.symbols_url}/{name}/{version}") as response:
            if response.status != 200:
                return None
            content = await response.read()

        target.write_bytes(content)
        return target

    @staticmethod
    def _delete_stale_archives(
        name: str, version: str, destination: Path, keep_versions: set[str]
    ) -> None:
        """Delete the packages and symbols packages of other versions of ``name``."""
        prefix = f"{name.lower()}."
        for extension in (".nupkg", ".snupkg"):
            for archive in destination.glob(f"*{extension}"):
                file_name = archive.name
                if not file_name.lower().startswith(prefix):
                    continue

                other_version = file_name[len(prefix):-len(extension)]
                if other_version == version or other_version in keep_versions:
                    continue

                try:
                    SemVersion.from_package_version(other_version)
                except ValueError:
                    # Another package sharing the prefix, e.g. Cake.Foo.Bar for Cake.Foo
                    continue

                logger.debug("Deleting stale archive %s", archive)
                archive.unlink(missing_ok=True)
