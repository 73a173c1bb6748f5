"""Package discovery."""

import fnmatch
import logging
from datetime import UTC, datetime
from typing import Any, Optional

from addin_discoverer import constants
from addin_discoverer.clients.nuget import PackageSummary, split_values
from addin_discoverer.concurrency import for_each_async
from addin_discoverer.context import DiscoveryContext
from addin_discoverer.exceptions import DiscoveryError
from addin_discoverer.models import AddinMetadata, sort_addins
from addin_discoverer.steps.base import BaseStep
from addin_discoverer.versioning import SemVersion

logger = logging.getLogger(__name__)

SEARCH_TERM = "Cake"


def is_excluded(name: str, patterns: list[str]) -> bool:
    """Match a package name against ``*``/``?`` wildcard patterns, ignoring case."""
    lower = name.lower()
    return any(fnmatch.fnmatchcase(lower, pattern.lower()) for pattern in patterns)


def deprecation_message(deprecation: dict[str, Any]) -> str:
    """Message of a registry deprecation block, derived from its reasons when absent."""
    if deprecation.get("message"):
        return deprecation["message"]

    reasons = list(deprecation.get("reasons") or [])
    if not reasons:
        return "This package has been deprecated but the author has not provided a reason."
    if len(reasons) == 1:
        return f"This package has been deprecated for the following reason: {reasons[0]}"
    return f"This package has been deprecated for the following reasons: {', '.join(reasons)}"


def _parse_published(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        published = datetime.fromisoformat(value)
    except ValueError:
        return None
    if published.tzinfo is None:
        published = published.replace(tzinfo=UTC)
    return published.astimezone(UTC)


def _is_prerelease(version: str) -> bool:
    try:
        return SemVersion.from_package_version(version).is_prerelease
    except ValueError:
        return "-" in version


def addin_from_catalog_entry(
    name: str, entry: dict[str, Any], owners: list[str], excluded_tags: Optional[set[str]] = None
) -> AddinMetadata:
    """Build the record of one version from its registration catalog entry.

    ``name`` is used instead of the id of the entry: the casing of a package
    id may change from one version to the next.
    """
    excluded_tags = excluded_tags or set()
    version = entry["version"]
    authors = entry.get("authors")
    if isinstance(authors, list):
        authors = ", ".join(authors)

    addin = AddinMetadata(
        name=name,
        version=version,
        maintainer=authors or None,
        description=entry.get("description") or None,
        tags=[t for t in split_values(entry.get("tags")) if t.lower() not in excluded_tags],
        project_url=entry.get("projectUrl") or None,
        icon_url=entry.get("iconUrl") or None,
        nuget_package_url=f"{constants.NUGET_GALLERY_URL}/{name}/",
        nuget_package_owners=list(owners),
        license=entry.get("licenseExpression") or None,
        is_prerelease=_is_prerelease(version),
        published_on=_parse_published(entry.get("published")),
    )

    title = entry.get("title") or ""
    if constants.DEPRECATED_MARKER.lower() in title.lower():
        addin.is_deprecated = True
        if addin.description:
            addin.analysis_result.add_note("", addin.description)
    elif entry.get("deprecation"):
        addin.is_deprecated = True
        addin.analysis_result.add_note("", deprecation_message(entry["deprecation"]))

    return addin


class DiscoveryStep(BaseStep):
    """Find every package version to audit.

    Versions already known to the context (analyzed by a previous run) are
    not added again.
    """

    def get_description(self, context: DiscoveryContext) -> str:
        if not context.options.addin_name:
            return "Search NuGet for all packages matching 'Cake.*'"
        return f"Search NuGet for {context.options.addin_name}"

    async def _find_packages(
        self, context: DiscoveryContext
    ) -> list[tuple[str, Optional[PackageSummary]]]:
        if context.options.addin_name:
            return [(context.options.addin_name, None)]

        prefix = constants.PACKAGE_PREFIX.lower()
        summaries = await context.nuget.search_all(SEARCH_TERM)
        packages: list[tuple[str, Optional[PackageSummary]]] = [
            (s.id, s) for s in summaries if s.id.lower().startswith(prefix)
        ]
        packages.extend((name, None) for name in context.included_addins)

        packages = [
            (name, summary)
            for name, summary in packages
            if not is_excluded(name, context.excluded_addins)
        ]

        unique: dict[str, tuple[str, Optional[PackageSummary]]] = {}
        for name, summary in sorted(packages, key=lambda p: p[0].lower()):
            unique.setdefault(name.lower(), (name, summary))
        return list(unique.values())

    async def execute(self, context: DiscoveryContext) -> None:
        packages = await self._find_packages(context)
        excluded_tags = {t.lower() for t in context.excluded_tags}
        logger.info("Found %d package(s)", len(packages))

        async def get_versions(package: tuple[str, Optional[PackageSummary]]) -> list[AddinMetadata]:
            name, summary = package
            entries = await context.nuget.get_all_versions(name)
            # Owners are only returned by the search service
            if summary is None:
                summary = await context.nuget.search_package(name)
            owners = summary.owners if summary is not None else []
            return [
                addin_from_catalog_entry(name, entry, owners, excluded_tags)
                for entry in entries
                if entry.get("listed", True)
            ]

        results = await for_each_async(
            packages, get_versions, context.options.nuget_concurrency, context.cancel_event
        )

        known = {a.identity for a in context.addins}
        new_addins = [a for versions in results for a in versions if a.identity not in known]
        logger.info("Discovered %d new version(s)", len(new_addins))

        addins = context.addins + new_addins
        if context.options.addin_name:
            name = context.options.addin_name.lower()
            addins = [a for a in addins if a.name.lower() == name]

        context.addins = sort_addins(addins)


class ValidateDiscoveryStep(BaseStep):
    """Abort the run when there is nothing to audit."""

    def get_description(self, context: DiscoveryContext) -> str:
        return "Validate the discovered packages"

    async def execute(self, context: DiscoveryContext) -> None:
        if context.addins:
            return
        if context.options.addin_name:
            raise DiscoveryError(f"Unable to find '{context.options.addin_name}'")
        raise DiscoveryError("Unable to find any addin")
