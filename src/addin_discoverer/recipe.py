"""Cake script directive parsing and the Cake.Recipe usage check.

Build scripts load Cake.Recipe with a preprocessor directive such as
``#load nuget:?package=Cake.Recipe&version=3.1.1&prerelease``.
"""

import asyncio
import logging
import re
from dataclasses import dataclass
from typing import Optional
from urllib.parse import parse_qsl

from addin_discoverer import constants
from addin_discoverer.exceptions import GitHubApiError
from addin_discoverer.models import AddinMetadata, AddinType
from addin_discoverer.resolver import RepositoryCache
from addin_discoverer.versioning import SemVersion

logger = logging.getLogger(__name__)

LOAD_REFERENCE_REGEX = re.compile(
    r"(?P<lineprefix>.*)(?P<packageprefix>\#(load|l)) (?P<scheme>(nuget|dotnet)):"
    r"(?P<separator1>\"?)(?P<packagerepository>.*)\?"
    r"(?P<referencestring>.*?(?=(?:[\"| ])|$))"
    r"(?P<separator2>\"?)(?P<separator3> ?)(?P<linepostfix>.*?$)",
    re.MULTILINE,
)


@dataclass
class CakeReference:
    """A package referenced by a directive.

    Attributes:
        name: Package name.
        referenced_version: Version pinned by the directive, empty when unpinned.
        prerelease: The directive opts into prerelease versions.
    """

    name: str
    referenced_version: str = ""
    prerelease: bool = False


def find_load_references(content: str) -> list[CakeReference]:
    """Extract the packages referenced by the ``#load`` directives of a script.

    Args:
        content: Script content.

    Returns:
        References sorted by package name.
    """
    # '$' only anchors on LF
    unix_content = content.replace("\r\n", "\n")

    references = []
    for match in LOAD_REFERENCE_REGEX.finditer(unix_content):
        parameters = parse_qsl(match.group("referencestring"), keep_blank_values=True)
        values = dict(parameters)

        name = values.get("package") or ""
        if not name:
            continue

        references.append(
            CakeReference(
                name=name,
                referenced_version=values.get("version") or "",
                prerelease=any(key == "prerelease" for key, _value in parameters),
            )
        )

    return sorted(references, key=lambda r: r.name)


class RecipeFile:
    """A Cake script and the packages it references."""

    def __init__(self, content: str, path: str = "") -> None:
        self.content = content
        self.path = path

    @property
    def load_references(self) -> list[CakeReference]:
        return find_load_references(self.content)


def latest_cake_recipe_version(addins: list[AddinMetadata]) -> SemVersion:
    """Version of the Cake.Recipe package among the discovered addins, 0.0.0 if absent."""
    recipe = next(
        (
            a
            for a in addins
            if a.type == AddinType.RECIPE and a.name.lower() == constants.CAKE_RECIPE_PACKAGE_NAME.lower()
        ),
        None,
    )
    if recipe is None:
        return SemVersion(0, 0, 0)
    return SemVersion.from_package_version(recipe.version)


def apply_cake_recipe_reference(
    addin: AddinMetadata, reference: CakeReference, latest_version: SemVersion
) -> None:
    result = addin.analysis_result
    result.cake_recipe_is_used = True
    result.cake_recipe_version = (
        SemVersion.try_parse(reference.referenced_version) if reference.referenced_version else None
    )
    result.cake_recipe_is_prerelease = reference.prerelease
    result.cake_recipe_is_latest = (
        not reference.referenced_version or result.cake_recipe_version == latest_version
    )


async def check_cake_recipe_usage(
    addin: AddinMetadata,
    cache: RepositoryCache,
    latest_version: SemVersion,
    delay: float = constants.RECIPE_CHECK_DELAY_SECONDS,
) -> Optional[CakeReference]:
    """Check whether the build scripts of an addin repository load Cake.Recipe.

    The repository archive is fetched through the memoized cache and every
    ``.cake`` file is scanned until a Cake.Recipe load directive is found.
    A missing repository is skipped. Every check is followed by ``delay``
    seconds of sleep to stay under the abuse detection of the API.

    Args:
        addin: Addin whose analysis result is updated.
        cache: Memoized repository lookups.
        latest_version: Latest published Cake.Recipe version.
        delay: Seconds to wait after the check.

    Returns:
        The Cake.Recipe reference, or None.
    """
    if not addin.repository_owner or not addin.repository_name:
        return None

    try:
        content = await cache.get_repository_content(addin.repository_owner, addin.repository_name)
        for path, data in content.items():
            if not path.lower().endswith(".cake"):
                continue

            recipe_file = RecipeFile(data.decode("utf-8", "replace"), path)
            reference = next(
                (
                    r
                    for r in recipe_file.load_references
                    if r.name.lower() == constants.CAKE_RECIPE_PACKAGE_NAME.lower()
                ),
                None,
            )
            if reference is not None:
                logger.debug("%s loads Cake.Recipe in %s", addin.name, path)
                apply_cake_recipe_reference(addin, reference, latest_version)
                return reference
    except GitHubApiError as e:
        if not e.is_not_found:
            raise
        # Some packages point to repositories that have since been deleted
        logger.debug("%s: repository %s/%s not found", addin.name, addin.repository_owner, addin.repository_name)
    finally:
        await asyncio.sleep(delay)

    return None
