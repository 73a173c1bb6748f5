"""Compliance analysis.

Turns an inspected and resolved addin into its AnalysisResult. Nothing in
this module performs I/O: the reference icons are fetched by the caller.
"""

import logging
from typing import Optional

from addin_discoverer import constants
from addin_discoverer.models import (
    AddinMetadata,
    AddinType,
    AnalysisResult,
    CakeVersion,
    IconAnalysisResult,
)
from addin_discoverer.versioning import UNKNOWN_VERSION, SemVersion, is_up_to_date

logger = logging.getLogger(__name__)

FancyIcon = tuple[bytes, AddinType]

FANCY_ICON_URLS: list[tuple[str, AddinType]] = [
    (constants.CAKE_CONTRIB_ADDIN_FANCY_ICON_URL, AddinType.ADDIN),
    (constants.CAKE_CONTRIB_MODULE_FANCY_ICON_URL, AddinType.MODULE),
    (constants.CAKE_CONTRIB_RECIPE_FANCY_ICON_URL, AddinType.RECIPE),
    (constants.CAKE_CONTRIB_FROSTING_RECIPE_FANCY_ICON_URL, AddinType.RECIPE),
    (constants.CAKE_CONTRIB_COMMUNITY_FANCY_ICON_URL, AddinType.ALL),
]

NO_CAKE_REFERENCE_NOTE = "This addin seems to be referencing neither Cake.Core nor Cake.Common."


def analyze_icon(
    addin: AddinMetadata,
    recommended_icon: Optional[bytes],
    fancy_icons: list[FancyIcon],
) -> IconAnalysisResult:
    """Classify the icon of an addin.

    Embedded icons are compared byte for byte: the plain cake-contrib icon
    first, then the fancy variants that apply to the addin type. A linked
    icon is classified by URL.

    Args:
        addin: Inspected addin.
        recommended_icon: Bytes of the plain cake-contrib icon.
        fancy_icons: (bytes, applicable types) of every fancy variant.

    Returns:
        The icon verdict.
    """
    if addin.embedded_icon is not None:
        if recommended_icon is not None and addin.embedded_icon == recommended_icon:
            return IconAnalysisResult.EMBEDDED_CAKE_CONTRIB

        for icon, types in fancy_icons:
            if addin.type & types and addin.embedded_icon == icon:
                return IconAnalysisResult.EMBEDDED_FANCY_CAKE_CONTRIB

        return IconAnalysisResult.EMBEDDED_CUSTOM

    if addin.icon_url:
        url = addin.icon_url.lower()
        if url == constants.OLD_CAKE_CONTRIB_ICON_URL.lower():
            return IconAnalysisResult.RAWGIT_URL
        if url == constants.NEW_CAKE_CONTRIB_ICON_URL.lower():
            return IconAnalysisResult.JSDELIVR_URL
        return IconAnalysisResult.CUSTOM_URL

    return IconAnalysisResult.UNSPECIFIED


def _reference_summary(addin: AddinMetadata, name: str) -> tuple[Optional[SemVersion], bool]:
    """Lowest referenced version of ``name`` and whether every reference is private."""
    matches = [r for r in addin.references if r.id.lower() == name.lower()]
    if not matches:
        return None, True

    versions = [r.version for r in matches if r.version is not None]
    version = min(versions) if versions else UNKNOWN_VERSION
    return version, all(r.is_private for r in matches)


def analyze_addin(
    addin: AddinMetadata,
    recommended_icon: Optional[bytes] = None,
    fancy_icons: Optional[list[FancyIcon]] = None,
) -> AnalysisResult:
    """Compute the compliance verdict of one addin.

    The verdict replaces the fields of ``addin.analysis_result`` while
    keeping its notes and the Cake.Recipe findings of earlier steps.

    Returns:
        The updated AnalysisResult.
    """
    result = addin.analysis_result

    result.cake_core_version, result.cake_core_is_private = _reference_summary(
        addin, constants.CAKE_CORE_NAME
    )
    result.cake_common_version, result.cake_common_is_private = _reference_summary(
        addin, constants.CAKE_COMMON_NAME
    )

    if (
        addin.type == AddinType.ADDIN
        and result.cake_core_version is None
        and result.cake_common_version is None
    ):
        result.add_note("Analyze", NO_CAKE_REFERENCE_NOTE)

    result.icon = analyze_icon(addin, recommended_icon, fancy_icons or [])

    owner = addin.repository_owner or ""
    result.transferred_to_cake_contrib = owner.lower() == constants.CAKE_CONTRIB_REPO_OWNER
    result.package_co_owned_by_cake_contrib = any(
        o.lower() == constants.CAKE_CONTRIB_REPO_OWNER for o in addin.nuget_package_owners
    )
    result.license_declared = bool(addin.license)
    result.repository_info_provided = addin.repository_url is not None
    result.at_least_one_decorated_method = bool(addin.decorated_methods)

    logger.debug("%s %s: icon=%s", addin.name, addin.version, result.icon.value)
    return result


def is_framework_up_to_date(frameworks: list[str], cake_version: CakeVersion) -> bool:
    """Check the target frameworks of an addin against a Cake release.

    Every required framework must be targeted, and nothing beyond the
    required and optional frameworks. A release without required frameworks
    accepts any non-empty list.
    """
    if not frameworks:
        return False

    targeted = {f.lower() for f in frameworks}
    required = {f.lower() for f in cake_version.required_frameworks}
    optional = {f.lower() for f in cake_version.optional_frameworks}

    if not required:
        return True
    if not required <= targeted:
        return False
    return targeted <= required | optional


def is_compatible_with(addin: AddinMetadata, cake_version: CakeVersion) -> bool:
    """True when the Cake references and frameworks of an addin satisfy a Cake release."""
    result = addin.analysis_result
    return (
        is_up_to_date(result.cake_core_version, cake_version.version)
        and is_up_to_date(result.cake_common_version, cake_version.version)
        and is_framework_up_to_date(addin.frameworks, cake_version)
    )
