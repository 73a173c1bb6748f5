"""Core data models for addin_discoverer.

This module defines the records that flow through the pipeline: one
AddinMetadata per published package version, its AnalysisResult verdict,
and the value types used to describe references, icons and symbols.
Both records project to and from plain JSON so they can be snapshotted
between runs.
"""

import base64
from dataclasses import dataclass, field, fields
from datetime import datetime
from enum import Enum, Flag
from typing import Any, Optional

from addin_discoverer.versioning import SemVersion, ZERO_VERSION


class AddinType(Flag):
    """Package classification.

    A flag so that reference data (such as the fancy icons) can apply to
    several classifications at once.
    """

    UNKNOWN = 0
    ADDIN = 1
    MODULE = 2
    RECIPE = 4
    ALL = ADDIN | MODULE | RECIPE

    @classmethod
    def from_name(cls, value: str) -> "AddinType":
        return cls[value.upper()] if value else cls.UNKNOWN


class IconAnalysisResult(str, Enum):
    """Icon compliance verdict, from most to least compliant."""

    EMBEDDED_CAKE_CONTRIB = "embedded-cake-contrib"
    EMBEDDED_FANCY_CAKE_CONTRIB = "embedded-fancy-cake-contrib"
    JSDELIVR_URL = "jsdelivr-url"
    RAWGIT_URL = "rawgit-url"
    EMBEDDED_CUSTOM = "embedded-custom"
    CUSTOM_URL = "custom-url"
    UNSPECIFIED = "unspecified"


class PdbStatus(str, Enum):
    """Where the debug symbols of the main assembly were found."""

    NOT_AVAILABLE = "not-available"
    INCLUDED_IN_PACKAGE = "included-in-package"
    EMBEDDED = "embedded"
    INCLUDED_IN_SYMBOLS_PACKAGE = "included-in-symbols-package"


@dataclass(frozen=True)
class DllReference:
    """A dependency of a package, from its nuspec or its assembly references.

    Attributes:
        id: Package or assembly name (e.g., "Cake.Core").
        version: Referenced version.
        is_private: True when the reference does not flow to consumers.
    """

    id: str
    version: SemVersion
    is_private: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "version": str(self.version), "is_private": self.is_private}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "DllReference":
        return cls(
            id=data["id"],
            version=SemVersion.parse(data.get("version") or "0.0.0"),
            is_private=bool(data.get("is_private", False)),
        )


@dataclass(frozen=True)
class CakeVersion:
    """A Cake release used as the yardstick for "up to date".

    Attributes:
        version: Cake version.
        required_frameworks: Frameworks an addin must target.
        optional_frameworks: Frameworks an addin may additionally target.
    """

    version: SemVersion
    required_frameworks: list[str] = field(default_factory=list)
    optional_frameworks: list[str] = field(default_factory=list)


@dataclass
class CakeVersionYaml:
    """Content of an optional ``cake-version.yml`` shipped in a package."""

    target_cake_version: Optional[SemVersion] = None
    target_frameworks: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "target_cake_version": _version_to_json(self.target_cake_version),
            "target_frameworks": list(self.target_frameworks),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CakeVersionYaml":
        return cls(
            target_cake_version=_version_from_json(data.get("target_cake_version")),
            target_frameworks=list(data.get("target_frameworks") or []),
        )


@dataclass
class AnalysisResult:
    """Compliance verdict for one package version.

    Attributes:
        cake_core_version: Lowest referenced Cake.Core version, None if not referenced.
        cake_core_is_private: True when every Cake.Core reference is private.
        cake_common_version: Lowest referenced Cake.Common version, None if not referenced.
        cake_common_is_private: True when every Cake.Common reference is private.
        icon: Icon compliance.
        transferred_to_cake_contrib: Repository is owned by the cake-contrib organization.
        package_co_owned_by_cake_contrib: cake-contrib is one of the package owners.
        license_declared: The package declares a license (not just a license URL).
        repository_info_provided: The nuspec carries a repository element.
        at_least_one_decorated_method: The main assembly exposes at least one alias.
        cake_recipe_is_used: The repository build script loads Cake.Recipe.
        cake_recipe_version: Cake.Recipe version referenced by the build script.
        cake_recipe_is_prerelease: The build script opts into prerelease Cake.Recipe.
        cake_recipe_is_latest: The referenced Cake.Recipe is the latest one (or unpinned).
        notes: Accumulated error trail. Non-empty notes put the package in the
            exceptions report.
    """

    cake_core_version: Optional[SemVersion] = None
    cake_core_is_private: bool = True
    cake_common_version: Optional[SemVersion] = None
    cake_common_is_private: bool = True
    icon: IconAnalysisResult = IconAnalysisResult.UNSPECIFIED
    transferred_to_cake_contrib: bool = False
    package_co_owned_by_cake_contrib: bool = False
    license_declared: bool = False
    repository_info_provided: bool = False
    at_least_one_decorated_method: bool = False
    cake_recipe_is_used: bool = False
    cake_recipe_version: Optional[SemVersion] = None
    cake_recipe_is_prerelease: bool = False
    cake_recipe_is_latest: bool = False
    notes: str = ""

    def add_note(self, source: str, message: str) -> None:
        """Append a line to the notes, prefixed with the reporting step."""
        message = message.strip()
        self.notes += f"{source}: {message}\n" if source else f"{message}\n"

    @property
    def has_notes(self) -> bool:
        return bool(self.notes.strip())

    def to_dict(self) -> dict[str, Any]:
        return {
            "cake_core_version": _version_to_json(self.cake_core_version),
            "cake_core_is_private": self.cake_core_is_private,
            "cake_common_version": _version_to_json(self.cake_common_version),
            "cake_common_is_private": self.cake_common_is_private,
            "icon": self.icon.value,
            "transferred_to_cake_contrib": self.transferred_to_cake_contrib,
            "package_co_owned_by_cake_contrib": self.package_co_owned_by_cake_contrib,
            "license_declared": self.license_declared,
            "repository_info_provided": self.repository_info_provided,
            "at_least_one_decorated_method": self.at_least_one_decorated_method,
            "cake_recipe_is_used": self.cake_recipe_is_used,
            "cake_recipe_version": _version_to_json(self.cake_recipe_version),
            "cake_recipe_is_prerelease": self.cake_recipe_is_prerelease,
            "cake_recipe_is_latest": self.cake_recipe_is_latest,
            "notes": self.notes,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "AnalysisResult":
        result = cls()
        for f in fields(cls):
            if f.name not in data:
                continue
            value = data[f.name]
            if f.name.endswith("_version"):
                value = _version_from_json(value)
            elif f.name == "icon":
                value = IconAnalysisResult(value) if value else IconAnalysisResult.UNSPECIFIED
            setattr(result, f.name, value)
        return result


@dataclass
class AddinMetadata:
    """One published version of one package, enriched step by step.

    Attributes:
        name: Package id, kept identical across versions even if the registry
            changed its casing.
        version: Normalized package version string.
        maintainer: Package authors.
        description: Package description.
        tags: Package tags.
        project_url: Declared project URL, corrected by URL validation.
        repository_url: URL from the nuspec repository element.
        inferred_repository_url: Clone URL of the validated repository.
        repository_owner: Owner derived from the repository URLs.
        repository_name: Repository name derived from the repository URLs.
        icon_url: Linked icon URL.
        embedded_icon: Bytes of the icon embedded in the package.
        nuget_package_url: Gallery page of the package.
        nuget_package_owners: Registry accounts owning the package.
        license: License expression.
        frameworks: Target frameworks of the lib folder.
        references: Merged package and assembly references.
        type: Package classification.
        is_deprecated: Package is deprecated in the registry or by title.
        is_prerelease: Package version is a prerelease.
        has_prerelease_dependencies: At least one dependency is a prerelease.
        dll_name: File name of the analyzed assembly.
        pdb_status: Where debug symbols were found.
        source_link_enabled: Debug symbols carry SourceLink information.
        xml_documentation_available: An XML doc file sits next to the assembly.
        alias_categories: Alias categories declared in the assembly.
        decorated_methods: Methods carrying Cake alias attributes.
        analyzed: Analysis completed for this version.
        published_on: Publication date in the registry.
        cake_version_yaml: Content of cake-version.yml, if any.
        analysis_result: Compliance verdict.
    """

    name: str
    version: str
    maintainer: Optional[str] = None
    description: Optional[str] = None
    tags: list[str] = field(default_factory=list)
    project_url: Optional[str] = None
    repository_url: Optional[str] = None
    inferred_repository_url: Optional[str] = None
    repository_owner: Optional[str] = None
    repository_name: Optional[str] = None
    icon_url: Optional[str] = None
    embedded_icon: Optional[bytes] = None
    nuget_package_url: Optional[str] = None
    nuget_package_owners: list[str] = field(default_factory=list)
    license: Optional[str] = None
    frameworks: list[str] = field(default_factory=list)
    references: list[DllReference] = field(default_factory=list)
    type: AddinType = AddinType.UNKNOWN
    is_deprecated: bool = False
    is_prerelease: bool = False
    has_prerelease_dependencies: bool = False
    dll_name: Optional[str] = None
    pdb_status: PdbStatus = PdbStatus.NOT_AVAILABLE
    source_link_enabled: bool = False
    xml_documentation_available: bool = False
    alias_categories: list[str] = field(default_factory=list)
    decorated_methods: list[str] = field(default_factory=list)
    analyzed: bool = False
    published_on: Optional[datetime] = None
    cake_version_yaml: Optional[CakeVersionYaml] = None
    analysis_result: AnalysisResult = field(default_factory=AnalysisResult)

    @property
    def semver(self) -> SemVersion:
        """Parsed package version (0.0.0 if it cannot be parsed)."""
        try:
            return SemVersion.from_package_version(self.version)
        except ValueError:
            return ZERO_VERSION

    def same_identity(self, other: "AddinMetadata") -> bool:
        """True when both records describe the same (name, version)."""
        return self.name.lower() == other.name.lower() and self.version == other.version

    @property
    def identity(self) -> tuple[str, str]:
        return (self.name.lower(), self.version)

    def get_maintainer_name(self) -> Optional[str]:
        """Return the repository owner, or the package authors for org repos."""
        from addin_discoverer.constants import CAKE_CONTRIB_REPO_OWNER

        if self.repository_owner and self.repository_owner.lower() != CAKE_CONTRIB_REPO_OWNER:
            return self.repository_owner
        return self.maintainer

    def to_dict(self) -> dict[str, Any]:
        """Project the record onto JSON-compatible types."""
        return {
            "name": self.name,
            "version": self.version,
            "maintainer": self.maintainer,
            "description": self.description,
            "tags": list(self.tags),
            "project_url": self.project_url,
            "repository_url": self.repository_url,
            "inferred_repository_url": self.inferred_repository_url,
            "repository_owner": self.repository_owner,
            "repository_name": self.repository_name,
            "icon_url": self.icon_url,
            "embedded_icon": (
                base64.b64encode(self.embedded_icon).decode("ascii")
                if self.embedded_icon is not None
                else None
            ),
            "nuget_package_url": self.nuget_package_url,
            "nuget_package_owners": list(self.nuget_package_owners),
            "license": self.license,
            "frameworks": list(self.frameworks),
            "references": [r.to_dict() for r in self.references],
            "type": self.type.name,
            "is_deprecated": self.is_deprecated,
            "is_prerelease": self.is_prerelease,
            "has_prerelease_dependencies": self.has_prerelease_dependencies,
            "dll_name": self.dll_name,
            "pdb_status": self.pdb_status.value,
            "source_link_enabled": self.source_link_enabled,
            "xml_documentation_available": self.xml_documentation_available,
            "alias_categories": list(self.alias_categories),
            "decorated_methods": list(self.decorated_methods),
            "analyzed": self.analyzed,
            "published_on": self.published_on.isoformat() if self.published_on else None,
            "cake_version_yaml": (
                self.cake_version_yaml.to_dict() if self.cake_version_yaml else None
            ),
            "analysis_result": self.analysis_result.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "AddinMetadata":
        """Rebuild a record from its JSON projection.

        Unknown keys are ignored and missing keys keep their defaults so that
        snapshots written by older runs remain readable.
        """
        addin = cls(name=data["name"], version=data["version"])
        simple = {
            "maintainer", "description", "project_url", "repository_url",
            "inferred_repository_url", "repository_owner", "repository_name",
            "icon_url", "nuget_package_url", "license", "is_deprecated",
            "is_prerelease", "has_prerelease_dependencies", "dll_name",
            "source_link_enabled", "xml_documentation_available", "analyzed",
        }
        for key in simple:
            if key in data:
                setattr(addin, key, data[key])

        for key in ("tags", "nuget_package_owners", "frameworks", "alias_categories", "decorated_methods"):
            if data.get(key) is not None:
                setattr(addin, key, list(data[key]))

        if data.get("embedded_icon"):
            addin.embedded_icon = base64.b64decode(data["embedded_icon"])
        if data.get("references"):
            addin.references = [DllReference.from_dict(r) for r in data["references"]]
        if data.get("type"):
            addin.type = AddinType.from_name(data["type"])
        if data.get("pdb_status"):
            addin.pdb_status = PdbStatus(data["pdb_status"])
        if data.get("published_on"):
            addin.published_on = datetime.fromisoformat(data["published_on"])
        if data.get("cake_version_yaml"):
            addin.cake_version_yaml = CakeVersionYaml.from_dict(data["cake_version_yaml"])
        if data.get("analysis_result"):
            addin.analysis_result = AnalysisResult.from_dict(data["analysis_result"])

        return addin


def sort_addins(addins: list[AddinMetadata]) -> list[AddinMetadata]:
    """Sort by name, then stable before prerelease, then newest version first."""
    by_version = sorted(addins, key=lambda a: a.semver, reverse=True)
    return sorted(by_version, key=lambda a: (a.name.lower(), a.is_prerelease))


def _version_to_json(version: Optional[SemVersion]) -> Optional[str]:
    return str(version) if version is not None else None


def _version_from_json(value: Optional[str]) -> Optional[SemVersion]:
    return SemVersion.parse(value) if value else None
