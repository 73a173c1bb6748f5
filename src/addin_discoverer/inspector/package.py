"""NuGet package inspection.

Opens a downloaded ``.nupkg`` (a zip archive), reads its nuspec and picks
the assembly that best represents the addin. Nothing from the package is
ever executed: assemblies are handed to the metadata-only reader in
``addin_discoverer.inspector.assembly``.
"""

import logging
import posixpath
import zipfile
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional
from urllib.parse import unquote
from xml.etree import ElementTree

import yaml

from addin_discoverer import constants
from addin_discoverer.exceptions import InspectionError
from addin_discoverer.inspector import pdb
from addin_discoverer.inspector.assembly import AssemblyInfo, read_assembly
from addin_discoverer.models import (
    AddinMetadata,
    AddinType,
    CakeVersionYaml,
    DllReference,
    PdbStatus,
)
from addin_discoverer.versioning import SemVersion, ZERO_VERSION

logger = logging.getLogger(__name__)

AssemblyReader = Callable[[bytes, str], AssemblyInfo]

# Zip entries that belong to the OPC container rather than to the package.
_SERVICE_PREFIXES = ("_rels/", "package/", "[content_types].xml")

_FRAMEWORK_RANKS = (
    ("net8", 7),
    ("net7", 6),
    ("net6", 5),
    ("net5", 4),
    ("netstandard2", 3),
    ("netstandard1", 2),
    ("net4", 1),
)


@dataclass
class PackageDependency:
    """A dependency declared in the nuspec."""

    id: str
    version_range: str = ""
    target_framework: str = ""


@dataclass
class NuspecMetadata:
    """The nuspec fields used by the inspection.

    ``raw`` maps every element of ``<metadata>`` (by local name) to its text
    and attributes, so elements without a dedicated field (such as
    ``<repository url="..." />``) are still reachable.
    """

    id: str = ""
    version: str = ""
    title: str = ""
    authors: str = ""
    description: str = ""
    license: str = ""
    icon: str = ""
    icon_url: str = ""
    project_url: str = ""
    tags: list[str] = field(default_factory=list)
    dependencies: list[PackageDependency] = field(default_factory=list)
    raw: dict[str, tuple[str, dict[str, str]]] = field(default_factory=dict)

    @property
    def repository_url(self) -> Optional[str]:
        _text, attributes = self.raw.get("repository", ("", {}))
        return attributes.get("url") or None


def _local_name(tag: str) -> str:
    return tag.rsplit("}", 1)[-1]


def parse_nuspec(content: bytes) -> NuspecMetadata:
    """Parse a nuspec document, ignoring its (versioned) XML namespace.

    Raises:
        InspectionError: If the document is not a nuspec.
    """
    try:
        root = ElementTree.fromstring(content)
    except ElementTree.ParseError as e:
        raise InspectionError(f"Unable to parse the nuspec: {e}") from e

    metadata_node = next(
        (child for child in root if _local_name(child.tag) == "metadata"), None
    )
    if metadata_node is None:
        raise InspectionError("The nuspec does not contain a metadata element")

    nuspec = NuspecMetadata()
    for element in metadata_node:
        name = _local_name(element.tag)
        text = (element.text or "").strip()
        attributes = {_local_name(k): v for k, v in element.attrib.items()}
        nuspec.raw[name] = (text, attributes)

        if name == "id":
            nuspec.id = text
        elif name == "version":
            nuspec.version = text
        elif name == "title":
            nuspec.title = text
        elif name == "authors":
            nuspec.authors = text
        elif name == "description":
            nuspec.description = text
        elif name == "license":
            nuspec.license = text
        elif name == "icon":
            nuspec.icon = text
        elif name == "iconUrl":
            nuspec.icon_url = text
        elif name == "projectUrl":
            nuspec.project_url = text
        elif name == "tags":
            nuspec.tags = [t for t in text.replace(",", " ").split() if t]
        elif name == "dependencies":
            nuspec.dependencies = _parse_dependencies(element)

    return nuspec


def _parse_dependencies(element: ElementTree.Element) -> list[PackageDependency]:
    dependencies = []
    for child in element:
        child_name = _local_name(child.tag)
        if child_name == "group":
            framework = child.attrib.get("targetFramework", "")
            for dependency in child:
                if _local_name(dependency.tag) == "dependency":
                    dependencies.append(
                        PackageDependency(
                            dependency.attrib.get("id", ""),
                            dependency.attrib.get("version", ""),
                            framework,
                        )
                    )
        elif child_name == "dependency":
            dependencies.append(
                PackageDependency(child.attrib.get("id", ""), child.attrib.get("version", ""))
            )
    return [d for d in dependencies if d.id]


def normalize_version_range(version_range: str) -> SemVersion:
    """Pick the version representing a NuGet version range.

    The upper bound wins when there is one, otherwise the lower bound.
    An empty range means "any version" and maps to 0.0.0.

    Raises:
        ValueError: If a bound is not a valid version.
    """
    text = version_range.strip()
    if not text:
        return ZERO_VERSION

    if text[0] not in "[(":
        return SemVersion.from_package_version(text)

    bounds = text[1:-1].split(",")
    if len(bounds) == 1:
        return SemVersion.from_package_version(bounds[0])

    lower, upper = bounds[0].strip(), bounds[1].strip()
    if upper:
        return SemVersion.from_package_version(upper)
    if lower:
        return SemVersion.from_package_version(lower)
    return ZERO_VERSION


class NupkgReader:
    """Read-only view over a package archive.

    Entry lookups are case-insensitive and accept backslash separators and
    percent-encoded names, which both occur in published packages.
    """

    def __init__(self, path: Path) -> None:
        """Open the archive.

        Raises:
            InspectionError: If the file is not a zip archive.
        """
        self.path = path
        try:
            self._zip = zipfile.ZipFile(path)
        except (zipfile.BadZipFile, OSError) as e:
            raise InspectionError(f"Unable to open {path.name}: {e}") from e

        self._entries: dict[str, str] = {}
        self._names: list[str] = []
        for info in self._zip.infolist():
            if info.is_dir():
                continue
            normalized = unquote(info.filename.replace("\\", "/"))
            if normalized.lower().startswith(_SERVICE_PREFIXES):
                continue
            if normalized.lower() not in self._entries:
                self._entries[normalized.lower()] = info.filename
                self._names.append(normalized)

    def close(self) -> None:
        self._zip.close()

    def __enter__(self) -> "NupkgReader":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def get_files(self) -> list[str]:
        """List package files with forward slash separators."""
        return sorted(self._names)

    def read(self, name: str) -> bytes:
        """Read one file.

        Raises:
            KeyError: If the file is not in the package.
        """
        key = self._key(name)
        if key not in self._entries:
            raise KeyError(name)
        return self._zip.read(self._entries[key])

    @staticmethod
    def _key(name: str) -> str:
        return unquote(name.replace("\\", "/").lstrip("/")).lower()

    def read_nuspec(self) -> NuspecMetadata:
        """Parse the nuspec at the root of the package.

        Raises:
            InspectionError: If there is no nuspec.
        """
        nuspec_files = [f for f in self.get_files() if "/" not in f and f.lower().endswith(".nuspec")]
        if not nuspec_files:
            raise InspectionError(f"{self.path.name} does not contain a nuspec")
        return parse_nuspec(self.read(nuspec_files[0]))

    def get_frameworks(self) -> list[str]:
        """Target frameworks, i.e. the folder names under ``lib/``."""
        frameworks: list[str] = []
        for name in self.get_files():
            parts = name.split("/")
            if len(parts) >= 3 and parts[0].lower() == "lib":
                framework = parts[1].lower()
                if framework != "any" and framework not in frameworks:
                    frameworks.append(framework)
        return frameworks


def _framework_rank(path: str) -> int:
    lower = path.lower()
    for marker, rank in _FRAMEWORK_RANKS:
        if marker in lower:
            return rank
    return 0


def find_candidate_assemblies(files: list[str], package_name: str) -> list[str]:
    """List the assemblies that may hold the addin, best candidates first.

    Cake.Core and Cake.Common are never candidates. A DLL qualifies when it is
    named after the package, sits at the root, or lives under bin/ or lib/.
    Candidates are ordered by target framework (newest first), then by name
    (exact package name, then any Cake.* name).
    """
    expected = f"{package_name}.dll".lower()
    excluded = {f"{constants.CAKE_CORE_NAME}.dll".lower(), f"{constants.CAKE_COMMON_NAME}.dll".lower()}

    candidates = []
    for path in files:
        file_name = posixpath.basename(path).lower()
        if not file_name.endswith(".dll") or file_name in excluded:
            continue
        folder = posixpath.dirname(path).lower()
        if file_name == expected or not folder or path.lower().startswith(("bin/", "lib/")):
            candidates.append(path)

    def name_rank(path: str) -> int:
        file_name = posixpath.basename(path).lower()
        if file_name == expected:
            return 2
        if file_name.startswith(constants.PACKAGE_PREFIX.lower()):
            return 1
        return 0

    return sorted(candidates, key=lambda p: (_framework_rank(p), name_rank(p)), reverse=True)


def select_assembly(
    package: NupkgReader,
    candidates: list[str],
    package_name: str,
    reader: AssemblyReader = read_assembly,
) -> Optional[AssemblyInfo]:
    """Pick and read the assembly most likely to be the package entry point.

    An assembly named after the package wins; otherwise a lone candidate;
    otherwise the first candidate exhibiting Cake markers. When none does,
    the first readable candidate is returned so references can still be
    reported.
    """
    if not candidates:
        return None

    expected = f"{package_name}.dll".lower()
    exact = [c for c in candidates if posixpath.basename(c).lower() == expected]
    if exact:
        return reader(package.read(exact[0]), exact[0])
    if len(candidates) == 1:
        return reader(package.read(candidates[0]), candidates[0])

    first_readable: Optional[AssemblyInfo] = None
    for candidate in candidates:
        try:
            info = reader(package.read(candidate), candidate)
        except InspectionError as e:
            logger.debug("Skipping %s: %s", candidate, e)
            continue
        if info.has_cake_markers:
            return info
        if first_readable is None:
            first_readable = info

    return first_readable


def classify(package_name: str, candidates: list[str], assembly: Optional[AssemblyInfo]) -> AddinType:
    """Classify a package. First match wins: Recipe, Module, Addin, Unknown."""
    if not candidates:
        return AddinType.RECIPE
    if package_name.lower().endswith(constants.MODULE_SUFFIX.lower()):
        return AddinType.MODULE
    if assembly is not None and assembly.decorated_methods:
        return AddinType.ADDIN
    return AddinType.UNKNOWN


def merge_references(
    dependencies: list[DllReference], assembly_references: list[DllReference]
) -> list[DllReference]:
    """Merge declared dependencies with assembly references.

    Per referenced name the lowest version is kept, and the reference is
    private only when every source marked it private.
    """
    grouped: dict[str, list[DllReference]] = {}
    for reference in [*dependencies, *assembly_references]:
        grouped.setdefault(reference.id.lower(), []).append(reference)

    merged = []
    for references in grouped.values():
        merged.append(
            DllReference(
                id=references[0].id,
                version=min(references, key=lambda r: r.version).version,
                is_private=all(r.is_private for r in references),
            )
        )
    return merged


def _find_pdb(files: list[str], package_name: str) -> Optional[str]:
    expected = f"{package_name}.pdb".lower()
    return next((f for f in files if posixpath.basename(f).lower() == expected), None)


def detect_symbols(
    package: NupkgReader,
    package_name: str,
    assembly: Optional[AssemblyInfo],
    symbols_path: Optional[Path] = None,
) -> tuple[PdbStatus, bool]:
    """Locate debug symbols and check them for SourceLink.

    Tiers are tried in order and the first hit wins: a PDB in the package, a
    PDB embedded in the assembly, a PDB in the symbols package.

    Returns:
        (pdb status, SourceLink enabled).
    """
    pdb_file = _find_pdb(package.get_files(), package_name)
    if pdb_file:
        return PdbStatus.INCLUDED_IN_PACKAGE, _source_link_or_false(package.read(pdb_file))

    if assembly is not None and assembly.embedded_pdb:
        try:
            embedded = pdb.decompress_embedded_pdb(assembly.embedded_pdb)
        except InspectionError as e:
            logger.debug("%s: %s", package_name, e)
        else:
            return PdbStatus.EMBEDDED, _source_link_or_false(embedded)

    if symbols_path is not None and symbols_path.exists():
        try:
            with NupkgReader(symbols_path) as symbols:
                pdb_file = _find_pdb(symbols.get_files(), package_name)
                if pdb_file:
                    return (
                        PdbStatus.INCLUDED_IN_SYMBOLS_PACKAGE,
                        _source_link_or_false(symbols.read(pdb_file)),
                    )
        except InspectionError as e:
            logger.debug("%s: unreadable symbols package: %s", package_name, e)

    return PdbStatus.NOT_AVAILABLE, False


def _source_link_or_false(content: bytes) -> bool:
    try:
        return pdb.has_source_link(content)
    except InspectionError:
        return False


def _read_cake_version_yaml(package: NupkgReader) -> Optional[CakeVersionYaml]:
    path = next(
        (
            f
            for f in package.get_files()
            if posixpath.basename(f).lower() in ("cake-version.yml", "cake-version.yaml")
        ),
        None,
    )
    if path is None:
        return None

    try:
        data = yaml.safe_load(package.read(path)) or {}
    except yaml.YAMLError as e:
        raise InspectionError(f"Unable to parse {path}: {e}") from e

    target = data.get("TargetCakeVersion")
    return CakeVersionYaml(
        target_cake_version=SemVersion.try_parse(str(target)) if target is not None else None,
        target_frameworks=[str(f) for f in data.get("TargetFrameworks") or []],
    )


def inspect_package(
    addin: AddinMetadata,
    package_path: Path,
    symbols_path: Optional[Path] = None,
    reader: AssemblyReader = read_assembly,
) -> AddinMetadata:
    """Fill an addin record from its downloaded package.

    Every call opens its own archive and assembly readers, so concurrent
    inspections never share state.

    Args:
        addin: Record to enrich in place.
        package_path: Path of the ``.nupkg``.
        symbols_path: Optional path of the ``.snupkg``.
        reader: Assembly reader, replaceable for tests.

    Returns:
        The enriched record.

    Raises:
        InspectionError: If the package cannot be read, the declared icon is
            missing, or the package cannot be classified.
    """
    with NupkgReader(package_path) as package:
        nuspec = package.read_nuspec()
        files = package.get_files()

        dependencies = []
        for dependency in nuspec.dependencies:
            version = normalize_version_range(dependency.version_range)
            if version.is_prerelease:
                addin.has_prerelease_dependencies = True
            dependencies.append(DllReference(dependency.id, version, is_private=False))

        candidates = find_candidate_assemblies(files, addin.name)
        assembly = select_assembly(package, candidates, addin.name, reader)
        addin.type = classify(addin.name, candidates, assembly)

        assembly_references = []
        if assembly is not None:
            addin.dll_name = posixpath.basename(assembly.path)
            addin.decorated_methods = list(assembly.decorated_methods)
            addin.alias_categories = list(assembly.alias_categories)
            assembly_references = [
                DllReference(r.name, r.version, is_private=True) for r in assembly.references
            ]

            folder = posixpath.dirname(assembly.path).lower()
            expected_doc = f"{addin.name}.xml".lower()
            addin.xml_documentation_available = any(
                posixpath.basename(f).lower() == expected_doc
                and posixpath.dirname(f).lower() == folder
                for f in files
            )

        addin.references = merge_references(dependencies, assembly_references)

        addin.pdb_status, addin.source_link_enabled = detect_symbols(
            package, addin.name, assembly, symbols_path
        )

        addin.frameworks = package.get_frameworks()
        addin.license = nuspec.license or None
        if nuspec.icon_url:
            addin.icon_url = nuspec.icon_url
        if nuspec.project_url and not addin.project_url:
            addin.project_url = nuspec.project_url
        if nuspec.repository_url:
            addin.repository_url = nuspec.repository_url
        addin.cake_version_yaml = _read_cake_version_yaml(package)

        if nuspec.icon:
            try:
                addin.embedded_icon = package.read(nuspec.icon)
            except KeyError:
                raise InspectionError(f"Unable to find {nuspec.icon} in the package") from None

    if addin.type == AddinType.UNKNOWN:
        raise InspectionError("This addin does not contain any decorated method.")

    return addin
