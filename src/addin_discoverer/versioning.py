"""Semantic version value type.

Versions are parsed from the registry, from package dependency ranges and
from the reference table of compiled assemblies. They are compared by
precedence (major, minor, patch, then prerelease label) everywhere a
compliance verdict is computed.
"""

import re
from functools import total_ordering
from typing import Optional, Union

_VERSION_PATTERN = re.compile(
    r"^(?P<major>\d+)"
    r"(\.(?P<minor>\d+))?"
    r"(\.(?P<patch>\d+))?"
    r"(\-(?P<pre>[0-9A-Za-z\-\.]+))?"
    r"(\+(?P<build>[0-9A-Za-z\-\.]+))?$"
)

# Four part versions as used by .NET assemblies and older NuGet packages.
_LEGACY_PATTERN = re.compile(
    r"^(?P<major>\d+)\.(?P<minor>\d+)\.(?P<patch>\d+)\.(?P<revision>\d+)"
    r"(\-(?P<pre>[0-9A-Za-z\-\.]+))?"
    r"(\+(?P<build>[0-9A-Za-z\-\.]+))?$"
)

_UNKNOWN_TEXT = "unknown"


def _compare_component(a: str, b: str) -> int:
    """Compare two dot separated labels the way semver orders prerelease tags.

    Numeric identifiers compare numerically and sort before alphanumeric ones;
    when all shared identifiers are equal the label with more identifiers wins.
    """
    if a == b:
        return 0
    if not a:
        return 1
    if not b:
        return -1

    parts_a = a.split(".")
    parts_b = b.split(".")

    for part_a, part_b in zip(parts_a, parts_b):
        a_is_num = part_a.isdigit()
        b_is_num = part_b.isdigit()

        if a_is_num and b_is_num:
            result = (int(part_a) > int(part_b)) - (int(part_a) < int(part_b))
        elif a_is_num:
            result = -1
        elif b_is_num:
            result = 1
        else:
            result = (part_a > part_b) - (part_a < part_b)

        if result != 0:
            return result

    return (len(parts_a) > len(parts_b)) - (len(parts_a) < len(parts_b))


@total_ordering
class SemVersion:
    """An immutable semantic version.

    Equality and ordering use precedence, so two versions that only differ by
    their build label compare equal. The build label is still kept and is
    rendered by ``str()``.

    Attributes:
        major: Major component.
        minor: Minor component.
        patch: Patch component.
        prerelease: Prerelease label without the leading dash ("" if absent).
        build: Build label without the leading plus ("" if absent).
    """

    __slots__ = ("major", "minor", "patch", "prerelease", "build", "_unknown")

    def __init__(
        self,
        major: int,
        minor: int = 0,
        patch: int = 0,
        prerelease: str = "",
        build: str = "",
    ) -> None:
        self.major = major
        self.minor = minor
        self.patch = patch
        self.prerelease = prerelease or ""
        self.build = build or ""
        self._unknown = False

    @classmethod
    def parse(cls, text: str, strict: bool = False) -> "SemVersion":
        """Parse a version string.

        Args:
            text: Version such as "1.2.3-beta.1+sha.5114f85".
            strict: When True, the minor and patch components are mandatory.

        Returns:
            The parsed version. The literal "unknown" returns UNKNOWN_VERSION.

        Raises:
            ValueError: If the string is not a valid version.
        """
        if text is None:
            raise ValueError("Version string cannot be None")

        text = text.strip()
        if text.lower() == _UNKNOWN_TEXT:
            return UNKNOWN_VERSION

        match = _VERSION_PATTERN.match(text)
        if match is None:
            raise ValueError(f"Invalid version '{text}'")

        if strict and (match.group("minor") is None or match.group("patch") is None):
            raise ValueError(f"Invalid version '{text}': minor and patch are required")

        return cls(
            int(match.group("major")),
            int(match.group("minor") or 0),
            int(match.group("patch") or 0),
            match.group("pre") or "",
            match.group("build") or "",
        )

    @classmethod
    def try_parse(cls, text: Optional[str], strict: bool = False) -> Optional["SemVersion"]:
        """Parse a version string, returning None instead of raising."""
        if not text:
            return None
        try:
            return cls.parse(text, strict=strict)
        except ValueError:
            return None

    @classmethod
    def from_assembly_version(
        cls, major: int, minor: int, build: int, revision: int = 0
    ) -> "SemVersion":
        """Build a version from a four part assembly version.

        The assembly "build" becomes the patch and a non-zero revision is kept
        as the build label.
        """
        return cls(major, minor, build, "", str(revision) if revision > 0 else "")

    @classmethod
    def from_package_version(cls, text: str) -> "SemVersion":
        """Parse a registry version, which may carry a fourth component.

        Raises:
            ValueError: If the string is not a valid version.
        """
        match = _LEGACY_PATTERN.match(text.strip())
        if match is None:
            return cls.parse(text)

        revision = int(match.group("revision"))
        build = match.group("build") or ""
        if revision > 0:
            build = f"{revision}.{build}" if build else str(revision)

        return cls(
            int(match.group("major")),
            int(match.group("minor")),
            int(match.group("patch")),
            match.group("pre") or "",
            build,
        )

    @property
    def is_prerelease(self) -> bool:
        return bool(self.prerelease)

    @property
    def is_unknown(self) -> bool:
        return self._unknown

    def to_string(self, parts: int = 5) -> str:
        """Render the first ``parts`` components (3 = numbers only, 4 adds prerelease)."""
        if self._unknown:
            return _UNKNOWN_TEXT

        result = f"{self.major}.{self.minor}.{self.patch}"
        if parts > 3 and self.prerelease:
            result += f"-{self.prerelease}"
        if parts > 4 and self.build:
            result += f"+{self.build}"
        return result

    def compare_by_precedence(self, other: "SemVersion") -> int:
        """Compare ignoring the build label.

        Returns:
            -1, 0 or 1.
        """
        if self._unknown or other._unknown:
            return (not self._unknown) - (not other._unknown)

        left = (self.major, self.minor, self.patch)
        right = (other.major, other.minor, other.patch)
        if left != right:
            return (left > right) - (left < right)

        return _compare_component(self.prerelease, other.prerelease)

    def compare_to(self, other: "SemVersion") -> int:
        """Compare by precedence, then by build label (absent sorts first).

        Used where a deterministic order is needed between versions that have
        the same precedence.
        """
        result = self.compare_by_precedence(other)
        if result != 0:
            return result
        if self.build == other.build:
            return 0
        if not self.build:
            return -1
        if not other.build:
            return 1
        return _compare_component(self.build, other.build)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, SemVersion):
            return NotImplemented
        return self.compare_by_precedence(other) == 0

    def __lt__(self, other: "SemVersion") -> bool:
        if not isinstance(other, SemVersion):
            return NotImplemented
        return self.compare_by_precedence(other) < 0

    def __hash__(self) -> int:
        if self._unknown:
            return hash(_UNKNOWN_TEXT)
        return hash((self.major, self.minor, self.patch, self.prerelease))

    def __str__(self) -> str:
        return self.to_string()

    def __repr__(self) -> str:
        return f"SemVersion('{self}')"


def _make_unknown() -> SemVersion:
    version = SemVersion(0, 0, 0)
    version._unknown = True
    return version


UNKNOWN_VERSION = _make_unknown()
ZERO_VERSION = SemVersion(0, 0, 0)


def is_up_to_date(
    current: Optional[SemVersion], desired: Optional[Union[SemVersion, str]]
) -> bool:
    """Check whether a referenced version satisfies the desired one.

    A missing reference (None) is considered up to date since there is
    nothing to upgrade. The unknown sentinel never is.
    """
    if current is None:
        return True
    if current.is_unknown:
        return False
    if desired is None:
        return True
    if isinstance(desired, str):
        desired = SemVersion.parse(desired)
    return current >= desired
