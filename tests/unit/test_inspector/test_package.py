"""Tests for NuGet package inspection."""

from pathlib import Path

import pytest

from addin_discoverer.analyzer import analyze_addin
from addin_discoverer.exceptions import InspectionError
from addin_discoverer.inspector.assembly import AssemblyInfo
from addin_discoverer.inspector.package import (
    NupkgReader,
    classify,
    detect_symbols,
    find_candidate_assemblies,
    inspect_package,
    merge_references,
    normalize_version_range,
    parse_nuspec,
)
from addin_discoverer.models import (
    AddinMetadata,
    AddinType,
    DllReference,
    IconAnalysisResult,
    PdbStatus,
)
from addin_discoverer.versioning import SemVersion

CAKE_REFERENCES = {"Cake.Core": "3.0.0", "Cake.Common": "3.0.0"}


class TestNuspec:
    """Test suite for nuspec parsing."""

    def test_parse_nuspec(self) -> None:
        """Test reading fields regardless of the XML namespace."""
        content = b"""<?xml version="1.0"?>
<package xmlns="http://schemas.microsoft.com/packaging/2012/06/nuspec.xsd">
  <metadata>
    <id>Cake.Foo</id>
    <version>1.0.0</version>
    <license type="expression">MIT</license>
    <repository type="git" url="https://github.com/jane/Cake.Foo.git" />
    <tags>cake, addin</tags>
    <dependencies>
      <dependency id="Cake.Core" version="[1.0.0, )" />
    </dependencies>
  </metadata>
</package>"""

        nuspec = parse_nuspec(content)

        assert nuspec.id == "Cake.Foo"
        assert nuspec.license == "MIT"
        assert nuspec.repository_url == "https://github.com/jane/Cake.Foo.git"
        assert nuspec.tags == ["cake", "addin"]
        assert nuspec.dependencies[0].id == "Cake.Core"

    def test_parse_invalid_nuspec(self) -> None:
        """Test that malformed XML raises InspectionError."""
        with pytest.raises(InspectionError):
            parse_nuspec(b"<package><metadata>")

    @pytest.mark.parametrize(
        ("version_range", "expected"),
        [
            ("", "0.0.0"),
            ("1.0.0", "1.0.0"),
            ("[1.0.0]", "1.0.0"),
            ("[1.0.0, )", "1.0.0"),
            ("[1.0.0, 2.0.0)", "2.0.0"),
            ("(, 3.0.0]", "3.0.0"),
        ],
    )
    def test_normalize_version_range(self, version_range: str, expected: str) -> None:
        """Test picking the representative version of a range."""
        assert normalize_version_range(version_range) == SemVersion.parse(expected)


class TestNupkgReader:
    """Test suite for NupkgReader."""

    def test_lookup_is_lenient(self, make_nupkg) -> None:
        """Test case-insensitive, backslash and percent-encoded lookups."""
        path = make_nupkg("Cake.Foo", "1.0.0", {"lib/net6.0/Cake%2BFoo.dll": b"dll", "_rels/.rels": b""})

        with NupkgReader(path) as package:
            assert package.read("LIB\\NET6.0\\cake+foo.dll") == b"dll"
            assert "_rels/.rels" not in package.get_files()
            assert package.get_frameworks() == ["net6.0"]

    def test_not_a_zip(self, tmp_path: Path) -> None:
        """Test that a corrupted archive raises InspectionError."""
        path = tmp_path / "broken.nupkg"
        path.write_bytes(b"not a zip")

        with pytest.raises(InspectionError):
            NupkgReader(path)


class TestAssemblySelection:
    """Test suite for candidate assemblies and classification."""

    def test_candidates_exclude_cake_assemblies(self) -> None:
        """Test that Cake.Core and Cake.Common are never candidates."""
        files = ["lib/net6.0/Cake.Core.dll", "lib/net6.0/Cake.Foo.dll", "content/Other.dll"]

        assert find_candidate_assemblies(files, "Cake.Foo") == ["lib/net6.0/Cake.Foo.dll"]

    def test_candidates_prefer_newest_framework(self) -> None:
        """Test that the newest framework comes first."""
        files = ["lib/netstandard2.0/Cake.Foo.dll", "lib/net7.0/Cake.Foo.dll", "lib/net46/Cake.Foo.dll"]

        assert find_candidate_assemblies(files, "Cake.Foo")[0] == "lib/net7.0/Cake.Foo.dll"

    def test_classify_module_by_name(self) -> None:
        """Test that the .Module suffix wins over decorated methods."""
        assert classify("Cake.Foo.Module", ["lib/net6.0/Cake.Foo.Module.dll"], None) == AddinType.MODULE


def test_merge_references_keeps_lowest_and_all_private() -> None:
    """Test merging nuspec dependencies with assembly references."""
    merged = merge_references(
        [DllReference("Cake.Core", SemVersion(2, 0, 0), is_private=False)],
        [
            DllReference("cake.core", SemVersion(1, 0, 0), is_private=True),
            DllReference("Cake.Common", SemVersion(1, 0, 0), is_private=True),
        ],
    )

    by_name = {r.id.lower(): r for r in merged}
    assert by_name["cake.core"].version == SemVersion(1, 0, 0)
    assert not by_name["cake.core"].is_private
    assert by_name["cake.common"].is_private


class TestInspectPackage:
    """Test suite for inspect_package."""

    def test_addin_package(self, make_nupkg, fake_reader) -> None:
        """Test a package with one binary exposing a decorated method."""
        path = make_nupkg(
            "Addin.Example",
            "1.0.0",
            {
                "lib/net6.0/Addin.Example.dll": b"dll",
                "lib/net6.0/Addin.Example.xml": b"<doc/>",
            },
        )
        addin = AddinMetadata(name="Addin.Example", version="1.0.0")
        reader = fake_reader(["Addin.Example.ExampleAliases.Example"], CAKE_REFERENCES)

        inspect_package(addin, path, reader=reader)
        result = analyze_addin(addin)

        assert addin.type == AddinType.ADDIN
        assert addin.dll_name == "Addin.Example.dll"
        assert addin.frameworks == ["net6.0"]
        assert addin.xml_documentation_available
        assert addin.pdb_status == PdbStatus.NOT_AVAILABLE
        assert result.icon == IconAnalysisResult.UNSPECIFIED
        assert result.cake_core_version == SemVersion(3, 0, 0)
        assert result.cake_core_is_private
        assert result.cake_common_version == SemVersion(3, 0, 0)
        assert not result.has_notes

    def test_package_without_binaries_is_recipe(self, make_nupkg, fake_reader) -> None:
        """Test that a package without DLL classifies as Recipe, whatever its name."""
        path = make_nupkg("Cake.Foo.Module", "1.0.0", {"content/recipe.cake": b"// recipe"})
        addin = AddinMetadata(name="Cake.Foo.Module", version="1.0.0")

        inspect_package(addin, path, reader=fake_reader())

        assert addin.type == AddinType.RECIPE
        assert addin.dll_name is None

    def test_nuspec_dependencies_are_public(self, make_nupkg, fake_reader) -> None:
        """Test that nuspec dependencies flow to consumers."""
        path = make_nupkg(
            "Cake.Foo",
            "1.0.0",
            {"lib/net6.0/Cake.Foo.dll": b"dll"},
            dependencies={"Cake.Core": "[2.0.0, )", "Newtonsoft.Json": "13.0.1-beta1"},
        )
        addin = AddinMetadata(name="Cake.Foo", version="1.0.0")

        inspect_package(addin, path, reader=fake_reader(["Cake.Foo.FooAliases.Foo"], {"Cake.Core": "3.0.0"}))

        core = next(r for r in addin.references if r.id == "Cake.Core")
        assert core.version == SemVersion(2, 0, 0)
        assert not core.is_private
        assert addin.has_prerelease_dependencies

    def test_embedded_icon(self, make_nupkg, fake_reader) -> None:
        """Test that the declared icon is read from the package."""
        path = make_nupkg(
            "Cake.Foo",
            "1.0.0",
            {"lib/net6.0/Cake.Foo.dll": b"dll", "images/icon.png": b"\x89PNG"},
            extra="<icon>images\\icon.png</icon>",
        )
        addin = AddinMetadata(name="Cake.Foo", version="1.0.0")

        inspect_package(addin, path, reader=fake_reader(["Cake.Foo.FooAliases.Foo"]))

        assert addin.embedded_icon == b"\x89PNG"

    def test_missing_icon(self, make_nupkg, fake_reader) -> None:
        """Test that a declared icon absent from the package is an error."""
        path = make_nupkg(
            "Cake.Foo",
            "1.0.0",
            {"lib/net6.0/Cake.Foo.dll": b"dll"},
            extra="<icon>icon.png</icon>",
        )
        addin = AddinMetadata(name="Cake.Foo", version="1.0.0")

        with pytest.raises(InspectionError, match="icon.png"):
            inspect_package(addin, path, reader=fake_reader(["Cake.Foo.FooAliases.Foo"]))

    def test_undecorated_assembly_is_an_error(self, make_nupkg, fake_reader) -> None:
        """Test that an assembly without aliases cannot be classified."""
        path = make_nupkg("Cake.Foo", "1.0.0", {"lib/net6.0/Cake.Foo.dll": b"dll"})
        addin = AddinMetadata(name="Cake.Foo", version="1.0.0")

        with pytest.raises(InspectionError, match="decorated method"):
            inspect_package(addin, path, reader=fake_reader())

    def test_pdb_in_package(self, make_nupkg, fake_reader) -> None:
        """Test that a PDB shipped in the package is detected."""
        path = make_nupkg(
            "Cake.Foo",
            "1.0.0",
            {"lib/net6.0/Cake.Foo.dll": b"dll", "lib/net6.0/Cake.Foo.pdb": b"windows pdb"},
        )
        addin = AddinMetadata(name="Cake.Foo", version="1.0.0")

        inspect_package(addin, path, reader=fake_reader(["Cake.Foo.FooAliases.Foo"]))

        assert addin.pdb_status == PdbStatus.INCLUDED_IN_PACKAGE
        assert not addin.source_link_enabled

    def test_cake_version_yaml(self, make_nupkg, fake_reader) -> None:
        """Test reading cake-version.yml."""
        path = make_nupkg(
            "Cake.Foo",
            "1.0.0",
            {
                "lib/net6.0/Cake.Foo.dll": b"dll",
                "cake-version.yml": b"TargetCakeVersion: 3.0.0\nTargetFrameworks:\n  - net6.0\n  - net7.0\n",
            },
        )
        addin = AddinMetadata(name="Cake.Foo", version="1.0.0")

        inspect_package(addin, path, reader=fake_reader(["Cake.Foo.FooAliases.Foo"]))

        assert addin.cake_version_yaml.target_cake_version == SemVersion(3, 0, 0)
        assert addin.cake_version_yaml.target_frameworks == ["net6.0", "net7.0"]


def test_truncated_embedded_pdb_falls_back_to_symbols(make_nupkg, make_zip, tmp_path: Path) -> None:
    """Test that unreadable embedded debug information does not stop the symbols lookup."""
    package_path = make_nupkg("Cake.Foo", "1.0.0", {"lib/net6.0/Cake.Foo.dll": b"dll"})
    symbols_path = tmp_path / "Cake.Foo.1.0.0.snupkg"
    symbols_path.write_bytes(make_zip({"lib/net6.0/Cake.Foo.pdb": b"windows pdb"}))
    assembly = AssemblyInfo(path="lib/net6.0/Cake.Foo.dll", name="Cake.Foo", embedded_pdb=b"MPDB")

    with NupkgReader(package_path) as package:
        status, source_link = detect_symbols(package, "Cake.Foo", assembly, symbols_path)

    assert status == PdbStatus.INCLUDED_IN_SYMBOLS_PACKAGE
    assert not source_link


def test_inspect_package_reads_packaged_assembly(make_nupkg, make_assembly) -> None:
    """Test the default assembly reader on a library inside a package."""
    path = make_nupkg(
        "Cake.Foo", "1.0.0", {"lib/net6.0/Cake.Foo.dll": make_assembly(category="Docker")}
    )
    addin = AddinMetadata(name="Cake.Foo", version="1.0.0")

    inspect_package(addin, path)

    assert addin.type == AddinType.ADDIN
    assert addin.dll_name == "Cake.Foo.dll"
    assert addin.decorated_methods == ["Cake.Foo.FooAliases.Foo"]
    assert addin.alias_categories == ["Docker"]
    assert DllReference("Cake.Core", SemVersion(3, 0, 0), is_private=True) in addin.references
