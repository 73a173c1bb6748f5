"""Tests for the compliance analysis."""

from addin_discoverer import constants
from addin_discoverer.analyzer import (
    NO_CAKE_REFERENCE_NOTE,
    analyze_addin,
    analyze_icon,
    is_compatible_with,
    is_framework_up_to_date,
)
from addin_discoverer.models import (
    AddinMetadata,
    AddinType,
    CakeVersion,
    DllReference,
    IconAnalysisResult,
)
from addin_discoverer.versioning import UNKNOWN_VERSION, SemVersion

RECOMMENDED_ICON = b"recommended"
FANCY_ADDIN_ICON = b"fancy-addin"
FANCY_RECIPE_ICON = b"fancy-recipe"
FANCY_ICONS = [(FANCY_ADDIN_ICON, AddinType.ADDIN), (FANCY_RECIPE_ICON, AddinType.RECIPE)]

CAKE_3 = CakeVersion(
    version=SemVersion(3, 0, 0),
    required_frameworks=["net6.0", "net7.0"],
    optional_frameworks=[],
)
CAKE_1 = CakeVersion(
    version=SemVersion(1, 0, 0),
    required_frameworks=["netstandard2.0"],
    optional_frameworks=["net46", "net461"],
)


def _addin(**kwargs) -> AddinMetadata:
    return AddinMetadata(name="Cake.Foo", version="1.0.0", type=AddinType.ADDIN, **kwargs)


class TestAnalyzeIcon:
    """Test suite for analyze_icon."""

    def test_embedded_recommended_icon(self) -> None:
        """Test that the plain cake-contrib icon wins."""
        addin = _addin(embedded_icon=RECOMMENDED_ICON)
        assert analyze_icon(addin, RECOMMENDED_ICON, FANCY_ICONS) == IconAnalysisResult.EMBEDDED_CAKE_CONTRIB

    def test_embedded_fancy_icon_for_matching_type(self) -> None:
        """Test that a fancy icon only counts for the types it applies to."""
        addin = _addin(embedded_icon=FANCY_ADDIN_ICON)
        assert analyze_icon(addin, RECOMMENDED_ICON, FANCY_ICONS) == IconAnalysisResult.EMBEDDED_FANCY_CAKE_CONTRIB

        addin.embedded_icon = FANCY_RECIPE_ICON
        assert analyze_icon(addin, RECOMMENDED_ICON, FANCY_ICONS) == IconAnalysisResult.EMBEDDED_CUSTOM

    def test_linked_icons(self) -> None:
        """Test classification of icon URLs."""
        addin = _addin(icon_url=constants.NEW_CAKE_CONTRIB_ICON_URL.upper())
        assert analyze_icon(addin, None, []) == IconAnalysisResult.JSDELIVR_URL

        addin.icon_url = constants.OLD_CAKE_CONTRIB_ICON_URL
        assert analyze_icon(addin, None, []) == IconAnalysisResult.RAWGIT_URL

        addin.icon_url = "https://example.com/icon.png"
        assert analyze_icon(addin, None, []) == IconAnalysisResult.CUSTOM_URL

    def test_no_icon(self) -> None:
        """Test the missing icon verdict."""
        assert analyze_icon(_addin(), RECOMMENDED_ICON, FANCY_ICONS) == IconAnalysisResult.UNSPECIFIED


class TestAnalyzeAddin:
    """Test suite for analyze_addin."""

    def test_reference_summary(self) -> None:
        """Test that the lowest version wins and privacy requires every reference."""
        addin = _addin(
            references=[
                DllReference("Cake.Core", SemVersion(2, 0, 0), is_private=True),
                DllReference("cake.core", SemVersion(1, 0, 0), is_private=False),
                DllReference("Cake.Common", SemVersion(2, 0, 0), is_private=True),
            ]
        )

        result = analyze_addin(addin)

        assert result.cake_core_version == SemVersion(1, 0, 0)
        assert not result.cake_core_is_private
        assert result.cake_common_version == SemVersion(2, 0, 0)
        assert result.cake_common_is_private
        assert not result.has_notes

    def test_addin_without_cake_reference(self) -> None:
        """Test that an addin referencing no Cake assembly gets a note."""
        result = analyze_addin(_addin())

        assert result.cake_core_version is None
        assert NO_CAKE_REFERENCE_NOTE in result.notes

    def test_recipe_without_cake_reference(self) -> None:
        """Test that recipes do not need Cake references."""
        addin = _addin()
        addin.type = AddinType.RECIPE

        assert not analyze_addin(addin).has_notes

    def test_ownership_and_metadata_flags(self) -> None:
        """Test the boolean compliance flags."""
        addin = _addin(
            references=[DllReference("Cake.Core", SemVersion(3, 0, 0), is_private=True)],
            repository_owner="Cake-Contrib",
            nuget_package_owners=["jane", "cake-contrib"],
            license="MIT",
            repository_url="https://github.com/cake-contrib/Cake.Foo.git",
            decorated_methods=["Cake.Foo.FooAliases.Foo"],
        )

        result = analyze_addin(addin)

        assert result.transferred_to_cake_contrib
        assert result.package_co_owned_by_cake_contrib
        assert result.license_declared
        assert result.repository_info_provided
        assert result.at_least_one_decorated_method

    def test_keeps_previous_notes_and_recipe_findings(self) -> None:
        """Test that earlier findings survive the analysis."""
        addin = _addin(references=[DllReference("Cake.Core", SemVersion(3, 0, 0))])
        addin.analysis_result.add_note("Download", "boom")
        addin.analysis_result.cake_recipe_is_used = True

        result = analyze_addin(addin)

        assert "Download: boom" in result.notes
        assert result.cake_recipe_is_used


class TestIsFrameworkUpToDate:
    """Test suite for is_framework_up_to_date."""

    def test_empty_frameworks(self) -> None:
        """Test that an addin without frameworks never qualifies."""
        assert not is_framework_up_to_date([], CAKE_3)

    def test_all_required_present(self) -> None:
        """Test that every required framework must be targeted."""
        assert is_framework_up_to_date(["net6.0", "net7.0"], CAKE_3)
        assert not is_framework_up_to_date(["net6.0"], CAKE_3)

    def test_optional_frameworks_allowed(self) -> None:
        """Test that optional frameworks may be added to the required ones."""
        assert is_framework_up_to_date(["netstandard2.0", "net461"], CAKE_1)

    def test_unexpected_framework_rejected(self) -> None:
        """Test that frameworks outside required and optional fail."""
        assert not is_framework_up_to_date(["netstandard2.0", "net8.0"], CAKE_1)

    def test_no_requirement(self) -> None:
        """Test that a release without requirements accepts any framework."""
        assert is_framework_up_to_date(["net45"], CakeVersion(version=SemVersion(0, 0, 0)))


class TestIsCompatibleWith:
    """Test suite for is_compatible_with."""

    def test_compatible(self) -> None:
        """Test an addin that satisfies the Cake release."""
        addin = _addin(frameworks=["net6.0", "net7.0"])
        addin.analysis_result.cake_core_version = SemVersion(3, 0, 0)

        assert is_compatible_with(addin, CAKE_3)

    def test_outdated_reference(self) -> None:
        """Test that an old Cake.Core reference fails."""
        addin = _addin(frameworks=["net6.0", "net7.0"])
        addin.analysis_result.cake_core_version = SemVersion(2, 0, 0)

        assert not is_compatible_with(addin, CAKE_3)

    def test_unknown_reference(self) -> None:
        """Test that an unknown Cake.Common reference fails."""
        addin = _addin(frameworks=["net6.0", "net7.0"])
        addin.analysis_result.cake_common_version = UNKNOWN_VERSION

        assert not is_compatible_with(addin, CAKE_3)
