"""Markdown reporter for the audit.

This module provides a reporter that generates the Markdown audit document
using Jinja2 templates: statistics, one table row per addin and an
"Exceptions" section for every addin carrying notes.
"""

from datetime import UTC, datetime
from importlib.resources import files
from pathlib import Path
from typing import Optional

from jinja2 import Environment, FileSystemLoader, Template

from addin_discoverer import constants
from addin_discoverer.analyzer import is_compatible_with
from addin_discoverer.models import AddinMetadata, IconAnalysisResult, sort_addins
from addin_discoverer.reporters.base import BaseReporter

CAKE_CONTRIB_ICONS = {
    IconAnalysisResult.EMBEDDED_CAKE_CONTRIB,
    IconAnalysisResult.EMBEDDED_FANCY_CAKE_CONTRIB,
    IconAnalysisResult.JSDELIVR_URL,
    IconAnalysisResult.RAWGIT_URL,
}


def latest_versions(addins: list[AddinMetadata]) -> list[AddinMetadata]:
    """Keep one version per addin: the newest stable one, else the newest prerelease."""
    latest: dict[str, AddinMetadata] = {}
    for addin in sort_addins(addins):
        latest.setdefault(addin.name.lower(), addin)
    return list(latest.values())


def _format_notes(notes: str) -> str:
    return "<br/>".join(line for line in notes.strip().splitlines() if line.strip())


def _format_version(version) -> str:
    return str(version) if version is not None else ""


class MarkdownReporter(BaseReporter):
    """Renders the latest version of every addin to the Audit.md document.

    Attributes:
        template: Compiled Jinja2 template receiving the statistics and rows.
    """

    def __init__(self, template_path: Optional[Path] = None) -> None:
        """Compile the report template.

        Args:
            template_path: Custom template file. Its folder becomes the
                loader root so that it may include sibling templates.
        """
        if template_path:
            env = self._create_environment(FileSystemLoader(template_path.parent))
            self.template = env.get_template(template_path.name)
        else:
            self.template = self._load_default_template()

    @staticmethod
    def _create_environment(loader=None) -> Environment:
        env = Environment(loader=loader, autoescape=False, trim_blocks=True, lstrip_blocks=True)
        env.filters["notes"] = _format_notes
        env.filters["version"] = _format_version
        return env

    def _load_default_template(self) -> Template:
        template_content = (
            files("addin_discoverer.templates")
            .joinpath("audit.md.j2")
            .read_text(encoding="utf-8")
        )
        return self._create_environment().from_string(template_content)

    def render(self, addins: list[AddinMetadata]) -> str:
        """Render the analyzed addins to Markdown format.

        Only the latest version of each addin is reported.

        Args:
            addins: Every known version of every addin.

        Returns:
            The Markdown document.
        """
        latest = latest_versions(addins)
        audited = [a for a in latest if not a.analysis_result.has_notes]
        exceptions = [a for a in latest if a.analysis_result.has_notes]
        latest_cake = constants.CAKE_VERSIONS[-1]

        return self.template.render(
            generated_at=datetime.now(UTC),
            addins=latest,
            audited=audited,
            exceptions=exceptions,
            cake_contrib_icon_count=sum(
                1 for a in audited if a.analysis_result.icon in CAKE_CONTRIB_ICONS
            ),
            transferred_count=sum(
                1 for a in audited if a.analysis_result.transferred_to_cake_contrib
            ),
            latest_cake=latest_cake,
            compatible={a.identity: is_compatible_with(a, latest_cake) for a in audited},
        )

    @property
    def format_name(self) -> str:
        return "markdown"

    @property
    def default_extension(self) -> str:
        return ".md"
