"""Base interface for output reporters.

Reporters generate formatted output (Markdown, HTML, JSON, etc.) from
the analyzed addins.
"""

from abc import ABC, abstractmethod
from pathlib import Path

from addin_discoverer.models import AddinMetadata


class BaseReporter(ABC):
    """Abstract base class for output reporters.

    Reporters take analyzed addins and generate formatted output documents.
    """

    @abstractmethod
    def render(self, addins: list[AddinMetadata]) -> str:
        """Render the analyzed addins to formatted output.

        Args:
            addins: Every known version of every addin.

        Returns:
            Rendered output as a string.
        """
        ...

    def write(self, addins: list[AddinMetadata], output_path: Path) -> None:
        """Render and write output to a file.

        Args:
            addins: Every known version of every addin.
            output_path: Path to write the output file.
        """
        content = self.render(addins)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        output_path.write_text(content, encoding="utf-8")

    @property
    @abstractmethod
    def format_name(self) -> str:
        """Return the output format name, like "markdown"."""
        ...

    @property
    @abstractmethod
    def default_extension(self) -> str:
        """Return the default file extension, like ".md"."""
        ...
