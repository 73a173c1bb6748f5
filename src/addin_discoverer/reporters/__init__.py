"""Output reporters for the audit results.

This module provides reporters rendering the analyzed addins to
human-readable documents.
"""

from addin_discoverer.reporters.base import BaseReporter
from addin_discoverer.reporters.markdown import MarkdownReporter

__all__ = ["BaseReporter", "MarkdownReporter"]
