"""Markdown report generation."""

import logging

from addin_discoverer.context import DiscoveryContext
from addin_discoverer.reporters import MarkdownReporter
from addin_discoverer.steps.base import BaseStep

logger = logging.getLogger(__name__)


class GenerateMarkdownReportStep(BaseStep):
    """Write the audit report next to the analysis results."""

    def pre_condition_is_met(self, context: DiscoveryContext) -> bool:
        return context.options.generate_markdown

    def get_description(self, context: DiscoveryContext) -> str:
        return "Generate the markdown report"

    async def execute(self, context: DiscoveryContext) -> None:
        reporter = MarkdownReporter()
        reporter.write(context.addins, context.markdown_report_path)
        logger.info("Report written to %s", context.markdown_report_path)
