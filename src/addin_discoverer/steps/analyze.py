"""Compliance analysis and per-version snapshots."""

import asyncio
import logging
from typing import Optional

from addin_discoverer import constants
from addin_discoverer.analyzer import FANCY_ICON_URLS, FancyIcon, analyze_addin
from addin_discoverer.context import DiscoveryContext
from addin_discoverer.models import AddinMetadata
from addin_discoverer.steps.base import BaseStep, pending_addins

logger = logging.getLogger(__name__)


class AnalyzeStep(BaseStep):
    """Compute the verdict of every pending version and snapshot it.

    The snapshot is written as soon as a version is analyzed, so an
    interrupted run resumes where it stopped. Versions whose archive could
    not be downloaded get a verdict for the report but stay pending.
    """

    def get_description(self, context: DiscoveryContext) -> str:
        return "Analyze addins"

    async def _download_icons(
        self, context: DiscoveryContext
    ) -> tuple[Optional[bytes], list[FancyIcon]]:
        urls = [constants.NEW_CAKE_CONTRIB_ICON_URL] + [url for url, _types in FANCY_ICON_URLS]
        contents = await asyncio.gather(*(context.http.get_bytes(url) for url in urls))
        fancy_icons = [
            (content, types) for content, (_url, types) in zip(contents[1:], FANCY_ICON_URLS)
        ]
        return contents[0], fancy_icons

    async def execute(self, context: DiscoveryContext) -> None:
        pending = pending_addins(context)
        if not pending:
            return

        recommended_icon, fancy_icons = await self._download_icons(context)

        async def analyze(addin: AddinMetadata) -> None:
            analyze_addin(addin, recommended_icon, fancy_icons)
            if not context.package_path(addin).exists():
                # Incomplete: the next run downloads and inspects it again
                logger.debug("%s %s left pending, no archive", addin.name, addin.version)
                return
            addin.analyzed = True
            await asyncio.to_thread(context.analysis_cache.save_snapshot, addin)

        await self.for_each_addin(context, pending, analyze, context.options.nuget_concurrency)
        logger.info(
            "Analyzed %d version(s), %d left pending",
            len(pending),
            len(pending_addins(context)),
        )
