"""Static inspection of the downloaded packages."""

import asyncio
import logging

from addin_discoverer.context import DiscoveryContext
from addin_discoverer.inspector import inspect_package
from addin_discoverer.models import AddinMetadata
from addin_discoverer.steps.base import BaseStep, pending_addins

logger = logging.getLogger(__name__)


class AnalyzeNuGetMetadataStep(BaseStep):
    """Inspect the archive of every pending version.

    Each inspection runs in a worker thread with its own archive and
    assembly readers.
    """

    def get_description(self, context: DiscoveryContext) -> str:
        return "Analyze the metadata of the NuGet packages"

    async def execute(self, context: DiscoveryContext) -> None:
        async def inspect(addin: AddinMetadata) -> None:
            package_path = context.package_path(addin)
            if not package_path.exists():
                # The download failure is already in the notes
                logger.debug("%s %s was not downloaded", addin.name, addin.version)
                return

            symbols_path = context.symbols_path(addin)
            await asyncio.to_thread(
                inspect_package,
                addin,
                package_path,
                symbols_path if symbols_path.exists() else None,
            )

        await self.for_each_addin(
            context, pending_addins(context), inspect, context.options.nuget_concurrency
        )
