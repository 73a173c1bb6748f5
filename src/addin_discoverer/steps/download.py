"""Package download."""

import logging

import aiohttp

from addin_discoverer.clients.nuget import DownloadStatus
from addin_discoverer.context import DiscoveryContext
from addin_discoverer.exceptions import (
    AddinDiscovererError,
    DownloadCancelledError,
    PackageNotFoundError,
)
from addin_discoverer.models import AddinMetadata
from addin_discoverer.steps.base import BaseStep, pending_addins

logger = logging.getLogger(__name__)


class DownloadStep(BaseStep):
    """Download the package, and its symbols when published, of every pending version."""

    def get_description(self, context: DiscoveryContext) -> str:
        if not context.options.addin_name:
            return "Download packages from NuGet"
        return f"Download package for {context.options.addin_name}"

    async def execute(self, context: DiscoveryContext) -> None:
        pending = pending_addins(context)

        # Archives of versions still to be inspected must survive stale cleanup
        in_flight: dict[str, set[str]] = {}
        for addin in pending:
            in_flight.setdefault(addin.name.lower(), set()).add(addin.version)

        async def download(addin: AddinMetadata) -> None:
            result = await context.nuget.download(
                addin.name,
                addin.version,
                context.packages_folder,
                keep_versions=in_flight[addin.name.lower()],
                cancel_event=context.cancel_event,
            )
            if result.status == DownloadStatus.NOT_FOUND:
                raise PackageNotFoundError(addin.name, addin.version)
            if result.status == DownloadStatus.CANCELLED:
                raise DownloadCancelledError(addin.name, addin.version)

            try:
                await context.nuget.download_symbols(addin.name, addin.version, context.packages_folder)
            except aiohttp.ClientError as e:
                raise AddinDiscovererError(
                    f"An error occurred while attempting to download symbol package "
                    f"for '{addin.name} {addin.version}': {e}"
                ) from e

        await self.for_each_addin(context, pending, download, context.options.nuget_concurrency)
        logger.info("Downloaded %d package(s)", len(pending))
