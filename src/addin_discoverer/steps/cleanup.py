"""Working folder preparation."""

import logging
import shutil

from addin_discoverer.context import DiscoveryContext
from addin_discoverer.steps.base import BaseStep

logger = logging.getLogger(__name__)


class CleanupStep(BaseStep):
    """Create the working folders, emptying the caches first if requested."""

    def get_description(self, context: DiscoveryContext) -> str:
        if context.options.clear_cache:
            return "Clear the cache"
        return "Prepare the working folders"

    async def execute(self, context: DiscoveryContext) -> None:
        if context.options.clear_cache:
            logger.info("Clearing cached packages and previous analysis in %s", context.temp_folder)
            if context.packages_folder.exists():
                shutil.rmtree(context.packages_folder)
            context.analysis_cache.clear()

        context.packages_folder.mkdir(parents=True, exist_ok=True)
        context.analysis_folder.mkdir(parents=True, exist_ok=True)
