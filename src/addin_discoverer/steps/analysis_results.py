"""Loading and saving the results of previous runs."""

import logging

from addin_discoverer.context import DiscoveryContext
from addin_discoverer.models import sort_addins
from addin_discoverer.steps.base import BaseStep

logger = logging.getLogger(__name__)


class LoadPreviousAnalysisStep(BaseStep):
    """Seed the context with every version analyzed by previous runs.

    Discovery skips these versions, so only new ones are downloaded and
    inspected. Versions a previous run left pending are not seeded and get
    discovered again.
    """

    def pre_condition_is_met(self, context: DiscoveryContext) -> bool:
        return not context.options.analyze_all

    def get_description(self, context: DiscoveryContext) -> str:
        return "Load the result of previous analysis"

    async def execute(self, context: DiscoveryContext) -> None:
        previous = context.analysis_cache.load(context.options.addin_name)
        context.addins = [a for a in previous if a.analyzed]
        logger.info("Loaded %d previously analyzed version(s)", len(context.addins))


class SaveAnalysisStep(BaseStep):
    """Fold the per-version snapshots into the aggregate file."""

    def get_description(self, context: DiscoveryContext) -> str:
        return "Save the result of the analysis"

    async def execute(self, context: DiscoveryContext) -> None:
        addins = list(context.addins)

        # A filtered run only knows one package; keep the others, pending snapshots included
        if context.options.addin_name:
            name = context.options.addin_name.lower()
            others = [a for a in context.analysis_cache.load() if a.name.lower() != name]
            addins = others + addins

        context.analysis_cache.save_aggregate(sort_addins(addins))
        context.analysis_cache.clear_snapshots()
        logger.info("Saved %d version(s) to %s", len(addins), context.analysis_result_path)
