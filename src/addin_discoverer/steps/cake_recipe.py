"""Cake.Recipe usage check."""

import logging

from addin_discoverer.context import DiscoveryContext
from addin_discoverer.models import AddinMetadata
from addin_discoverer.recipe import check_cake_recipe_usage, latest_cake_recipe_version
from addin_discoverer.steps.base import BaseStep, pending_addins

logger = logging.getLogger(__name__)


class CheckUsingCakeRecipeStep(BaseStep):
    """Check whether the repositories of pending versions build with Cake.Recipe.

    Slow by nature: every repository is downloaded and each check is
    followed by a fixed delay.
    """

    def pre_condition_is_met(self, context: DiscoveryContext) -> bool:
        return not context.options.exclude_slow_steps

    def get_description(self, context: DiscoveryContext) -> str:
        if not context.options.addin_name:
            return "Check if addins are using Cake.Recipe"
        return f"Check if {context.options.addin_name} is using Cake.Recipe"

    @property
    def continue_on_error(self) -> bool:
        return True

    async def execute(self, context: DiscoveryContext) -> None:
        latest_version = latest_cake_recipe_version(context.addins)
        logger.debug("Latest Cake.Recipe is %s", latest_version)

        async def check(addin: AddinMetadata) -> None:
            await check_cake_recipe_usage(
                addin,
                context.repository_cache,
                latest_version,
                delay=context.options.recipe_check_delay,
            )

        await self.for_each_addin(
            context, pending_addins(context), check, context.options.github_concurrency
        )
