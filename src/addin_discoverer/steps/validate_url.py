"""Repository URL validation."""

import logging

from addin_discoverer.context import DiscoveryContext
from addin_discoverer.models import AddinMetadata
from addin_discoverer.resolver import RepositoryResolver
from addin_discoverer.steps.base import BaseStep, pending_addins

logger = logging.getLogger(__name__)


class ValidateUrlStep(BaseStep):
    """Resolve the repository of every pending version against GitHub."""

    def get_description(self, context: DiscoveryContext) -> str:
        return "Validate the project and repository URLs"

    async def execute(self, context: DiscoveryContext) -> None:
        resolver = RepositoryResolver(
            context.repository_cache, await context.get_org_repositories()
        )

        async def resolve(addin: AddinMetadata) -> None:
            await resolver.resolve(addin)

        await self.for_each_addin(
            context, pending_addins(context), resolve, context.options.github_concurrency
        )
