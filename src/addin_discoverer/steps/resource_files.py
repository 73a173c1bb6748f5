"""Exclusion and inclusion lists."""

import json
import logging
from importlib.resources import files

from addin_discoverer.context import DiscoveryContext
from addin_discoverer.steps.base import BaseStep

logger = logging.getLogger(__name__)

EXCLUSION_LIST = "exclusionlist.json"
INCLUSION_LIST = "inclusionlist.json"


def read_resource(context: DiscoveryContext, name: str) -> dict:
    """Read a bundled resource file, or its local override.

    Raises:
        FileNotFoundError: If the local override folder lacks the file.
    """
    options = context.options
    if options.use_local_resources and options.resources_folder is not None:
        content = (options.resources_folder / name).read_text(encoding="utf-8")
    else:
        content = files("addin_discoverer.resources").joinpath(name).read_text(encoding="utf-8")
    return json.loads(content) if content.strip() else {}


class ResourceFilesStep(BaseStep):
    """Load the lists of packages to exclude from and add to the audit."""

    def get_description(self, context: DiscoveryContext) -> str:
        return "Load resource files"

    async def execute(self, context: DiscoveryContext) -> None:
        exclusions = read_resource(context, EXCLUSION_LIST)
        context.excluded_addins = list(exclusions.get("packages") or [])
        context.excluded_tags = list(exclusions.get("labels") or [])

        inclusions = read_resource(context, INCLUSION_LIST)
        context.included_addins = list(inclusions.get("packages") or [])

        logger.info(
            "%d excluded package pattern(s), %d excluded tag(s), %d included package(s)",
            len(context.excluded_addins),
            len(context.excluded_tags),
            len(context.included_addins),
        )
