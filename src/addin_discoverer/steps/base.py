"""Base interface for pipeline steps.

A step performs one unit of work against the shared DiscoveryContext. The
pipeline asks each step whether it applies to the current run before
executing it.
"""

import logging
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable, Iterable

from addin_discoverer.concurrency import for_each_async
from addin_discoverer.context import DiscoveryContext
from addin_discoverer.models import AddinMetadata

logger = logging.getLogger(__name__)


class BaseStep(ABC):
    """Abstract base class for pipeline steps."""

    def pre_condition_is_met(self, context: DiscoveryContext) -> bool:
        """Return True when the step applies to this run. Default is True."""
        return True

    @abstractmethod
    def get_description(self, context: DiscoveryContext) -> str:
        """Return a human readable description of the step.

        Args:
            context: Run context.

        Returns:
            Description like "Download packages from NuGet".
        """
        ...

    @abstractmethod
    async def execute(self, context: DiscoveryContext) -> None:
        """Perform the step.

        Args:
            context: Run context, mutated in place.
        """
        ...

    @property
    def label(self) -> str:
        """Prefix of the notes recorded by this step."""
        return type(self).__name__.removesuffix("Step")

    @property
    def continue_on_error(self) -> bool:
        """Return True when a failure of this step must not abort the run."""
        return False

    async def for_each_addin(
        self,
        context: DiscoveryContext,
        addins: Iterable[AddinMetadata],
        func: Callable[[AddinMetadata], Awaitable[None]],
        max_concurrency: int,
    ) -> None:
        """Run ``func`` on every addin, recording failures in the addin notes.

        Failures of one addin never affect the others. Cancellation is not
        caught.
        """

        async def guarded(addin: AddinMetadata) -> AddinMetadata:
            try:
                await func(addin)
            except Exception as e:
                logger.warning("%s: %s %s: %s", self.label, addin.name, addin.version, e)
                addin.analysis_result.add_note(self.label, str(e) or type(e).__name__)
            return addin

        await for_each_async(addins, guarded, max_concurrency, context.cancel_event)


def pending_addins(context: DiscoveryContext) -> list[AddinMetadata]:
    """Addins not analyzed by a previous run."""
    return [a for a in context.addins if not a.analyzed]
