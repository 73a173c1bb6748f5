"""Step orchestration.

Runs an ordered list of steps against one DiscoveryContext. Steps whose
precondition is not met are skipped; a failing step aborts the run unless
it is flagged ``continue_on_error``.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Optional

from addin_discoverer.context import DiscoveryContext
from addin_discoverer.steps import (
    AnalyzeNuGetMetadataStep,
    AnalyzeStep,
    BaseStep,
    CheckUsingCakeRecipeStep,
    CleanupStep,
    DiscoveryStep,
    DownloadStep,
    GenerateMarkdownReportStep,
    LoadPreviousAnalysisStep,
    ResourceFilesStep,
    SaveAnalysisStep,
    ValidateDiscoveryStep,
    ValidateUrlStep,
)

logger = logging.getLogger(__name__)

StepCallback = Callable[[int, int, str], None]


def build_default_steps() -> list[BaseStep]:
    """Return the steps of a full audit, in execution order."""
    return [
        CleanupStep(),
        ResourceFilesStep(),
        LoadPreviousAnalysisStep(),
        DiscoveryStep(),
        ValidateDiscoveryStep(),
        DownloadStep(),
        AnalyzeNuGetMetadataStep(),
        ValidateUrlStep(),
        CheckUsingCakeRecipeStep(),
        AnalyzeStep(),
        SaveAnalysisStep(),
        GenerateMarkdownReportStep(),
    ]


@dataclass
class PipelineResult:
    """Outcome of a run.

    Attributes:
        executed: Descriptions of the steps that ran.
        skipped: Descriptions of the steps whose precondition was not met.
        failed: (description, error) of the steps that failed but were
            allowed to continue.
    """

    executed: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    failed: list[tuple[str, Exception]] = field(default_factory=list)


class Pipeline:
    """Ordered list of steps.

    Attributes:
        steps: Steps in execution order.
    """

    def __init__(self, steps: Optional[list[BaseStep]] = None) -> None:
        self.steps = steps if steps is not None else build_default_steps()

    async def run(
        self, context: DiscoveryContext, on_step: Optional[StepCallback] = None
    ) -> PipelineResult:
        """Run every applicable step.

        Args:
            context: Run context.
            on_step: Called with (step number, step count, description)
                before each executed step.

        Returns:
            What ran, what was skipped and what failed.

        Raises:
            Exception: The error of the first failing step not flagged
                ``continue_on_error``.
        """
        result = PipelineResult()
        total = len(self.steps)

        for index, step in enumerate(self.steps, start=1):
            description = step.get_description(context)

            if not step.pre_condition_is_met(context):
                logger.info("Skipping step %d/%d: %s", index, total, description)
                result.skipped.append(description)
                continue

            if context.cancel_event.is_set():
                logger.warning("Run cancelled before step %d/%d: %s", index, total, description)
                break

            logger.info("Step %d/%d: %s", index, total, description)
            if on_step is not None:
                on_step(index, total, description)

            try:
                await step.execute(context)
            except Exception as e:
                if not step.continue_on_error:
                    logger.error("Step '%s' failed: %s", description, e)
                    raise
                logger.warning("Step '%s' failed, continuing: %s", description, e)
                result.failed.append((description, e))

            result.executed.append(description)

        return result
