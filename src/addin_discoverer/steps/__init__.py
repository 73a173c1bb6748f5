"""Pipeline steps.

Each step performs one unit of work against the shared DiscoveryContext:
discovery, download, inspection, URL validation, analysis and reporting.
"""

from addin_discoverer.steps.analysis_results import LoadPreviousAnalysisStep, SaveAnalysisStep
from addin_discoverer.steps.analyze import AnalyzeStep
from addin_discoverer.steps.base import BaseStep
from addin_discoverer.steps.cake_recipe import CheckUsingCakeRecipeStep
from addin_discoverer.steps.cleanup import CleanupStep
from addin_discoverer.steps.discovery import DiscoveryStep, ValidateDiscoveryStep
from addin_discoverer.steps.download import DownloadStep
from addin_discoverer.steps.nuget_metadata import AnalyzeNuGetMetadataStep
from addin_discoverer.steps.report import GenerateMarkdownReportStep
from addin_discoverer.steps.resource_files import ResourceFilesStep
from addin_discoverer.steps.validate_url import ValidateUrlStep

__all__ = [
    "AnalyzeNuGetMetadataStep",
    "AnalyzeStep",
    "BaseStep",
    "CheckUsingCakeRecipeStep",
    "CleanupStep",
    "DiscoveryStep",
    "DownloadStep",
    "GenerateMarkdownReportStep",
    "LoadPreviousAnalysisStep",
    "ResourceFilesStep",
    "SaveAnalysisStep",
    "ValidateDiscoveryStep",
    "ValidateUrlStep",
]
