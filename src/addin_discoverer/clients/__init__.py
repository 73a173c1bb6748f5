"""HTTP clients for the package registry and the source hosting platform."""

from addin_discoverer.clients.github import GitHubClient
from addin_discoverer.clients.http import HttpClient
from addin_discoverer.clients.nuget import (
    DownloadResult,
    DownloadStatus,
    NuGetClient,
    PackageSummary,
)

__all__ = [
    "DownloadResult",
    "DownloadStatus",
    "GitHubClient",
    "HttpClient",
    "NuGetClient",
    "PackageSummary",
]
