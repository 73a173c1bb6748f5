"""Exceptions raised by addin_discoverer."""

from typing import Optional


class AddinDiscovererError(Exception):
    """Base class for all errors raised by this package."""


class DiscoveryError(AddinDiscovererError):
    """Raised when discovery yields nothing to analyze. Aborts the run."""


class PackageNotFoundError(AddinDiscovererError):
    """Raised when the registry does not know the requested package version."""

    def __init__(self, name: str, version: str) -> None:
        super().__init__(f"Package '{name} {version}' not found")
        self.name = name
        self.version = version


class DownloadCancelledError(AddinDiscovererError):
    """Raised when a download was cancelled before it completed."""

    def __init__(self, name: str, version: str) -> None:
        super().__init__(f"Download of '{name} {version}' was cancelled")
        self.name = name
        self.version = version


class InspectionError(AddinDiscovererError):
    """Raised when a package archive or one of its binaries cannot be analyzed."""


class GitHubApiError(AddinDiscovererError):
    """Raised when the hosting API returns an unexpected status.

    Attributes:
        status: HTTP status code returned by the API.
        url: Requested URL.
    """

    def __init__(self, status: int, url: str, message: Optional[str] = None) -> None:
        super().__init__(message or f"GitHub API returned {status} for {url}")
        self.status = status
        self.url = url

    @property
    def is_not_found(self) -> bool:
        return self.status == 404


class RateLimitError(GitHubApiError):
    """Raised when the API keeps answering 429 after every retry."""
