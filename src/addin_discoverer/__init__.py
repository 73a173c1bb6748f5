"""Cake Addin Discoverer - audits the Cake addin ecosystem.

This package discovers Cake addins published on NuGet, inspects their
packages and assemblies, validates their repositories and reports how well
each one follows the recommended conventions.
"""

__version__ = "0.1.0"

from addin_discoverer.models import (
    AddinMetadata,
    AddinType,
    AnalysisResult,
    DllReference,
    IconAnalysisResult,
    PdbStatus,
)
from addin_discoverer.versioning import SemVersion

__all__ = [
    "__version__",
    "AddinMetadata",
    "AddinType",
    "AnalysisResult",
    "DllReference",
    "IconAnalysisResult",
    "PdbStatus",
    "SemVersion",
]
