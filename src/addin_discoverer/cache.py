"""JSON snapshot store for analysis results.

Each analyzed package version is written to its own file as soon as its
analysis completes, so an interrupted run loses nothing. At the end of a run
the snapshots are folded into one aggregate file, which the next run loads
to skip every version it has already seen.
"""

import json
import logging
import shutil
from pathlib import Path
from typing import Optional

from addin_discoverer.models import AddinMetadata

logger = logging.getLogger(__name__)


class AnalysisCache:
    """On-disk store of analyzed addins.

    Attributes:
        analysis_folder: Folder holding one ``{name}.{version}.json`` per version.
        aggregate_path: JSON file holding every addin of previous runs.
    """

    def __init__(self, analysis_folder: Path, aggregate_path: Path) -> None:
        """Initialize the analysis cache.

        Args:
            analysis_folder: Folder for per-version snapshots.
            aggregate_path: Path of the aggregate file.
        """
        self.analysis_folder = analysis_folder
        self.aggregate_path = aggregate_path

    def snapshot_path(self, addin: AddinMetadata) -> Path:
        return self.analysis_folder / f"{addin.name}.{addin.version}.json"

    def save_snapshot(self, addin: AddinMetadata) -> Path:
        """Write the snapshot of one analyzed version.

        The file name is unique per (name, version), so concurrent writers
        never target the same file.

        Args:
            addin: Analyzed addin.

        Returns:
            Path of the written file.
        """
        self.analysis_folder.mkdir(parents=True, exist_ok=True)
        path = self.snapshot_path(addin)
        _write_json(path, addin.to_dict())
        return path

    def load_aggregate(self) -> list[AddinMetadata]:
        """Read the aggregate file, empty if there is none."""
        if not self.aggregate_path.exists():
            return []
        data = _read_json(self.aggregate_path)
        if data is None:
            return []
        return [AddinMetadata.from_dict(item) for item in data]

    def load_snapshots(self) -> list[AddinMetadata]:
        """Read every per-version snapshot left by a previous (possibly interrupted) run."""
        if not self.analysis_folder.exists():
            return []

        addins = []
        for path in sorted(self.analysis_folder.glob("*.json")):
            data = _read_json(path)
            if data is not None:
                addins.append(AddinMetadata.from_dict(data))
        return addins

    def load(self, addin_name: Optional[str] = None) -> list[AddinMetadata]:
        """Load previous results.

        Snapshots take precedence over the aggregate entry with the same
        name and version; other versions of the same package are kept.

        Args:
            addin_name: Only return the versions of this package
                (case-insensitive).

        Returns:
            One record per distinct (name, version).
        """
        merged = self.load_aggregate()
        for snapshot in self.load_snapshots():
            merged = [a for a in merged if not a.same_identity(snapshot)]
            merged.append(snapshot)

        if addin_name:
            merged = [a for a in merged if a.name.lower() == addin_name.lower()]

        logger.debug("Loaded %d previously analyzed version(s)", len(merged))
        return merged

    def save_aggregate(self, addins: list[AddinMetadata]) -> None:
        """Write every addin to the aggregate file."""
        self.aggregate_path.parent.mkdir(parents=True, exist_ok=True)
        _write_json(self.aggregate_path, [a.to_dict() for a in addins])

    def clear_snapshots(self) -> None:
        """Delete the snapshot folder once its content made it to the aggregate."""
        if self.analysis_folder.exists():
            shutil.rmtree(self.analysis_folder)

    def clear(self) -> None:
        """Delete the snapshots and the aggregate."""
        self.clear_snapshots()
        self.aggregate_path.unlink(missing_ok=True)

    def info(self) -> dict:
        """Get cache statistics.

        Returns:
            Dictionary with cache information:
                - path: Path to the aggregate file
                - count: Number of versions in the aggregate
                - snapshots: Number of pending per-version snapshots
                - size_bytes: Aggregate file size in bytes
        """
        snapshots = (
            len(list(self.analysis_folder.glob("*.json"))) if self.analysis_folder.exists() else 0
        )
        return {
            "path": str(self.aggregate_path),
            "count": len(self.load_aggregate()),
            "snapshots": snapshots,
            "size_bytes": self.aggregate_path.stat().st_size if self.aggregate_path.exists() else 0,
        }


def _write_json(path: Path, data) -> None:
    # Sorted keys keep files byte-identical across runs
    content = json.dumps(data, indent=2, sort_keys=True, ensure_ascii=False)
    temporary = path.with_name(path.name + ".tmp")
    temporary.write_text(content, encoding="utf-8")
    temporary.replace(path)


def _read_json(path: Path):
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        # A corrupted file is treated as a cache miss
        logger.warning("Ignoring unreadable analysis file %s: %s", path, e)
        return None
