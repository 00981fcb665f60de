"""Per-region color snapshots, one JSON file per reference date.

    {data_dir}/{region}-colorSnapshot_{YYYY-MM-DD}.json

A snapshot that already exists for a reference date is returned verbatim and
never recomputed, so repeated calls on the same day are idempotent.
"""

from __future__ import annotations
import re
from pathlib import Path
from typing import Any, Callable, List, Optional, Tuple

from mapvid.core.errors import IOFailure
from mapvid.core.state import read_json, write_json_atomic
from plugins.incidence.transform.classify import ColorSnapshot

_REF_RE = re.compile(r"_(\d{4}-\d{2}-\d{2})\.json$")


class SnapshotStore:
    def __init__(self, data_dir: str | Path, region: str, log: Any = None):
        self.data_dir = Path(data_dir)
        self.region = region
        self.log = log

    def path_for(self, reference_date: str) -> Path:
        return self.data_dir / f"{self.region}-colorSnapshot_{reference_date}.json"

    def files(self) -> List[Path]:
        """Snapshot files of this region, newest reference date first."""
        if not self.data_dir.exists():
            return []
        found = [
            p for p in self.data_dir.glob(f"{self.region}-colorSnapshot_*.json")
            if _REF_RE.search(p.name)
        ]
        return sorted(found, key=lambda p: p.name, reverse=True)

    def reference_dates(self) -> List[str]:
        return [_REF_RE.search(p.name).group(1) for p in self.files()]

    def _read(self, path: Path) -> ColorSnapshot:
        data = read_json(path)
        if not isinstance(data, dict):
            raise IOFailure(f"Malformed snapshot {path}")
        return data

    def load_exact(self, reference_date: str) -> Optional[ColorSnapshot]:
        path = self.path_for(reference_date)
        return self._read(path) if path.exists() else None

    def load(self, reference_date: str, compute: Callable[[], ColorSnapshot]) -> Tuple[ColorSnapshot, bool]:
        """Return (snapshot, created). `compute` only runs if no file exists yet."""
        existing = self.load_exact(reference_date)
        if existing is not None:
            return existing, False
        snapshot = compute()
        write_json_atomic(self.path_for(reference_date), snapshot)
        if self.log:
            self.log.info(f"{self.region}: stored snapshot for {reference_date} ({len(snapshot)} days)")
        return snapshot, True

    def previous(self) -> Optional[ColorSnapshot]:
        """Second-most-recent snapshot, the one before the current reference date."""
        files = self.files()
        return self._read(files[1]) if len(files) > 1 else None

    def prune(self, keep: int = 2, protect: Optional[str] = None) -> List[Path]:
        """Delete all but the `keep` newest snapshots (and `protect`, if given)."""
        removed = []
        for path in self.files()[keep:]:
            if protect and path.name == self.path_for(protect).name:
                continue
            path.unlink(missing_ok=True)
            removed.append(path)
        if removed and self.log:
            self.log.info(f"{self.region}: removed {len(removed)} old snapshot(s)")
        return removed
