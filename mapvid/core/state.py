# mapvid/core/state.py
"""Status ledger shared by every process working on the same data directory.

Layout of ``status.json``:

    {
      "ready":    {"districts": false, "states": true},
      "rendered": {"districts": null,  "states": "2021-03-14"},
      "videos":   {"districts": [{"filename": "...", "created_at": 1615...}],
                   "states":    [...]}
    }

``ready`` is true only when every day of the region's current snapshot has a
frame on disk; ``rendered`` names the snapshot those frames reflect.
Mutations are read-modify-write transactions under the status lock.
"""
from __future__ import annotations
import json
import os
from contextlib import contextmanager
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, List, Optional, Sequence

from .errors import IOFailure
from .locks import FileLock

DEFAULT_REGIONS = ("districts", "states")


@dataclass(frozen=True)
class VideoRecord:
    filename: str
    created_at: int  # epoch milliseconds

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "VideoRecord":
        return cls(filename=str(d["filename"]), created_at=int(d["created_at"]))


def write_json_atomic(path: Path, data: Any) -> None:
    """Write JSON next to `path` and rename it into place."""
    tmp = path.with_name(f".{path.name}.{os.getpid()}.tmp")
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp.write_text(json.dumps(data, ensure_ascii=False), encoding="utf8")
        os.replace(tmp, path)
    except OSError as e:
        tmp.unlink(missing_ok=True)
        raise IOFailure(f"Could not write {path}: {e}") from e


def read_json(path: Path) -> Any:
    try:
        return json.loads(path.read_text(encoding="utf8"))
    except (OSError, ValueError) as e:
        raise IOFailure(f"Could not read {path}: {e}") from e


class StatusLedger:
    """JSON file-backed status ledger.

    Usage:
        ledger = StatusLedger(settings.status_file, status_lock)
        if not ledger.get_ready("districts"):
            ...
            ledger.set_ready("districts", True, reference_date="2021-03-14")
    """

    def __init__(self, path: str | Path, lock: FileLock, regions: Sequence[str] = DEFAULT_REGIONS):
        self.path = Path(path)
        self.lock = lock
        self.regions = tuple(regions)

    def _initial(self) -> Dict[str, Any]:
        return {
            "ready": {r: False for r in self.regions},
            "rendered": {r: None for r in self.regions},
            "videos": {r: [] for r in self.regions},
        }

    def _load(self) -> Dict[str, Any]:
        if not self.path.exists():
            return self._initial()
        data = read_json(self.path)
        if not isinstance(data, dict):
            raise IOFailure(f"Malformed status file {self.path}")
        # regions added after the file was first written
        for key, default in self._initial().items():
            section = data.setdefault(key, {})
            for region, value in default.items():
                section.setdefault(region, value)
        return data

    def ensure(self) -> None:
        """Write the initial ledger if none exists yet."""
        if self.path.exists():
            return
        with self.transaction():
            pass

    @contextmanager
    def transaction(self) -> Iterator[Dict[str, Any]]:
        """Lock, re-read, yield the data for mutation, write back, unlock."""
        with self.lock:
            data = self._load()
            yield data
            write_json_atomic(self.path, data)

    # ---------- reads (may be stale outside a transaction) ----------
    def get_ready(self, region: str) -> bool:
        return bool(self._load()["ready"].get(region, False))

    def rendered(self, region: str) -> Optional[str]:
        return self._load()["rendered"].get(region)

    def ready_for(self, region: str, reference_date: str) -> bool:
        """Ready, and the frames on disk were rendered from `reference_date`."""
        data = self._load()
        return bool(data["ready"].get(region)) and data["rendered"].get(region) == reference_date

    def list_videos(self, region: str) -> List[VideoRecord]:
        return [VideoRecord.from_dict(v) for v in self._load()["videos"].get(region, [])]

    # ---------- mutations ----------
    def set_ready(self, region: str, ready: bool, reference_date: Optional[str] = None) -> None:
        with self.transaction() as data:
            data["ready"][region] = bool(ready)
            if reference_date is not None:
                data["rendered"][region] = reference_date

    def record_video(self, region: str, record: VideoRecord) -> None:
        with self.transaction() as data:
            data["videos"].setdefault(region, []).append(asdict(record))

    def prune_videos(
        self,
        region: str,
        keep: int,
        is_current: Callable[[VideoRecord], bool],
    ) -> List[VideoRecord]:
        """Drop stale-generation records, then keep the `keep` newest.

        Returns the evicted records; deleting their files is up to the caller.
        """
        with self.transaction() as data:
            records = [VideoRecord.from_dict(v) for v in data["videos"].get(region, [])]
            evicted = [r for r in records if not is_current(r)]
            current = sorted(
                (r for r in records if is_current(r)),
                key=lambda r: r.created_at,
                reverse=True,
            )
            evicted.extend(current[keep:])
            data["videos"][region] = [asdict(r) for r in current[:keep]]
        return evicted
