# mapvid/core/config.py
"""Settings for the frame cache and video pipeline.

Resolution order (later wins):
  1. dataclass defaults
  2. the ``settings:`` block of a pipeline YAML spec
  3. ``MAPVID_*`` environment variables (a ``.env`` file is honoured)
"""

from __future__ import annotations
import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

import yaml
from dotenv import load_dotenv

ENV_PREFIX = "MAPVID_"
# settings whose environment value is a YAML (or JSON) document
STRUCTURED_FIELDS = {"color_bands": list, "headlines": dict}


@dataclass
class Settings:
    data_dir: Path = Path("dayPics")
    video_dir: Path = Path("videos")
    status_poll_interval: float = 0.05
    region_poll_interval: float = 2.5
    poll_backoff: float = 1.0
    poll_max_interval: Optional[float] = None
    lock_max_wait: Optional[float] = None
    render_workers: int = 8
    keep_videos: int = 5
    keep_snapshots: int = 2
    min_days: int = 100
    min_frame_rate: int = 5
    max_frame_rate: int = 25
    color_bands: Optional[List[Dict[str, Any]]] = None
    headlines: Dict[str, str] = field(default_factory=lambda: {
        "districts": "7-Tage-Inzidenz der Landkreise",
        "states": "7-Tage-Inzidenz der Bundesländer",
    })

    @property
    def status_file(self) -> Path:
        return self.data_dir / "status.json"

    @property
    def status_lock_file(self) -> Path:
        return self.data_dir / "status.lockfile"

    def region_lock_file(self, region: str) -> Path:
        return self.data_dir / f"{region}.lockfile"

    def frames_dir(self, region: str) -> Path:
        return self.data_dir / region

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any], env: Optional[Mapping[str, str]] = None) -> "Settings":
        """Build settings from a spec mapping, then apply environment overrides."""
        known = {f.name: f for f in fields(cls)}
        unknown = set(data) - set(known)
        if unknown:
            raise KeyError(f"Unknown settings: {', '.join(sorted(unknown))}")
        values: Dict[str, Any] = dict(data)
        env = os.environ if env is None else env
        for name in known:
            raw = env.get(ENV_PREFIX + name.upper())
            if raw is None:
                continue
            if name in STRUCTURED_FIELDS:
                values[name] = _parse_structured(ENV_PREFIX + name.upper(), raw, STRUCTURED_FIELDS[name])
            else:
                values[name] = raw
        settings = cls(**values)
        settings._coerce()
        return settings

    def resolve(self, workdir: Path) -> "Settings":
        """Anchor relative directories at `workdir`."""
        if not self.data_dir.is_absolute():
            self.data_dir = Path(workdir) / self.data_dir
        if not self.video_dir.is_absolute():
            self.video_dir = Path(workdir) / self.video_dir
        return self

    def _coerce(self) -> None:
        # env values arrive as strings
        self.data_dir = Path(self.data_dir)
        self.video_dir = Path(self.video_dir)
        for name in ("status_poll_interval", "region_poll_interval", "poll_backoff"):
            setattr(self, name, float(getattr(self, name)))
        for name in ("poll_max_interval", "lock_max_wait"):
            value = getattr(self, name)
            if value in ("", "none", "None"):
                value = None
            setattr(self, name, None if value is None else float(value))
        for name in ("render_workers", "keep_videos", "keep_snapshots",
                     "min_days", "min_frame_rate", "max_frame_rate"):
            setattr(self, name, int(getattr(self, name)))


def _parse_structured(var: str, raw: str, kind: type) -> Any:
    try:
        value = yaml.safe_load(raw)
    except yaml.YAMLError as e:
        raise ValueError(f"{var} is not valid YAML/JSON: {e}") from e
    if not isinstance(value, kind):
        raise ValueError(f"{var} must be a {'list' if kind is list else 'mapping'}, got {type(value).__name__}")
    return value


def load_settings(data: Optional[Mapping[str, Any]] = None, env_file: Optional[str | Path] = None) -> Settings:
    """Load `.env` (if present) and build Settings from an optional spec block."""
    load_dotenv(env_file)
    return Settings.from_mapping(data or {})
