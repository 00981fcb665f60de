#!/usr/bin/env python3
"""
produce_video.py — Orchestrate: region histories → snapshot → stale frames → MP4.

    snapshot   load today's color snapshot, or classify and store it
    validate   :days and :duration, before any lock is taken
    cache      return an existing video for the same arguments
    lock       one process per region renders frames / encodes
    frames     re-render only days that changed since the rendered snapshot
    encode     frames [start .. last] at floor(days / duration) fps
    retention  keep the 5 newest videos of the current generation, 2 snapshots

Videos are named
    {video_dir}/{region}_{refDate}_Days{days:04d}_Duration{duration:04d}.mp4

with a fractional duration written as is, e.g. Duration12.5.
"""

from __future__ import annotations
import math
import numbers
import threading
import time
from datetime import date, datetime, time as dtime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, Optional, Tuple, Union

from mapvid.core.base import Context, Record, Sink
from mapvid.core.errors import RangeError
from mapvid.core.locks import FileLock, PollStrategy
from mapvid.core.state import VideoRecord
from mapvid.core.utils import timed
from plugins.incidence.colors import bands_from_config
from plugins.incidence.diff import diff, missing_days
from plugins.incidence.orchestrate.frames import frame_pattern, render_stale_frames
from plugins.incidence.regions import as_region
from plugins.incidence.retention import RetentionManager
from plugins.incidence.snapshots import SnapshotStore
from plugins.incidence.transform.classify import ColorSnapshot

Number = Union[int, float]


def as_number(value: Any, name: str) -> Number:
    """Parse a numeric parameter; TypeError for anything that is not a number.

    Integral values come back as int so file names stay stable
    (12, 12.0 and "12" all name the same video).
    """
    if isinstance(value, bool):
        raise TypeError(f"Wrong format for '{name}' parameter! This is not a number.")
    if isinstance(value, str):
        try:
            value = float(value.strip())
        except ValueError:
            raise TypeError(f"Wrong format for '{name}' parameter! This is not a number.") from None
    if not isinstance(value, numbers.Real) or math.isnan(value):
        raise TypeError(f"Wrong format for '{name}' parameter! This is not a number.")
    if isinstance(value, numbers.Integral):
        return int(value)
    value = float(value)
    return int(value) if value.is_integer() else value


def check_days(days: Optional[Any], available: int, min_days: int = 100) -> int:
    if days is None:
        return available
    days = as_number(days, ":days")
    # a day count addresses whole frames
    if not isinstance(days, int) or days < min_days or days > available:
        raise RangeError(f"':days' parameter must be between '{min_days}' and '{available}'")
    return days


def frame_rate_for(days: int, duration: Any, requested_days: Optional[int] = None,
                   min_rate: int = 5, max_rate: int = 25) -> Tuple[Number, int]:
    """Return (duration, frame_rate) or raise RangeError with the valid duration bounds.

    The frame rate is floor(days / duration); fractional durations are allowed.
    """
    duration = as_number(duration, ":duration")
    rate = math.floor(days / duration) if 0 < duration < math.inf else -1
    if rate < min_rate or rate > max_rate:
        shown = str(requested_days) if requested_days is not None else "unlimited"
        raise RangeError(
            f"':duration' parameter must be between '{days // max_rate + 1}' and "
            f"'{days // min_rate}' seconds if 'days:' is '{shown}'"
        )
    return duration, rate


def format_duration(duration: Number) -> str:
    """'0012' for whole seconds, '12.5' / '02.5' for fractional ones."""
    if isinstance(duration, int):
        return f"{duration:04d}"
    return str(duration).rjust(4, "0")


def video_path(video_dir: Path, region: str, reference_date: str, days: int, duration: Number) -> Path:
    return Path(video_dir) / f"{region}_{reference_date}_Days{days:04d}_Duration{format_duration(duration)}.mp4"


def creation_stamp(reference_date: str) -> int:
    """Reference date combined with the current UTC time of day, in epoch ms."""
    now = datetime.now(timezone.utc).time()
    stamp = datetime.combine(date.fromisoformat(reference_date), dtime(now.hour, now.minute, now.second, now.microsecond), tzinfo=timezone.utc)
    return int(stamp.timestamp() * 1000)


def _baseline(store: SnapshotStore, rendered: Optional[str], frames_dir: Path) -> Optional[ColorSnapshot]:
    """Snapshot the frames on disk were rendered from, if it is still around."""
    if rendered:
        return store.load_exact(rendered)
    # ledgers written before `rendered` was tracked: trust the previous snapshot
    # only if frames were actually rendered
    if frames_dir.exists() and any(frames_dir.glob("*.png")):
        return store.previous()
    return None


def _collect(rows: Iterable[Record]) -> ColorSnapshot:
    return {row["date"]: row["colors"] for row in rows}


def produce_video(
    ctx: Context,
    region: str,
    duration: Any,
    days: Optional[Any] = None,
    *,
    rows: Iterable[Record] | Callable[[], Iterable[Record]],
    renderer,
    encoder,
    cancel: Optional[threading.Event] = None,
) -> Dict[str, str]:
    """Return {"filename": ...} of an existing or newly encoded video.

    `rows` are per-day color records (see ClassifyIncidence); they are only
    consumed when no snapshot exists yet for the reference date. Setting
    `cancel` aborts a wait for the region lock with LockCancelled.
    """
    region = as_region(region).value
    settings = ctx.config
    ledger = ctx.state
    reference_date = (ctx.reference_date or date.today()).isoformat()
    bands = bands_from_config(settings.color_bands)

    ledger.ensure()
    store = SnapshotStore(settings.data_dir, region, log=ctx.log)

    def compute() -> ColorSnapshot:
        source_rows = rows() if callable(rows) else rows
        with timed(ctx.log, f"{region} colors per day creation"):
            snapshot = _collect(source_rows)
        # never store a snapshot whose frame sequence would have holes
        gaps = missing_days(snapshot)
        if gaps:
            raise ValueError(f"{region} snapshot for {reference_date} is missing days: {', '.join(gaps[:5])}")
        return snapshot

    snapshot, created = store.load(reference_date, compute)
    if created:
        ledger.set_ready(region, False)
        store.prune(settings.keep_snapshots, protect=ledger.rendered(region))

    available = len(snapshot)
    explicit_days = days is not None
    days = check_days(days, available, settings.min_days)
    duration, rate = frame_rate_for(
        days, duration, days if explicit_days else None,
        settings.min_frame_rate, settings.max_frame_rate,
    )

    out = video_path(settings.video_dir, region, reference_date, days, duration)
    if out.exists():
        return {"filename": str(out)}

    lock = FileLock(
        settings.region_lock_file(region),
        PollStrategy(settings.region_poll_interval, settings.poll_backoff, settings.poll_max_interval),
        max_wait=settings.lock_max_wait,
        cancel=cancel,
    )
    contended = lock.acquire()
    try:
        # another process may have produced the same video while we waited
        if contended and out.exists():
            return {"filename": str(out)}

        frames_dir = settings.frames_dir(region)
        # ready only counts for the snapshot the frames were rendered from; a
        # process holding the lock for an older reference date may have set it
        if not ledger.ready_for(region, reference_date):
            baseline = _baseline(store, ledger.rendered(region), frames_dir)
            start = time.perf_counter()
            stale = diff(snapshot, baseline)
            ctx.log.info(f"{region}: {len(stale)} stale day(s) found in {time.perf_counter() - start:.2f} s")
            render_stale_frames(
                ctx, region, snapshot, stale, renderer, frames_dir,
                headline=settings.headlines.get(region, region),
                bands=bands,
                workers=settings.render_workers,
            )
            ledger.set_ready(region, True, reference_date=reference_date)

        first_frame = available - days + 1
        with timed(ctx.log, f"{region} video rendering"):
            encoder.encode(ctx, str(frames_dir / frame_pattern(region)), first_frame, available, rate, out)

        RetentionManager(
            ledger, store, settings.keep_videos, settings.keep_snapshots, log=ctx.log
        ).apply(region, VideoRecord(str(out), creation_stamp(reference_date)), reference_date)
    finally:
        lock.release()

    return {"filename": str(out)}


class VideoSink(Sink):
    """
    Sink wrapper around produce_video for YAML pipelines.

    kw:
      region: "districts" | "states"
      duration: video length in seconds
      days: optional number of most recent days (default: all)
      renderer: {class: ..., params: {...}} or an instance
      encoder:  {class: ..., params: {...}} or an instance
    """
    def run(self, ctx: Context, rows: Iterable[Record]) -> Dict[str, str]:
        from mapvid.core.runner import build_component

        return produce_video(
            ctx,
            self.kw["region"],
            self.kw["duration"],
            self.kw.get("days"),
            rows=rows,
            renderer=build_component(self.kw["renderer"]),
            encoder=build_component(self.kw["encoder"]),
        )
