#!/usr/bin/env python3
"""
frames.py — Orchestrate: stale days → render jobs → frames on disk.

Every stale day becomes a FrameSpec and is handed to the frame renderer on a
thread pool. All jobs are joined before returning; a single failed frame
fails the whole batch so the region is never marked ready with holes.

Frames live in:
    {data_dir}/{region}/{region}_F-0001.png ...
where the number is the day's 1-based position counted from the earliest day
of the snapshot.
"""

from __future__ import annotations
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from datetime import date
from pathlib import Path
from typing import Dict, List, Mapping, Sequence

from mapvid.core.base import Context
from mapvid.core.errors import RenderFailure
from plugins.incidence.colors import ColorBand, WEEK_INCIDENCE_BANDS, band_rank
from plugins.incidence.diff import NEW, StaleDay, sorted_days
from plugins.incidence.transform.classify import AGGREGATE_KEYS, LEGEND_ACCENTS, ColorSnapshot


@dataclass(frozen=True)
class LegendEntry:
    name: str      # min | avg | max
    color: str     # band color of the aggregate
    accent: str    # text color of the marker


@dataclass(frozen=True)
class GroupedEntry:
    rank: int
    name: str
    accent: str


@dataclass
class FrameSpec:
    """Everything a renderer needs to draw one day."""

    region: str
    date: str
    index: int
    path: Path
    headline: str
    fills: Dict[str, str]
    legend: List[LegendEntry]
    grouped: Dict[str, List[GroupedEntry]]
    bands: Sequence[ColorBand] = field(default_factory=lambda: list(WEEK_INCIDENCE_BANDS))


def frame_index(day: str, first_day: str) -> int:
    return (date.fromisoformat(day) - date.fromisoformat(first_day)).days + 1


def frame_name(region: str, index: int) -> str:
    return f"{region}_F-{index:04d}.png"


def frame_pattern(region: str) -> str:
    """printf-style pattern understood by ffmpeg's image2 demuxer."""
    return f"{region}_F-%04d.png"


def build_legend(colors: Mapping[str, Mapping[str, str]], bands: Sequence[ColorBand]):
    """min/avg/max legend entries, plus the same entries grouped by band color."""
    legend: List[LegendEntry] = []
    grouped: Dict[str, List[GroupedEntry]] = {}
    for name in AGGREGATE_KEYS:
        color = colors[name]["color"]
        accent = LEGEND_ACCENTS[name]
        legend.append(LegendEntry(name, color, accent))
        grouped.setdefault(color, []).append(GroupedEntry(band_rank(color, bands), name, accent))
    return legend, grouped


def build_frame_spec(
    region: str,
    day: str,
    snapshot: ColorSnapshot,
    first_day: str,
    frames_dir: Path,
    headline: str,
    bands: Sequence[ColorBand] = WEEK_INCIDENCE_BANDS,
) -> FrameSpec:
    colors = snapshot[day]
    index = frame_index(day, first_day)
    fills = {k: v["color"] for k, v in colors.items() if k not in AGGREGATE_KEYS}
    legend, grouped = build_legend(colors, bands)
    return FrameSpec(
        region=region,
        date=day,
        index=index,
        path=frames_dir / frame_name(region, index),
        headline=headline,
        fills=fills,
        legend=legend,
        grouped=grouped,
        bands=list(bands),
    )


def render_stale_frames(
    ctx: Context,
    region: str,
    snapshot: ColorSnapshot,
    stale: Sequence[StaleDay],
    renderer,
    frames_dir: Path,
    headline: str,
    bands: Sequence[ColorBand] = WEEK_INCIDENCE_BANDS,
    workers: int = 8,
) -> List[Path]:
    """Render every stale day concurrently; raise RenderFailure if any frame fails."""
    if not stale:
        return []
    new = sum(1 for s in stale if s.kind == NEW)
    ctx.log.info(f"{region}: new frames: {new}; changed frames: {len(stale) - new}")

    frames_dir.mkdir(parents=True, exist_ok=True)
    first_day = sorted_days(snapshot)[0]
    specs = [build_frame_spec(region, s.date, snapshot, first_day, frames_dir, headline, bands) for s in stale]

    start = time.perf_counter()
    written: List[Path] = []
    failed: Dict[str, BaseException] = {}
    with ThreadPoolExecutor(max_workers=max(1, workers)) as ex:
        futs = {ex.submit(renderer.render, ctx, spec): spec for spec in specs}
        for fut in as_completed(futs):
            spec = futs[fut]
            try:
                written.append(fut.result())
            except Exception as e:
                failed[spec.date] = e
                ctx.log.error(f"{region}: frame {spec.index:04d} ({spec.date}) failed: {e}")
    ctx.log.info(f"{region}: rendered {len(written)} frames in {time.perf_counter() - start:.2f} s")

    if failed:
        first = next(iter(failed.values()))
        raise RenderFailure(
            f"{region}: {len(failed)} of {len(specs)} frames failed to render",
            failed=sorted(failed),
        ) from first
    return sorted(written)
