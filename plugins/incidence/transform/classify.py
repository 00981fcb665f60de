#!/usr/bin/env python3
"""
classify.py — Transform: region case histories → per-day color classification.

Input rows (from a case-history Source):
    {"region": "09162", "population": 1484226,
     "history": [{"date": "2021-03-01", "cases": 120}, ...]}

Output rows, one per day, chronological:
    {"date": "2021-03-07",
     "colors": {"09162": {"color": "#D43624"}, ...,
                "min": {"color": ...}, "avg": {"color": ...}, "max": {"color": ...}}}

Collected into a dict keyed by date, the output rows form a color snapshot.
"""

from __future__ import annotations
import time
from dataclasses import dataclass, replace
from datetime import date, datetime
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Sequence, Tuple

from mapvid.core.base import Batch, Context, Record, Transform
from plugins.incidence.colors import ColorBand, WEEK_INCIDENCE_BANDS, bands_from_config, color_for_value

WINDOW_DAYS = 7
PER_POPULATION = 100_000

# reserved keys stored next to the region ids of each day
AGGREGATE_KEYS = ("min", "avg", "max")
LEGEND_ACCENTS = {"min": "green", "avg": "orange", "max": "red"}

ColorSnapshot = Dict[str, Dict[str, Dict[str, str]]]


def iso_day(value: Any) -> str:
    """Normalize a date, datetime or ISO string to 'YYYY-MM-DD'."""
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    text = str(value).strip()
    return date.fromisoformat(text[:10]).isoformat()


def weekly_incidences(history: Sequence[Mapping[str, Any]], population: float) -> List[Tuple[str, float]]:
    """Trailing 7-day case sum per 100k population for every day index >= 6."""
    if population <= 0:
        raise ValueError(f"population must be positive, got {population}")
    out: List[Tuple[str, float]] = []
    for i in range(WINDOW_DAYS - 1, len(history)):
        total = sum(history[d]["cases"] for d in range(i - WINDOW_DAYS + 1, i + 1))
        out.append((iso_day(history[i]["date"]), total / population * PER_POPULATION))
    return out


@dataclass(frozen=True)
class DayAggregate:
    """Running min / sum / max of one day's incidences across regions."""

    total: float
    count: int
    min: float
    min_color: str
    max: float
    max_color: str

    @classmethod
    def first(cls, incidence: float, color: str) -> "DayAggregate":
        return cls(incidence, 1, incidence, color, incidence, color)

    @property
    def avg(self) -> float:
        return self.total / self.count

    def add(self, incidence: float, color: str) -> "DayAggregate":
        updated = replace(self, total=self.total + incidence, count=self.count + 1)
        if incidence > updated.max:
            updated = replace(updated, max=incidence, max_color=color)
        if incidence < updated.min:
            updated = replace(updated, min=incidence, min_color=color)
        return updated


def build_color_snapshot(
    histories: Iterable[Record],
    bands: Sequence[ColorBand] = WEEK_INCIDENCE_BANDS,
) -> ColorSnapshot:
    """Classify every region/day and attach the min/avg/max colors per day."""
    snapshot: ColorSnapshot = {}
    aggregates: Dict[str, DayAggregate] = {}
    for row in histories:
        region_id = str(row["region"])
        if region_id in AGGREGATE_KEYS:
            raise ValueError(f"Region id {region_id!r} collides with a reserved aggregate key")
        for day, incidence in weekly_incidences(row["history"], float(row["population"])):
            color = color_for_value(incidence, bands)
            snapshot.setdefault(day, {})[region_id] = {"color": color}
            agg = aggregates.get(day)
            aggregates[day] = DayAggregate.first(incidence, color) if agg is None else agg.add(incidence, color)

    for day, agg in aggregates.items():
        snapshot[day]["min"] = {"color": agg.min_color}
        snapshot[day]["avg"] = {"color": color_for_value(agg.avg, bands)}
        snapshot[day]["max"] = {"color": agg.max_color}
    return snapshot


class ClassifyIncidence(Transform):
    """
    Turn region histories into per-day color records.

    kw:
      color_bands: optional list of {max, color, label}; defaults to the
                   bands from ctx.config, then to WEEK_INCIDENCE_BANDS
    """
    def run(self, ctx: Context, rows: Batch) -> Iterator[Record]:
        raw = self.kw.get("color_bands") or getattr(ctx.config, "color_bands", None)
        bands = bands_from_config(raw)
        start = time.perf_counter()
        snapshot = build_color_snapshot(rows, bands)
        ctx.log.info(f"colors per day: {len(snapshot)} days in {time.perf_counter() - start:.2f} s")
        for day in sorted(snapshot, key=date.fromisoformat):
            yield {"date": day, "colors": snapshot[day]}
