"""Find the days whose rendered frame is stale.

A day is stale when it is missing from the snapshot the frames were rendered
from ("new"), or when any region or aggregate color differs ("changed").
"""

from __future__ import annotations
from dataclasses import dataclass
from datetime import date, timedelta
from typing import List, Mapping, Optional

from plugins.incidence.transform.classify import ColorSnapshot

NEW = "new"
CHANGED = "changed"


@dataclass(frozen=True)
class StaleDay:
    date: str
    kind: str


def sorted_days(snapshot: Mapping[str, object]) -> List[str]:
    return sorted(snapshot, key=date.fromisoformat)


def missing_days(snapshot: Mapping[str, object]) -> List[str]:
    """Calendar days between the first and last day that have no entry.

    Frame numbers are calendar offsets, so any gap leaves a hole in the frame
    sequence.
    """
    days = sorted_days(snapshot)
    if not days:
        return []
    first, last = date.fromisoformat(days[0]), date.fromisoformat(days[-1])
    present = set(days)
    every = (first + timedelta(days=i) for i in range((last - first).days + 1))
    return [d.isoformat() for d in every if d.isoformat() not in present]


def _day_differs(current: Mapping[str, Mapping[str, str]], previous: Mapping[str, Mapping[str, str]]) -> bool:
    for key in current.keys() | previous.keys():
        old = previous.get(key)
        new = current.get(key)
        if old is None or new is None or old.get("color") != new.get("color"):
            return True
    return False


def diff(current: ColorSnapshot, previous: Optional[ColorSnapshot]) -> List[StaleDay]:
    """Chronological list of stale days of `current` relative to `previous`."""
    days = sorted_days(current)
    if not previous:
        return [StaleDay(d, NEW) for d in days]

    # frame numbers count from the earliest day; if that moved, every frame moved
    anchor_moved = bool(days) and sorted_days(previous)[0] != days[0]

    stale: List[StaleDay] = []
    for day in days:
        if day not in previous:
            stale.append(StaleDay(day, NEW))
        elif anchor_moved or _day_differs(current[day], previous[day]):
            stale.append(StaleDay(day, CHANGED))
    return stale
