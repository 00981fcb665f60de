"""Region kinds and the German state id table used by the upstream data."""

from __future__ import annotations
from enum import Enum
from typing import Dict, Optional


class Region(str, Enum):
    districts = "districts"
    states = "states"


STATE_ABBREVIATIONS: Dict[int, str] = {
    1: "SH", 2: "HH", 3: "NI", 4: "HB", 5: "NW", 6: "HE", 7: "RP", 8: "BW",
    9: "BY", 10: "SL", 11: "BE", 12: "BB", 13: "MV", 14: "SN", 15: "ST", 16: "TH",
}
STATE_IDS: Dict[str, int] = {abbr: sid for sid, abbr in STATE_ABBREVIATIONS.items()}


def state_id_by_abbreviation(abbreviation: str) -> Optional[int]:
    return STATE_IDS.get(abbreviation.upper())


def state_abbreviation_by_id(state_id: int) -> Optional[str]:
    return STATE_ABBREVIATIONS.get(int(state_id))


def as_region(value: "str | Region") -> Region:
    """Parse a region name, raising ValueError for anything unknown."""
    try:
        return Region(str(getattr(value, "value", value)).lower())
    except ValueError:
        raise ValueError(
            f"Unknown region {value!r}; expected one of {', '.join(r.value for r in Region)}"
        ) from None
