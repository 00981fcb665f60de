"""Weekly-incidence color bands.

Bands are ordered by severity. A value belongs to the first band whose upper
bound it does not exceed; the last band is unbounded and catches the rest.
"""

from __future__ import annotations
import math
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Sequence


@dataclass(frozen=True)
class ColorBand:
    max: float
    color: str
    label: str


WEEK_INCIDENCE_BANDS: List[ColorBand] = [
    ColorBand(0, "#CDCDCD", "0"),
    ColorBand(5, "#FFFCCD", "> 0 - 5"),
    ColorBand(25, "#FFF380", "> 5 - 25"),
    ColorBand(50, "#FFB534", "> 25 - 50"),
    ColorBand(100, "#D43624", "> 50 - 100"),
    ColorBand(250, "#951214", "> 100 - 250"),
    ColorBand(500, "#671212", "> 250 - 500"),
    ColorBand(1000, "#DD0085", "> 500 - 1000"),
    ColorBand(math.inf, "#7A0077", "> 1000"),
]


def bands_from_config(raw: Optional[Iterable[Dict[str, Any]]]) -> List[ColorBand]:
    """Build bands from YAML entries like ``{max: 50, color: "#FFB534", label: "> 25 - 50"}``.

    A missing or null ``max`` marks the unbounded top band.
    """
    if not raw:
        return list(WEEK_INCIDENCE_BANDS)
    bands = []
    for entry in raw:
        upper = entry.get("max")
        bands.append(ColorBand(
            max=math.inf if upper is None else float(upper),
            color=str(entry["color"]),
            label=str(entry.get("label", "")),
        ))
    if any(a.max >= b.max for a, b in zip(bands, bands[1:])):
        raise ValueError("Color bands must be sorted by strictly increasing 'max'")
    return bands


def color_for_value(value: float, bands: Sequence[ColorBand] = WEEK_INCIDENCE_BANDS) -> str:
    for band in bands:
        if value <= band.max:
            return band.color
    return bands[-1].color


def band_rank(color: str, bands: Sequence[ColorBand] = WEEK_INCIDENCE_BANDS) -> int:
    """Severity index of the band with `color`, -1 if no band uses it."""
    for index, band in enumerate(bands):
        if band.color == color:
            return index
    return -1
