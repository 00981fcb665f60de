#!/usr/bin/env python3
"""
render_frame.py — Sink: FrameSpec → annotated map PNG.

The default renderer draws with matplotlib's object API (no pyplot), so
frames can be rendered from several threads at once. Regions are drawn as a
GeoJSON choropleth when `geo` is configured (requires geopandas), otherwise
as a tile grid ordered by region id.
"""

from __future__ import annotations
import math
import os
from abc import abstractmethod
from pathlib import Path
from typing import Iterable, List

from matplotlib.figure import Figure
from matplotlib.patches import Rectangle

from mapvid.core.base import Context, Sink
from plugins.incidence.orchestrate.frames import FrameSpec

# region kinds drawn with a visible outline
STROKES = {"states": ("#DBDBDB", 0.9)}
DEFAULT_STROKE = ("#FFFFFF", 0.2)


class FrameRenderer(Sink):
    """Renders one FrameSpec to `spec.path` and returns that path."""

    @abstractmethod
    def render(self, ctx: Context, spec: FrameSpec) -> Path:
        raise NotImplementedError

    def run(self, ctx: Context, rows: Iterable[FrameSpec]) -> List[Path]:
        return [self.render(ctx, spec) for spec in rows]


class MatplotlibFrameRenderer(FrameRenderer):
    """
    kw:
      width, height: output size in pixels (default 1000 x 1100)
      dpi: figure dpi (default 100)
      geo: optional GeoJSON with one feature per region
      id_property: GeoJSON property holding the region id (default "id")
      background: figure background color
    """
    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self.width = int(self.kw.get("width", 1000))
        self.height = int(self.kw.get("height", 1100))
        self.dpi = int(self.kw.get("dpi", 100))
        self.background = self.kw.get("background", "#F5F5F5")
        self.id_property = self.kw.get("id_property", "id")
        self._geo = None
        if self.kw.get("geo"):
            import geopandas as gpd
            gdf = gpd.read_file(self.kw["geo"])
            gdf[self.id_property] = gdf[self.id_property].astype(str)
            self._geo = gdf

    def render(self, ctx: Context, spec: FrameSpec) -> Path:
        fig = Figure(figsize=(self.width / self.dpi, self.height / self.dpi), dpi=self.dpi)
        fig.patch.set_facecolor(self.background)
        fig.text(0.5, 0.965, spec.headline, ha="center", va="top", fontsize=20, weight="bold")
        fig.text(0.5, 0.925, spec.date, ha="center", va="top", fontsize=14, color="#444444")

        map_ax = fig.add_axes([0.22, 0.04, 0.76, 0.85])
        map_ax.set_axis_off()
        edge, linewidth = STROKES.get(spec.region, DEFAULT_STROKE)
        if self._geo is not None:
            self._draw_geo(map_ax, spec, edge, linewidth)
        else:
            self._draw_tiles(map_ax, spec, edge, linewidth)

        legend_ax = fig.add_axes([0.02, 0.04, 0.2, 0.85])
        legend_ax.set_axis_off()
        self._draw_legend(legend_ax, spec)

        spec.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = spec.path.with_name(f".{spec.path.stem}.{os.getpid()}.png")
        fig.savefig(tmp, format="png", facecolor=fig.get_facecolor())
        os.replace(tmp, spec.path)
        return spec.path

    def _draw_geo(self, ax, spec: FrameSpec, edge: str, linewidth: float) -> None:
        gdf = self._geo.assign(_fill=self._geo[self.id_property].map(spec.fills).fillna("#FFFFFF"))
        gdf.plot(ax=ax, color=gdf["_fill"], edgecolor=edge, linewidth=linewidth)
        ax.set_aspect("equal")

    def _draw_tiles(self, ax, spec: FrameSpec, edge: str, linewidth: float) -> None:
        ids = sorted(spec.fills)
        cols = max(1, math.ceil(math.sqrt(len(ids))))
        rows = max(1, math.ceil(len(ids) / cols))
        for i, region_id in enumerate(ids):
            r, c = divmod(i, cols)
            ax.add_patch(Rectangle(
                (c, rows - r - 1), 1, 1,
                facecolor=spec.fills[region_id], edgecolor=edge, linewidth=max(linewidth, 0.5),
            ))
        ax.set_xlim(0, cols)
        ax.set_ylim(0, rows)
        ax.set_aspect("equal")

    def _draw_legend(self, ax, spec: FrameSpec) -> None:
        # most severe band on top
        bands = list(reversed(list(spec.bands)))
        step = 1.0 / (len(bands) + 1)
        for i, band in enumerate(bands):
            y = 1.0 - (i + 1) * step
            ax.add_patch(Rectangle((0.02, y), 0.18, step * 0.8, facecolor=band.color, edgecolor="#888888", linewidth=0.5))
            ax.text(0.25, y + step * 0.4, band.label, va="center", fontsize=10)
            markers = spec.grouped.get(band.color, [])
            for j, entry in enumerate(markers):
                ax.text(0.25 + 0.22 * j, y + step * 0.05, entry.name, fontsize=9, weight="bold", color=entry.accent)
        ax.set_xlim(0, 1)
        ax.set_ylim(0, 1)
