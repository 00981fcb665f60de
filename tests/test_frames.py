from __future__ import annotations

from pathlib import Path

import pytest

from fakes import RecordingRenderer, build_ctx, region_rows
from mapvid.core.errors import RenderFailure
from plugins.incidence.diff import diff
from plugins.incidence.orchestrate.frames import (
    GroupedEntry,
    build_frame_spec,
    frame_index,
    frame_name,
    render_stale_frames,
)
from plugins.incidence.transform.classify import build_color_snapshot


def test_frame_index_counts_from_first_day() -> None:
    assert frame_index("2021-01-07", "2021-01-07") == 1
    assert frame_index("2021-03-01", "2021-01-07") == 54
    assert frame_name("states", 54) == "states_F-0054.png"


def test_frame_spec_groups_aggregates_by_band(tmp_path: Path) -> None:
    snapshot = {
        "2021-01-01": {
            "r1": {"color": "#FFF380"},
            "r2": {"color": "#D43624"},
            "min": {"color": "#FFF380"},
            "avg": {"color": "#FFF380"},
            "max": {"color": "#D43624"},
        }
    }
    spec = build_frame_spec("districts", "2021-01-01", snapshot, "2021-01-01", tmp_path, "headline")

    assert spec.fills == {"r1": "#FFF380", "r2": "#D43624"}
    assert spec.path == tmp_path / "districts_F-0001.png"
    assert [(e.name, e.accent) for e in spec.legend] == [("min", "green"), ("avg", "orange"), ("max", "red")]
    assert spec.grouped == {
        "#FFF380": [GroupedEntry(2, "min", "green"), GroupedEntry(2, "avg", "orange")],
        "#D43624": [GroupedEntry(4, "max", "red")],
    }


def test_only_stale_days_are_rendered(tmp_path: Path) -> None:
    ctx = build_ctx(tmp_path)
    previous = build_color_snapshot(region_rows(20))
    current = build_color_snapshot(region_rows(22))
    renderer = RecordingRenderer()

    written = render_stale_frames(
        ctx, "districts", current, diff(current, previous), renderer, tmp_path / "frames", "h"
    )

    assert sorted(s.index for s in renderer.specs) == [15, 16]
    assert [p.name for p in written] == ["districts_F-0015.png", "districts_F-0016.png"]


def test_one_failed_frame_fails_the_batch(tmp_path: Path) -> None:
    ctx = build_ctx(tmp_path)
    current = build_color_snapshot(region_rows(12))
    renderer = RecordingRenderer(fail_on=["2021-01-09"])

    with pytest.raises(RenderFailure) as exc:
        render_stale_frames(ctx, "districts", current, diff(current, None), renderer, tmp_path / "frames", "h")

    assert exc.value.failed == ["2021-01-09"]
    # the remaining frames were still rendered
    assert len(renderer.specs) == 5
