from __future__ import annotations

import pytest

from fakes import build_ctx, history, region_rows
from plugins.incidence.colors import bands_from_config, color_for_value
from plugins.incidence.transform.classify import (
    ClassifyIncidence,
    DayAggregate,
    build_color_snapshot,
    iso_day,
    weekly_incidences,
)


def test_weekly_incidence_example() -> None:
    rows = weekly_incidences(history([10, 12, 9, 11, 14, 13, 15, 20]), 100_000)

    assert rows[0] == ("2021-01-07", 84.0)
    assert rows[1] == ("2021-01-08", 94.0)
    assert len(rows) == 2
    assert color_for_value(84.0) == "#D43624"


def test_short_history_yields_nothing() -> None:
    assert weekly_incidences(history([1, 2, 3, 4, 5, 6]), 1000) == []


def test_color_bands_edges() -> None:
    assert color_for_value(0) == "#CDCDCD"
    assert color_for_value(5) == "#FFFCCD"
    assert color_for_value(5.01) == "#FFF380"
    assert color_for_value(100) == "#D43624"
    assert color_for_value(50_000) == "#7A0077"


def test_bands_from_config_requires_sorted_bounds() -> None:
    bands = bands_from_config([{"max": 10, "color": "#111111"}, {"max": None, "color": "#222222"}])
    assert color_for_value(11, bands) == "#222222"
    with pytest.raises(ValueError):
        bands_from_config([{"max": 10, "color": "#1"}, {"max": 5, "color": "#2"}])


def test_snapshot_has_min_avg_max() -> None:
    # incidences: 7, 70, 700 → avg 259
    snapshot = build_color_snapshot(region_rows(7))
    day = snapshot["2021-01-07"]

    assert day["01001"] == {"color": "#FFF380"}
    assert day["01002"] == {"color": "#D43624"}
    assert day["01003"] == {"color": "#DD0085"}
    assert day["min"] == {"color": "#FFF380"}
    assert day["avg"] == {"color": "#671212"}
    assert day["max"] == {"color": "#DD0085"}


def test_aggregates_do_not_depend_on_region_order() -> None:
    rows = region_rows(20, {"a": 3, "b": 40, "c": 7, "d": 0, "e": 15})
    assert build_color_snapshot(rows) == build_color_snapshot(list(reversed(rows)))


def test_reserved_region_id_rejected() -> None:
    with pytest.raises(ValueError):
        build_color_snapshot(region_rows(7, {"avg": 1}))


def test_aggregate_add_returns_copy() -> None:
    first = DayAggregate.first(10.0, "#x")
    second = first.add(30.0, "#y")

    assert first.count == 1 and first.max == 10.0
    assert second.count == 2 and second.avg == 20.0
    assert second.max_color == "#y" and second.min_color == "#x"


def test_iso_day_accepts_timestamps() -> None:
    assert iso_day("2021-03-01T00:00:00.000Z") == "2021-03-01"


def test_classify_transform_is_chronological(tmp_path) -> None:
    ctx = build_ctx(tmp_path)
    out = list(ClassifyIncidence().run(ctx, region_rows(10)))

    assert [r["date"] for r in out] == ["2021-01-07", "2021-01-08", "2021-01-09", "2021-01-10"]
    assert set(out[0]["colors"]) == {"01001", "01002", "01003", "min", "avg", "max"}
