from __future__ import annotations

from datetime import date, timedelta
from pathlib import Path

import pytest

from mapvid.core.base import Sink, Source
from mapvid.core.runner import build_component, load_spec, run_pipeline
from plugins.incidence.source.case_history import CsvCaseHistorySource

SPEC = """
source:
  class: plugins.incidence.source.case_history:CsvCaseHistorySource
  params: {cases: cases.csv, populations: pops.csv}
transform:
  - class: plugins.incidence.transform.classify:ClassifyIncidence
sink:
  class: plugins.incidence.orchestrate.produce_video:VideoSink
  params:
    region: districts
    renderer: {class: "fakes:RecordingRenderer"}
    encoder: {class: "fakes:RecordingEncoder"}
settings:
  data_dir: dayPics
  video_dir: videos
  render_workers: 2
  region_poll_interval: 0.01
  status_poll_interval: 0.01
requests:
  - {duration: 10}
  - {duration: 5}
"""


def write_pipeline(tmp_path: Path, n_days: int = 56, spec: str = SPEC) -> Path:
    start = date(2021, 1, 1)
    lines = ["region,date,cases"]
    for i in range(n_days):
        day = (start + timedelta(days=i)).isoformat()
        lines += [f"01001,{day},{i % 5}", f"01002,{day},{i * 3}"]
    (tmp_path / "cases.csv").write_text("\n".join(lines) + "\n")
    (tmp_path / "pops.csv").write_text("region,population\n01001,50000\n01002,120000\n")
    path = tmp_path / "pipeline.yaml"
    path.write_text(spec)
    return path


def test_pipeline_runs_every_request(tmp_path: Path) -> None:
    spec = write_pipeline(tmp_path)

    results = run_pipeline(spec, workdir=tmp_path)

    assert [Path(r["filename"]).name for r in results] == [
        "districts_2021-02-25_Days0050_Duration0010.mp4",
        "districts_2021-02-25_Days0050_Duration0005.mp4",
    ]
    assert all(Path(r["filename"]).exists() for r in results)
    frames = sorted(p.name for p in (tmp_path / "dayPics" / "districts").iterdir())
    assert frames[0] == "districts_F-0001.png" and frames[-1] == "districts_F-0050.png"
    assert (tmp_path / "dayPics" / "districts-colorSnapshot_2021-02-25.json").exists()


def test_overrides_replace_requests(tmp_path: Path) -> None:
    spec = write_pipeline(tmp_path)
    results = run_pipeline(spec, workdir=tmp_path, overrides={"duration": "2", "days": None})
    assert [Path(r["filename"]).name for r in results] == ["districts_2021-02-25_Days0050_Duration0002.mp4"]


def test_reference_date_from_spec_wins(tmp_path: Path) -> None:
    spec = write_pipeline(tmp_path, spec=SPEC + "reference_date: 2021-03-01\n")
    results = run_pipeline(spec, workdir=tmp_path, overrides={"duration": 10})
    assert "_2021-03-01_" in results[0]["filename"]


def test_spec_requires_source_and_sink(tmp_path: Path) -> None:
    path = tmp_path / "broken.yaml"
    path.write_text("source: {class: x:Y}\n")
    with pytest.raises(KeyError):
        load_spec(path)


def test_unknown_settings_are_rejected(tmp_path: Path) -> None:
    spec = write_pipeline(tmp_path, spec=SPEC.replace("settings:\n", "settings:\n  colour: red\n"))
    with pytest.raises(KeyError, match="colour"):
        run_pipeline(spec, workdir=tmp_path)


def test_build_component_accepts_mappings_and_instances() -> None:
    src = build_component({"class": "plugins.incidence.source.case_history.CsvCaseHistorySource",
                           "params": {"cases": "c.csv"}})
    assert isinstance(src, CsvCaseHistorySource) and isinstance(src, Source)
    assert src.kw == {"cases": "c.csv"}
    assert build_component(src) is src
    sink = build_component({"uses": "plugins.incidence.orchestrate.produce_video:VideoSink"})
    assert isinstance(sink, Sink)
    with pytest.raises(KeyError):
        build_component({"params": {}})
