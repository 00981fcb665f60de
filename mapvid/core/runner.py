from __future__ import annotations
from typing import Any, Dict, List, Optional
from pathlib import Path
import os
from datetime import date

import yaml

from mapvid.core.base import Context, Source, Transform, Sink
from mapvid.core.config import Settings, load_settings
from mapvid.core.locks import FileLock, PollStrategy
from mapvid.core.registry import load_plugin_class
from mapvid.core.state import StatusLedger
from mapvid.core.utils import make_logger, resolve_class


# ---------- helpers ----------
def _resolve_class(ref: str):
    """Handle 'module:Class', 'module.Class', and 'ep:<name>'."""
    if ref.startswith("ep:"):
        return load_plugin_class(ref[3:])
    return resolve_class(ref)


def build_component(conf: Any):
    """Instantiate a `{class|ref|uses: ..., params: {...}}` mapping.

    Already-built objects are passed through unchanged.
    """
    if not isinstance(conf, dict):
        return conf
    for key in ("class", "ref", "uses"):
        if key in conf:
            return _resolve_class(conf[key])(**conf.get("params", {}))
    raise KeyError("Pipeline step must define 'class', 'ref', or 'uses'")


def build_context(
    settings: Settings,
    *,
    workdir: str | Path = ".",
    outdir: str | Path = "out",
    reference_date: Optional[date] = None,
) -> Context:
    """Context with a status ledger guarded by the shared status lock."""
    workdir = Path(workdir)
    settings.resolve(workdir)
    status_lock = FileLock(
        settings.status_lock_file,
        PollStrategy(settings.status_poll_interval, settings.poll_backoff, settings.poll_max_interval),
        max_wait=settings.lock_max_wait,
    )
    return Context(
        workdir=workdir,
        outdir=workdir / outdir,
        state=StatusLedger(settings.status_file, status_lock),
        log=make_logger("mapvid"),
        config=settings,
        env=dict(os.environ),
        reference_date=reference_date,
    )


def load_spec(spec_path: str | Path) -> Dict[str, Any]:
    spec_path = Path(spec_path)
    if not spec_path.exists():
        raise FileNotFoundError(spec_path)
    conf = yaml.safe_load(spec_path.read_text()) or {}
    if "source" not in conf or "sink" not in conf:
        raise KeyError(f"{spec_path}: a pipeline needs 'source' and 'sink'")
    return conf


# ---------- public API ----------
def run_pipeline(
    spec_path: str | Path,
    *,
    workdir: str | Path = ".",
    overrides: Optional[Dict[str, Any]] = None,
) -> List[Any]:
    """
    Execute a YAML pipeline spec: source → transforms → sink.

    The sink runs once per entry of `requests` (merged into its params);
    `overrides` replaces the requests with a single one.

        source:    {class: plugins.incidence.source.case_history:CsvCaseHistorySource, params: {...}}
        transform: [{class: plugins.incidence.transform.classify:ClassifyIncidence}]
        sink:      {class: plugins.incidence.orchestrate.produce_video:VideoSink, params: {...}}
        settings:  {data_dir: dayPics, video_dir: videos}
        requests:  [{region: districts, duration: 12, days: 200}]
    """
    conf = load_spec(spec_path)
    settings = load_settings(conf.get("settings"))

    source = build_component(conf["source"])
    if not isinstance(source, Source):
        raise TypeError(f"Unsupported source type: {type(source)}")

    t_confs = conf.get("transform") or conf.get("transforms") or []
    if isinstance(t_confs, dict):
        t_confs = [t_confs]
    tfms = [build_component(t) for t in t_confs]
    for t in tfms:
        if not isinstance(t, Transform):
            raise TypeError(f"Unsupported transform type: {type(t)}")

    ctx = build_context(settings, workdir=workdir, outdir=conf.get("outdir", "out"))
    ref = conf.get("reference_date")
    ctx.reference_date = date.fromisoformat(str(ref)) if ref else source.reference_date(ctx)
    ctx.log.info(f"▶ Reference date {ctx.reference_date}")

    sink_conf = conf["sink"]
    requests = [overrides] if overrides else (conf.get("requests") or [{}])
    results = []
    for request in requests:
        params = {**sink_conf.get("params", {}), **request}
        sink = build_component({**sink_conf, "params": params})
        if not isinstance(sink, Sink):
            raise TypeError(f"Unsupported sink type: {type(sink)}")

        # generators: nothing is fetched unless the sink consumes the rows
        rows = source.run(ctx)
        for t in tfms:
            rows = t.run(ctx, rows)
        result = sink.run(ctx, rows)
        ctx.log.info(f"   ↳ wrote {result}")
        results.append(result)

    ctx.log.info("✅ pipeline done.")
    return results
