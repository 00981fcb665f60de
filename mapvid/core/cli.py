# mapvid/core/cli.py
"""Tiny CLI for mapvid pipelines."""

from __future__ import annotations
import json
from pathlib import Path
from typing import Optional

import typer

from .errors import ValidationError
from .registry import list_registered_plugins
from .runner import run_pipeline
from .utils import make_logger

app = typer.Typer(help="mapvid: incidence map frames and time-lapse videos")


def _run(spec: str, workdir: str, overrides: Optional[dict] = None):
    log = make_logger("mapvid")
    if not Path(spec).exists():
        typer.echo(f"Spec not found: {spec}", err=True)
        raise typer.Exit(code=2)
    try:
        return run_pipeline(spec, workdir=workdir, overrides=overrides)
    except (ValidationError, TypeError) as e:
        typer.echo(str(e), err=True)
        raise typer.Exit(code=2)
    except Exception as e:
        log.exception(f"pipeline failed: {e}")
        raise typer.Exit(code=1)


@app.command("run")
def run(spec: str, workdir: str = "."):
    """
    Run every request of a pipeline YAML spec.

    Example:
        mapvid run pipelines/incidence_video.yaml --workdir .
    """
    for result in _run(spec, workdir):
        typer.echo(json.dumps(result))


@app.command("video")
def video(
    spec: str,
    region: str,
    duration: str,
    days: Optional[str] = typer.Option(None, help="Most recent days to include (default: all)"),
    workdir: str = ".",
):
    """
    Produce (or reuse) one video.

    Example:
        mapvid video pipelines/incidence_video.yaml districts 12 --days 200
    """
    overrides = {"region": region, "duration": duration, "days": days}
    for result in _run(spec, workdir, overrides):
        typer.echo(json.dumps(result))


@app.command("list-plugins")
def list_plugins() -> None:
    """
    List discovered plugins registered under the `mapvid.plugins` entry point group.
    """
    plugins = list_registered_plugins()
    if not plugins:
        typer.echo("No mapvid.plugins entry points discovered.")
        raise typer.Exit()
    for name, ep in plugins:
        typer.echo(f"{name} -> {ep}")


@app.command("plugins")
def plugins_json() -> None:
    """Print plugin list as JSON (helpful for scripts)."""
    mapping = {name: ep for name, ep in list_registered_plugins()}
    typer.echo(json.dumps(mapping, indent=2))


if __name__ == "__main__":
    app()
