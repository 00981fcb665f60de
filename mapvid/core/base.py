# mapvid/core/base.py
"""Core abstract base classes and context for mapvid pipelines."""

from __future__ import annotations
from dataclasses import dataclass
from abc import ABC, abstractmethod
from datetime import date, timedelta
from typing import Any, Dict, Iterable, Optional
from pathlib import Path


# Basic record / batch types
Record = Dict[str, Any]
Batch = Iterable[Record]


@dataclass
class Context:
    """Context object passed to Sources / Transforms / Sinks.

    Attributes:
        workdir: root path where the pipeline was executed
        outdir: output directory for generated files
        state: the shared StatusLedger
        log: a logger instance (implements .info/.debug/.error)
        config: the resolved Settings
        env: environment mapping (os.environ copy)
        reference_date: date as of which the data is considered complete
    """
    workdir: Path
    outdir: Path
    state: Any
    log: Any
    config: Any
    env: Dict[str, str]
    reference_date: Optional[date] = None


class Source(ABC):
    """Abstract Source.

    A Source fetches raw data and yields records. For this project the
    records are region histories:

        {"region": "09162", "name": "München", "population": 1484226,
         "history": [{"date": "2021-03-01", "cases": 120}, ...]}

    Sources must be lazy: nothing is fetched until the generator returned by
    ``run`` is iterated, so a cached snapshot never triggers a download.
    """
    def __init__(self, **kwargs):
        self.kw = kwargs

    @abstractmethod
    def run(self, ctx: Context) -> Batch:
        """Return an iterable (or generator) of records."""
        raise NotImplementedError

    def reference_date(self, ctx: Context) -> date:
        """Date as of which the latest complete data is available.

        Defaults to yesterday; sources that know their publication date
        override this.
        """
        return date.today() - timedelta(days=1)


class Transform(ABC):
    """Abstract Transform.

    Receives an iterable of records and returns another iterable of records.
    """
    def __init__(self, **kwargs):
        self.kw = kwargs

    @abstractmethod
    def run(self, ctx: Context, rows: Batch) -> Batch:
        """Consume rows and yield transformed rows."""
        raise NotImplementedError


class Sink(ABC):
    """Abstract Sink.

    Accepts an iterable of records and produces an artifact. Returns the
    path or identifier of the produced artifact where appropriate.
    """
    def __init__(self, **kwargs):
        self.kw = kwargs

    @abstractmethod
    def run(self, ctx: Context, rows: Batch) -> Any:
        """Consume rows and return the produced artifact (or None)."""
        raise NotImplementedError
