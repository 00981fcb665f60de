# mapvid/core/utils.py
"""Shared helpers: the pipeline logger, component lookup, HTTP retry, timing."""

from __future__ import annotations
import functools
import logging
import time
from contextlib import contextmanager
from importlib import import_module
from typing import Any, Callable, Iterator, Optional, TypeVar

T = TypeVar("T")

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


def make_logger(name: str = "mapvid", level: int = logging.INFO) -> logging.Logger:
    """Logger with a single stderr handler; later calls reuse it."""
    logger = logging.getLogger(name)
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(handler)
        logger.setLevel(level)
    return logger


def resolve_class(path: str) -> Any:
    """Import the object named by a pipeline `class:` entry.

    Both "plugins.incidence.sink.render_frame:MatplotlibFrameRenderer" and the
    dotted "plugins.incidence.sink.render_frame.MatplotlibFrameRenderer" work.
    """
    if ":" in path:
        mod_path, attr = path.split(":", 1)
    else:
        mod_path, _, attr = path.rpartition(".")
    return getattr(import_module(mod_path), attr)


def retry(
    tries: int = 3,
    delay: float = 1.0,
    backoff: float = 2.0,
    allowed_exceptions: tuple[type, ...] = (Exception,),
) -> Callable[[Callable[..., T]], Callable[..., T]]:
    """Re-run a call that raised one of `allowed_exceptions`.

    Sleeps `delay` seconds before the second attempt, multiplied by `backoff`
    after each further failure; the last error is re-raised.

        @retry(allowed_exceptions=(requests.RequestException,))
        def _get_json(self, url): ...
    """
    def deco(fn: Callable[..., T]) -> Callable[..., T]:
        @functools.wraps(fn)
        def wrapped(*args, **kwargs) -> T:
            wait = delay
            last_exc: Optional[BaseException] = None
            for attempt in range(1, tries + 1):
                try:
                    return fn(*args, **kwargs)
                except allowed_exceptions as e:
                    last_exc = e
                    if attempt == tries:
                        break
                    time.sleep(wait)
                    wait *= backoff
            raise last_exc  # type: ignore[misc]
        return wrapped
    return deco


@contextmanager
def timed(log: Any, label: str) -> Iterator[None]:
    """Log how long the wrapped block took, e.g. 'districts snapshot: 1.42 s'."""
    start = time.perf_counter()
    try:
        yield
    finally:
        log.info(f"{label}: {time.perf_counter() - start:.2f} s")
