# mapvid/core/locks.py
"""File-presence locks.

A lock is held while its marker file exists. Markers are created with an
exclusive create, so two processes can never both observe "absent" and both
create the marker. A crashed holder leaves its marker behind: the lock is
crash-visible, not crash-safe, and a stale marker has to be removed by hand.
"""

from __future__ import annotations
import os
import threading
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator, Optional

from .errors import LockCancelled, LockTimeout


@dataclass(frozen=True)
class PollStrategy:
    """Delays between presence checks while a lock is held by someone else."""

    interval: float
    backoff: float = 1.0
    max_interval: Optional[float] = None

    def delays(self) -> Iterator[float]:
        delay = self.interval
        while True:
            yield delay
            delay *= self.backoff
            if self.max_interval is not None:
                delay = min(delay, self.max_interval)


class FileLock:
    """Mutual exclusion through an exclusively-created marker file.

    Usage:
        lock = FileLock(data_dir / "districts.lockfile", PollStrategy(2.5))
        with lock:
            ...

    `acquire()` returns True when it had to wait for another holder, which
    tells the caller to re-check whether the work it wanted is already done.
    """

    def __init__(
        self,
        path: str | Path,
        poll: PollStrategy,
        max_wait: Optional[float] = None,
        cancel: Optional[threading.Event] = None,
    ):
        self.path = Path(path)
        self.poll = poll
        self.max_wait = max_wait
        self.cancel = cancel or threading.Event()
        self.contended = False
        self._owned = False

    @property
    def held(self) -> bool:
        """True if any process currently holds the lock."""
        return self.path.exists()

    def _try_create(self) -> bool:
        try:
            fd = os.open(self.path.as_posix(), os.O_CREAT | os.O_EXCL | os.O_WRONLY)
        except FileExistsError:
            return False
        try:
            payload = f"pid={os.getpid()} utc={datetime.now(timezone.utc).isoformat()}\n"
            os.write(fd, payload.encode("utf-8"))
        finally:
            os.close(fd)
        return True

    def acquire(self) -> bool:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        started = time.monotonic()
        waited = False
        delays = self.poll.delays()
        while not self._try_create():
            waited = True
            delay = next(delays)
            if self.max_wait is not None:
                remaining = self.max_wait - (time.monotonic() - started)
                if remaining <= 0:
                    raise LockTimeout(f"Timed out after {self.max_wait}s waiting for {self.path}")
                delay = min(delay, remaining)
            if self.cancel.wait(delay):
                raise LockCancelled(f"Cancelled while waiting for {self.path}")
        self._owned = True
        self.contended = waited
        return waited

    def release(self) -> None:
        if not self._owned:
            return
        self._owned = False
        self.path.unlink(missing_ok=True)

    def __enter__(self) -> "FileLock":
        self.acquire()
        return self

    def __exit__(self, *exc) -> None:
        self.release()
