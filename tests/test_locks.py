from __future__ import annotations

import threading
import time
from itertools import islice
from pathlib import Path

import pytest

from mapvid.core.errors import LockCancelled, LockTimeout
from mapvid.core.locks import FileLock, PollStrategy

FAST = PollStrategy(0.01)


def test_marker_exists_only_while_held(tmp_path: Path) -> None:
    lock = FileLock(tmp_path / "districts.lockfile", FAST)
    assert lock.acquire() is False
    assert lock.path.exists()
    assert "pid=" in lock.path.read_text()
    lock.release()
    assert not lock.path.exists()


def test_release_runs_when_section_raises(tmp_path: Path) -> None:
    lock = FileLock(tmp_path / "x.lockfile", FAST)
    with pytest.raises(RuntimeError):
        with lock:
            raise RuntimeError("render failed")
    assert not lock.path.exists()


def test_waiter_reports_contention(tmp_path: Path) -> None:
    path = tmp_path / "x.lockfile"
    holder = FileLock(path, FAST)
    holder.acquire()

    def release_later():
        time.sleep(0.1)
        holder.release()

    t = threading.Thread(target=release_later)
    t.start()
    waiter = FileLock(path, FAST, max_wait=5)
    try:
        assert waiter.acquire() is True
        assert waiter.contended
    finally:
        waiter.release()
        t.join()
    assert not path.exists()


def test_bounded_wait_times_out(tmp_path: Path) -> None:
    path = tmp_path / "x.lockfile"
    path.write_text("someone else")

    with pytest.raises(LockTimeout):
        FileLock(path, FAST, max_wait=0.05).acquire()
    # a lock never acquired must not remove someone else's marker
    assert path.exists()


def test_wait_can_be_cancelled(tmp_path: Path) -> None:
    path = tmp_path / "x.lockfile"
    path.write_text("someone else")
    cancel = threading.Event()
    lock = FileLock(path, PollStrategy(0.05), cancel=cancel)
    threading.Timer(0.05, cancel.set).start()

    with pytest.raises(LockCancelled):
        lock.acquire()
    lock.release()
    assert path.exists()


def test_poll_backoff_is_capped() -> None:
    delays = list(islice(PollStrategy(0.05, backoff=2.0, max_interval=0.3).delays(), 5))
    assert delays == pytest.approx([0.05, 0.1, 0.2, 0.3, 0.3])
