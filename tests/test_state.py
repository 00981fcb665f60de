from __future__ import annotations

import json
from pathlib import Path

import pytest

from mapvid.core.errors import IOFailure
from mapvid.core.locks import FileLock, PollStrategy
from mapvid.core.state import StatusLedger, VideoRecord


def _ledger(tmp_path: Path) -> StatusLedger:
    lock = FileLock(tmp_path / "status.lockfile", PollStrategy(0.01), max_wait=2)
    return StatusLedger(tmp_path / "status.json", lock)


def test_initial_ledger(tmp_path: Path) -> None:
    ledger = _ledger(tmp_path)
    ledger.ensure()

    data = json.loads((tmp_path / "status.json").read_text())
    assert data == {
        "ready": {"districts": False, "states": False},
        "rendered": {"districts": None, "states": None},
        "videos": {"districts": [], "states": []},
    }


def test_ready_flag_and_rendered_reference(tmp_path: Path) -> None:
    ledger = _ledger(tmp_path)
    ledger.set_ready("states", True, reference_date="2021-03-01")

    assert ledger.get_ready("states") is True
    assert ledger.get_ready("districts") is False
    assert ledger.rendered("states") == "2021-03-01"

    ledger.set_ready("states", False)
    assert ledger.get_ready("states") is False
    assert ledger.rendered("states") == "2021-03-01"


def test_ready_for_requires_matching_reference(tmp_path: Path) -> None:
    ledger = _ledger(tmp_path)
    ledger.set_ready("districts", True, reference_date="2021-03-01")

    assert ledger.ready_for("districts", "2021-03-01")
    assert not ledger.ready_for("districts", "2021-03-02")
    ledger.set_ready("districts", False)
    assert not ledger.ready_for("districts", "2021-03-01")


def test_transaction_holds_status_lock(tmp_path: Path) -> None:
    ledger = _ledger(tmp_path)
    with ledger.transaction() as data:
        assert (tmp_path / "status.lockfile").exists()
        data["ready"]["districts"] = True
    assert not (tmp_path / "status.lockfile").exists()
    assert ledger.get_ready("districts") is True


def test_failed_transaction_writes_nothing(tmp_path: Path) -> None:
    ledger = _ledger(tmp_path)
    ledger.ensure()
    with pytest.raises(KeyError):
        with ledger.transaction() as data:
            data["ready"]["districts"] = True
            raise KeyError("oops")
    assert ledger.get_ready("districts") is False
    assert not (tmp_path / "status.lockfile").exists()


def test_prune_videos_drops_stale_generation_then_oldest(tmp_path: Path) -> None:
    ledger = _ledger(tmp_path)
    ledger.record_video("districts", VideoRecord("videos/districts_2021-02-28_a.mp4", 1))
    for i in range(7):
        ledger.record_video("districts", VideoRecord(f"videos/districts_2021-03-01_{i}.mp4", 10 + i))

    evicted = ledger.prune_videos("districts", 5, lambda v: "2021-03-01" in v.filename)

    kept = ledger.list_videos("districts")
    assert [v.created_at for v in kept] == [16, 15, 14, 13, 12]
    assert sorted(v.created_at for v in evicted) == [1, 10, 11]


def test_corrupt_status_raises(tmp_path: Path) -> None:
    (tmp_path / "status.json").write_text("[]")
    with pytest.raises(IOFailure):
        _ledger(tmp_path).get_ready("districts")
