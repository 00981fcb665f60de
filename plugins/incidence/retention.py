"""Evict superseded videos and snapshots after a successful encode."""

from __future__ import annotations
from pathlib import Path
from typing import Any, List

from mapvid.core.state import StatusLedger, VideoRecord
from plugins.incidence.snapshots import SnapshotStore


class RetentionManager:
    def __init__(self, ledger: StatusLedger, store: SnapshotStore, keep_videos: int = 5,
                 keep_snapshots: int = 2, log: Any = None):
        self.ledger = ledger
        self.store = store
        self.keep_videos = keep_videos
        self.keep_snapshots = keep_snapshots
        self.log = log

    def apply(self, region: str, record: VideoRecord, reference_date: str) -> List[VideoRecord]:
        """Record the new video, then drop stale generations and the oldest extras."""
        self.ledger.record_video(region, record)
        evicted = self.ledger.prune_videos(
            region,
            self.keep_videos,
            lambda video: reference_date in Path(video.filename).name,
        )
        for video in evicted:
            Path(video.filename).unlink(missing_ok=True)
        if evicted and self.log:
            self.log.info(f"{region}: evicted {len(evicted)} video(s)")
        self.store.prune(self.keep_snapshots, protect=self.ledger.rendered(region))
        return evicted
