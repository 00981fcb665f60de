# mapvid/core/errors.py
"""Exception taxonomy shared by the pipeline."""

from __future__ import annotations
from typing import Iterable, Optional


class ValidationError(ValueError):
    """Bad caller input. Reported directly, never retried."""


class RangeError(ValidationError):
    """A numeric parameter is outside its permitted range."""


class RenderFailure(RuntimeError):
    """A frame render or the video encode failed."""

    def __init__(self, message: str, failed: Optional[Iterable[str]] = None, stderr: str = ""):
        super().__init__(message)
        self.failed = list(failed or [])
        self.stderr = stderr


class IOFailure(OSError):
    """A snapshot or status file could not be read or written."""


class LockTimeout(TimeoutError):
    """Waiting for a lock exceeded its configured maximum."""


class LockCancelled(RuntimeError):
    """Waiting for a lock was cancelled through its cancellation token."""
