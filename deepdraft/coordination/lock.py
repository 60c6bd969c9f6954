"""Process-wide mutual exclusion for phase runners.

Responsibilities:
- Serialize every runner invocation behind one global critical section.
- Support a bounded acquisition wait so a busy invocation becomes a no-op.
"""

from __future__ import annotations

from collections.abc import Callable
import fcntl
from pathlib import Path
from time import monotonic, sleep
from typing import IO, Protocol


class PhaseLock(Protocol):
    """Protocol for the global runner lock."""

    def try_acquire(self, timeout_seconds: float) -> bool:
        """Try to acquire within a timeout and report success."""

    def release(self) -> None:
        """Release a held lock; releasing an unheld lock is a no-op."""


class FileLock:
    """Advisory `flock` lock on a file shared by every runner process."""

    def __init__(
        self,
        path: Path,
        poll_interval_seconds: float = 0.1,
        clock: Callable[[], float] = monotonic,
        sleeper: Callable[[float], None] = sleep,
    ) -> None:
        """Initialize lock file location and polling policy."""

        self.path = path
        self.poll_interval_seconds = poll_interval_seconds
        self._clock = clock
        self._sleeper = sleeper
        self._handle: IO[str] | None = None

    @property
    def held(self) -> bool:
        """Return whether this instance currently holds the lock."""

        return self._handle is not None

    def try_acquire(self, timeout_seconds: float) -> bool:
        """Poll a non-blocking exclusive lock until acquired or timed out."""

        if self._handle is not None:
            return False
        self.path.parent.mkdir(parents=True, exist_ok=True)
        handle = self.path.open("a+")
        deadline = self._clock() + max(0.0, timeout_seconds)
        while True:
            try:
                fcntl.flock(handle.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
            except BlockingIOError:
                if self._clock() >= deadline:
                    handle.close()
                    return False
                self._sleeper(self.poll_interval_seconds)
                continue
            self._handle = handle
            return True

    def release(self) -> None:
        """Unlock and close the lock file handle."""

        handle = self._handle
        if handle is None:
            return
        self._handle = None
        try:
            fcntl.flock(handle.fileno(), fcntl.LOCK_UN)
        finally:
            handle.close()
