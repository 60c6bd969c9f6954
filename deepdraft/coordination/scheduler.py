"""One-shot continuation scheduling.

Responsibilities:
- Record "re-invoke entry point X after N seconds" requests durably.
- Hand due requests to whatever drives invocations (the CLI `tick` command).
"""

from __future__ import annotations

from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass
import fcntl
import json
import os
from pathlib import Path
from time import time
from typing import Any, Protocol


class Scheduler(Protocol):
    """Protocol for requesting a later runner invocation."""

    def schedule_once(self, entry_point: str, delay_seconds: float) -> None:
        """Register a fire-and-forget continuation."""


@dataclass(frozen=True, slots=True)
class Continuation:
    """A pending re-invocation request.

    Attributes:
        entry_point: Runner entry point name (a phase name).
        due_at: Epoch seconds after which the continuation may fire.
    """

    entry_point: str
    due_at: float

    def to_payload(self) -> dict[str, Any]:
        """Return JSON-ready mapping."""

        return {"entry_point": self.entry_point, "due_at": self.due_at}


class ContinuationQueue(Scheduler, Protocol):
    """Scheduler that also hands stored continuations back to whatever drives runs."""

    def pending(self) -> list[Continuation]:
        """Return stored continuations ordered by due time."""

    def pop_due(self, now: float | None = None) -> list[Continuation]:
        """Remove and return continuations that are due."""


class FileScheduler:
    """Scheduler persisting continuations in a JSON file."""

    def __init__(self, path: Path, clock: Callable[[], float] = time) -> None:
        """Initialize schedule file location and wall clock."""

        self.path = path
        self._clock = clock

    def schedule_once(self, entry_point: str, delay_seconds: float) -> None:
        """Append a continuation due after `delay_seconds`."""

        continuation = Continuation(
            entry_point=entry_point,
            due_at=self._clock() + max(0.0, delay_seconds),
        )
        with self._file_lock():
            entries = self._load()
            entries.append(continuation)
            self._save(entries)

    def pending(self) -> list[Continuation]:
        """Return every stored continuation ordered by due time."""

        with self._file_lock():
            return sorted(self._load(), key=lambda entry: entry.due_at)

    def pop_due(self, now: float | None = None) -> list[Continuation]:
        """Remove and return continuations due at or before `now`."""

        current = self._clock() if now is None else now
        with self._file_lock():
            entries = self._load()
            due = [entry for entry in entries if entry.due_at <= current]
            if due:
                self._save([entry for entry in entries if entry.due_at > current])
        return sorted(due, key=lambda entry: entry.due_at)

    @contextmanager
    def _file_lock(self) -> Iterator[None]:
        """Hold an exclusive lock on a sidecar file around read-modify-write."""

        lock_path = self.path.with_suffix(".lock")
        lock_path.parent.mkdir(parents=True, exist_ok=True)
        handle = lock_path.open("a+")
        try:
            fcntl.flock(handle.fileno(), fcntl.LOCK_EX)
            yield
        finally:
            fcntl.flock(handle.fileno(), fcntl.LOCK_UN)
            handle.close()

    def _load(self) -> list[Continuation]:
        """Load stored continuations, ignoring malformed entries."""

        if not self.path.exists():
            return []
        try:
            payload = json.loads(self.path.read_text(encoding="utf-8"))
        except json.JSONDecodeError:
            return []
        if not isinstance(payload, list):
            return []
        entries: list[Continuation] = []
        for item in payload:
            if not isinstance(item, dict):
                continue
            entry_point = item.get("entry_point")
            due_at = item.get("due_at")
            if isinstance(entry_point, str) and isinstance(due_at, int | float):
                entries.append(Continuation(entry_point=entry_point, due_at=float(due_at)))
        return entries

    def _save(self, entries: list[Continuation]) -> None:
        """Write continuations atomically."""

        temp_path = self.path.with_suffix(".json.tmp")
        temp_path.write_text(
            json.dumps([entry.to_payload() for entry in entries], indent=2, sort_keys=True),
            encoding="utf-8",
        )
        os.replace(temp_path, self.path)
