"""Checkpoint store abstraction.

Responsibilities:
- Persist JSON checkpoint blobs keyed by `(phase, task_id)`.
- List keys by prefix so a runner can find its own paused tasks.
"""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any, Protocol
from urllib.parse import quote, unquote

from ..errors import CheckpointShapeError

KEY_SEPARATOR = ":"


def checkpoint_key(phase: str, task_id: str) -> str:
    """Build the composite store key for a phase and task."""

    return f"{phase}{KEY_SEPARATOR}{task_id}"


def split_checkpoint_key(key: str) -> tuple[str, str]:
    """Split a composite key into `(phase, task_id)`."""

    phase, _, task_id = key.partition(KEY_SEPARATOR)
    return phase, task_id


class CheckpointStore(Protocol):
    """Protocol for durable checkpoint blobs."""

    def get(self, phase: str, task_id: str) -> dict[str, Any] | None:
        """Return the blob for a key, or `None` when absent."""

    def set(self, phase: str, task_id: str, blob: dict[str, Any]) -> None:
        """Store the blob for a key, replacing any previous one."""

    def delete(self, phase: str, task_id: str) -> None:
        """Delete the blob for a key; absent keys are ignored."""

    def list_keys(self, prefix: str = "") -> list[str]:
        """Return sorted composite keys starting with a prefix."""


class FileCheckpointStore:
    """Filesystem store with one JSON file per `(phase, task_id)` key."""

    def __init__(self, root: Path) -> None:
        """Initialize the store with a root checkpoints directory."""

        self.root = root

    def get(self, phase: str, task_id: str) -> dict[str, Any] | None:
        """Load a blob, raising `CheckpointShapeError` for unreadable content."""

        path = self._path(phase, task_id)
        if not path.exists():
            return None
        try:
            payload = json.loads(path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as exc:
            raise CheckpointShapeError(
                f"Checkpoint `{checkpoint_key(phase, task_id)}` is not valid JSON."
            ) from exc
        if not isinstance(payload, dict):
            raise CheckpointShapeError(
                f"Checkpoint `{checkpoint_key(phase, task_id)}` must be a JSON object."
            )
        return payload

    def set(self, phase: str, task_id: str, blob: dict[str, Any]) -> None:
        """Write a blob atomically."""

        path = self._path(phase, task_id)
        path.parent.mkdir(parents=True, exist_ok=True)
        temp_path = path.with_suffix(".json.tmp")
        temp_path.write_text(
            json.dumps(blob, ensure_ascii=False, indent=2, sort_keys=True),
            encoding="utf-8",
        )
        os.replace(temp_path, path)

    def delete(self, phase: str, task_id: str) -> None:
        """Remove a blob when present."""

        self._path(phase, task_id).unlink(missing_ok=True)

    def list_keys(self, prefix: str = "") -> list[str]:
        """Return sorted keys matching a prefix across all phase directories."""

        if not self.root.exists():
            return []
        keys: list[str] = []
        for phase_dir in sorted(path for path in self.root.iterdir() if path.is_dir()):
            for blob_path in sorted(phase_dir.glob("*.json")):
                key = checkpoint_key(unquote(phase_dir.name), unquote(blob_path.stem))
                if key.startswith(prefix):
                    keys.append(key)
        return sorted(keys)

    def _path(self, phase: str, task_id: str) -> Path:
        """Return the blob path for a key with filesystem-safe segments."""

        return self.root / quote(phase, safe="") / f"{quote(task_id, safe='')}.json"
