"""Task ledger abstraction.

Responsibilities:
- Provide the row scan and per-row field upsert used by phase runners.
- Keep the backing file human-editable (indented, key-sorted JSON rows).
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from datetime import datetime, timezone
from enum import Enum
import json
import os
from pathlib import Path
from typing import Any, Protocol

from ..models.datatypes import Task


class TaskLedger(Protocol):
    """Protocol for durable task-row storage."""

    def scan(self) -> list[Task]:
        """Return current rows in ledger order."""

    def get(self, task_id: str) -> Task | None:
        """Return one row by id, or `None` when absent."""

    def write(self, task_id: str, fields: Mapping[str, Any]) -> None:
        """Upsert named fields for one row; visible to subsequent reads."""


class LedgerError(RuntimeError):
    """Raised when the ledger file cannot be read or written."""


def _utc_now() -> datetime:
    """Return the current UTC time."""

    return datetime.now(timezone.utc)


def _cell_value(value: Any) -> Any:
    """Convert runner-side field values into JSON-ready ledger cells."""

    if isinstance(value, Enum):
        return value.value
    if isinstance(value, tuple):
        return [_cell_value(item) for item in value]
    if isinstance(value, list):
        return [_cell_value(item) for item in value]
    return value


class JsonTaskLedger:
    """Ledger stored as a JSON array of row objects in one file."""

    def __init__(self, path: Path, clock: Callable[[], datetime] = _utc_now) -> None:
        """Initialize ledger file location and timestamp clock."""

        self.path = path
        self._clock = clock

    def scan(self) -> list[Task]:
        """Return all rows as tasks, front to back."""

        return [Task.from_row(row) for row in self._load_rows()]

    def get(self, task_id: str) -> Task | None:
        """Return one task by id."""

        for row in self._load_rows():
            if str(row.get("id", "")).strip() == task_id:
                return Task.from_row(row)
        return None

    def write(self, task_id: str, fields: Mapping[str, Any]) -> None:
        """Upsert fields on a row and stamp `updated_at`."""

        rows = self._load_rows()
        target: dict[str, Any] | None = None
        for row in rows:
            if str(row.get("id", "")).strip() == task_id:
                target = row
                break
        if target is None:
            target = {"id": task_id}
            rows.append(target)
        for key, value in fields.items():
            if key == "id":
                continue
            target[key] = _cell_value(value)
        target["updated_at"] = self._clock().isoformat()
        self._save_rows(rows)

    def add(self, row: Mapping[str, Any]) -> Task:
        """Append a new row, rejecting duplicate ids."""

        task_id = str(row.get("id", "")).strip()
        if not task_id:
            raise LedgerError("Task rows require a non-empty `id`.")
        if self.get(task_id) is not None:
            raise LedgerError(f"Task `{task_id}` already exists in the ledger.")
        self.write(task_id, row)
        task = self.get(task_id)
        if task is None:
            raise LedgerError(f"Task `{task_id}` was not persisted.")
        return task

    def rows(self) -> list[dict[str, Any]]:
        """Return raw row mappings for display purposes."""

        return self._load_rows()

    def _load_rows(self) -> list[dict[str, Any]]:
        """Load and validate ledger rows from disk."""

        if not self.path.exists():
            return []
        try:
            payload = json.loads(self.path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as exc:
            raise LedgerError(f"Ledger is not valid JSON: {self.path}") from exc
        if payload is None:
            return []
        if not isinstance(payload, list) or not all(isinstance(row, dict) for row in payload):
            raise LedgerError(f"Ledger root must be a JSON array of objects: {self.path}")
        return payload

    def _save_rows(self, rows: list[dict[str, Any]]) -> None:
        """Write rows atomically so readers never observe a partial file."""

        self.path.parent.mkdir(parents=True, exist_ok=True)
        temp_path = self.path.with_suffix(f"{self.path.suffix}.tmp")
        temp_path.write_text(
            json.dumps(rows, ensure_ascii=False, indent=2, sort_keys=True),
            encoding="utf-8",
        )
        os.replace(temp_path, self.path)
