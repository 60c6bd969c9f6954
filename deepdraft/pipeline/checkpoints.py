"""Tagged per-phase checkpoint payloads.

Responsibilities:
- Define one typed checkpoint variant per sliced phase.
- Validate stored blobs on load and reject shape mismatches explicitly.

Key types:
- `IngestionCheckpoint`: processed-item cursor plus accumulated refs and notes.
- `RawTextCheckpoint`: last completed sub-topic index plus accumulated text.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping

from ..errors import CheckpointShapeError, TaskValidationError
from ..models.datatypes import Subtopic, subtopics_from_payload

INGESTION_PHASE = "ingestion"
RAW_TEXT_PHASE = "raw_text"


def _require_tag(payload: Mapping[str, Any], phase: str) -> str:
    """Validate the phase tag and return the task id tag."""

    if payload.get("phase") != phase:
        raise CheckpointShapeError(
            f"Checkpoint phase tag `{payload.get('phase')}` does not match `{phase}`."
        )
    task_id = payload.get("task_id")
    if not isinstance(task_id, str) or not task_id.strip():
        raise CheckpointShapeError("Checkpoint is missing a `task_id` tag.")
    return task_id


def _require_str(payload: Mapping[str, Any], key: str) -> str:
    """Read a required string field."""

    value = payload.get(key)
    if not isinstance(value, str):
        raise CheckpointShapeError(f"Checkpoint field `{key}` must be a string.")
    return value


def _require_int(payload: Mapping[str, Any], key: str, minimum: int) -> int:
    """Read a required integer field with a lower bound."""

    value = payload.get(key)
    if isinstance(value, bool) or not isinstance(value, int) or value < minimum:
        raise CheckpointShapeError(f"Checkpoint field `{key}` must be an integer >= {minimum}.")
    return value


def _require_str_list(payload: Mapping[str, Any], key: str) -> tuple[str, ...]:
    """Read a required list-of-strings field."""

    value = payload.get(key)
    if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
        raise CheckpointShapeError(f"Checkpoint field `{key}` must be a list of strings.")
    return tuple(value)


@dataclass(frozen=True, slots=True)
class IngestionCheckpoint:
    """Resumable state of a paused ingestion slice.

    Attributes:
        task_id: Task the checkpoint belongs to.
        processed_items: Item names already handled (stored or skipped), in order.
        file_refs: Document refs stored so far.
        notes: Skip notes recorded so far.
        total_chars: Extracted characters counted against the cumulative budget.
        prompt: Copy of the task prompt read when the phase started.
    """

    task_id: str
    processed_items: tuple[str, ...] = ()
    file_refs: tuple[str, ...] = ()
    notes: tuple[str, ...] = ()
    total_chars: int = 0
    prompt: str = ""

    def to_payload(self) -> dict[str, Any]:
        """Return the tagged JSON-ready blob."""

        return {
            "phase": INGESTION_PHASE,
            "task_id": self.task_id,
            "processed_items": list(self.processed_items),
            "file_refs": list(self.file_refs),
            "notes": list(self.notes),
            "total_chars": self.total_chars,
            "prompt": self.prompt,
        }

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "IngestionCheckpoint":
        """Validate and load a stored blob.

        Raises:
            CheckpointShapeError: If any tag or field does not match this variant.
        """

        return cls(
            task_id=_require_tag(payload, INGESTION_PHASE),
            processed_items=_require_str_list(payload, "processed_items"),
            file_refs=_require_str_list(payload, "file_refs"),
            notes=_require_str_list(payload, "notes"),
            total_chars=_require_int(payload, "total_chars", 0),
            prompt=_require_str(payload, "prompt"),
        )


@dataclass(frozen=True, slots=True)
class RawTextCheckpoint:
    """Resumable state of a paused raw-text slice.

    Attributes:
        task_id: Task the checkpoint belongs to.
        last_completed: Index of the last fully generated sub-topic, `-1` before any.
        accumulated_text: Marked text generated so far.
        subtopics: Sub-topics including any outlines revised by reflection.
        prompt: Copy of the task prompt read when the phase started.
        mode: Copy of the task mode read when the phase started.
    """

    task_id: str
    last_completed: int = -1
    accumulated_text: str = ""
    subtopics: tuple[Subtopic, ...] = ()
    prompt: str = ""
    mode: str = "Deep"

    def to_payload(self) -> dict[str, Any]:
        """Return the tagged JSON-ready blob."""

        return {
            "phase": RAW_TEXT_PHASE,
            "task_id": self.task_id,
            "last_completed": self.last_completed,
            "accumulated_text": self.accumulated_text,
            "subtopics": [item.to_payload() for item in self.subtopics],
            "prompt": self.prompt,
            "mode": self.mode,
        }

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "RawTextCheckpoint":
        """Validate and load a stored blob.

        Raises:
            CheckpointShapeError: If any tag or field does not match this variant.
        """

        task_id = _require_tag(payload, RAW_TEXT_PHASE)
        try:
            subtopics = subtopics_from_payload(payload.get("subtopics"), "subtopics")
        except TaskValidationError as exc:
            raise CheckpointShapeError(str(exc)) from exc
        last_completed = _require_int(payload, "last_completed", -1)
        # A paused slice always leaves at least one sub-topic to draft.
        if last_completed >= len(subtopics) - 1 and not (last_completed == -1 and not subtopics):
            raise CheckpointShapeError(
                "Checkpoint field `last_completed` leaves no sub-topic to resume."
            )
        return cls(
            task_id=task_id,
            last_completed=last_completed,
            accumulated_text=_require_str(payload, "accumulated_text"),
            subtopics=subtopics,
            prompt=_require_str(payload, "prompt"),
            mode=_require_str(payload, "mode"),
        )
