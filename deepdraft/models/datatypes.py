"""Core datatypes shared across DeepDraft modules.

Responsibilities:
- Define the task stage machine and its forward ordering.
- Represent ledger rows, planned sub-topics, and finalization chunks.
- Provide explicit typing for reproducibility and serialization.

Key types:
- `Stage`, `TaskMode`, `Subtopic`, `Task`, `Section`, `SectionChunk`,
  and `InvocationResult`.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
import json
from typing import Any, Mapping

from ..errors import TaskValidationError
from ..parsing import loads_json_cell, normalize_optional_string, parse_non_negative_int


class Stage(str, Enum):
    """Task stage values stored verbatim in the ledger `stage` column."""

    PENDING_INGESTION = "PendingIngestion"
    INGESTING = "Ingesting"
    PAUSED_INGESTION = "PausedIngestion"
    INGESTED = "Ingested"
    PLANNING = "Planning"
    PLANNED = "Planned"
    GENERATING_TEXT = "GeneratingText"
    PAUSED_TEXT = "PausedText"
    TEXT_SAVED = "TextSaved"
    CONSOLIDATING = "Consolidating"
    FINALIZING = "Finalizing"
    COMPLETED = "Completed"
    ERROR_INGESTION = "Error-Ingestion"
    ERROR_PLANNING = "Error-Planning"
    ERROR_TEXT = "Error-Text"
    ERROR_FINALIZATION = "Error-Finalization"


# Paused and active stages of one phase share an order value.
_STAGE_ORDER: dict[Stage, int] = {
    Stage.PENDING_INGESTION: 0,
    Stage.INGESTING: 1,
    Stage.PAUSED_INGESTION: 1,
    Stage.INGESTED: 2,
    Stage.PLANNING: 3,
    Stage.PLANNED: 4,
    Stage.GENERATING_TEXT: 5,
    Stage.PAUSED_TEXT: 5,
    Stage.TEXT_SAVED: 6,
    Stage.CONSOLIDATING: 7,
    Stage.FINALIZING: 8,
    Stage.COMPLETED: 9,
}

_ERROR_STAGES = frozenset(
    {
        Stage.ERROR_INGESTION,
        Stage.ERROR_PLANNING,
        Stage.ERROR_TEXT,
        Stage.ERROR_FINALIZATION,
    }
)


def parse_stage(value: object) -> Stage | None:
    """Return the `Stage` for a ledger cell value, or `None` when unrecognized."""

    if isinstance(value, Stage):
        return value
    normalized = normalize_optional_string(value)
    if normalized is None:
        return None
    try:
        return Stage(normalized)
    except ValueError:
        return None


def stage_order(stage: Stage) -> int | None:
    """Return forward order of a stage, or `None` for error stages."""

    return _STAGE_ORDER.get(stage)


def is_error_stage(stage: Stage) -> bool:
    """Return whether a stage is one of the absorbing error stages."""

    return stage in _ERROR_STAGES


def is_terminal(stage: Stage | None) -> bool:
    """Return whether no runner will ever pick the stage up again."""

    return stage is Stage.COMPLETED or (stage is not None and is_error_stage(stage))


class TaskMode(str, Enum):
    """Generation mode of a task."""

    SIMPLE = "Simple"
    DEEP = "Deep"


def is_deep_mode(mode: object) -> bool:
    """Return whether a raw mode cell selects Deep mode; anything else runs as Simple."""

    return (normalize_optional_string(mode) or "").lower() == TaskMode.DEEP.value.lower()


@dataclass(frozen=True, slots=True)
class Subtopic:
    """A planned section of a Deep-mode task.

    Attributes:
        title: Section title, also used as the section marker text.
        outline: Free-text outline; may be revised by the reflection step.
    """

    title: str
    outline: str

    def to_payload(self) -> dict[str, str]:
        """Return JSON-ready mapping."""

        return {"title": self.title, "outline": self.outline}


def subtopics_from_payload(raw: Any, field_name: str = "subtopics") -> tuple[Subtopic, ...]:
    """Validate a decoded sub-topic list payload.

    Raises:
        TaskValidationError: If the payload is not a list of title/outline objects.
    """

    if raw is None:
        return ()
    if not isinstance(raw, list):
        raise TaskValidationError(f"`{field_name}` must be a JSON array of sub-topics.")
    subtopics: list[Subtopic] = []
    for position, item in enumerate(raw):
        if not isinstance(item, Mapping):
            raise TaskValidationError(
                f"`{field_name}[{position}]` must be an object with `title` and `outline`."
            )
        title = item.get("title")
        outline = item.get("outline", "")
        if not isinstance(title, str) or not isinstance(outline, str):
            raise TaskValidationError(
                f"`{field_name}[{position}]` must have string `title` and `outline` fields."
            )
        subtopics.append(Subtopic(title=title.strip(), outline=outline.strip()))
    return tuple(subtopics)


def subtopics_to_json(subtopics: tuple[Subtopic, ...] | list[Subtopic]) -> str:
    """Serialize sub-topics into the ledger's JSON text cell form."""

    return json.dumps([item.to_payload() for item in subtopics], ensure_ascii=False)


@dataclass(frozen=True, slots=True)
class Task:
    """One ledger row.

    Raw cells that are parsed lazily (`subtopics_raw`, `max_subtopics_raw`) keep a
    malformed row scannable; the phase that needs them raises
    `TaskValidationError` instead.

    Attributes:
        task_id: Unique row identity.
        stage: Parsed stage, or `None` when the cell holds an unknown value.
        mode: Raw mode cell (`Simple` or `Deep`).
        prompt: Task goal text.
        file_refs: Ordered document refs produced by ingestion.
        output_ref: Current intermediate or final artifact ref.
        error: Last error message written by a runner.
        notes: Skip notes recorded for resource-limit conditions.
        updated_at: ISO-8601 timestamp of the last ledger write.
        subtopics_raw: Stored sub-topic list (JSON text or decoded list).
        max_subtopics_raw: Stored sub-topic cap cell.
    """

    task_id: str
    stage: Stage | None
    mode: str = TaskMode.SIMPLE.value
    prompt: str = ""
    file_refs: tuple[str, ...] = field(default_factory=tuple)
    output_ref: str | None = None
    error: str | None = None
    notes: tuple[str, ...] = field(default_factory=tuple)
    updated_at: str | None = None
    subtopics_raw: Any = None
    max_subtopics_raw: Any = None

    @property
    def is_deep(self) -> bool:
        """Return whether the task runs in Deep mode."""

        return is_deep_mode(self.mode)

    def subtopics(self) -> tuple[Subtopic, ...]:
        """Parse stored sub-topics.

        Raises:
            TaskValidationError: If the stored cell is malformed.
        """

        try:
            decoded = loads_json_cell(self.subtopics_raw, "subtopics")
        except ValueError as exc:
            raise TaskValidationError(str(exc)) from exc
        return subtopics_from_payload(decoded)

    def max_subtopics(self) -> int:
        """Parse the sub-topic cap where `0` means unlimited.

        Raises:
            TaskValidationError: If the stored cell is not a non-negative integer.
        """

        try:
            return parse_non_negative_int(self.max_subtopics_raw, "max_subtopics")
        except ValueError as exc:
            raise TaskValidationError(str(exc)) from exc

    def require_prompt(self) -> str:
        """Return the normalized prompt or raise when it is missing."""

        prompt = normalize_optional_string(self.prompt)
        if prompt is None:
            raise TaskValidationError(f"Task `{self.task_id}` has no prompt.")
        return prompt

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "Task":
        """Build a task from a ledger row mapping without raising on bad cells."""

        return cls(
            task_id=str(row.get("id", "")).strip(),
            stage=parse_stage(row.get("stage")),
            mode=normalize_optional_string(row.get("mode")) or TaskMode.SIMPLE.value,
            prompt=str(row.get("prompt") or ""),
            file_refs=_string_tuple(row.get("file_refs")),
            output_ref=normalize_optional_string(row.get("output_ref")),
            error=normalize_optional_string(row.get("error")),
            notes=_string_tuple(row.get("notes")),
            updated_at=normalize_optional_string(row.get("updated_at")),
            subtopics_raw=row.get("subtopics"),
            max_subtopics_raw=row.get("max_subtopics"),
        )


def _string_tuple(raw: Any) -> tuple[str, ...]:
    """Coerce a list-like ledger cell into a tuple of non-empty strings."""

    if raw is None:
        return ()
    if isinstance(raw, str):
        value = normalize_optional_string(raw)
        return (value,) if value is not None else ()
    if isinstance(raw, list | tuple):
        return tuple(str(item) for item in raw if normalize_optional_string(item) is not None)
    return ()


@dataclass(frozen=True, slots=True)
class Section:
    """One marker-delimited span of accumulated text.

    Attributes:
        title: Section title from the marker, or `None` for leading text.
        body: Section body text without the marker line.
    """

    title: str | None
    body: str


@dataclass(frozen=True, slots=True)
class SectionChunk:
    """A size-bounded, section-aligned span processed independently.

    Attributes:
        index: 0-based chunk index within the split.
        sections: Ordered sections packed into this chunk.
        is_first: Whether this is the first chunk of the split.
        is_last: Whether this is the last chunk of the split.
    """

    index: int
    sections: tuple[Section, ...]
    is_first: bool = False
    is_last: bool = False

    @property
    def size(self) -> int:
        """Return total section body size in characters."""

        return sum(len(section.body) for section in self.sections)

    @property
    def titles(self) -> tuple[str, ...]:
        """Return titles of sections carried by this chunk."""

        return tuple(section.title for section in self.sections if section.title)


@dataclass(frozen=True, slots=True)
class InvocationResult:
    """Outcome of one phase-runner invocation.

    Attributes:
        phase: Phase name.
        outcome: One of `skipped`, `idle`, `paused`, `completed`, `failed`.
        task_id: Selected task id, when one was selected.
        stage: Stage written by the invocation, when any.
        detail: Short human-readable detail.
    """

    phase: str
    outcome: str
    task_id: str | None = None
    stage: Stage | None = None
    detail: str = ""
