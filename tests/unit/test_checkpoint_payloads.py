"""Unit tests for tagged per-phase checkpoint payloads."""

from __future__ import annotations

from typing import Any

import pytest

from deepdraft.errors import CheckpointShapeError
from deepdraft.models.datatypes import Subtopic
from deepdraft.pipeline.checkpoints import IngestionCheckpoint, RawTextCheckpoint


def _raw_text_payload(**overrides: Any) -> dict[str, Any]:
    """Return a valid raw-text checkpoint payload with optional overrides."""

    payload: dict[str, Any] = {
        "phase": "raw_text",
        "task_id": "t1",
        "last_completed": 0,
        "accumulated_text": "[[SECTION: A]]\n\nBody.",
        "subtopics": [{"title": "A", "outline": "a"}, {"title": "B", "outline": "b"}],
        "prompt": "Goal",
        "mode": "Deep",
    }
    payload.update(overrides)
    return payload


def test_ingestion_checkpoint_payload_is_tagged_and_loads_back() -> None:
    """Ingestion checkpoints carry their phase tag and all progress fields."""

    checkpoint = IngestionCheckpoint(
        task_id="t1",
        processed_items=("a.txt", "b.pdf"),
        file_refs=("ingested/t1/a.md",),
        notes=("Skipped `b.pdf`: unsupported item type.",),
        total_chars=120,
        prompt="Goal",
    )

    payload = checkpoint.to_payload()

    assert payload["phase"] == "ingestion"
    assert payload["task_id"] == "t1"
    assert IngestionCheckpoint.from_payload(payload) == checkpoint


def test_raw_text_checkpoint_loads_valid_payload() -> None:
    """Raw-text checkpoints restore sub-topics and the completion cursor."""

    checkpoint = RawTextCheckpoint.from_payload(_raw_text_payload())

    assert checkpoint.last_completed == 0
    assert checkpoint.subtopics == (Subtopic("A", "a"), Subtopic("B", "b"))
    assert RawTextCheckpoint.from_payload(checkpoint.to_payload()) == checkpoint


@pytest.mark.parametrize(
    ("overrides", "message"),
    [
        ({"phase": "ingestion"}, "does not match `raw_text`"),
        ({"task_id": ""}, "missing a `task_id`"),
        ({"last_completed": "0"}, "`last_completed` must be an integer"),
        ({"last_completed": -2}, "`last_completed` must be an integer >= -1"),
        ({"last_completed": 1}, "leaves no sub-topic"),
        ({"accumulated_text": None}, "`accumulated_text` must be a string"),
        ({"subtopics": "A,B"}, "JSON array"),
        ({"mode": 3}, "`mode` must be a string"),
    ],
)
def test_raw_text_checkpoint_rejects_shape_mismatches(
    overrides: dict[str, Any], message: str
) -> None:
    """Every malformed field raises `CheckpointShapeError`."""

    with pytest.raises(CheckpointShapeError, match=message):
        RawTextCheckpoint.from_payload(_raw_text_payload(**overrides))


def test_ingestion_checkpoint_rejects_shape_mismatches() -> None:
    """Wrong tags and field types are rejected for ingestion payloads."""

    payload = IngestionCheckpoint(task_id="t1", prompt="Goal").to_payload()

    with pytest.raises(CheckpointShapeError, match="processed_items"):
        IngestionCheckpoint.from_payload({**payload, "processed_items": "a.txt"})
    with pytest.raises(CheckpointShapeError, match="total_chars"):
        IngestionCheckpoint.from_payload({**payload, "total_chars": True})
    with pytest.raises(CheckpointShapeError, match="does not match `ingestion`"):
        IngestionCheckpoint.from_payload({**payload, "phase": "raw_text"})
