"""Shared pytest fixtures for the full DeepDraft test suite."""

from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
import io
from pathlib import Path
from typing import Any

import pytest

from deepdraft.config import DeepDraftConfig
from deepdraft.coordination.scheduler import Continuation
from deepdraft.io.checkpoints import FileCheckpointStore
from deepdraft.io.ledger import JsonTaskLedger
from deepdraft.io.storage import FileDocumentStore
from deepdraft.io.text_extractor import TextExtractor
from deepdraft.pipeline import DeepDraftEngine
from deepdraft.telemetry.logger import RunLogger


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0) -> None:
        """Initialize the clock at a fixed time."""

        self.now = start

    def __call__(self) -> float:
        """Return the current fake time."""

        return self.now

    def advance(self, seconds: float) -> None:
        """Move the clock forward."""

        self.now += seconds


class FakeLock:
    """In-memory lock double that can simulate contention."""

    def __init__(self, available: bool = True) -> None:
        """Initialize lock availability and counters."""

        self.available = available
        self.held = False
        self.acquire_calls = 0
        self.release_calls = 0

    def try_acquire(self, timeout_seconds: float) -> bool:
        """Grant the lock only when available and not held."""

        _ = timeout_seconds
        self.acquire_calls += 1
        if not self.available or self.held:
            return False
        self.held = True
        return True

    def release(self) -> None:
        """Release the lock."""

        self.release_calls += 1
        self.held = False


class RecordingScheduler:
    """Scheduler double recording continuation requests."""

    def __init__(self) -> None:
        """Initialize recorded request storage."""

        self.requests: list[tuple[str, float]] = []

    def schedule_once(self, entry_point: str, delay_seconds: float) -> None:
        """Record a continuation request."""

        self.requests.append((entry_point, delay_seconds))

    def pending(self) -> list[Continuation]:
        """Return recorded requests without removing them."""

        return [Continuation(entry_point=name, due_at=0.0) for name, _delay in self.requests]

    def pop_due(self, now: float | None = None) -> list[Continuation]:
        """Return and clear every recorded request as due."""

        _ = now
        due = self.pending()
        self.requests.clear()
        return due


@dataclass
class GenerationCall:
    """One recorded generation call."""

    prompt: str
    context_refs: tuple[str, ...]
    model: str | None


@dataclass
class ScriptedGeneration:
    """Generation client double answering through a responder callable."""

    responder: Callable[[str], str]
    calls: list[GenerationCall] = field(default_factory=list)
    on_call: Callable[[str], None] | None = None

    def generate(
        self,
        prompt: str,
        context_refs: Sequence[str] = (),
        model: str | None = None,
    ) -> str:
        """Record the call and return the scripted reply."""

        self.calls.append(GenerationCall(prompt, tuple(context_refs), model))
        if self.on_call is not None:
            self.on_call(prompt)
        return self.responder(prompt)

    def prompts_starting_with(self, prefix: str) -> list[str]:
        """Return recorded prompts with a given prefix."""

        return [call.prompt for call in self.calls if call.prompt.startswith(prefix)]


class RecordingLedger(JsonTaskLedger):
    """JSON ledger that records every stage write per task."""

    def __init__(self, path: Path) -> None:
        """Initialize the ledger and the stage history."""

        super().__init__(path)
        self.stage_history: dict[str, list[str]] = {}
        self.write_count = 0

    def write(self, task_id: str, fields: Mapping[str, Any]) -> None:
        """Record stage transitions before delegating."""

        self.write_count += 1
        if "stage" in fields:
            stage = fields["stage"]
            self.stage_history.setdefault(task_id, []).append(getattr(stage, "value", stage))
        super().write(task_id, fields)


def default_responder(prompt: str) -> str:
    """Answer every prompt kind with deterministic, contract-valid text."""

    if prompt.startswith("Plan a long-form") or "too many" in prompt.split("\n", 1)[0]:
        return '[{"title": "Alpha", "outline": "a"}, {"title": "Beta", "outline": "b"}]'
    if prompt.startswith("Review the outline"):
        return ""
    if prompt.startswith("Write the next section"):
        title = prompt.split("Section title: ", 1)[1].split("\n", 1)[0]
        return f"Body of {title}.\n\nSecond paragraph of {title}."
    if prompt.startswith("Write a complete"):
        return "Whole document text.\n\nWith two paragraphs."
    if prompt.startswith("Edit the following part"):
        return "Edited part."
    if prompt.startswith("Produce the front matter"):
        return (
            "<<<TITLE>>>\nAssembled Title\n<<<SUMMARY>>>\nShort summary.\n"
            "<<<REFERENCES>>>\n- Ref one\n<<<END>>>"
        )
    if prompt.startswith("Edit the draft below"):
        return (
            "<<<TITLE>>>\nSingle Pass Title\n<<<SUMMARY>>>\nSummary text.\n"
            "<<<BODY>>>\nPolished body.\n<<<REFERENCES>>>\n- Ref\n<<<END>>>"
        )
    return "unexpected prompt"


@dataclass
class Workspace:
    """Test workspace bundling file-backed stores with fake coordination."""

    config: DeepDraftConfig
    ledger: RecordingLedger
    checkpoints: FileCheckpointStore
    documents: FileDocumentStore
    lock: FakeLock
    scheduler: RecordingScheduler
    clock: FakeClock
    log_sink: io.StringIO
    sleeps: list[float] = field(default_factory=list)

    def engine(
        self,
        generation: ScriptedGeneration | None = None,
        extractor: TextExtractor | None = None,
    ) -> DeepDraftEngine:
        """Build an engine over this workspace."""

        return DeepDraftEngine(
            self.config,
            ledger=self.ledger,
            checkpoints=self.checkpoints,
            document_store=self.documents,
            generation=generation or ScriptedGeneration(default_responder),
            lock=self.lock,
            scheduler=self.scheduler,
            logger=RunLogger(sink=self.log_sink),
            extractor=extractor,
            clock=self.clock,
            sleeper=self.sleeps.append,
        )

    def add_task(self, task_id: str, **fields: Any) -> None:
        """Append a ledger row with sensible defaults."""

        row: dict[str, Any] = {
            "id": task_id,
            "stage": "PendingIngestion",
            "mode": "Simple",
            "prompt": f"Write about {task_id}.",
        }
        row.update(fields)
        self.ledger.add(row)

    def inbox(self, task_id: str) -> Path:
        """Return (and create) the inbox directory of a task."""

        path = self.config.inbox_dir / task_id
        path.mkdir(parents=True, exist_ok=True)
        return path

    def stage(self, task_id: str) -> str | None:
        """Return the current stage value of a task."""

        task = self.ledger.get(task_id)
        if task is None or task.stage is None:
            return None
        return task.stage.value

    def checkpoint_keys(self) -> list[str]:
        """Return every stored checkpoint key."""

        return self.checkpoints.list_keys()


@pytest.fixture
def workspace(tmp_path: Path) -> Workspace:
    """Provide a fresh workspace with fake lock, scheduler, and clock."""

    config = DeepDraftConfig(workspace_dir=tmp_path / "workspace")
    return Workspace(
        config=config,
        ledger=RecordingLedger(config.ledger_path),
        checkpoints=FileCheckpointStore(config.checkpoints_dir),
        documents=FileDocumentStore(config.documents_dir),
        lock=FakeLock(),
        scheduler=RecordingScheduler(),
        clock=FakeClock(),
        log_sink=io.StringIO(),
    )


@pytest.fixture
def make_generation() -> Callable[..., ScriptedGeneration]:
    """Provide a factory for scripted generation clients."""

    def _make(
        responder: Callable[[str], str] = default_responder,
        on_call: Callable[[str], None] | None = None,
    ) -> ScriptedGeneration:
        """Build a scripted client with an optional per-call hook."""

        return ScriptedGeneration(responder=responder, on_call=on_call)

    return _make


@pytest.fixture
def default_reply() -> Callable[[str], str]:
    """Provide the default contract-valid responder."""

    return default_responder
