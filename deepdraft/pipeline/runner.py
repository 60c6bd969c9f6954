"""Generic phase runner implementing the per-invocation contract.

Responsibilities:
- Serialize invocations behind the global lock, released on every exit path.
- Resume exactly one task from this phase's checkpoints, or select the first
  eligible ledger row, and never touch any other task.
- Commit exactly one of pause, complete, or error for the selected task.

Key types:
- `RunnerContext`: shared collaborators and limits for every runner.
- `SliceOutcome`: pause or complete decision returned by a phase slice.
- `PhaseRunner`: base class specialized once per phase.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from time import monotonic
from typing import Any, ClassVar

from ..config import DeepDraftConfig
from ..coordination.lock import PhaseLock
from ..coordination.scheduler import Scheduler
from ..errors import CheckpointShapeError, PhaseError
from ..io.checkpoints import CheckpointStore, split_checkpoint_key
from ..io.ledger import TaskLedger
from ..models.datatypes import InvocationResult, Stage, Task, is_terminal
from ..parsing import truncate_message
from ..telemetry.logger import RunLogger


@dataclass(frozen=True, slots=True)
class RunnerContext:
    """Collaborators shared by every phase runner.

    Attributes:
        config: Runtime limits and delays.
        ledger: Task ledger.
        checkpoints: Checkpoint store.
        lock: Global runner lock.
        scheduler: Continuation scheduler.
        logger: Structured event logger.
        clock: Monotonic clock measuring the execution budget.
    """

    config: DeepDraftConfig
    ledger: TaskLedger
    checkpoints: CheckpointStore
    lock: PhaseLock
    scheduler: Scheduler
    logger: RunLogger
    clock: Callable[[], float] = monotonic


@dataclass(frozen=True, slots=True)
class SliceOutcome:
    """Decision produced by one bounded work slice.

    Attributes:
        kind: `pause` or `complete`.
        checkpoint: Tagged checkpoint payload for pauses.
        fields: Ledger fields persisted on completion.
        detail: Short human-readable detail.
    """

    kind: str
    checkpoint: dict[str, Any] | None = None
    fields: Mapping[str, Any] = field(default_factory=dict)
    detail: str = ""

    @classmethod
    def pause(cls, checkpoint: dict[str, Any], detail: str = "") -> "SliceOutcome":
        """Build a pause outcome carrying the checkpoint to persist."""

        return cls(kind="pause", checkpoint=checkpoint, detail=detail)

    @classmethod
    def complete(cls, fields: Mapping[str, Any], detail: str = "") -> "SliceOutcome":
        """Build a completion outcome carrying the phase output fields."""

        return cls(kind="complete", fields=dict(fields), detail=detail)


def describe_error(exc: BaseException) -> str:
    """Return a human-readable message for a task-level failure."""

    if isinstance(exc, PhaseError):
        detail = exc.detail
    else:
        detail = str(exc).strip()
    if not detail:
        return type(exc).__name__
    return f"{type(exc).__name__}: {detail}"


class PhaseRunner:
    """Base class driving one phase's bounded invocation.

    Subclasses set the stage class attributes, implement `run_slice`, and for
    sliced phases implement `load_checkpoint`.
    """

    phase: ClassVar[str]
    entry_stages: ClassVar[frozenset[Stage]]
    active_stage: ClassVar[Stage]
    paused_stage: ClassVar[Stage | None] = None
    next_stage: ClassVar[Stage]
    error_stage: ClassVar[Stage]

    def __init__(self, context: RunnerContext) -> None:
        """Initialize the runner with shared collaborators."""

        self.context = context
        self.config = context.config
        self.ledger = context.ledger
        self.checkpoints = context.checkpoints
        self.logger = context.logger

    def run(self) -> InvocationResult:
        """Run one invocation: lock, select, slice, commit, unlock."""

        started_at = self.context.clock()
        if not self.context.lock.try_acquire(self.config.lock_timeout_seconds):
            self.logger.info("lock_busy", self.phase)
            return InvocationResult(phase=self.phase, outcome="skipped", detail="lock busy")
        try:
            return self._run_locked(started_at)
        finally:
            self.context.lock.release()

    def accepts(self, task: Task) -> bool:
        """Return whether a ledger row is eligible for a fresh selection."""

        return task.stage in self.entry_stages

    def load_checkpoint(self, payload: Mapping[str, Any]) -> object:
        """Validate a stored checkpoint payload into this phase's variant."""

        raise CheckpointShapeError(f"Phase `{self.phase}` does not use checkpoints.")

    def run_slice(self, task: Task, state: object | None, started_at: float) -> SliceOutcome:
        """Execute the bounded work loop for one selected task."""

        raise NotImplementedError

    def over_budget(self, started_at: float) -> bool:
        """Return whether the soft execution budget has been used up."""

        return self.context.clock() - started_at >= self.config.execution_budget_seconds

    def set_stage(self, task: Task, stage: Stage) -> None:
        """Write an intermediate stage for the selected task."""

        self.ledger.write(task.task_id, {"stage": stage})
        self.logger.info("stage", self.phase, task_id=task.task_id, stage=stage)

    def _run_locked(self, started_at: float) -> InvocationResult:
        """Select at most one task and commit exactly one outcome for it."""

        resumed = self._resume_target()
        if resumed is not None:
            task, state = resumed
            self.logger.info("resume", self.phase, task_id=task.task_id)
        else:
            selected = self._scan_target()
            if selected is None:
                self.logger.info("idle", self.phase)
                return InvocationResult(phase=self.phase, outcome="idle")
            task, state = selected, None

        self.logger.info("start", self.phase, task_id=task.task_id, stage=self.active_stage)
        try:
            self.ledger.write(task.task_id, {"stage": self.active_stage, "error": None})
            outcome = self.run_slice(task, state, started_at)
            return self._commit(task, outcome)
        except Exception as exc:
            return self._fail(task, exc)

    def _resume_target(self) -> tuple[Task, object] | None:
        """Consume this phase's checkpoints until one resumes a live task."""

        for key in self.checkpoints.list_keys(prefix=f"{self.phase}:"):
            phase, task_id = split_checkpoint_key(key)
            try:
                payload = self.checkpoints.get(phase, task_id)
            except CheckpointShapeError as exc:
                self.checkpoints.delete(phase, task_id)
                self._stale(task_id, "unreadable", exc)
                continue
            self.checkpoints.delete(phase, task_id)
            if payload is None:
                continue

            task = self.ledger.get(task_id)
            if task is None:
                self._stale(task_id, "task_missing")
                continue
            if is_terminal(task.stage):
                self._stale(task_id, "task_terminal")
                continue
            try:
                state = self.load_checkpoint(payload)
            except CheckpointShapeError as exc:
                self._stale(task_id, "shape_mismatch", exc)
                continue
            if getattr(state, "task_id", task_id) != task_id:
                self._stale(task_id, "task_mismatch")
                continue
            return task, state
        return None

    def _scan_target(self) -> Task | None:
        """Return the first eligible ledger row, front to back."""

        for task in self.ledger.scan():
            if task.task_id and self.accepts(task):
                return task
        return None

    def _stale(self, task_id: str, reason: str, exc: Exception | None = None) -> None:
        """Log a deleted stale or invalid checkpoint."""

        context: dict[str, object] = {"task_id": task_id, "reason": reason}
        if exc is not None:
            context["error_type"] = type(exc).__name__
        self.logger.warning("stale_checkpoint", self.phase, **context)

    def _commit(self, task: Task, outcome: SliceOutcome) -> InvocationResult:
        """Persist a pause or completion decision."""

        if outcome.kind == "pause":
            if self.paused_stage is None or outcome.checkpoint is None:
                raise PhaseError(
                    stage=self.phase,
                    detail=f"Phase `{self.phase}` cannot pause.",
                )
            self.checkpoints.set(self.phase, task.task_id, outcome.checkpoint)
            self.context.scheduler.schedule_once(
                self.phase, self.config.continuation_delay_seconds
            )
            self.ledger.write(task.task_id, {"stage": self.paused_stage})
            self.logger.info("pause", self.phase, task_id=task.task_id, stage=self.paused_stage)
            return InvocationResult(
                phase=self.phase,
                outcome="paused",
                task_id=task.task_id,
                stage=self.paused_stage,
                detail=outcome.detail,
            )

        if outcome.kind != "complete":
            raise PhaseError(
                stage=self.phase,
                detail=f"Unknown slice outcome `{outcome.kind}`.",
            )
        fields = dict(outcome.fields)
        fields["stage"] = self.next_stage
        fields["error"] = None
        self.ledger.write(task.task_id, fields)
        self.checkpoints.delete(self.phase, task.task_id)
        self.logger.info("complete", self.phase, task_id=task.task_id, stage=self.next_stage)
        return InvocationResult(
            phase=self.phase,
            outcome="completed",
            task_id=task.task_id,
            stage=self.next_stage,
            detail=outcome.detail,
        )

    def _fail(self, task: Task, exc: Exception) -> InvocationResult:
        """Route a task-level failure to this phase's error stage."""

        message = truncate_message(describe_error(exc), self.config.error_message_max_chars)
        self.ledger.write(task.task_id, {"stage": self.error_stage, "error": message})
        self.checkpoints.delete(self.phase, task.task_id)
        self.logger.failure(self.phase, task.task_id, type(exc).__name__)
        return InvocationResult(
            phase=self.phase,
            outcome="failed",
            task_id=task.task_id,
            stage=self.error_stage,
            detail=message,
        )
