"""DeepDraft engine facade.

Responsibilities:
- Wire configuration, stores, lock, scheduler, generation client, and logger
  into one runner per phase.
- Expose phase entry points, scheduled continuation handling, and operator
  cancellation.
"""

from __future__ import annotations

from collections.abc import Callable
from time import monotonic, sleep

from ..config import DeepDraftConfig
from ..coordination.lock import FileLock, PhaseLock
from ..coordination.scheduler import ContinuationQueue, FileScheduler
from ..errors import PhaseError
from ..io.checkpoints import CheckpointStore, FileCheckpointStore
from ..io.ledger import JsonTaskLedger, TaskLedger
from ..io.storage import DocumentStore, FileDocumentStore
from ..io.text_extractor import DirectorySource, TextExtractor
from ..llm.generation import GenerationClient
from ..models.datatypes import InvocationResult, Stage, Task, is_terminal
from ..parsing import truncate_message
from ..provider_factory import ProviderFactory
from ..telemetry.logger import RunLogger
from .checkpoints import INGESTION_PHASE, RAW_TEXT_PHASE
from .consolidator import ChunkConsolidator
from .finalization import FINALIZATION_PHASE, FinalizationRunner
from .ingestion import IngestionRunner
from .planning import PLANNING_PHASE, PlanningRunner
from .raw_text import RawTextRunner
from .runner import PhaseRunner, RunnerContext

PHASE_ORDER = (INGESTION_PHASE, PLANNING_PHASE, RAW_TEXT_PHASE, FINALIZATION_PHASE)

_STAGE_OWNER: dict[Stage, str] = {
    Stage.PENDING_INGESTION: INGESTION_PHASE,
    Stage.INGESTING: INGESTION_PHASE,
    Stage.PAUSED_INGESTION: INGESTION_PHASE,
    Stage.PLANNING: PLANNING_PHASE,
    Stage.PLANNED: RAW_TEXT_PHASE,
    Stage.GENERATING_TEXT: RAW_TEXT_PHASE,
    Stage.PAUSED_TEXT: RAW_TEXT_PHASE,
    Stage.TEXT_SAVED: FINALIZATION_PHASE,
    Stage.CONSOLIDATING: FINALIZATION_PHASE,
    Stage.FINALIZING: FINALIZATION_PHASE,
}


class DeepDraftEngine:
    """Facade running phase invocations against one workspace."""

    def __init__(
        self,
        config: DeepDraftConfig,
        *,
        ledger: TaskLedger,
        checkpoints: CheckpointStore,
        document_store: DocumentStore,
        generation: GenerationClient,
        lock: PhaseLock,
        scheduler: ContinuationQueue,
        logger: RunLogger,
        source: DirectorySource | None = None,
        extractor: TextExtractor | None = None,
        clock: Callable[[], float] = monotonic,
        sleeper: Callable[[float], None] = sleep,
    ) -> None:
        """Initialize the engine and build one runner per phase."""

        self.config = config
        self.ledger = ledger
        self.checkpoints = checkpoints
        self.document_store = document_store
        self.lock = lock
        self.scheduler = scheduler
        self.logger = logger

        context = RunnerContext(
            config=config,
            ledger=ledger,
            checkpoints=checkpoints,
            lock=lock,
            scheduler=scheduler,
            logger=logger,
            clock=clock,
        )
        consolidator = ChunkConsolidator(
            generation,
            logger,
            single_pass_limit=config.single_pass_limit_chars,
            chunk_target=config.chunk_target_chars,
            inter_chunk_delay_seconds=config.inter_chunk_delay_seconds,
            sleeper=sleeper,
        )
        self.runners: dict[str, PhaseRunner] = {
            INGESTION_PHASE: IngestionRunner(
                context,
                source if source is not None else DirectorySource(config.inbox_dir),
                extractor if extractor is not None else TextExtractor(),
                document_store,
            ),
            PLANNING_PHASE: PlanningRunner(context, generation),
            RAW_TEXT_PHASE: RawTextRunner(context, generation, document_store),
            FINALIZATION_PHASE: FinalizationRunner(context, consolidator, document_store),
        }

    @classmethod
    def from_config(
        cls,
        config: DeepDraftConfig,
        *,
        generation: GenerationClient | None = None,
        logger: RunLogger | None = None,
    ) -> "DeepDraftEngine":
        """Build an engine over the file-backed workspace described by `config`."""

        document_store = FileDocumentStore(config.documents_dir)
        if generation is None:
            runtime = config.resolved_provider_runtime()
            generation = ProviderFactory.create_generation_client(
                provider_id=runtime.provider,
                model=runtime.model,
                document_store=document_store,
                api_key=runtime.api_key,
                timeout_seconds=config.request_timeout_seconds,
            )
        return cls(
            config,
            ledger=JsonTaskLedger(config.ledger_path),
            checkpoints=FileCheckpointStore(config.checkpoints_dir),
            document_store=document_store,
            generation=generation,
            lock=FileLock(config.lock_path),
            scheduler=FileScheduler(config.schedule_path),
            logger=logger if logger is not None else RunLogger(),
        )

    def run_phase(self, phase: str) -> InvocationResult:
        """Run one invocation of a phase entry point."""

        runner = self.runners.get(phase)
        if runner is None:
            supported = ", ".join(PHASE_ORDER)
            raise ValueError(f"Unknown phase `{phase}`; supported: {supported}.")
        return runner.run()

    def ingestion(self) -> InvocationResult:
        """Entry point for the ingestion phase."""

        return self.run_phase(INGESTION_PHASE)

    def planning(self) -> InvocationResult:
        """Entry point for the planning phase."""

        return self.run_phase(PLANNING_PHASE)

    def raw_text(self) -> InvocationResult:
        """Entry point for the raw-text phase."""

        return self.run_phase(RAW_TEXT_PHASE)

    def finalization(self) -> InvocationResult:
        """Entry point for the finalization phase."""

        return self.run_phase(FINALIZATION_PHASE)

    def run_due_continuations(self, now: float | None = None) -> list[InvocationResult]:
        """Fire every scheduled continuation that is due."""

        results: list[InvocationResult] = []
        for continuation in self.scheduler.pop_due(now):
            if continuation.entry_point not in self.runners:
                self.logger.warning(
                    "unknown_entry_point", "scheduler", entry_point=continuation.entry_point
                )
                continue
            results.append(self.run_phase(continuation.entry_point))
        return results

    def tick(self, now: float | None = None) -> list[InvocationResult]:
        """Fire due continuations, then sweep the remaining phases in pipeline order.

        A phase that just ran from a continuation, or that still waits on one,
        is left out of the sweep so paused work keeps its continuation delay.
        """

        results = self.run_due_continuations(now)
        skipped = {result.phase for result in results}
        skipped.update(continuation.entry_point for continuation in self.scheduler.pending())
        for phase in PHASE_ORDER:
            if phase in skipped:
                continue
            results.append(self.run_phase(phase))
        return results

    def cancel_task(self, task_id: str, reason: str = "Cancelled by operator.") -> Stage:
        """Stop a task for good by clearing its checkpoints and forcing an error stage.

        Raises:
            PhaseError: If the lock is busy, the task is unknown, or it already finished.
        """

        if not self.lock.try_acquire(self.config.lock_timeout_seconds):
            raise PhaseError(
                stage="cancel",
                detail="Another invocation holds the runner lock.",
                hint="Retry after the running phase finishes.",
            )
        try:
            task = self.ledger.get(task_id)
            if task is None:
                raise PhaseError(stage="cancel", detail=f"Task `{task_id}` not found.")
            if task.stage is None or is_terminal(task.stage):
                raise PhaseError(
                    stage="cancel",
                    detail=f"Task `{task_id}` is not running (stage `{_stage_label(task)}`).",
                )
            error_stage = self._error_stage_for(task)
            for phase in PHASE_ORDER:
                self.checkpoints.delete(phase, task_id)
            self.ledger.write(
                task_id,
                {
                    "stage": error_stage,
                    "error": truncate_message(reason, self.config.error_message_max_chars),
                },
            )
            self.logger.info("cancelled", "cancel", task_id=task_id, stage=error_stage)
            return error_stage
        finally:
            self.lock.release()

    def status(self) -> list[Task]:
        """Return current ledger rows."""

        return self.ledger.scan()

    def _error_stage_for(self, task: Task) -> Stage:
        """Return the error stage of the phase that owns the task's stage."""

        if task.stage is Stage.INGESTED:
            owner = PLANNING_PHASE if task.is_deep else RAW_TEXT_PHASE
        else:
            owner = _STAGE_OWNER[task.stage]
        return self.runners[owner].error_stage


def _stage_label(task: Task) -> str:
    """Return a printable stage label."""

    return task.stage.value if task.stage is not None else "unknown"
