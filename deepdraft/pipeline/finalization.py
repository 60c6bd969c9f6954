"""Finalization phase runner.

Responsibilities:
- Read the intermediate draft and finalize it in one pass or through chunking.
- Store the final document, rename it to its title, and archive the draft.
"""

from __future__ import annotations

from ..errors import TaskValidationError
from ..io.storage import DocumentStore
from ..models.datatypes import Stage, Task
from .consolidator import ChunkConsolidator
from .runner import PhaseRunner, RunnerContext, SliceOutcome

FINALIZATION_PHASE = "finalization"


class FinalizationRunner(PhaseRunner):
    """Runner turning a saved draft into the final document."""

    phase = FINALIZATION_PHASE
    entry_stages = frozenset({Stage.TEXT_SAVED})
    active_stage = Stage.CONSOLIDATING
    next_stage = Stage.COMPLETED
    error_stage = Stage.ERROR_FINALIZATION

    def __init__(
        self,
        context: RunnerContext,
        consolidator: ChunkConsolidator,
        document_store: DocumentStore,
    ) -> None:
        """Initialize the runner with its consolidator and document store."""

        super().__init__(context)
        self.consolidator = consolidator
        self.document_store = document_store

    def run_slice(self, task: Task, state: object | None, started_at: float) -> SliceOutcome:
        """Finalize the draft within this invocation."""

        goal = task.require_prompt()
        if task.output_ref is None:
            raise TaskValidationError(f"Task `{task.task_id}` has no intermediate draft.")
        draft_ref = task.output_ref
        text = self.document_store.read(draft_ref)

        if self.consolidator.needs_chunking(text):
            chunks = self.consolidator.split(text)
            self.logger.info(
                "chunked", self.phase, task_id=task.task_id, chunks=len(chunks), chars=len(text)
            )
            transformed = self.consolidator.transform_chunks(goal, chunks, task.task_id)
            self.set_stage(task, Stage.FINALIZING)
            document = self.consolidator.assemble(goal, chunks, transformed, task.task_id)
        else:
            self.set_stage(task, Stage.FINALIZING)
            document = self.consolidator.finalize_single(goal, text, task.task_id)

        final_ref = self.document_store.create(
            title=document.title,
            content=document.text,
            location="final",
        )
        try:
            final_ref = self.document_store.rename(final_ref, document.title)
        except Exception as exc:
            self.logger.warning(
                "rename_failed", self.phase, task_id=task.task_id, error_type=type(exc).__name__
            )
        try:
            self.document_store.move(draft_ref, f"archive/{task.task_id}")
        except Exception as exc:
            self.logger.warning(
                "move_failed", self.phase, task_id=task.task_id, error_type=type(exc).__name__
            )

        notes = task.notes
        if document.used_fallback:
            notes = notes + ("Final front matter fell back to a title derived from the prompt.",)
        return SliceOutcome.complete(
            {"output_ref": final_ref, "notes": notes},
            detail=f"final document stored ({document.chunk_count} chunk(s))",
        )
