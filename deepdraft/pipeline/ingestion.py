"""Ingestion phase runner.

Responsibilities:
- Extract text from a task's ingestion items and store each as a document.
- Pause cleanly between items when the execution budget runs out.
- Record skip notes for oversized items and for the cumulative text budget.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import replace
from typing import Any

from ..io.storage import DocumentStore
from ..io.text_extractor import DirectorySource, SourceItem, TextExtractor
from ..models.datatypes import Stage, Task
from .checkpoints import INGESTION_PHASE, IngestionCheckpoint
from .runner import PhaseRunner, RunnerContext, SliceOutcome


class IngestionRunner(PhaseRunner):
    """Runner turning inbox items into stored document refs."""

    phase = INGESTION_PHASE
    entry_stages = frozenset({Stage.PENDING_INGESTION, Stage.PAUSED_INGESTION})
    active_stage = Stage.INGESTING
    paused_stage = Stage.PAUSED_INGESTION
    next_stage = Stage.INGESTED
    error_stage = Stage.ERROR_INGESTION

    def __init__(
        self,
        context: RunnerContext,
        source: DirectorySource,
        extractor: TextExtractor,
        document_store: DocumentStore,
    ) -> None:
        """Initialize the runner with its item source and document store."""

        super().__init__(context)
        self.source = source
        self.extractor = extractor
        self.document_store = document_store

    def load_checkpoint(self, payload: Mapping[str, Any]) -> IngestionCheckpoint:
        """Validate a stored ingestion checkpoint."""

        return IngestionCheckpoint.from_payload(payload)

    def run_slice(self, task: Task, state: object | None, started_at: float) -> SliceOutcome:
        """Process unprocessed items in name order until done, paused, or out of budget."""

        if isinstance(state, IngestionCheckpoint):
            progress = state
        else:
            progress = IngestionCheckpoint(task_id=task.task_id, prompt=task.require_prompt())

        processed = set(progress.processed_items)
        pending = [item for item in self.source.list_items(task.task_id) if item.name not in processed]
        for item in pending:
            if self.over_budget(started_at):
                return self._pause(progress, before=item.name)

            note = self._skip_reason(item)
            if note is not None:
                self.logger.info("skip_item", self.phase, task_id=task.task_id, item=item.name)
                progress = self._mark(progress, item, note=note)
            else:
                text = self.extractor.extract(item)
                if not text:
                    progress = self._mark(
                        progress, item, note=f"Skipped `{item.name}`: no extractable text."
                    )
                elif progress.total_chars + len(text) > self.config.max_total_chars:
                    note = (
                        f"Cumulative budget of {self.config.max_total_chars} characters reached "
                        f"at `{item.name}`; remaining items were skipped."
                    )
                    self.logger.info(
                        "budget_reached",
                        self.phase,
                        task_id=task.task_id,
                        item=item.name,
                        total_chars=progress.total_chars,
                    )
                    return self._complete(replace(progress, notes=progress.notes + (note,)))
                else:
                    ref = self.document_store.create(
                        title=item.name,
                        content=text,
                        location=f"ingested/{task.task_id}",
                    )
                    progress = self._mark(progress, item, ref=ref, chars=len(text))

            if self.over_budget(started_at):
                return self._pause(progress, before=None)

        return self._complete(progress)

    def _skip_reason(self, item: SourceItem) -> str | None:
        """Return a skip note for items that must not be extracted."""

        if item.size_bytes > self.config.max_item_bytes:
            return (
                f"Skipped `{item.name}`: {item.size_bytes} bytes exceeds the "
                f"{self.config.max_item_bytes}-byte item cap."
            )
        if not self.extractor.supports(item):
            return f"Skipped `{item.name}`: unsupported item type."
        return None

    @staticmethod
    def _mark(
        progress: IngestionCheckpoint,
        item: SourceItem,
        *,
        ref: str | None = None,
        chars: int = 0,
        note: str | None = None,
    ) -> IngestionCheckpoint:
        """Record an item as processed together with its ref or skip note."""

        return replace(
            progress,
            processed_items=progress.processed_items + (item.name,),
            file_refs=progress.file_refs + ((ref,) if ref is not None else ()),
            notes=progress.notes + ((note,) if note is not None else ()),
            total_chars=progress.total_chars + chars,
        )

    @staticmethod
    def _pause(progress: IngestionCheckpoint, before: str | None) -> SliceOutcome:
        """Build a pause outcome from the committed progress."""

        detail = f"paused before `{before}`" if before else "paused after an item"
        return SliceOutcome.pause(progress.to_payload(), detail=detail)

    @staticmethod
    def _complete(progress: IngestionCheckpoint) -> SliceOutcome:
        """Build the completion outcome writing refs and notes."""

        return SliceOutcome.complete(
            {"file_refs": progress.file_refs, "notes": progress.notes},
            detail=f"{len(progress.file_refs)} item(s) stored",
        )
