"""Raw-text phase runner.

Responsibilities:
- Draft exactly one sub-topic per invocation for Deep tasks, pausing between them.
- Let a reflection step revise each outline against the recent text tail.
- Fall back to a single whole-task call for Simple tasks and degenerate plans.
- Store the accumulated draft as an intermediate document on completion.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import replace
from typing import Any

from ..io.storage import DocumentStore
from ..llm.generation import GenerationClient
from ..llm.prompts import PromptLibrary
from ..models.datatypes import Stage, Task, is_deep_mode, subtopics_to_json
from ..parsing import strip_code_fence
from ..text.sections import append_section, tail_window
from .checkpoints import RAW_TEXT_PHASE, RawTextCheckpoint
from .runner import PhaseRunner, RunnerContext, SliceOutcome


class RawTextRunner(PhaseRunner):
    """Runner generating a task's marked draft text."""

    phase = RAW_TEXT_PHASE
    entry_stages = frozenset({Stage.PLANNED, Stage.INGESTED, Stage.PAUSED_TEXT})
    active_stage = Stage.GENERATING_TEXT
    paused_stage = Stage.PAUSED_TEXT
    next_stage = Stage.TEXT_SAVED
    error_stage = Stage.ERROR_TEXT

    def __init__(
        self,
        context: RunnerContext,
        generation: GenerationClient,
        document_store: DocumentStore,
        prompts: PromptLibrary | None = None,
    ) -> None:
        """Initialize the runner with its generation client and document store."""

        super().__init__(context)
        self.generation = generation
        self.document_store = document_store
        self.prompts = prompts if prompts is not None else PromptLibrary()

    def accepts(self, task: Task) -> bool:
        """Deep tasks enter after planning; every other mode enters after ingestion."""

        if task.stage is Stage.PLANNED:
            return task.is_deep
        if task.stage is Stage.INGESTED:
            return not task.is_deep
        return task.stage is Stage.PAUSED_TEXT

    def load_checkpoint(self, payload: Mapping[str, Any]) -> RawTextCheckpoint:
        """Validate a stored raw-text checkpoint."""

        return RawTextCheckpoint.from_payload(payload)

    def run_slice(self, task: Task, state: object | None, started_at: float) -> SliceOutcome:
        """Draft the next sub-topic, or the whole task in one call."""

        if isinstance(state, RawTextCheckpoint):
            progress = state
        else:
            progress = self._fresh_progress(task)

        if not is_deep_mode(progress.mode) or not progress.subtopics:
            text = self.generation.generate(
                self.prompts.whole_task_prompt(progress.prompt), task.file_refs
            )
            return self._complete(task, replace(progress, accumulated_text=text.strip()))

        index = progress.last_completed + 1
        if self.over_budget(started_at):
            return self._pause(progress, f"paused before sub-topic {index}")

        subtopic = progress.subtopics[index]
        tail = tail_window(progress.accumulated_text, self.config.tail_paragraphs)
        revised = strip_code_fence(
            self.generation.generate(
                self.prompts.reflection_prompt(progress.prompt, subtopic.title, subtopic.outline, tail),
                task.file_refs,
            )
        )
        if revised:
            subtopic = replace(subtopic, outline=revised)
            subtopics = list(progress.subtopics)
            subtopics[index] = subtopic
            progress = replace(progress, subtopics=tuple(subtopics))
            self.logger.info("outline_revised", self.phase, task_id=task.task_id, index=index)

        if self.over_budget(started_at):
            return self._pause(progress, f"paused after reflecting on sub-topic {index}")

        text = self.generation.generate(
            self.prompts.subtopic_prompt(progress.prompt, subtopic.title, subtopic.outline, tail),
            task.file_refs,
        )
        progress = replace(
            progress,
            last_completed=index,
            accumulated_text=append_section(progress.accumulated_text, subtopic.title, text),
        )
        if index < len(progress.subtopics) - 1:
            return self._pause(progress, f"sub-topic {index} drafted")
        return self._complete(task, progress)

    @staticmethod
    def _fresh_progress(task: Task) -> RawTextCheckpoint:
        """Build initial progress from the ledger row.

        Raises:
            TaskValidationError: If the prompt is missing or stored sub-topics are malformed.
        """

        prompt = task.require_prompt()
        subtopics = tuple(item for item in task.subtopics() if item.title) if task.is_deep else ()
        return RawTextCheckpoint(
            task_id=task.task_id,
            subtopics=subtopics,
            prompt=prompt,
            mode=task.mode,
        )

    @staticmethod
    def _pause(progress: RawTextCheckpoint, detail: str) -> SliceOutcome:
        """Build a pause outcome carrying the in-memory progress."""

        return SliceOutcome.pause(progress.to_payload(), detail=detail)

    def _complete(self, task: Task, progress: RawTextCheckpoint) -> SliceOutcome:
        """Store the accumulated draft and build the completion outcome."""

        ref = self.document_store.create(
            title=f"{task.task_id} draft",
            content=progress.accumulated_text,
            location=f"intermediate/{task.task_id}",
        )
        fields: dict[str, Any] = {"output_ref": ref}
        if progress.subtopics:
            fields["subtopics"] = subtopics_to_json(progress.subtopics)
        return SliceOutcome.complete(
            fields, detail=f"{len(progress.accumulated_text)} characters drafted"
        )
