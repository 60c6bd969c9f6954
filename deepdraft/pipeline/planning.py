"""Planning phase runner (Deep mode only).

Responsibilities:
- Ask the generation client once for an ordered sub-topic plan.
- Retry a bounded number of times when the plan exceeds the sub-topic cap,
  then truncate.
"""

from __future__ import annotations

import json

from ..errors import PhaseError, TaskValidationError
from ..llm.generation import GenerationClient
from ..llm.prompts import PromptLibrary
from ..models.datatypes import Stage, Subtopic, Task, subtopics_from_payload, subtopics_to_json
from ..parsing import strip_code_fence
from .runner import PhaseRunner, RunnerContext, SliceOutcome

PLANNING_PHASE = "planning"


def parse_plan(reply: str) -> tuple[Subtopic, ...]:
    """Parse a planning reply into sub-topics with non-blank titles.

    Accepts a bare JSON array or an object with a `subtopics` array, optionally
    wrapped in a Markdown code fence.

    Raises:
        TaskValidationError: If the reply is not a valid plan.
    """

    try:
        payload = json.loads(strip_code_fence(reply))
    except json.JSONDecodeError as exc:
        raise TaskValidationError(f"Plan reply is not valid JSON: {exc.msg}.") from exc
    if isinstance(payload, dict):
        payload = payload.get("subtopics")
    subtopics = tuple(item for item in subtopics_from_payload(payload, "plan") if item.title)
    if not subtopics:
        raise TaskValidationError("Plan reply contains no sub-topics.")
    return subtopics


class PlanningRunner(PhaseRunner):
    """Single-shot runner producing a task's sub-topic plan."""

    phase = PLANNING_PHASE
    entry_stages = frozenset({Stage.INGESTED})
    active_stage = Stage.PLANNING
    next_stage = Stage.PLANNED
    error_stage = Stage.ERROR_PLANNING

    def __init__(
        self,
        context: RunnerContext,
        generation: GenerationClient,
        prompts: PromptLibrary | None = None,
    ) -> None:
        """Initialize the runner with its generation client."""

        super().__init__(context)
        self.generation = generation
        self.prompts = prompts if prompts is not None else PromptLibrary()

    def accepts(self, task: Task) -> bool:
        """Only Deep-mode tasks are planned."""

        return super().accepts(task) and task.is_deep

    def run_slice(self, task: Task, state: object | None, started_at: float) -> SliceOutcome:
        """Request a plan, retrying while it exceeds the cap."""

        goal = task.require_prompt()
        cap = task.max_subtopics()
        attempts = 1 + self.config.planning_max_retries

        plan: tuple[Subtopic, ...] | None = None
        previous_count: int | None = None
        last_problem = "no reply"
        for attempt in range(1, attempts + 1):
            reply = self.generation.generate(
                self.prompts.planning_prompt(goal, cap, previous_count),
                task.file_refs,
            )
            try:
                candidate = parse_plan(reply)
            except TaskValidationError as exc:
                last_problem = str(exc)
                self.logger.warning(
                    "invalid_plan", self.phase, task_id=task.task_id, attempt=attempt
                )
                continue
            plan = candidate
            if cap == 0 or len(candidate) <= cap:
                break
            previous_count = len(candidate)
            self.logger.warning(
                "plan_over_cap",
                self.phase,
                task_id=task.task_id,
                attempt=attempt,
                count=len(candidate),
                cap=cap,
            )

        if plan is None:
            raise PhaseError(
                stage=self.phase,
                detail=f"No usable plan after {attempts} attempt(s): {last_problem}",
            )
        if cap and len(plan) > cap:
            self.logger.warning(
                "plan_truncated", self.phase, task_id=task.task_id, count=len(plan), cap=cap
            )
            plan = plan[:cap]
        return SliceOutcome.complete(
            {"subtopics": subtopics_to_json(plan)},
            detail=f"{len(plan)} sub-topic(s) planned",
        )
