"""Integration tests for the Deep-mode planning phase runner."""

from __future__ import annotations

import json

import pytest

from deepdraft.errors import TaskValidationError
from deepdraft.models.datatypes import Subtopic
from deepdraft.pipeline.planning import parse_plan


def _plan(count: int) -> str:
    """Return a JSON plan with `count` sub-topics."""

    return json.dumps([{"title": f"Topic {index}", "outline": "o"} for index in range(count)])


def test_parse_plan_accepts_array_object_and_fenced_forms() -> None:
    """Plans may be bare arrays, `subtopics` objects, or fenced JSON."""

    expected = (Subtopic("A", "a"),)

    assert parse_plan('[{"title": "A", "outline": "a"}]') == expected
    assert parse_plan('{"subtopics": [{"title": "A", "outline": "a"}]}') == expected
    assert parse_plan('```json\n[{"title": " A ", "outline": "a"}, {"title": ""}]\n```') == expected
    with pytest.raises(TaskValidationError, match="not valid JSON"):
        parse_plan("Here is my plan: ...")
    with pytest.raises(TaskValidationError, match="no sub-topics"):
        parse_plan("[]")


def test_deep_task_is_planned_with_context_refs(workspace, make_generation) -> None:
    """The plan is stored as JSON and the ingested refs are passed as context."""

    workspace.add_task("t1", stage="Ingested", mode="Deep", file_refs=["ingested/t1/a.md"])
    generation = make_generation()

    result = workspace.engine(generation).planning()

    task = workspace.ledger.get("t1")
    assert result.outcome == "completed"
    assert task.stage.value == "Planned"
    assert task.subtopics() == (Subtopic("Alpha", "a"), Subtopic("Beta", "b"))
    assert generation.calls[0].context_refs == ("ingested/t1/a.md",)
    assert workspace.ledger.stage_history["t1"] == ["Ingested", "Planning", "Planned"]


def test_simple_tasks_are_not_planned(workspace, make_generation) -> None:
    """Planning ignores Simple-mode rows."""

    workspace.add_task("t1", stage="Ingested", mode="Simple")
    generation = make_generation()

    assert workspace.engine(generation).planning().outcome == "idle"
    assert generation.calls == []


def test_plan_over_cap_is_retried_then_accepted(workspace, make_generation) -> None:
    """A plan over the cap is retried with a merge request."""

    workspace.add_task("t1", stage="Ingested", mode="Deep", max_subtopics=2)
    replies = iter([_plan(4), _plan(2)])
    generation = make_generation(lambda prompt: next(replies))

    workspace.engine(generation).planning()

    task = workspace.ledger.get("t1")
    assert len(task.subtopics()) == 2
    assert len(generation.calls) == 2
    assert "Return at most 2 sub-topics" in generation.calls[0].prompt
    assert generation.calls[1].prompt.startswith("Your previous plan had 4 sub-topics")
    assert "event=plan_over_cap" in workspace.log_sink.getvalue()


def test_plan_over_cap_is_truncated_after_retries(workspace, make_generation) -> None:
    """After the retry budget the plan is cut to the cap."""

    workspace.config.planning_max_retries = 2
    workspace.add_task("t1", stage="Ingested", mode="Deep", max_subtopics=3)
    generation = make_generation(lambda prompt: _plan(5))

    result = workspace.engine(generation).planning()

    task = workspace.ledger.get("t1")
    assert result.outcome == "completed"
    assert [item.title for item in task.subtopics()] == ["Topic 0", "Topic 1", "Topic 2"]
    assert len(generation.calls) == 3
    assert "event=plan_truncated" in workspace.log_sink.getvalue()


def test_invalid_plans_exhaust_retries_into_error_stage(workspace, make_generation) -> None:
    """Replies that never parse fail the phase with a descriptive message."""

    workspace.config.planning_max_retries = 1
    workspace.add_task("t1", stage="Ingested", mode="Deep")
    generation = make_generation(lambda prompt: "I cannot produce JSON today.")

    result = workspace.engine(generation).planning()

    task = workspace.ledger.get("t1")
    assert result.outcome == "failed"
    assert task.stage.value == "Error-Planning"
    assert task.error.startswith("PhaseError: No usable plan after 2 attempt(s)")
    assert len(generation.calls) == 2


def test_invalid_cap_cell_fails_planning(workspace, make_generation) -> None:
    """A malformed `max_subtopics` cell routes the task to the planning error stage."""

    workspace.add_task("t1", stage="Ingested", mode="Deep", max_subtopics="lots")
    generation = make_generation()

    workspace.engine(generation).planning()

    task = workspace.ledger.get("t1")
    assert task.stage.value == "Error-Planning"
    assert "max_subtopics" in task.error
    assert generation.calls == []
