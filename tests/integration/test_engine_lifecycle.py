"""Integration tests for end-to-end task lifecycles driven through the engine."""

from __future__ import annotations

import pytest

from deepdraft.coordination.scheduler import FileScheduler
from deepdraft.errors import PhaseError
from deepdraft.models.datatypes import Stage, stage_order
from deepdraft.pipeline.checkpoints import RawTextCheckpoint


def _assert_stages_never_regress(history: list[str]) -> None:
    """Assert the forward order of a stage history is non-decreasing."""

    orders = [stage_order(Stage(value)) for value in history]
    assert all(order is not None for order in orders)
    assert orders == sorted(orders)


def test_simple_task_completes_in_one_tick(workspace, make_generation) -> None:
    """One tick runs every phase in order and carries a Simple task to completion."""

    workspace.add_task("t1", mode="Simple")
    (workspace.inbox("t1") / "source.txt").write_text("Background facts.", encoding="utf-8")
    generation = make_generation()

    results = workspace.engine(generation).tick()

    assert [(result.phase, result.outcome) for result in results] == [
        ("ingestion", "completed"),
        ("planning", "idle"),
        ("raw_text", "completed"),
        ("finalization", "completed"),
    ]
    assert workspace.stage("t1") == "Completed"
    _assert_stages_never_regress(workspace.ledger.stage_history["t1"])
    assert "Planning" not in workspace.ledger.stage_history["t1"]
    whole_task_call = generation.calls[0]
    assert whole_task_call.prompt.startswith("Write a complete")
    assert len(whole_task_call.context_refs) == 1


def test_deep_task_resumes_through_scheduled_continuations(workspace, make_generation) -> None:
    """Paused work is picked up by the scheduled continuation on the next tick."""

    workspace.add_task("t1", mode="Deep")
    engine = workspace.engine(make_generation())

    first_tick = engine.tick()

    assert [result.outcome for result in first_tick] == [
        "completed",
        "completed",
        "paused",
        "idle",
    ]
    assert workspace.stage("t1") == "PausedText"
    assert workspace.scheduler.requests == [("raw_text", 60.0)]

    second_tick = engine.tick()

    assert [(result.phase, result.outcome) for result in second_tick] == [
        ("raw_text", "completed"),
        ("ingestion", "idle"),
        ("planning", "idle"),
        ("finalization", "completed"),
    ]
    assert workspace.stage("t1") == "Completed"
    assert workspace.checkpoint_keys() == []
    assert workspace.scheduler.requests == []
    _assert_stages_never_regress(workspace.ledger.stage_history["t1"])


def test_tick_leaves_paused_work_to_its_continuation(workspace) -> None:
    """A paused phase is not resumed by the sweep before its continuation is due."""

    workspace.scheduler = FileScheduler(workspace.config.schedule_path, clock=workspace.clock)
    workspace.add_task(
        "t1",
        stage="Planned",
        mode="Deep",
        subtopics='[{"title": "A"}, {"title": "B"}, {"title": "C"}]',
    )
    engine = workspace.engine()

    assert [result.phase for result in engine.tick()] == [
        "ingestion",
        "planning",
        "raw_text",
        "finalization",
    ]
    assert workspace.stage("t1") == "PausedText"

    waiting = engine.tick()

    assert [result.phase for result in waiting] == ["ingestion", "planning", "finalization"]
    assert workspace.checkpoints.get("raw_text", "t1")["last_completed"] == 0

    workspace.clock.advance(60)
    resumed = engine.tick()

    assert [(result.phase, result.outcome) for result in resumed] == [
        ("raw_text", "paused"),
        ("ingestion", "idle"),
        ("planning", "idle"),
        ("finalization", "idle"),
    ]
    assert workspace.checkpoints.get("raw_text", "t1")["last_completed"] == 1
    assert [item.entry_point for item in workspace.scheduler.pending()] == ["raw_text"]


def test_checkpoints_exist_only_while_paused(workspace) -> None:
    """A checkpoint is present after a pause and gone after completion."""

    workspace.add_task("t1", stage="Planned", mode="Deep", subtopics='[{"title": "A"}, {"title": "B"}]')
    engine = workspace.engine()

    engine.raw_text()
    assert workspace.checkpoint_keys() == ["raw_text:t1"]

    engine.raw_text()
    assert workspace.checkpoint_keys() == []


def test_unknown_continuation_entry_point_is_ignored(workspace) -> None:
    """Continuations naming an unknown entry point are dropped with a warning."""

    workspace.scheduler.requests.append(("bogus", 0.0))

    results = workspace.engine().run_due_continuations()

    assert results == []
    assert "event=unknown_entry_point" in workspace.log_sink.getvalue()


def test_run_phase_rejects_unknown_phase(workspace) -> None:
    """Only the four phase entry points can be invoked."""

    with pytest.raises(ValueError, match="Unknown phase `publish`"):
        workspace.engine().run_phase("publish")


def test_cancel_paused_task_clears_checkpoint_and_sets_error(workspace) -> None:
    """Cancelling a paused task deletes its checkpoint and forces the phase error stage."""

    workspace.add_task("t1", stage="PausedText", mode="Deep")
    workspace.checkpoints.set(
        "raw_text", "t1", RawTextCheckpoint(task_id="t1", prompt="p").to_payload()
    )
    engine = workspace.engine()

    stage = engine.cancel_task("t1", reason="Operator\nstopped it.")

    task = workspace.ledger.get("t1")
    assert stage is Stage.ERROR_TEXT
    assert task.stage is Stage.ERROR_TEXT
    assert task.error == "Operator stopped it."
    assert workspace.checkpoint_keys() == []
    assert not workspace.lock.held
    assert engine.raw_text().outcome == "idle"


@pytest.mark.parametrize(
    ("stage", "mode", "expected"),
    [
        ("PendingIngestion", "Simple", Stage.ERROR_INGESTION),
        ("Ingested", "Deep", Stage.ERROR_PLANNING),
        ("Ingested", "Simple", Stage.ERROR_TEXT),
        ("Planned", "Deep", Stage.ERROR_TEXT),
        ("TextSaved", "Simple", Stage.ERROR_FINALIZATION),
    ],
)
def test_cancel_uses_the_owning_phase_error_stage(
    workspace, stage: str, mode: str, expected: Stage
) -> None:
    """The error stage belongs to the phase that would pick the task up next."""

    workspace.add_task("t1", stage=stage, mode=mode)

    assert workspace.engine().cancel_task("t1") is expected


def test_cancel_rejects_unknown_finished_and_locked_tasks(workspace) -> None:
    """Cancellation fails clearly instead of touching the ledger."""

    workspace.add_task("done", stage="Completed")
    engine = workspace.engine()

    with pytest.raises(PhaseError, match="not found"):
        engine.cancel_task("missing")
    with pytest.raises(PhaseError, match="is not running"):
        engine.cancel_task("done")

    workspace.lock.available = False
    with pytest.raises(PhaseError, match="holds the runner lock"):
        engine.cancel_task("done")
    assert workspace.stage("done") == "Completed"


def test_status_lists_ledger_rows(workspace) -> None:
    """Status returns rows in ledger order."""

    workspace.add_task("a")
    workspace.add_task("b", stage="Completed")

    assert [task.task_id for task in workspace.engine().status()] == ["a", "b"]
