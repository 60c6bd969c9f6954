"""Integration tests for the per-invocation runner contract shared by every phase."""

from __future__ import annotations

from collections.abc import Callable

import pytest

from deepdraft.pipeline.checkpoints import RawTextCheckpoint


def test_busy_lock_makes_invocation_a_no_op(workspace, make_generation) -> None:
    """A failed lock acquisition returns without any ledger or checkpoint write."""

    workspace.add_task("t1", stage="Ingested")
    workspace.lock.available = False
    writes_before = workspace.ledger.write_count
    generation = make_generation()
    engine = workspace.engine(generation)

    results = [engine.run_phase(phase) for phase in ("ingestion", "planning", "raw_text", "finalization")]

    assert [result.outcome for result in results] == ["skipped"] * 4
    assert workspace.ledger.write_count == writes_before
    assert workspace.checkpoint_keys() == []
    assert workspace.scheduler.requests == []
    assert generation.calls == []
    assert workspace.lock.release_calls == 0
    assert "event=lock_busy" in workspace.log_sink.getvalue()


def test_invocation_selects_at_most_one_task(workspace) -> None:
    """Only the first eligible row is touched; later rows keep their stage."""

    workspace.add_task("t1", stage="Ingested")
    workspace.add_task("t2", stage="Ingested")

    result = workspace.engine().raw_text()

    assert result.task_id == "t1"
    assert result.outcome == "completed"
    assert workspace.stage("t1") == "TextSaved"
    assert workspace.stage("t2") == "Ingested"
    assert workspace.ledger.stage_history["t2"] == ["Ingested"]
    assert not workspace.lock.held


def test_idle_invocation_writes_nothing(workspace) -> None:
    """No eligible row yields an idle outcome."""

    workspace.add_task("t1", stage="Completed")
    writes_before = workspace.ledger.write_count

    result = workspace.engine().finalization()

    assert result.outcome == "idle"
    assert result.task_id is None
    assert workspace.ledger.write_count == writes_before
    assert workspace.lock.release_calls == 1


def test_checkpoint_for_terminal_task_is_deleted_and_skipped(workspace) -> None:
    """Checkpoints of finished tasks are discarded before the ledger scan."""

    workspace.add_task("done", stage="Completed", mode="Deep")
    workspace.add_task("t2", stage="Ingested")
    workspace.checkpoints.set(
        "raw_text",
        "done",
        RawTextCheckpoint(task_id="done", prompt="p").to_payload(),
    )

    result = workspace.engine().raw_text()

    assert result.task_id == "t2"
    assert workspace.stage("done") == "Completed"
    assert workspace.checkpoint_keys() == []
    log = workspace.log_sink.getvalue()
    assert "event=stale_checkpoint" in log
    assert "reason=task_terminal" in log


def test_checkpoint_for_missing_task_is_deleted(workspace) -> None:
    """A checkpoint whose task left the ledger is deleted with a warning."""

    workspace.checkpoints.set(
        "raw_text", "ghost", RawTextCheckpoint(task_id="ghost", prompt="p").to_payload()
    )

    result = workspace.engine().raw_text()

    assert result.outcome == "idle"
    assert workspace.checkpoint_keys() == []
    assert "reason=task_missing" in workspace.log_sink.getvalue()


@pytest.mark.parametrize(
    ("blob_text", "reason"),
    [
        ("{truncated", "reason=unreadable"),
        ('{"phase": "raw_text", "task_id": "t1", "last_completed": "x"}', "reason=shape_mismatch"),
        (
            '{"phase": "raw_text", "task_id": "other", "last_completed": -1, '
            '"accumulated_text": "", "subtopics": [], "prompt": "p", "mode": "Simple"}',
            "reason=task_mismatch",
        ),
    ],
)
def test_invalid_checkpoint_restarts_paused_task_from_scratch(
    workspace, blob_text: str, reason: str
) -> None:
    """An invalid checkpoint is deleted and the paused task is redone from the ledger."""

    workspace.add_task("t1", stage="PausedText")
    blob_path = workspace.config.checkpoints_dir / "raw_text" / "t1.json"
    blob_path.parent.mkdir(parents=True)
    blob_path.write_text(blob_text, encoding="utf-8")

    result = workspace.engine().raw_text()

    assert result.task_id == "t1"
    assert result.outcome == "completed"
    assert workspace.stage("t1") == "TextSaved"
    assert workspace.checkpoint_keys() == []
    assert reason in workspace.log_sink.getvalue()


def test_failure_writes_truncated_error_and_releases_lock(
    workspace, make_generation
) -> None:
    """Task-level exceptions route to the error stage with a bounded message."""

    workspace.config.error_message_max_chars = 40

    def _explode(prompt: str) -> str:
        """Fail every generation call with a long message."""

        raise RuntimeError("provider said " + "x" * 500)

    workspace.add_task("t1", stage="Ingested")

    result = workspace.engine(make_generation(_explode)).raw_text()

    task = workspace.ledger.get("t1")
    assert result.outcome == "failed"
    assert task.stage.value == "Error-Text"
    assert task.error.startswith("RuntimeError: provider said")
    assert len(task.error) <= 40
    assert workspace.checkpoint_keys() == []
    assert not workspace.lock.held
    log = workspace.log_sink.getvalue()
    assert "event=failure" in log
    assert "error_type=RuntimeError" in log
    assert "xxxxxxxxxx" not in log


def test_error_stages_are_absorbing(workspace, make_generation: Callable) -> None:
    """Rows in an error stage are never selected again."""

    workspace.add_task("t1", stage="Error-Text", error="boom")
    generation = make_generation()
    engine = workspace.engine(generation)

    assert [result.outcome for result in engine.tick()] == ["idle"] * 4
    assert workspace.stage("t1") == "Error-Text"
    assert generation.calls == []
