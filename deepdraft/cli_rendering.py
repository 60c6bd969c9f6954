"""CLI output and error rendering helpers.

This module centralizes user-facing CLI presentation for command diagnostics,
invocation results, and ledger task rows.
"""

from __future__ import annotations

from typing import NoReturn

import typer

from .errors import PhaseError
from .models.datatypes import InvocationResult, Task


def exit_with_command_error(command_name: str, exc: Exception) -> NoReturn:
    """Print concise diagnostics for command failures and exit with code 1."""

    if isinstance(exc, PhaseError):
        typer.secho(
            f"{command_name} failed at stage `{exc.stage}`: {exc.detail}",
            fg=typer.colors.RED,
            err=True,
        )
        if exc.hint:
            typer.secho(f"Hint: {exc.hint}", fg=typer.colors.YELLOW, err=True)
    else:
        typer.secho(f"{command_name} failed: {exc}", fg=typer.colors.RED, err=True)
    raise typer.Exit(code=1) from exc


def echo_invocation_result(result: InvocationResult) -> None:
    """Print one invocation outcome line."""

    parts = [f"phase={result.phase}", f"outcome={result.outcome}"]
    if result.task_id is not None:
        parts.append(f"task={result.task_id}")
    if result.stage is not None:
        parts.append(f"stage={result.stage.value}")
    line = " ".join(parts)
    if result.detail:
        line = f"{line} ({result.detail})"
    color = typer.colors.RED if result.outcome == "failed" else None
    typer.secho(line, fg=color)


def echo_task_rows(tasks: list[Task]) -> None:
    """Print compact deterministic task rows in ledger order."""

    if not tasks:
        typer.echo("No tasks in ledger.")
        return
    for task in tasks:
        stage = task.stage.value if task.stage is not None else "(unknown)"
        line = f"{task.task_id}\t{stage}\t{task.mode}"
        if task.output_ref:
            line = f"{line}\t{task.output_ref}"
        typer.echo(line)
        if task.error:
            typer.echo(f"  error: {task.error}")
        for note in task.notes:
            typer.echo(f"  note: {note}")
