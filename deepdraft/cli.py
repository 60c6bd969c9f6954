"""Command-line interface for DeepDraft.

Responsibilities:
- Expose user-facing commands for task registration, phase invocations,
  scheduled continuations, cancellation, and credentials.
- Convert CLI arguments into `DeepDraftConfig` and engine calls.

Key public functions:
- `app`: Typer application instance.
- `main`: invoke the Typer application.
"""

from __future__ import annotations

from dataclasses import replace
from pathlib import Path
from typing import Annotated

import typer

from .cli_rendering import echo_invocation_result, echo_task_rows, exit_with_command_error
from .cli_runtime import resolve_runtime_sources
from .config import ConfigLoader, DeepDraftConfig
from .credentials import create_credential_store
from .errors import PhaseError
from .io.ledger import JsonTaskLedger
from .models.datatypes import Stage, TaskMode
from .parsing import normalize_optional_string
from .pipeline import PHASE_ORDER, DeepDraftEngine
from .telemetry.logger import RunLogger

app = typer.Typer(
    name="deepdraft",
    no_args_is_help=True,
    help="DeepDraft CLI.",
)

ConfigOption = Annotated[
    Path | None,
    typer.Option("--config", help="Path to YAML config file with runtime settings."),
]
WorkspaceOption = Annotated[
    Path | None,
    typer.Option("--workspace", help="Workspace directory (overrides config file value)."),
]
ModelOption = Annotated[
    str | None,
    typer.Option("--model", help="Generation model id override."),
]
ApiKeyOption = Annotated[
    str | None,
    typer.Option(
        "--api-key",
        help="Provider API key override. Prefer `--prompt-api-key` to avoid shell history.",
    ),
]
PromptApiKeyOption = Annotated[
    bool,
    typer.Option("--prompt-api-key", help="Prompt for API key with hidden input."),
]
StoreApiKeyOption = Annotated[
    bool,
    typer.Option(
        "--store-api-key/--no-store-api-key",
        help="Persist CLI-entered API key to secure credential storage.",
    ),
]


def _load_base_config(config_path: Path | None, workspace: Path | None) -> DeepDraftConfig:
    """Load YAML config when requested, apply CLI overrides, and map failures."""

    if config_path is None:
        config = DeepDraftConfig()
    else:
        try:
            config = ConfigLoader.from_yaml(config_path)
        except FileNotFoundError as exc:
            raise PhaseError(
                stage="config",
                detail=f"Config file not found: `{config_path}`.",
                hint="Provide an existing path via `--config <path.yaml>`.",
            ) from exc
        except ValueError as exc:
            raise PhaseError(
                stage="config",
                detail=f"Invalid config file `{config_path}`: {exc}",
                hint="Fix config schema/values and rerun.",
            ) from exc
        except Exception as exc:
            raise PhaseError(
                stage="config",
                detail=f"Failed to load config file `{config_path}`: {exc}",
                hint="Verify YAML syntax and file permissions.",
            ) from exc
    if workspace is not None:
        config = replace(config, workspace_dir=workspace)
    return config


def _engine_config(
    config_path: Path | None,
    workspace: Path | None,
    model: str | None,
    api_key: str | None,
    prompt_api_key: bool,
    store_api_key: bool,
) -> DeepDraftConfig:
    """Resolve the full runtime config for commands that call the provider."""

    runtime_sources = resolve_runtime_sources(
        model=model,
        api_key=api_key,
        prompt_api_key=prompt_api_key,
        store_api_key=store_api_key,
        credential_store_factory=create_credential_store,
    )
    return replace(_load_base_config(config_path, workspace), runtime_sources=runtime_sources)


@app.command("add-task")
def add_task_command(
    task_id: Annotated[str, typer.Argument(help="Unique task id.")],
    prompt: Annotated[str, typer.Option("--prompt", help="Task goal text.")],
    mode: Annotated[
        str,
        typer.Option("--mode", help="Generation mode: `Simple` or `Deep`."),
    ] = TaskMode.SIMPLE.value,
    max_subtopics: Annotated[
        int,
        typer.Option("--max-subtopics", min=0, help="Sub-topic cap for Deep mode (0 = unlimited)."),
    ] = 0,
    skip_ingestion: Annotated[
        bool,
        typer.Option(
            "--skip-ingestion",
            help="Register the task as already ingested (no inbox items).",
        ),
    ] = False,
    config_file: ConfigOption = None,
    workspace: WorkspaceOption = None,
) -> None:
    """Register a new task in the ledger."""

    try:
        normalized_prompt = normalize_optional_string(prompt)
        if normalized_prompt is None:
            raise PhaseError(
                stage="add-task",
                detail="Task prompt must not be empty.",
                hint="Pass a goal via `--prompt`.",
            )
        mode_values = {item.value.lower(): item.value for item in TaskMode}
        resolved_mode = mode_values.get(mode.strip().lower())
        if resolved_mode is None:
            raise PhaseError(
                stage="add-task",
                detail=f"Unsupported mode `{mode}`.",
                hint="Use `--mode Simple` or `--mode Deep`.",
            )
        config = _load_base_config(config_file, workspace)
        ledger = JsonTaskLedger(config.ledger_path)
        task = ledger.add(
            {
                "id": task_id,
                "stage": Stage.INGESTED if skip_ingestion else Stage.PENDING_INGESTION,
                "mode": resolved_mode,
                "prompt": normalized_prompt,
                "max_subtopics": max_subtopics,
                "subtopics": "",
                "file_refs": [],
                "notes": [],
                "output_ref": None,
                "error": None,
            }
        )
        (config.inbox_dir / task.task_id).mkdir(parents=True, exist_ok=True)
    except Exception as exc:
        exit_with_command_error("add-task", exc)

    stage = task.stage.value if task.stage is not None else "(unknown)"
    typer.echo(f"Task added: {task.task_id} (stage {stage})")
    typer.echo(f"Inbox: {config.inbox_dir / task.task_id}")


@app.command("list-tasks")
def list_tasks_command(
    config_file: ConfigOption = None,
    workspace: WorkspaceOption = None,
) -> None:
    """Print ledger rows with stage, mode, output, errors, and notes."""

    try:
        config = _load_base_config(config_file, workspace)
        tasks = JsonTaskLedger(config.ledger_path).scan()
    except Exception as exc:
        exit_with_command_error("list-tasks", exc)

    echo_task_rows(tasks)


@app.command("run-phase")
def run_phase_command(
    phase: Annotated[
        str,
        typer.Argument(help=f"Phase entry point: {', '.join(PHASE_ORDER)}."),
    ],
    config_file: ConfigOption = None,
    workspace: WorkspaceOption = None,
    model: ModelOption = None,
    api_key: ApiKeyOption = None,
    prompt_api_key: PromptApiKeyOption = False,
    store_api_key: StoreApiKeyOption = True,
) -> None:
    """Run one bounded invocation of a phase."""

    run_logger: RunLogger | None = None
    try:
        if phase not in PHASE_ORDER:
            raise PhaseError(
                stage="run-phase",
                detail=f"Unknown phase `{phase}`.",
                hint=f"Use one of: {', '.join(PHASE_ORDER)}.",
            )
        config = _engine_config(
            config_file, workspace, model, api_key, prompt_api_key, store_api_key
        )
        run_logger = RunLogger()
        engine = DeepDraftEngine.from_config(config, logger=run_logger)
        result = engine.run_phase(phase)
    except Exception as exc:
        exit_with_command_error("run-phase", exc)
    finally:
        if run_logger is not None:
            run_logger.close()

    echo_invocation_result(result)


@app.command("tick")
def tick_command(
    config_file: ConfigOption = None,
    workspace: WorkspaceOption = None,
    model: ModelOption = None,
    api_key: ApiKeyOption = None,
    prompt_api_key: PromptApiKeyOption = False,
    store_api_key: StoreApiKeyOption = True,
) -> None:
    """Fire due continuations, then invoke each phase not waiting on one."""

    run_logger: RunLogger | None = None
    try:
        config = _engine_config(
            config_file, workspace, model, api_key, prompt_api_key, store_api_key
        )
        run_logger = RunLogger()
        engine = DeepDraftEngine.from_config(config, logger=run_logger)
        results = engine.tick()
    except Exception as exc:
        exit_with_command_error("tick", exc)
    finally:
        if run_logger is not None:
            run_logger.close()

    for result in results:
        echo_invocation_result(result)


@app.command("cancel")
def cancel_command(
    task_id: Annotated[str, typer.Argument(help="Task id to cancel.")],
    reason: Annotated[
        str,
        typer.Option("--reason", help="Message written to the task error field."),
    ] = "Cancelled by operator.",
    config_file: ConfigOption = None,
    workspace: WorkspaceOption = None,
) -> None:
    """Delete a task's checkpoints and force its current phase's error stage."""

    run_logger: RunLogger | None = None
    try:
        config = _load_base_config(config_file, workspace)
        run_logger = RunLogger()
        engine = DeepDraftEngine.from_config(config, logger=run_logger)
        stage = engine.cancel_task(task_id, reason=reason)
    except Exception as exc:
        exit_with_command_error("cancel", exc)
    finally:
        if run_logger is not None:
            run_logger.close()

    typer.echo(f"Task cancelled: {task_id} (stage {stage.value})")


@app.command("credentials")
def credentials_command(
    set_api_key: Annotated[
        bool,
        typer.Option(
            "--set-api-key",
            help="Prompt for API key with hidden input and store it securely.",
        ),
    ] = False,
    clear_api_key: Annotated[
        bool,
        typer.Option(
            "--clear-api-key",
            help="Clear stored API key from secure credential storage.",
        ),
    ] = False,
) -> None:
    """Manage securely stored CLI credentials."""

    if set_api_key and clear_api_key:
        exit_with_command_error(
            "credentials",
            PhaseError(
                stage="credentials",
                detail="`--set-api-key` and `--clear-api-key` cannot be used together.",
                hint="Run one credentials action per command invocation.",
            ),
        )

    credential_store = create_credential_store()
    if set_api_key:
        prompted_api_key = normalize_optional_string(
            typer.prompt(
                "OpenAI API key (hidden input)",
                default="",
                hide_input=True,
                show_default=False,
            )
        )
        if prompted_api_key is None:
            exit_with_command_error(
                "credentials",
                PhaseError(
                    stage="credentials",
                    detail="No API key entered.",
                    hint="Provide a non-empty API key when using `--set-api-key`.",
                ),
            )
        try:
            credential_store.set_api_key(prompted_api_key)
        except Exception as exc:
            exit_with_command_error(
                "credentials",
                PhaseError(
                    stage="credentials",
                    detail=f"Failed to store API key securely: {exc}",
                    hint="Install and configure a keyring backend and retry.",
                ),
            )
        typer.echo("API key stored in secure credential storage.")
        return

    if clear_api_key:
        removed = credential_store.clear_api_key()
        if removed:
            typer.echo("Stored API key cleared from secure credential storage.")
        else:
            typer.echo("No stored API key found in secure credential storage.")
        return

    availability = "available" if credential_store.is_available() else "unavailable"
    has_stored_key = credential_store.get_api_key() is not None
    status = "present" if has_stored_key else "not set"
    typer.echo(f"Secure credential storage: {availability}")
    typer.echo(f"Stored OpenAI API key: {status}")


def main() -> None:
    """CLI entrypoint for console scripts."""
    app()


if __name__ == "__main__":
    main()
