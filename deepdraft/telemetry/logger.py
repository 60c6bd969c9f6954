"""Structured run logging utilities.

Responsibilities:
- Emit concise, deterministic runner-event log lines through `loguru`.
- Keep task content (prompts, generated text, keys) out of log context.
"""

from __future__ import annotations

import sys
from typing import TextIO

from loguru import logger as _loguru_logger


def _sanitize_context_value(value: object) -> str:
    """Convert context values into stable, shell-safe tokens."""

    raw = getattr(value, "value", value)
    text = str(raw).strip()
    if not text:
        return "none"
    return "".join(
        character if character.isalnum() or character in {"-", "_", ".", ":", "/"} else "_"
        for character in text
    )


def _format_context(context: dict[str, object]) -> str:
    """Serialize context key/value pairs in deterministic key order."""

    if not context:
        return ""
    tokens = [
        f"{key}={_sanitize_context_value(context[key])}"
        for key in sorted(context.keys())
    ]
    return " " + " ".join(tokens)


class RunLogger:
    """Emit deterministic phase-runner events for CLI-observable activity."""

    def __init__(self, sink: TextIO | None = None, level: str = "INFO") -> None:
        """Initialize logger sink and configure deterministic formatting."""

        self._sink = sink or sys.stderr
        _loguru_logger.remove()
        self._handler_id = _loguru_logger.add(
            self._sink, format="{message}", level=level, colorize=False
        )

    def close(self) -> None:
        """Detach the sink from `loguru` unless another logger already replaced it."""

        try:
            _loguru_logger.remove(self._handler_id)
        except ValueError:
            return

    def _emit(self, level: str, event: str, phase: str, **context: object) -> None:
        """Emit one structured runtime log line."""

        line = f"[phase] level={level} phase={phase} event={event}{_format_context(context)}"
        _loguru_logger.log(level, line)

    def info(self, event: str, phase: str, **context: object) -> None:
        """Emit an informational runner event."""

        self._emit("INFO", event, phase, **context)

    def warning(self, event: str, phase: str, **context: object) -> None:
        """Emit a warning runner event (stale checkpoints, non-fatal store failures)."""

        self._emit("WARNING", event, phase, **context)

    def failure(self, phase: str, task_id: str, error_type: str) -> None:
        """Emit a task failure event without the error payload."""

        self._emit("ERROR", "failure", phase, task_id=task_id, error_type=error_type)
