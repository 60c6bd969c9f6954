"""Domain exceptions for phase runners and CLI diagnostics."""

from __future__ import annotations


class PhaseError(RuntimeError):
    """Raised when a specific phase or command step fails."""

    def __init__(
        self,
        *,
        stage: str,
        detail: str,
        hint: str | None = None,
    ) -> None:
        """Initialize a stage-scoped error."""

        super().__init__(detail)
        self.stage = stage
        self.detail = detail
        self.hint = hint


class TaskValidationError(ValueError):
    """Raised when a task row is unusable (missing prompt, malformed stored JSON)."""


class CheckpointShapeError(ValueError):
    """Raised when a stored checkpoint blob does not match its phase schema."""
