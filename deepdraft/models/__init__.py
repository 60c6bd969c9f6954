"""Shared typed data models for DeepDraft.

This package contains dataclasses and enums used across runner modules to
avoid cross-module coupling and circular imports.
"""

from .datatypes import (
    InvocationResult,
    Section,
    SectionChunk,
    Stage,
    Subtopic,
    Task,
    TaskMode,
    is_deep_mode,
    is_error_stage,
    is_terminal,
    parse_stage,
    stage_order,
)

__all__ = [
    "InvocationResult",
    "Section",
    "SectionChunk",
    "Stage",
    "Subtopic",
    "Task",
    "TaskMode",
    "is_deep_mode",
    "is_error_stage",
    "is_terminal",
    "parse_stage",
    "stage_order",
]
