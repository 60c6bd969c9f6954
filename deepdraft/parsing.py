"""Shared parsing helpers for ledger fields, config values, and checkpoint payloads."""

from __future__ import annotations

import json
from typing import Any


_CODE_FENCE = "```"


def normalize_optional_string(value: object) -> str | None:
    """Normalize an optional value to a stripped non-empty string.

    Args:
        value: Arbitrary input value.

    Returns:
        Stripped string value, or `None` when the value is empty after trimming.
    """

    if value is None:
        return None
    text = str(value).strip()
    if not text:
        return None
    return text


def parse_non_negative_int(value: object, field_name: str) -> int:
    """Parse a ledger integer cell where blank means zero.

    Raises:
        ValueError: If the value is not an integer or is negative.
    """

    if isinstance(value, bool):
        raise ValueError(f"`{field_name}` must be a non-negative integer.")
    if value is None:
        return 0
    if isinstance(value, int):
        parsed = value
    else:
        normalized = normalize_optional_string(value)
        if normalized is None:
            return 0
        try:
            parsed = int(normalized)
        except ValueError as exc:
            raise ValueError(f"`{field_name}` must be a non-negative integer.") from exc
    if parsed < 0:
        raise ValueError(f"`{field_name}` must be a non-negative integer.")
    return parsed


def strip_code_fence(text: str) -> str:
    """Remove one surrounding Markdown code fence from model output, if present."""

    stripped = text.strip()
    if not stripped.startswith(_CODE_FENCE):
        return stripped
    first_newline = stripped.find("\n")
    if first_newline == -1:
        return stripped.strip("`").strip()
    body = stripped[first_newline + 1 :]
    if body.rstrip().endswith(_CODE_FENCE):
        body = body.rstrip()[: -len(_CODE_FENCE)]
    return body.strip()


def loads_json_cell(raw: object, field_name: str) -> Any:
    """Decode a JSON-encoded ledger cell, treating blank cells as `None`.

    Raises:
        ValueError: If the cell holds text that is not valid JSON.
    """

    if raw is None:
        return None
    if not isinstance(raw, str):
        return raw
    normalized = normalize_optional_string(raw)
    if normalized is None:
        return None
    try:
        return json.loads(normalized)
    except json.JSONDecodeError as exc:
        raise ValueError(
            f"`{field_name}` is not valid JSON (line {exc.lineno}, column {exc.colno})."
        ) from exc


def truncate_message(text: str, max_chars: int) -> str:
    """Collapse whitespace and cap a human-readable message length."""

    compact = " ".join(str(text).split())
    if max_chars <= 0 or len(compact) <= max_chars:
        return compact
    if max_chars <= 3:
        return compact[:max_chars]
    return f"{compact[: max_chars - 3]}..."
