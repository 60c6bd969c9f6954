"""Deterministic slug helpers for filesystem-safe document names.

Responsibilities:
- Normalize free-form titles into stable, bounded ASCII slugs.
- Keep slug behavior locale-independent for reproducible document refs.
"""

from __future__ import annotations

import re
import unicodedata

_MAX_SLUG_CHARS = 60


def slugify_title(value: str, fallback: str = "document") -> str:
    """Return a deterministic filesystem-safe ASCII slug for a document title."""

    normalized = unicodedata.normalize("NFKD", value)
    ascii_only = normalized.encode("ascii", "ignore").decode("ascii")
    lowered = ascii_only.lower().strip()
    collapsed = re.sub(r"[^a-z0-9]+", "-", lowered)
    slug = collapsed.strip("-")[:_MAX_SLUG_CHARS].rstrip("-")
    return slug or fallback
