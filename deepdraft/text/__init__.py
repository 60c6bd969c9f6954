"""Text segmentation components.

This package provides the section markers, tail-window extraction, and
section-aligned chunking used by the raw-text and finalization phases.
"""

from .chunking import SectionChunker
from .sections import (
    append_section,
    join_sections,
    section_marker,
    split_sections,
    strip_markers,
    tail_window,
)
from .slug import slugify_title

__all__ = [
    "SectionChunker",
    "append_section",
    "join_sections",
    "section_marker",
    "slugify_title",
    "split_sections",
    "strip_markers",
    "tail_window",
]
