"""Section marker helpers for accumulated draft text.

Responsibilities:
- Render the marker line inserted at every sub-topic boundary.
- Split accumulated text back into ordered `(title, body)` sections.
- Extract the bounded paragraph tail window used as generation context.
"""

from __future__ import annotations

import re

from ..models.datatypes import Section

_MARKER_PATTERN = re.compile(r"^\[\[SECTION: (?P<title>.*?)\]\][ \t]*$", re.MULTILINE)
_PARAGRAPH_BREAK = re.compile(r"\n[ \t]*\n")


def section_marker(title: str) -> str:
    """Return the marker line for a section title."""

    flattened = " ".join(title.replace("]]", "] ]").split())
    return f"[[SECTION: {flattened}]]"


def append_section(accumulated: str, title: str, body: str) -> str:
    """Append a marked section to accumulated text."""

    block = f"{section_marker(title)}\n\n{body.strip()}"
    if not accumulated.strip():
        return block
    return f"{accumulated.rstrip()}\n\n{block}"


def split_sections(text: str) -> list[Section]:
    """Split text on marker lines, preserving order and titles.

    Text before the first marker becomes a section with `title=None` when it is
    not blank. A marker with no following text still yields an empty-body section.
    """

    sections: list[Section] = []
    matches = list(_MARKER_PATTERN.finditer(text))
    leading_end = matches[0].start() if matches else len(text)
    leading = text[:leading_end].strip()
    if leading:
        sections.append(Section(title=None, body=leading))

    for position, match in enumerate(matches):
        body_end = matches[position + 1].start() if position + 1 < len(matches) else len(text)
        sections.append(
            Section(title=match.group("title").strip(), body=text[match.end() : body_end].strip())
        )
    return sections


def join_sections(sections: list[Section] | tuple[Section, ...]) -> str:
    """Render sections back into marked text."""

    blocks: list[str] = []
    for section in sections:
        if section.title is None:
            blocks.append(section.body)
        elif section.body:
            blocks.append(f"{section_marker(section.title)}\n\n{section.body}")
        else:
            blocks.append(section_marker(section.title))
    return "\n\n".join(blocks)


def strip_markers(text: str) -> str:
    """Replace marker lines with Markdown section headings."""

    return _MARKER_PATTERN.sub(lambda match: f"## {match.group('title').strip()}", text)


def tail_window(text: str, paragraphs: int) -> str:
    """Return the last `paragraphs` blank-line-delimited paragraphs of text.

    Marker-only blocks are not paragraphs and never count toward the window.
    """

    if paragraphs <= 0:
        return ""
    blocks = [
        block.strip()
        for block in _PARAGRAPH_BREAK.split(text)
        if block.strip() and _MARKER_PATTERN.fullmatch(block.strip()) is None
    ]
    return "\n\n".join(blocks[-paragraphs:])
