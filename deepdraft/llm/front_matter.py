"""Delimited front-matter contract for finalization replies.

Responsibilities:
- Validate replies against the `<<<TITLE>>> ... <<<END>>>` delimited format.
- Provide the fallback front matter used when a reply stays invalid.
- Render the final document layout around an assembled body.
"""

from __future__ import annotations

from dataclasses import dataclass

from ..parsing import normalize_optional_string, strip_code_fence

TITLE_DELIMITER = "<<<TITLE>>>"
SUMMARY_DELIMITER = "<<<SUMMARY>>>"
BODY_DELIMITER = "<<<BODY>>>"
REFERENCES_DELIMITER = "<<<REFERENCES>>>"
END_DELIMITER = "<<<END>>>"

_MAX_TITLE_CHARS = 120
_FALLBACK_TITLE = "Untitled Document"


class FrontMatterContractError(ValueError):
    """Raised when a reply does not follow the delimited contract."""


@dataclass(frozen=True, slots=True)
class FrontMatter:
    """Structured fields recovered from a finalization reply.

    Attributes:
        title: One-line document title.
        summary: Executive summary text.
        references: References section text (may be empty).
        body: Edited body for single-pass replies, otherwise `None`.
    """

    title: str
    summary: str
    references: str
    body: str | None = None


def parse_front_matter(reply: str, *, require_body: bool = False) -> FrontMatter:
    """Validate and split a delimited reply.

    Args:
        reply: Raw model reply.
        require_body: Whether a `<<<BODY>>>` field is mandatory.

    Returns:
        Parsed front matter.

    Raises:
        FrontMatterContractError: If delimiters are missing, duplicated, out of
            order, or a mandatory field is empty.
    """

    delimiters = [TITLE_DELIMITER, SUMMARY_DELIMITER]
    if require_body:
        delimiters.append(BODY_DELIMITER)
    delimiters.extend([REFERENCES_DELIMITER, END_DELIMITER])

    lines = strip_code_fence(reply).splitlines()
    positions: dict[str, int] = {}
    for line_index, line in enumerate(lines):
        token = line.strip()
        if token not in delimiters and token != BODY_DELIMITER:
            continue
        if token in positions:
            raise FrontMatterContractError(f"Delimiter `{token}` appears more than once.")
        positions[token] = line_index

    missing = [delimiter for delimiter in delimiters if delimiter not in positions]
    if missing:
        raise FrontMatterContractError(f"Missing delimiter(s): {', '.join(missing)}.")
    if not require_body and BODY_DELIMITER in positions:
        raise FrontMatterContractError(f"Unexpected delimiter `{BODY_DELIMITER}`.")
    ordered = [positions[delimiter] for delimiter in delimiters]
    if ordered != sorted(ordered):
        raise FrontMatterContractError("Delimiters are out of order.")

    fields: dict[str, str] = {}
    for current, following in zip(delimiters, delimiters[1:]):
        start = positions[current] + 1
        end = positions[following]
        fields[current] = "\n".join(lines[start:end]).strip()

    title = " ".join(fields[TITLE_DELIMITER].split())
    if not title:
        raise FrontMatterContractError("Title field is empty.")
    if len(title) > _MAX_TITLE_CHARS:
        raise FrontMatterContractError("Title field is longer than one heading line.")
    summary = fields[SUMMARY_DELIMITER]
    if not summary:
        raise FrontMatterContractError("Summary field is empty.")
    body: str | None = None
    if require_body:
        body = fields[BODY_DELIMITER]
        if not body:
            raise FrontMatterContractError("Body field is empty.")

    return FrontMatter(
        title=title.lstrip("# ").strip(),
        summary=summary,
        references=fields[REFERENCES_DELIMITER],
        body=body,
    )


def title_from_prompt(prompt: str) -> str:
    """Derive a short document title from a task prompt."""

    first_line = next(
        (line.strip() for line in prompt.splitlines() if line.strip()),
        "",
    )
    if not first_line:
        return _FALLBACK_TITLE
    if len(first_line) > _MAX_TITLE_CHARS:
        first_line = first_line[:_MAX_TITLE_CHARS].rsplit(" ", 1)[0]
    return first_line.rstrip(" .:;,!?") or _FALLBACK_TITLE


def fallback_front_matter(prompt: str) -> FrontMatter:
    """Return front matter used when no reply satisfied the contract."""

    return FrontMatter(title=title_from_prompt(prompt), summary="", references="")


def render_document(front_matter: FrontMatter, body: str) -> str:
    """Render the final document around an assembled body."""

    blocks = [f"# {front_matter.title}", "## Executive Summary"]
    summary = normalize_optional_string(front_matter.summary)
    if summary is not None:
        blocks.append(summary)
    blocks.append(body.strip())
    blocks.append("## References")
    references = normalize_optional_string(front_matter.references)
    if references is not None:
        blocks.append(references)
    return "\n\n".join(blocks) + "\n"
