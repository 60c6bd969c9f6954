"""Prompt template library for generation calls.

Responsibilities:
- Centralize prompt construction for planning, reflection, drafting, and finalization.
- Describe the delimited front-matter contract the finalization calls must follow.
"""

from __future__ import annotations

from .front_matter import (
    BODY_DELIMITER,
    END_DELIMITER,
    REFERENCES_DELIMITER,
    SUMMARY_DELIMITER,
    TITLE_DELIMITER,
)


class PromptLibrary:
    """Build prompt strings for supported generation steps."""

    def system_prompt(self) -> str:
        """Return the shared system prompt for every generation call."""

        return (
            "You are a meticulous research writer. Follow the requested output format "
            "exactly and do not add commentary about the instructions."
        )

    def planning_prompt(self, goal: str, max_subtopics: int, previous_count: int | None = None) -> str:
        """Return the prompt asking for an ordered sub-topic plan as JSON."""

        limit_line = (
            f"- Return at most {max_subtopics} sub-topics.\n" if max_subtopics > 0 else ""
        )
        retry_line = (
            f"Your previous plan had {previous_count} sub-topics, which is too many. "
            "Merge related sub-topics.\n\n"
            if previous_count is not None
            else ""
        )
        return (
            f"{retry_line}"
            "Plan a long-form document for the goal below as an ordered list of sub-topics.\n"
            "Requirements:\n"
            "- Respond with a JSON array only.\n"
            '- Each element is an object: {"title": "...", "outline": "..."}.\n'
            "- Titles are short and unique; outlines list the points to cover.\n"
            f"{limit_line}"
            "- Use the attached reference documents where relevant.\n\n"
            f"Goal:\n{goal}"
        )

    def reflection_prompt(self, goal: str, title: str, outline: str, tail: str) -> str:
        """Return the prompt that may revise a sub-topic outline before drafting."""

        return (
            "Review the outline for the next section against what has been written so far.\n"
            "If the outline should change to avoid repetition or to connect better, reply "
            "with the revised outline only. If it is fine, reply with an empty message.\n\n"
            f"Goal:\n{goal}\n\n"
            f"Section title: {title}\n"
            f"Current outline:\n{outline or '(none)'}\n\n"
            f"End of the text written so far:\n{tail or '(nothing written yet)'}"
        )

    def subtopic_prompt(self, goal: str, title: str, outline: str, tail: str) -> str:
        """Return the drafting prompt for one sub-topic section."""

        return (
            "Write the next section of the document.\n"
            "Requirements:\n"
            "- Cover the outline thoroughly, in prose paragraphs separated by blank lines.\n"
            "- Continue naturally from the preceding text without repeating it.\n"
            "- Do not write the section title; it is added automatically.\n"
            "- Cite attached reference documents inline where you rely on them.\n\n"
            f"Goal:\n{goal}\n\n"
            f"Section title: {title}\n"
            f"Outline:\n{outline or '(none)'}\n\n"
            f"End of the text written so far:\n{tail or '(nothing written yet)'}"
        )

    def whole_task_prompt(self, goal: str) -> str:
        """Return the drafting prompt for a task written in one call."""

        return (
            "Write a complete, well-structured document for the goal below.\n"
            "Use prose paragraphs separated by blank lines and cite attached reference "
            "documents inline where you rely on them.\n\n"
            f"Goal:\n{goal}"
        )

    def chunk_transform_prompt(
        self,
        goal: str,
        chunk_text: str,
        titles: tuple[str, ...],
        *,
        is_first: bool,
        is_last: bool,
    ) -> str:
        """Return the edit prompt for one finalization chunk."""

        if is_first and is_last:
            position = "This part is the entire document."
        elif is_first:
            position = "This part opens the document; keep an introduction, no conclusion."
        elif is_last:
            position = "This part ends the document; finish with a conclusion."
        else:
            position = "This part sits in the middle; no introduction and no conclusion."
        table = "\n".join(f"- {title}" for title in titles) or "- (untitled)"
        return (
            "Edit the following part of a long document into polished final prose.\n"
            "Requirements:\n"
            "- Keep every section and its `[[SECTION: ...]]` marker line in order.\n"
            "- Preserve facts and citations; remove repetition within this part.\n"
            f"- {position}\n"
            "- Return only the edited text.\n\n"
            f"Goal:\n{goal}\n\n"
            f"All section titles of the document:\n{table}\n\n"
            f"Part to edit:\n{chunk_text}"
        )

    def assembly_prompt(self, goal: str, titles: tuple[str, ...], body: str) -> str:
        """Return the final assembly prompt for title, summary, and references."""

        table = "\n".join(f"- {title}" for title in titles) or "- (untitled)"
        return (
            "Produce the front matter for the finished document below.\n"
            f"{self.front_matter_contract(include_body=False)}\n\n"
            f"Goal:\n{goal}\n\n"
            f"Section titles:\n{table}\n\n"
            f"Document:\n{body}"
        )

    def single_pass_prompt(self, goal: str, text: str) -> str:
        """Return the single-call finalization prompt for short drafts."""

        return (
            "Edit the draft below into a polished final document and produce its "
            "front matter.\n"
            "Replace every `[[SECTION: ...]]` marker line with a Markdown `## ` heading.\n"
            f"{self.front_matter_contract(include_body=True)}\n\n"
            f"Goal:\n{goal}\n\n"
            f"Draft:\n{text}"
        )

    def corrective_prompt(self, original_prompt: str, problem: str) -> str:
        """Return a retry prompt after a reply violated the delimited contract."""

        return (
            f"Your previous reply could not be used: {problem}\n"
            "Answer again and follow the output format exactly.\n\n"
            f"{original_prompt}"
        )

    @staticmethod
    def front_matter_contract(*, include_body: bool) -> str:
        """Describe the delimited reply format."""

        body_block = f"{BODY_DELIMITER}\n<the full edited document body>\n" if include_body else ""
        return (
            "Reply using exactly these delimiter lines, in this order, and nothing else:\n"
            f"{TITLE_DELIMITER}\n<one-line document title>\n"
            f"{SUMMARY_DELIMITER}\n<executive summary paragraphs>\n"
            f"{body_block}"
            f"{REFERENCES_DELIMITER}\n<references as a Markdown list>\n"
            f"{END_DELIMITER}"
        )
