"""Chunk consolidation and final document assembly.

Responsibilities:
- Split oversized draft text into section-aligned chunks and transform them in order.
- Recover title, summary, and references through the delimited reply contract,
  retrying once and falling back when the reply stays invalid.
- Render the reassembled final document.

Key types:
- `FinalDocument`: rendered document plus the metadata the runner records.
- `ChunkConsolidator`: drives per-chunk transformation and final assembly.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass
from time import sleep

from ..llm.front_matter import (
    FrontMatter,
    FrontMatterContractError,
    fallback_front_matter,
    parse_front_matter,
    render_document,
)
from ..llm.generation import GenerationClient
from ..llm.prompts import PromptLibrary
from ..models.datatypes import SectionChunk
from ..telemetry.logger import RunLogger
from ..text.chunking import SectionChunker
from ..text.sections import split_sections, strip_markers


@dataclass(frozen=True, slots=True)
class FinalDocument:
    """Reassembled document produced by finalization.

    Attributes:
        title: Final document title.
        text: Rendered document text.
        chunk_count: Number of chunks transformed, `0` for the single-pass path.
        used_fallback: Whether fallback front matter replaced an invalid reply.
    """

    title: str
    text: str
    chunk_count: int = 0
    used_fallback: bool = False


class ChunkConsolidator:
    """Split, transform, and reassemble draft text within size limits."""

    def __init__(
        self,
        generation: GenerationClient,
        logger: RunLogger,
        *,
        single_pass_limit: int,
        chunk_target: int,
        inter_chunk_delay_seconds: float = 0.0,
        sleeper: Callable[[float], None] = sleep,
        prompts: PromptLibrary | None = None,
        chunker: SectionChunker | None = None,
        phase: str = "finalization",
    ) -> None:
        """Initialize consolidation limits and collaborators."""

        self.generation = generation
        self.logger = logger
        self.single_pass_limit = single_pass_limit
        self.chunk_target = chunk_target
        self.inter_chunk_delay_seconds = inter_chunk_delay_seconds
        self._sleeper = sleeper
        self.prompts = prompts if prompts is not None else PromptLibrary()
        self.chunker = chunker if chunker is not None else SectionChunker()
        self.phase = phase

    def needs_chunking(self, text: str) -> bool:
        """Return whether text is too long for a single finalization call."""

        return len(text) > self.single_pass_limit

    def split(self, text: str) -> list[SectionChunk]:
        """Split marked text into ordered, size-bounded chunks."""

        return self.chunker.pack(split_sections(text), self.chunk_target)

    def transform_chunks(
        self,
        goal: str,
        chunks: Sequence[SectionChunk],
        task_id: str = "",
    ) -> list[str]:
        """Transform chunks strictly in order with a pacing delay between calls."""

        titles = tuple(title for chunk in chunks for title in chunk.titles)
        transformed: list[str] = []
        for chunk in chunks:
            if transformed and self.inter_chunk_delay_seconds > 0:
                self._sleeper(self.inter_chunk_delay_seconds)
            reply = self.generation.generate(
                self.prompts.chunk_transform_prompt(
                    goal,
                    self.chunker.chunk_text(chunk),
                    titles,
                    is_first=chunk.is_first,
                    is_last=chunk.is_last,
                )
            )
            transformed.append(reply.strip())
            self.logger.info(
                "chunk_transformed",
                self.phase,
                task_id=task_id,
                index=chunk.index,
                size=chunk.size,
            )
        return transformed

    def assemble(
        self,
        goal: str,
        chunks: Sequence[SectionChunk],
        transformed: Sequence[str],
        task_id: str = "",
    ) -> FinalDocument:
        """Join transformed chunks and splice front matter around them."""

        body = strip_markers("\n\n".join(transformed))
        titles = tuple(title for chunk in chunks for title in chunk.titles)
        front_matter, used_fallback = self._request_front_matter(
            goal,
            self.prompts.assembly_prompt(goal, titles, body),
            require_body=False,
            task_id=task_id,
        )
        return FinalDocument(
            title=front_matter.title,
            text=render_document(front_matter, body),
            chunk_count=len(chunks),
            used_fallback=used_fallback,
        )

    def finalize_single(self, goal: str, text: str, task_id: str = "") -> FinalDocument:
        """Finalize short text with one structured call."""

        front_matter, used_fallback = self._request_front_matter(
            goal,
            self.prompts.single_pass_prompt(goal, text),
            require_body=True,
            task_id=task_id,
        )
        body = front_matter.body if front_matter.body is not None else strip_markers(text)
        return FinalDocument(
            title=front_matter.title,
            text=render_document(front_matter, body),
            used_fallback=used_fallback,
        )

    def _request_front_matter(
        self,
        goal: str,
        prompt: str,
        *,
        require_body: bool,
        task_id: str,
    ) -> tuple[FrontMatter, bool]:
        """Ask for a delimited reply, retry once with a correction, then fall back."""

        reply = self.generation.generate(prompt)
        try:
            return parse_front_matter(reply, require_body=require_body), False
        except FrontMatterContractError as exc:
            problem = str(exc)
        self.logger.warning("contract_retry", self.phase, task_id=task_id)

        reply = self.generation.generate(self.prompts.corrective_prompt(prompt, problem))
        try:
            return parse_front_matter(reply, require_body=require_body), False
        except FrontMatterContractError:
            self.logger.warning("fallback", self.phase, task_id=task_id)
        return fallback_front_matter(goal), True
