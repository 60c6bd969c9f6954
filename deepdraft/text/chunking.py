"""Section-aligned chunk packing for the finalization phase.

Responsibilities:
- Pack ordered sections into size-bounded chunks without splitting a section.
- Mark chunk positions so per-chunk transformations can be prompted accordingly.
"""

from __future__ import annotations

from ..models.datatypes import Section, SectionChunk
from .sections import join_sections


class SectionChunker:
    """Greedy first-fit-with-current packer over ordered sections."""

    def pack(self, sections: list[Section], target_size: int) -> list[SectionChunk]:
        """Pack sections into chunks of at most `target_size` body characters.

        A section is appended to the open chunk unless that would exceed
        `target_size` while the open chunk is non-empty; then the open chunk is
        closed and a new one is seeded with the section. A single section larger
        than `target_size` becomes its own oversized chunk.

        Args:
            sections: Ordered sections from `split_sections`.
            target_size: Target chunk size in characters.

        Returns:
            Ordered chunks with first/last position flags set.
        """

        if target_size <= 0:
            raise ValueError("`target_size` must be positive.")

        groups: list[list[Section]] = []
        current: list[Section] = []
        current_size = 0
        for section in sections:
            section_size = len(section.body)
            if current and current_size + section_size > target_size:
                groups.append(current)
                current = []
                current_size = 0
            current.append(section)
            current_size += section_size
        if current:
            groups.append(current)

        last_index = len(groups) - 1
        return [
            SectionChunk(
                index=index,
                sections=tuple(group),
                is_first=index == 0,
                is_last=index == last_index,
            )
            for index, group in enumerate(groups)
        ]

    @staticmethod
    def chunk_text(chunk: SectionChunk) -> str:
        """Render one chunk back into marked text."""

        return join_sections(chunk.sections)
