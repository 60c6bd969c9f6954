"""Ingestion source listing and text extraction.

Responsibilities:
- List the ordered items waiting in a task's ingestion directory.
- Extract plain text from supported item formats (PDF and text-like files).
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from pypdf import PdfReader
from pypdf.errors import PdfReadError


_TEXT_SUFFIXES = frozenset({".txt", ".md", ".markdown", ".csv", ".json", ".html", ".htm", ".xml"})


class ExtractionError(RuntimeError):
    """Raised when text extraction from an ingestion item cannot be completed."""


@dataclass(frozen=True, slots=True)
class SourceItem:
    """One file waiting to be ingested.

    Attributes:
        name: Stable item name recorded in the processed list.
        path: Filesystem path of the item.
        size_bytes: Item size used for the per-item cap.
    """

    name: str
    path: Path
    size_bytes: int


class DirectorySource:
    """Ingestion source reading `<root>/<task_id>/*` in sorted-name order."""

    def __init__(self, root: Path) -> None:
        """Initialize the source with the inbox root directory."""

        self.root = root

    def list_items(self, task_id: str) -> list[SourceItem]:
        """Return regular, non-hidden files for a task sorted by name."""

        task_dir = self.root / task_id
        if not task_dir.is_dir():
            return []
        items: list[SourceItem] = []
        for path in sorted(task_dir.iterdir(), key=lambda candidate: candidate.name):
            if not path.is_file() or path.name.startswith("."):
                continue
            items.append(SourceItem(name=path.name, path=path, size_bytes=path.stat().st_size))
        return items


class TextExtractor:
    """Extract plain text from PDFs with `pypdf` and from UTF-8 text files."""

    def extract(self, item: SourceItem) -> str:
        """Extract all text from one item."""

        suffix = item.path.suffix.lower()
        if suffix == ".pdf":
            text = "\n\n".join(page for page in self.extract_pages(item.path) if page)
        elif suffix in _TEXT_SUFFIXES:
            text = item.path.read_text(encoding="utf-8", errors="replace")
        else:
            raise ExtractionError(
                f"Unsupported item type `{suffix or '(none)'}` for `{item.name}`."
            )
        return text.strip()

    def extract_pages(self, pdf_path: Path) -> list[str]:
        """Extract text per page from a PDF file."""

        if not pdf_path.exists():
            raise ExtractionError(f"Input PDF not found: {pdf_path}")
        try:
            reader = PdfReader(str(pdf_path))
            pages: list[str] = []
            for page in reader.pages:
                extracted_text = page.extract_text()
                pages.append((extracted_text or "").replace("\f", "\n").strip())
        except PdfReadError as exc:
            raise ExtractionError(f"Failed to read PDF `{pdf_path.name}`: {exc}") from exc
        return pages

    @staticmethod
    def supports(item: SourceItem) -> bool:
        """Return whether the item type can be extracted."""

        suffix = item.path.suffix.lower()
        return suffix == ".pdf" or suffix in _TEXT_SUFFIXES
