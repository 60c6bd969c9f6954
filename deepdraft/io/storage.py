"""Document storage abstraction.

Responsibilities:
- Persist intermediate and final text artifacts under a filesystem root.
- Offer the create/move/read/rename operations used by phase runners.
"""

from __future__ import annotations

from hashlib import sha256
from pathlib import Path, PurePosixPath
from typing import Protocol

from ..text.slug import slugify_title


class DocumentStore(Protocol):
    """Protocol for document persistence used by phase runners."""

    def create(self, title: str, content: str, location: str = "") -> str:
        """Persist a new document and return its reference."""

    def move(self, ref: str, location: str) -> str:
        """Move a document into another location and return its new reference."""

    def read(self, ref: str) -> str:
        """Return document content for a reference."""

    def rename(self, ref: str, name: str) -> str:
        """Rename a document in place and return its new reference."""


class DocumentStoreError(RuntimeError):
    """Raised when a document reference cannot be resolved or written."""


class FileDocumentStore:
    """Filesystem-backed document store with root-relative POSIX references."""

    def __init__(self, root: Path) -> None:
        """Initialize the store with a root documents directory."""

        self.root = root

    def create(self, title: str, content: str, location: str = "") -> str:
        """Save text content as a new Markdown document and return its reference."""

        digest = sha256(content.encode("utf-8")).hexdigest()[:10]
        name = f"{slugify_title(title)}-{digest}.md"
        ref = self._join(location, name)
        path = self._path(ref)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
        return ref

    def move(self, ref: str, location: str) -> str:
        """Move a document under another location, keeping its file name."""

        source = self._existing_path(ref)
        new_ref = self._join(location, source.name)
        target = self._path(new_ref)
        target.parent.mkdir(parents=True, exist_ok=True)
        source.replace(target)
        return new_ref

    def read(self, ref: str) -> str:
        """Load text content for a document reference."""

        return self._existing_path(ref).read_text(encoding="utf-8")

    def rename(self, ref: str, name: str) -> str:
        """Rename a document within its current location.

        An existing document under the new name is never replaced.
        """

        source = self._existing_path(ref)
        new_name = f"{slugify_title(name)}{source.suffix}"
        new_ref = str(PurePosixPath(ref).with_name(new_name))
        if new_ref == ref:
            return ref
        target = self._path(new_ref)
        if target.exists():
            raise DocumentStoreError(f"Document already exists: `{new_ref}`.")
        source.rename(target)
        return new_ref

    def exists(self, ref: str) -> bool:
        """Return whether the given document exists."""

        return self._path(ref).is_file()

    def _existing_path(self, ref: str) -> Path:
        """Resolve a reference and require that the document exists."""

        path = self._path(ref)
        if not path.is_file():
            raise DocumentStoreError(f"Document not found: `{ref}`.")
        return path

    def _path(self, ref: str) -> Path:
        """Resolve a reference to a filesystem path inside the store root."""

        relative = PurePosixPath(ref)
        if relative.is_absolute() or ".." in relative.parts:
            raise DocumentStoreError(f"Document reference escapes store root: `{ref}`.")
        return self.root.joinpath(*relative.parts)

    @staticmethod
    def _join(location: str, name: str) -> str:
        """Join a location and file name into a POSIX reference."""

        cleaned = location.strip().strip("/")
        if not cleaned:
            return name
        return str(PurePosixPath(cleaned) / name)
