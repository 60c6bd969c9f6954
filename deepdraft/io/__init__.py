"""I/O adapters for DeepDraft.

This package provides the local ledger, checkpoint, document, and ingestion
source implementations used by phase runners.
"""

from .checkpoints import CheckpointStore, FileCheckpointStore, checkpoint_key
from .ledger import JsonTaskLedger, LedgerError, TaskLedger
from .storage import DocumentStore, DocumentStoreError, FileDocumentStore
from .text_extractor import DirectorySource, ExtractionError, SourceItem, TextExtractor

__all__ = [
    "CheckpointStore",
    "DirectorySource",
    "DocumentStore",
    "DocumentStoreError",
    "ExtractionError",
    "FileCheckpointStore",
    "FileDocumentStore",
    "JsonTaskLedger",
    "LedgerError",
    "SourceItem",
    "TaskLedger",
    "TextExtractor",
    "checkpoint_key",
]
