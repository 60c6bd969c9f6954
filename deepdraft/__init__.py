"""Top-level package for DeepDraft.

This package drives long-running, multi-phase document generation tasks to
completion in bounded-time slices. The main orchestration entry point is
`DeepDraftEngine`.
"""

from .pipeline import DeepDraftEngine

__all__ = ["DeepDraftEngine", "__version__"]

__version__ = "0.3.0"
