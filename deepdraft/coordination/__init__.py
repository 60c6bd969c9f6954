"""Coordination primitives shared by phase runners.

This package provides the global runner lock and the one-shot continuation
scheduler.
"""

from .lock import FileLock, PhaseLock
from .scheduler import Continuation, ContinuationQueue, FileScheduler, Scheduler

__all__ = [
    "Continuation",
    "ContinuationQueue",
    "FileLock",
    "FileScheduler",
    "PhaseLock",
    "Scheduler",
]
