"""Telemetry helpers.

This package emits deterministic runner events for operator auditing.
"""

from .logger import RunLogger

__all__ = ["RunLogger"]
