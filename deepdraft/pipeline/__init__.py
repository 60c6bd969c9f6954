"""DeepDraft pipeline package.

This package contains the generic phase runner, the four phase runners, the
chunk consolidator, tagged checkpoints, and the engine facade.
"""

from .engine import PHASE_ORDER, DeepDraftEngine

__all__ = ["DeepDraftEngine", "PHASE_ORDER"]
