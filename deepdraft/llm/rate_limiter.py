"""Request pacing for provider calls.

Responsibilities:
- Enforce a minimum interval between requests sharing one pacing key.
- Keep pacing policy out of the provider adapter and the phase runners.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from time import monotonic, sleep
from typing import Callable


@dataclass(slots=True)
class RateLimiter:
    """Per-key minimum-interval limiter used around generation requests.

    Attributes:
        min_interval_seconds: Minimum spacing between two requests of one key.
        clock: Monotonic clock used to measure spacing.
        sleeper: Blocking sleep used to wait out the remaining interval.
        waited_seconds: Total time spent waiting, for diagnostics.
    """

    min_interval_seconds: float = 0.5
    clock: Callable[[], float] = monotonic
    sleeper: Callable[[float], None] = sleep
    waited_seconds: float = 0.0
    _last_request_at: dict[str, float] = field(default_factory=dict)

    def acquire(self, key: str) -> None:
        """Wait until a request for `key` is allowed, then record it."""

        now = self.clock()
        if self.min_interval_seconds > 0.0 and key in self._last_request_at:
            remaining = self._last_request_at[key] + self.min_interval_seconds - now
            if remaining > 0.0:
                self.sleeper(remaining)
                self.waited_seconds += remaining
                now = self.clock()
        self._last_request_at[key] = now

    def reset(self, key: str | None = None) -> None:
        """Forget request history for one key, or for every key."""

        if key is None:
            self._last_request_at.clear()
        else:
            self._last_request_at.pop(key, None)
