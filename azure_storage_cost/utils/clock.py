"""Time source used wherever a timestamp is recorded.

Callers inject a ``Clock`` (any zero-argument callable returning an aware
datetime) so tests can pin time; ``utc_now`` is the production default.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Callable

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class FrozenClock:
    """Manually advanced clock for deterministic runs."""

    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, delta) -> None:
        self.now = self.now + delta
