"""Cooperative time budgets for analysis phases.

Python threads cannot be interrupted from the outside, so every phase that
walks a tree or iterates regex matches calls ``Deadline.check()`` at regular
intervals and unwinds with ``AnalysisTimeout`` once the budget is spent.
"""

import time
from typing import Optional

from .errors import AnalysisTimeout


class Deadline:
    """An absolute point in time after which work should stop."""

    def __init__(self, seconds: Optional[float] = None, expires_at: Optional[float] = None):
        if expires_at is not None:
            self.expires_at = expires_at
        elif seconds is not None and seconds > 0:
            self.expires_at = time.monotonic() + seconds
        else:
            self.expires_at = None

    @classmethod
    def never(cls) -> "Deadline":
        return cls()

    def earliest(self, other: Optional["Deadline"]) -> "Deadline":
        """Return whichever of the two deadlines expires first."""
        if other is None or other.expires_at is None:
            return self
        if self.expires_at is None or other.expires_at < self.expires_at:
            return other
        return self

    def remaining(self) -> Optional[float]:
        if self.expires_at is None:
            return None
        return max(0.0, self.expires_at - time.monotonic())

    def expired(self) -> bool:
        return self.expires_at is not None and time.monotonic() >= self.expires_at

    def check(self, phase: str, filename: Optional[str] = None):
        if self.expired():
            raise AnalysisTimeout(phase, filename)
