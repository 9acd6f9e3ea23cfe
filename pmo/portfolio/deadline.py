"""
Deadline and step budget for computations with unbounded latency.

Graph traversal over large or malformed dependency data and long forecast
horizons are where the engines can run for an unbounded time. Callers pass a
Deadline; the engines call ``tick()`` once per visited node or month.

Usage:
    deadline = Deadline.from_timeout(2.0, max_steps=100_000)
    cycles = detect_cycles(dependencies, deadline=deadline)

    deadline = Deadline.from_settings("critical_path")
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Optional

from pmo.settings import Settings

from .errors import DeadlineExceededError


@dataclass
class Deadline:
    """
    Wall-clock deadline plus optional step budget.

    Attributes:
        expires_at: time.monotonic() value after which work must stop (None = no limit)
        max_steps: Maximum number of tick() calls (None = no limit)
        operation: Label used in the raised error
    """
    expires_at: Optional[float] = None
    max_steps: Optional[int] = None
    operation: str = "computation"
    steps: int = 0
    started_at: float = field(default_factory=time.monotonic)

    @classmethod
    def from_timeout(
        cls,
        timeout_sec: Optional[float],
        max_steps: Optional[int] = None,
        operation: str = "computation"
    ) -> 'Deadline':
        now = time.monotonic()
        expires_at = now + timeout_sec if timeout_sec is not None else None
        return cls(expires_at=expires_at, max_steps=max_steps, operation=operation, started_at=now)

    @classmethod
    def from_settings(cls, operation: str = "computation") -> 'Deadline':
        """Budget from PMO_ANALYSIS_TIMEOUT_SEC / PMO_MAX_GRAPH_STEPS."""
        config = Settings.get_config()
        return cls.from_timeout(config.analysis_timeout_sec, config.max_graph_steps, operation)

    @property
    def elapsed_sec(self) -> float:
        return time.monotonic() - self.started_at

    def expired(self) -> bool:
        if self.max_steps is not None and self.steps > self.max_steps:
            return True
        return self.expires_at is not None and time.monotonic() > self.expires_at

    def tick(self, n: int = 1) -> None:
        """Count n steps and raise DeadlineExceededError once over budget."""
        self.steps += n
        if self.expired():
            raise DeadlineExceededError(self.operation, self.steps, self.elapsed_sec)


def check(deadline: Optional[Deadline], n: int = 1) -> None:
    """tick() on an optional deadline."""
    if deadline is not None:
        deadline.tick(n)
