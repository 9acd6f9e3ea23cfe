"""
Errors raised by the portfolio engines.

The engines are total over well-formed snapshots: missing entities and zero
denominators produce empty or zero results. Only the conditions below are
escalated to the caller.
"""

from __future__ import annotations

from typing import List, Optional


class PortfolioEngineError(Exception):
    """Base class for portfolio engine errors."""
    pass


class GraphNotAcyclicError(PortfolioEngineError):
    """Raised when a computation that needs a DAG receives a cyclic dependency graph."""
    def __init__(self, cycles: List[List[str]]):
        rendered = "; ".join(" -> ".join(c) for c in cycles)
        super().__init__(f"Dependency graph is not acyclic: {rendered}")
        self.cycles = cycles


class DeadlineExceededError(PortfolioEngineError):
    """Raised when a computation runs past its deadline or step budget."""
    def __init__(self, operation: str, steps: int, elapsed_sec: Optional[float] = None):
        detail = f"after {steps} steps"
        if elapsed_sec is not None:
            detail += f" ({elapsed_sec:.3f}s)"
        super().__init__(f"{operation} exceeded its deadline {detail}")
        self.operation = operation
        self.steps = steps
        self.elapsed_sec = elapsed_sec


class SnapshotLoadError(PortfolioEngineError):
    """Raised when a portfolio snapshot cannot be parsed."""
    def __init__(self, message: str, errors: Optional[List[str]] = None):
        super().__init__(message)
        self.errors = errors or []
