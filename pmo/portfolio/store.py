"""
Portfolio snapshot store.

Holds the current PortfolioBundle behind a lock. Readers get the immutable
snapshot; writers replace it in one step. Score and rank recomputation runs
snapshot-read, compute, batch-write inside a single critical section so a
reader never sees the scores of one sync paired with the ranks of another.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import replace
from typing import List, Optional

from pmo.data_loader import PortfolioBundle, load_portfolio, resolve_snapshot_path

from .project_model import Project
from .scoring_engine import ProjectScore, RankingResult, build_rankings, sync_scores_and_ranks

logger = logging.getLogger(__name__)


class PortfolioStore:
    """
    Thread-safe holder of the current portfolio snapshot.
    """

    def __init__(self, bundle: Optional[PortfolioBundle] = None):
        self._bundle = bundle or PortfolioBundle()
        self._lock = threading.RLock()
        self._version = 0

    @property
    def version(self) -> int:
        """Incremented on every write."""
        with self._lock:
            return self._version

    def snapshot(self) -> PortfolioBundle:
        """Current snapshot (immutable; safe to use outside the lock)."""
        with self._lock:
            return self._bundle

    def get_project(self, project_id: str) -> Optional[Project]:
        return self.snapshot().get_project(project_id)

    def replace_snapshot(self, bundle: PortfolioBundle) -> int:
        """Atomically replace the whole snapshot. Returns the new version."""
        with self._lock:
            self._bundle = bundle
            self._version += 1
            logger.info(
                f"Portfolio snapshot replaced (v{self._version}): "
                f"{len(bundle.projects)} projects"
            )
            return self._version

    def sync_scores_and_ranks(self) -> RankingResult:
        """
        Recompute all scores, then all ranks, and write them back as one batch.

        Project order in the snapshot is preserved.
        """
        with self._lock:
            current = self._bundle
            result = sync_scores_and_ranks(current.projects, current.factor_definitions)

            updated = {p.id: p for p in result.projects}
            self._bundle = replace(
                current,
                projects=tuple(updated[p.id] for p in current.projects),
            )
            self._version += 1
            return result

    def ranking(self) -> List[ProjectScore]:
        """Published ranking of the current snapshot, in rank order."""
        bundle = self.snapshot()
        return build_rankings(bundle.projects, bundle.factor_definitions)


# Global store instance
_portfolio_store: Optional[PortfolioStore] = None
_store_lock = threading.Lock()


def get_portfolio_store() -> PortfolioStore:
    """
    Get the global portfolio store.

    Seeded from the configured snapshot file when it exists, empty otherwise.
    """
    global _portfolio_store
    with _store_lock:
        if _portfolio_store is None:
            path = resolve_snapshot_path()
            if path.exists():
                _portfolio_store = PortfolioStore(load_portfolio())
            else:
                logger.warning(f"No portfolio snapshot at {path}; starting with an empty portfolio")
                _portfolio_store = PortfolioStore()
        return _portfolio_store


def reset_portfolio_store(store: Optional[PortfolioStore] = None) -> None:
    """Replace (or drop) the global store instance."""
    global _portfolio_store
    with _store_lock:
        _portfolio_store = store
