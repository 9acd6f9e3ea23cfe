"""
═══════════════════════════════════════════════════════════════════════════════════════════════════════
                    PMO ENGINE — PROJECT SCORING & RANKING
═══════════════════════════════════════════════════════════════════════════════════════════════════════

Weighted multi-factor scoring of projects and dense portfolio ranking.

SCORE
═════

For project p and factor definitions F:

    score_p = Σ_{f ∈ F} x_{p,f} · w_f  /  Σ_{f ∈ F} w_f        (0 if Σ w_f = 0)

where x_{p,f} is the raw factor value (0 when unset). Missing factors are NOT
skipped: they contribute 0 to the numerator and w_f to the denominator, which
dilutes the average and penalises incomplete assessments.

Bound: if every x_{p,f} ∈ [0, 10] then score_p ∈ [0, 10] (convex combination).

RANK
════

Projects are ordered by (score desc, project id asc) and

    rank_p = position in that order (1-based)

so ranks are a dense permutation of 1..N even when scores tie.

SYNC
════

A full sync is two phases over one snapshot:
    1. recompute every score from its factors
    2. recompute every rank over the updated scores
Both phases return new Project values; nothing is mutated in place. The
PortfolioStore applies the result as one atomic replace.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Dict, Iterable, List, Mapping, Optional

from .project_model import FactorDefinition, Project

logger = logging.getLogger(__name__)


# ════════════════════════════════════════════════════════════════════════════════════════════════════
# DATA STRUCTURES
# ════════════════════════════════════════════════════════════════════════════════════════════════════

@dataclass
class ProjectScore:
    """Score and rank of a project, as published to the dashboard."""
    project_id: str
    project_name: str
    score: float
    rank: int
    contributions: Dict[str, float] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'project_id': self.project_id,
            'project_name': self.project_name,
            'score': round(self.score, 2),
            'rank': self.rank,
            'contributions': {k: round(v, 4) for k, v in self.contributions.items()},
        }


@dataclass
class RankingResult:
    """Outcome of a portfolio score + rank sync."""
    timestamp: str
    projects: List[Project]
    rankings: List[ProjectScore]
    total_weight: float = 0.0

    @property
    def total_projects(self) -> int:
        return len(self.rankings)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'timestamp': self.timestamp,
            'total_projects': self.total_projects,
            'total_weight': self.total_weight,
            'rankings': [r.to_dict() for r in self.rankings],
        }


# ════════════════════════════════════════════════════════════════════════════════════════════════════
# SCORING
# ════════════════════════════════════════════════════════════════════════════════════════════════════

def compute_factor_contributions(
    factors: Mapping[str, float],
    definitions: Iterable[FactorDefinition]
) -> Dict[str, float]:
    """
    Normalised contribution of each factor to the score.

        c_f = x_{p,f} · w_f / Σ w

    The contributions sum to the score. Empty when total weight is 0.
    """
    definitions = list(definitions)
    total_weight = sum(d.weight for d in definitions)
    if total_weight <= 0:
        return {}
    return {
        d.id: (factors.get(d.id) or 0.0) * d.weight / total_weight
        for d in definitions
    }


def compute_project_score(
    factors: Mapping[str, float],
    definitions: Iterable[FactorDefinition]
) -> float:
    """
    Compute the normalised weighted score of one project.

    Pure function of (factors, definitions).

    Args:
        factors: factor id -> raw value (0-10); absent ids count as 0
        definitions: All factor definitions of the portfolio

    Returns:
        Weighted average in [0, 10] (0.0 when the weights sum to 0)

    Example:
        >>> defs = [FactorDefinition('a', weight=2), FactorDefinition('b', weight=1)]
        >>> round(compute_project_score({'a': 8, 'b': 4}, defs), 2)
        6.67
    """
    total_score = 0.0
    total_weight = 0.0

    for definition in definitions:
        value = factors.get(definition.id) or 0.0
        total_score += value * definition.weight
        total_weight += definition.weight

    return total_score / total_weight if total_weight > 0 else 0.0


def score_project(project: Project, definitions: Iterable[FactorDefinition]) -> Project:
    """Return a copy of the project with its score recomputed."""
    return replace(project, score=compute_project_score(project.factors, definitions))


# ════════════════════════════════════════════════════════════════════════════════════════════════════
# RANKING
# ════════════════════════════════════════════════════════════════════════════════════════════════════

def _rank_key(project: Project):
    return (-(project.score or 0.0), project.id)


def assign_ranks(projects: Iterable[Project]) -> List[Project]:
    """
    Assign dense ranks by score.

    Order: score descending, then project id ascending for equal scores.
    Projects without a score rank as if scored 0.

    Returns:
        New Project values in rank order, rank = 1..N
    """
    ordered = sorted(projects, key=_rank_key)
    return [replace(p, rank=position) for position, p in enumerate(ordered, 1)]


def build_rankings(
    projects: Iterable[Project],
    definitions: Optional[Iterable[FactorDefinition]] = None
) -> List[ProjectScore]:
    """
    Published view of already-ranked projects, in rank order.

    Unranked projects are placed after the ranked ones in id order.
    """
    definitions = list(definitions or [])
    ordered = sorted(
        projects,
        key=lambda p: (p.rank is None, p.rank if p.rank is not None else 0, p.id)
    )
    return [
        ProjectScore(
            project_id=p.id,
            project_name=p.name,
            score=p.score or 0.0,
            rank=p.rank or 0,
            contributions=compute_factor_contributions(p.factors, definitions) if definitions else {},
        )
        for p in ordered
    ]


# ════════════════════════════════════════════════════════════════════════════════════════════════════
# BATCH SYNC
# ════════════════════════════════════════════════════════════════════════════════════════════════════

def sync_scores_and_ranks(
    projects: Iterable[Project],
    definitions: Iterable[FactorDefinition]
) -> RankingResult:
    """
    Recompute every score, then every rank, over one snapshot.

    Running it twice on an unchanged portfolio yields identical scores and
    ranks.

    Args:
        projects: Current portfolio snapshot
        definitions: Factor definitions

    Returns:
        RankingResult with the updated projects (rank order) and their rankings
    """
    definitions = list(definitions)
    total_weight = sum(d.weight for d in definitions)

    if total_weight <= 0:
        logger.warning("Factor weights sum to 0; every project scores 0")

    scored = [score_project(p, definitions) for p in projects]
    ranked = assign_ranks(scored)

    logger.info(f"Ranked {len(ranked)} projects over {len(definitions)} factor definitions")

    return RankingResult(
        timestamp=datetime.now().isoformat(),
        projects=ranked,
        rankings=build_rankings(ranked, definitions),
        total_weight=total_weight,
    )
