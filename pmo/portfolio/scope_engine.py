"""
═══════════════════════════════════════════════════════════════════════════════════════════════════════
                    PMO ENGINE — SCOPE CONTROL (GHOST TASKS & SCOPE CREEP)
═══════════════════════════════════════════════════════════════════════════════════════════════════════

Traceability and scope-growth checks for a single project.

GHOST TASKS
═══════════

Let T be the tasks of a project and Q its requirements. The linked set is

    L = ⋃_{q ∈ Q} related_task_ids(q)

and the ghost tasks are

    G = { t ∈ T : t.id ∉ L }        (in task order)

Consequences:
    - |Q| = 0  ⇒  G = T
    - adding t.id to any related_task_ids removes t from G

SCOPE CREEP
═══════════

Effort of a task list (8 working hours per calendar day):

    H(T) = Σ_{t ∈ T} ⌈end_t - start_t⌉_days × 8

With B the baseline task list (the current list when no baseline exists):

    creep% = (H(T) - H(B)) / H(B) × 100        (0 if H(B) = 0)

A project with creep% > 30 requires a new baseline.

CHANGE REQUEST VALIDATION
═════════════════════════

With a tracked budget, remaining = budget - actual_cost and cost c:

    c > remaining          → error
    c > 0.8 × remaining    → warning (share of the remaining budget)

A positive schedule impact warns with the shifted end date. A business
justification shorter than 20 characters is an error. The request is valid
when there are no errors.
"""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any, Dict, Iterable, List, Optional, Set

from .project_model import ChangeRequest, ChangeRequestStatus, Project, Requirement, Task

logger = logging.getLogger(__name__)


HOURS_PER_DAY = 8
SCOPE_CREEP_THRESHOLD_PCT = 30.0
GHOST_REASON_NO_REQUIREMENT = "no_requirement_link"
BUDGET_WARNING_RATIO = 0.8
MIN_JUSTIFICATION_LENGTH = 20


# ════════════════════════════════════════════════════════════════════════════════════════════════════
# DATA STRUCTURES
# ════════════════════════════════════════════════════════════════════════════════════════════════════

@dataclass
class GhostTask:
    """A task with no traceable requirement."""
    task_id: str
    task_name: str
    reason: str = GHOST_REASON_NO_REQUIREMENT
    estimated_effort_hours: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            'task_id': self.task_id,
            'task_name': self.task_name,
            'reason': self.reason,
            'estimated_effort_hours': self.estimated_effort_hours,
        }


@dataclass
class ScopeCreepMetrics:
    """Scope growth of a project against its baseline."""
    project_id: str
    original_scope_hours: int
    current_scope_hours: int
    creep_percentage: float
    total_change_requests: int = 0
    approved_change_requests: int = 0
    rejected_change_requests: int = 0
    pending_change_requests: int = 0
    threshold_pct: float = SCOPE_CREEP_THRESHOLD_PCT

    @property
    def is_over_threshold(self) -> bool:
        return self.creep_percentage > self.threshold_pct

    @property
    def requires_rebaseline(self) -> bool:
        return self.is_over_threshold

    def to_dict(self) -> Dict[str, Any]:
        return {
            'project_id': self.project_id,
            'original_scope_hours': self.original_scope_hours,
            'current_scope_hours': self.current_scope_hours,
            'creep_percentage': round(self.creep_percentage, 2),
            'is_over_threshold': self.is_over_threshold,
            'requires_rebaseline': self.requires_rebaseline,
            'total_change_requests': self.total_change_requests,
            'approved_change_requests': self.approved_change_requests,
            'rejected_change_requests': self.rejected_change_requests,
            'pending_change_requests': self.pending_change_requests,
        }


# ════════════════════════════════════════════════════════════════════════════════════════════════════
# GHOST TASKS
# ════════════════════════════════════════════════════════════════════════════════════════════════════

def task_effort_hours(task: Task) -> int:
    """Estimated effort: whole calendar days (rounded up) × 8h. 0 without dates."""
    return max(0, task.duration_days) * HOURS_PER_DAY


def linked_task_ids(requirements: Iterable[Requirement]) -> Set[str]:
    linked: Set[str] = set()
    for requirement in requirements:
        linked.update(requirement.related_task_ids)
    return linked


def detect_ghost_tasks(
    project: Project,
    requirements: Optional[Iterable[Requirement]] = None
) -> List[GhostTask]:
    """
    Find the tasks of a project not linked to any requirement.

    Args:
        project: Project snapshot
        requirements: Requirements to check against (default: the project's own)

    Returns:
        Ghost tasks in task order
    """
    if requirements is None:
        requirements = project.requirements
    linked = linked_task_ids(requirements)

    ghosts = [
        GhostTask(
            task_id=task.id,
            task_name=task.name,
            estimated_effort_hours=task_effort_hours(task),
        )
        for task in project.tasks
        if task.id not in linked
    ]

    if ghosts:
        logger.debug(f"Project {project.id}: {len(ghosts)}/{project.num_tasks} ghost tasks")

    return ghosts


# ════════════════════════════════════════════════════════════════════════════════════════════════════
# SCOPE CREEP
# ════════════════════════════════════════════════════════════════════════════════════════════════════

def total_effort_hours(tasks: Iterable[Task]) -> int:
    return sum(task_effort_hours(t) for t in tasks)


def compute_scope_creep_metrics(
    project: Project,
    change_requests: Iterable[ChangeRequest] = ()
) -> ScopeCreepMetrics:
    """
    Compare current task effort against the baseline.

    Change requests of other projects are ignored.
    """
    baseline = project.baseline_tasks if project.baseline_tasks is not None else project.tasks

    original_hours = total_effort_hours(baseline)
    current_hours = total_effort_hours(project.tasks)

    if original_hours > 0:
        creep = (current_hours - original_hours) * 100 / original_hours
    else:
        creep = 0.0

    counts = Counter(
        cr.status for cr in change_requests
        if cr.project_id == project.id
    )

    metrics = ScopeCreepMetrics(
        project_id=project.id,
        original_scope_hours=original_hours,
        current_scope_hours=current_hours,
        creep_percentage=creep,
        total_change_requests=sum(counts.values()),
        approved_change_requests=counts[ChangeRequestStatus.APPROVED],
        rejected_change_requests=counts[ChangeRequestStatus.REJECTED],
        pending_change_requests=counts[ChangeRequestStatus.PENDING],
    )

    if metrics.is_over_threshold:
        logger.warning(
            f"Project {project.id} scope grew {creep:.1f}% over baseline "
            f"(threshold {SCOPE_CREEP_THRESHOLD_PCT:.0f}%)"
        )

    return metrics


# ════════════════════════════════════════════════════════════════════════════════════════════════════
# CHANGE REQUEST VALIDATION
# ════════════════════════════════════════════════════════════════════════════════════════════════════

@dataclass
class ChangeRequestValidation:
    """Outcome of validating a change request against its project."""
    change_request_id: str
    project_id: str
    warnings: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    remaining_budget: Optional[float] = None
    new_end_date: Optional[str] = None

    @property
    def is_valid(self) -> bool:
        return not self.errors

    def to_dict(self) -> Dict[str, Any]:
        return {
            'change_request_id': self.change_request_id,
            'project_id': self.project_id,
            'is_valid': self.is_valid,
            'warnings': list(self.warnings),
            'errors': list(self.errors),
            'remaining_budget': self.remaining_budget,
            'new_end_date': self.new_end_date,
        }


def validate_change_request(project: Project, change_request: ChangeRequest) -> ChangeRequestValidation:
    """
    Check a change request for budget, schedule and justification problems.

    The budget check only runs when the project tracks a budget.
    """
    result = ChangeRequestValidation(change_request_id=change_request.id, project_id=project.id)
    cost = change_request.estimated_cost_increase

    if project.budget is not None:
        remaining = project.budget - project.actual_cost
        result.remaining_budget = remaining
        if cost > remaining:
            result.errors.append(
                f"Change cost ({cost:,.0f}) exceeds the remaining budget ({remaining:,.0f})"
            )
        elif cost > remaining * BUDGET_WARNING_RATIO:
            result.warnings.append(
                f"Change consumes {round(cost / remaining * 100)}% of the remaining budget"
            )

    days = change_request.schedule_impact_days
    if days > 0:
        if project.end_date is not None:
            new_end = (project.end_date + timedelta(days=days)).date()
            result.new_end_date = new_end.isoformat()
            result.warnings.append(
                f"Project end date moves from {project.end_date.date().isoformat()} to {result.new_end_date}"
            )
        else:
            result.warnings.append(f"Project end date moves by {days} days")

    if len(change_request.business_justification.strip()) < MIN_JUSTIFICATION_LENGTH:
        result.errors.append(
            f"A business justification of at least {MIN_JUSTIFICATION_LENGTH} characters is required"
        )

    if result.errors:
        logger.info(f"Change request {change_request.id} rejected: {len(result.errors)} errors")

    return result
