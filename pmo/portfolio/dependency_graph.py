"""
═══════════════════════════════════════════════════════════════════════════════════════════════════════
                    PMO ENGINE — DEPENDENCY GRAPH ANALYZER
═══════════════════════════════════════════════════════════════════════════════════════════════════════

Cross-project dependency analysis.

GRAPH
═════

G = (V, E) with E the declared dependencies (from → to). Adjacency lists keep
declaration order, so every traversal below is deterministic.

1. CYCLE DETECTION
   ───────────────
   Depth-first search from every node with outgoing edges (first-seen order),
   with an explicit stack, a visited set and an on-stack set. A back edge
   u → v (v on the stack) yields the cycle

       path[index(v):] + [v]

   e.g. A → B → C → A  ⇒  [A, B, C, A].

2. CRITICAL PATH
   ─────────────
   Only defined on a DAG. With d(v) = ⌈end_v - start_v⌉_days (0 when unknown):

       best(v) = max_{v → w} ( d(w) + best(w) ),   best(leaf) = 0
       total(r) = d(r) + best(r)                    r ∈ roots (no incoming edge)

   The critical path is the root→leaf path with the largest total. Ties keep
   the first path in root/neighbour order. A best total of 0 gives an empty path.

3. DELAY IMPACT
   ────────────
   For a delay of δ days on project p, every `blocks` edge p → q (q known) gets

       high    if criticality = critical or δ > 30
       medium  if criticality = high     or δ > 14
       low     otherwise

4. CIRCUIT BREAKER
   ───────────────
   Waiting cost  C = δ × cost_per_day
   Suspend q     ⇔  C > threshold  and  risk = high
   Savings       = C when suspending, else 0

5. DELAY PROPAGATION
   ─────────────────
   Breadth-first over all edges from p; every reachable project is shifted by
   δ once (end' = end + δ days).
"""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, field
from datetime import timedelta
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Tuple

from pmo.settings import Settings

from .deadline import Deadline, check
from .errors import GraphNotAcyclicError
from .project_model import (
    Criticality,
    DependencyType,
    Project,
    ProjectDependency,
    index_projects,
    span_days_ceil,
)

logger = logging.getLogger(__name__)


# ════════════════════════════════════════════════════════════════════════════════════════════════════
# DATA STRUCTURES
# ════════════════════════════════════════════════════════════════════════════════════════════════════

class RiskLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class RecommendationAction(str, Enum):
    SUSPEND = "suspend"
    RESCHEDULE = "reschedule"
    MONITOR = "monitor"


@dataclass
class CriticalPath:
    """Longest dependency chain of the portfolio."""
    path: List[str] = field(default_factory=list)
    total_duration: int = 0
    projects: List[Project] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'path': list(self.path),
            'total_duration': self.total_duration,
            'projects': [{'id': p.id, 'name': p.name} for p in self.projects],
        }


@dataclass
class DependencyImpact:
    """Effect of a delay on one directly blocked project."""
    affected_project_id: str
    affected_project_name: str
    delay_days: int
    risk_level: RiskLevel
    criticality: Criticality
    action: RecommendationAction
    recommendation: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            'affected_project_id': self.affected_project_id,
            'affected_project_name': self.affected_project_name,
            'delay_days': self.delay_days,
            'risk_level': self.risk_level.value,
            'criticality': self.criticality.value,
            'action': self.action.value,
            'recommendation': self.recommendation,
        }


@dataclass
class CircuitBreakerRecommendation:
    """
    Suspend-or-wait decision for a project blocked by a delayed one.

    Attributes:
        action: SUSPEND, or MONITOR to keep waiting
        steps: Ordered actions for the PMO
        total_waiting_cost: delay × waiting cost per day
        threshold: Cost above which a high-risk wait is broken
        schedule_slip_days: Delivery slip of the affected project
    """
    delayed_project_id: str
    delayed_project_name: str
    affected_project_id: str
    affected_project_name: str
    should_suspend: bool
    action: RecommendationAction
    steps: List[str]
    total_waiting_cost: float
    threshold: float
    waiting_cost_per_day: float
    estimated_savings: float
    schedule_slip_days: int

    @property
    def recommendation(self) -> str:
        if self.should_suspend:
            return (
                f"Suspend project \"{self.affected_project_name}\" now: waiting would cost "
                f"{self.total_waiting_cost:,.0f}"
            )
        return (
            f"Keep waiting for project \"{self.delayed_project_name}\": waiting cost "
            f"{self.total_waiting_cost:,.0f} is below the circuit-breaker threshold"
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'delayed_project_id': self.delayed_project_id,
            'delayed_project_name': self.delayed_project_name,
            'affected_project_id': self.affected_project_id,
            'affected_project_name': self.affected_project_name,
            'should_suspend': self.should_suspend,
            'action': self.action.value,
            'steps': list(self.steps),
            'total_waiting_cost': self.total_waiting_cost,
            'threshold': self.threshold,
            'waiting_cost_per_day': self.waiting_cost_per_day,
            'estimated_savings': self.estimated_savings,
            'schedule_slip_days': self.schedule_slip_days,
            'recommendation': self.recommendation,
        }


@dataclass
class DelayPropagation:
    """A project shifted by a propagated delay."""
    project_id: str
    project_name: str
    original_end_date: Optional[str]
    new_end_date: Optional[str]
    delay_days: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            'project_id': self.project_id,
            'project_name': self.project_name,
            'original_end_date': self.original_end_date,
            'new_end_date': self.new_end_date,
            'delay_days': self.delay_days,
        }


@dataclass
class DependencyCount:
    project_id: str
    project_name: str
    count: int

    def to_dict(self) -> Dict[str, Any]:
        return {'project_id': self.project_id, 'project_name': self.project_name, 'count': self.count}


@dataclass
class DependencyStatistics:
    total_dependencies: int = 0
    critical_dependencies: int = 0
    most_dependent_project: Optional[DependencyCount] = None
    most_blocking_project: Optional[DependencyCount] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'total_dependencies': self.total_dependencies,
            'critical_dependencies': self.critical_dependencies,
            'most_dependent_project': (
                self.most_dependent_project.to_dict() if self.most_dependent_project else None
            ),
            'most_blocking_project': (
                self.most_blocking_project.to_dict() if self.most_blocking_project else None
            ),
        }


@dataclass
class DependencyGraphAnalysis:
    cycles: List[List[str]] = field(default_factory=list)
    critical_path: Optional[CriticalPath] = None
    statistics: Optional[DependencyStatistics] = None

    @property
    def is_acyclic(self) -> bool:
        return not self.cycles

    def to_dict(self) -> Dict[str, Any]:
        return {
            'is_acyclic': self.is_acyclic,
            'cycles': [list(c) for c in self.cycles],
            'critical_path': self.critical_path.to_dict() if self.critical_path else None,
            'statistics': self.statistics.to_dict() if self.statistics else None,
        }


# ════════════════════════════════════════════════════════════════════════════════════════════════════
# GRAPH CONSTRUCTION
# ════════════════════════════════════════════════════════════════════════════════════════════════════

def build_adjacency(dependencies: Iterable[ProjectDependency]) -> Dict[str, List[str]]:
    """from → [to, ...] in declaration order (only nodes with outgoing edges are keys)."""
    graph: Dict[str, List[str]] = {}
    for dep in dependencies:
        graph.setdefault(dep.from_project_id, []).append(dep.to_project_id)
    return graph


# ════════════════════════════════════════════════════════════════════════════════════════════════════
# CYCLE DETECTION
# ════════════════════════════════════════════════════════════════════════════════════════════════════

def detect_cycles(
    dependencies: Iterable[ProjectDependency],
    deadline: Optional[Deadline] = None
) -> List[List[str]]:
    """
    Detect circular dependencies.

    Args:
        dependencies: Dependency edges
        deadline: Optional budget, ticked once per visited node

    Returns:
        List of cycles, each closed by repeating its first node
    """
    graph = build_adjacency(dependencies)
    cycles: List[List[str]] = []
    visited = set()
    on_stack = set()

    for start in graph:
        if start in visited:
            continue

        # Frames are (node, index of next neighbour); path mirrors the stack
        path: List[str] = [start]
        position: Dict[str, int] = {start: 0}
        stack: List[Tuple[str, int]] = [(start, 0)]
        visited.add(start)
        on_stack.add(start)
        check(deadline)

        while stack:
            node, next_index = stack[-1]
            neighbors = graph.get(node, [])

            if next_index >= len(neighbors):
                stack.pop()
                path.pop()
                del position[node]
                on_stack.discard(node)
                continue

            stack[-1] = (node, next_index + 1)
            neighbor = neighbors[next_index]

            if neighbor not in visited:
                visited.add(neighbor)
                on_stack.add(neighbor)
                position[neighbor] = len(path)
                path.append(neighbor)
                stack.append((neighbor, 0))
                check(deadline)
            elif neighbor in on_stack:
                cycles.append(path[position[neighbor]:] + [neighbor])

    if cycles:
        logger.warning(f"Detected {len(cycles)} dependency cycle(s)")

    return cycles


# ════════════════════════════════════════════════════════════════════════════════════════════════════
# CRITICAL PATH
# ════════════════════════════════════════════════════════════════════════════════════════════════════

def calculate_critical_path(
    dependencies: Iterable[ProjectDependency],
    projects: Iterable[Project],
    deadline: Optional[Deadline] = None
) -> CriticalPath:
    """
    Longest root→leaf dependency chain by accumulated project duration.

    Raises:
        GraphNotAcyclicError: if the graph has a cycle
    """
    dependencies = list(dependencies)
    cycles = detect_cycles(dependencies, deadline)
    if cycles:
        raise GraphNotAcyclicError(cycles)

    projects_by_id = index_projects(projects)
    graph = build_adjacency(dependencies)
    durations = {pid: span_days_ceil(p.start_date, p.end_date) for pid, p in projects_by_id.items()}

    incoming = {to for targets in graph.values() for to in targets}
    roots = [node for node in graph if node not in incoming]

    # best[v] = (best suffix duration after v, next node on that suffix)
    best: Dict[str, Tuple[int, Optional[str]]] = {}

    for root in roots:
        stack: List[Tuple[str, bool]] = [(root, False)]
        while stack:
            node, expanded = stack.pop()
            if node in best:
                continue
            neighbors = graph.get(node, [])
            if not expanded:
                check(deadline)
                stack.append((node, True))
                for neighbor in reversed(neighbors):
                    if neighbor not in best:
                        stack.append((neighbor, False))
                continue

            if not neighbors:
                best[node] = (0, None)
                continue
            top_value, top_next = None, None
            for neighbor in neighbors:
                value = durations.get(neighbor, 0) + best[neighbor][0]
                if top_value is None or value > top_value:
                    top_value, top_next = value, neighbor
            best[node] = (top_value, top_next)

    longest: List[str] = []
    max_duration = 0
    for root in roots:
        total = durations.get(root, 0) + best[root][0]
        if total > max_duration:
            max_duration = total
            longest = [root]
            nxt = best[root][1]
            while nxt is not None:
                longest.append(nxt)
                nxt = best[nxt][1]

    result = CriticalPath(
        path=longest,
        total_duration=max_duration,
        projects=[projects_by_id[pid] for pid in longest if pid in projects_by_id],
    )

    logger.info(f"Critical path: {' -> '.join(longest) or '(empty)'} ({max_duration} days)")

    return result


# ════════════════════════════════════════════════════════════════════════════════════════════════════
# DELAY IMPACT & CIRCUIT BREAKER
# ════════════════════════════════════════════════════════════════════════════════════════════════════

def classify_risk(criticality: Criticality, delay_days: float) -> RiskLevel:
    if criticality == Criticality.CRITICAL or delay_days > 30:
        return RiskLevel.HIGH
    if criticality == Criticality.HIGH or delay_days > 14:
        return RiskLevel.MEDIUM
    return RiskLevel.LOW


_ACTION_BY_RISK = {
    RiskLevel.HIGH: RecommendationAction.SUSPEND,
    RiskLevel.MEDIUM: RecommendationAction.RESCHEDULE,
    RiskLevel.LOW: RecommendationAction.MONITOR,
}


def _impact_sentence(action: RecommendationAction, name: str) -> str:
    if action == RecommendationAction.SUSPEND:
        return f"Suspend project \"{name}\" and release its resources instead of waiting idle."
    if action == RecommendationAction.RESCHEDULE:
        return f"Reschedule project \"{name}\" or look for an alternative."
    return f"Keep monitoring project \"{name}\"; no change needed yet."


def analyze_dependency_impact(
    delayed_project_id: str,
    delay_days: int,
    projects: Iterable[Project],
    dependencies: Iterable[ProjectDependency]
) -> List[DependencyImpact]:
    """
    Impact of a delay on the projects directly blocked by the delayed project.

    Only `blocks` edges whose target exists are considered (declaration order).
    """
    projects_by_id = index_projects(projects)
    impacts: List[DependencyImpact] = []

    for dep in dependencies:
        if dep.from_project_id != delayed_project_id or dep.dependency_type != DependencyType.BLOCKS:
            continue
        affected = projects_by_id.get(dep.to_project_id)
        if affected is None:
            continue

        risk = classify_risk(dep.criticality, delay_days)
        action = _ACTION_BY_RISK[risk]
        impacts.append(DependencyImpact(
            affected_project_id=affected.id,
            affected_project_name=affected.name,
            delay_days=delay_days,
            risk_level=risk,
            criticality=dep.criticality,
            action=action,
            recommendation=_impact_sentence(action, affected.name),
        ))

    logger.debug(f"Delay of {delay_days}d on {delayed_project_id} affects {len(impacts)} projects")

    return impacts


def generate_circuit_breaker_recommendation(
    delayed_project: Project,
    impact: DependencyImpact,
    waiting_cost_per_day: Optional[float] = None,
    threshold: Optional[float] = None
) -> CircuitBreakerRecommendation:
    """
    Decide whether to suspend a blocked project instead of letting it wait.

    Args:
        delayed_project: The late upstream project
        impact: Impact on one blocked project
        waiting_cost_per_day: Idle cost per day (default from settings, 5000)
        threshold: Cost threshold (default from settings, 50000)
    """
    config = Settings.get_config()
    if waiting_cost_per_day is None:
        waiting_cost_per_day = config.waiting_cost_per_day
    if threshold is None:
        threshold = config.circuit_breaker_threshold

    total_waiting_cost = impact.delay_days * waiting_cost_per_day
    should_suspend = total_waiting_cost > threshold and impact.risk_level == RiskLevel.HIGH

    if should_suspend:
        steps = [
            f"Pause project \"{impact.affected_project_name}\" and release its resources "
            f"(saves {total_waiting_cost:,.0f})",
            "Reassign the released resources to other high-priority projects",
            f"Restart once project \"{delayed_project.name}\" is delivered",
        ]
        action = RecommendationAction.SUSPEND
    else:
        steps = [
            f"Closely monitor the progress of project \"{delayed_project.name}\"",
            "Prepare a contingency plan against further delay",
            "Consider temporarily lending part of the idle resources",
        ]
        action = RecommendationAction.MONITOR

    decision = CircuitBreakerRecommendation(
        delayed_project_id=delayed_project.id,
        delayed_project_name=delayed_project.name,
        affected_project_id=impact.affected_project_id,
        affected_project_name=impact.affected_project_name,
        should_suspend=should_suspend,
        action=action,
        steps=steps,
        total_waiting_cost=total_waiting_cost,
        threshold=threshold,
        waiting_cost_per_day=waiting_cost_per_day,
        estimated_savings=total_waiting_cost if should_suspend else 0.0,
        schedule_slip_days=impact.delay_days,
    )

    if should_suspend:
        logger.info(
            f"Circuit breaker tripped for {impact.affected_project_id}: "
            f"waiting cost {total_waiting_cost:,.0f} > {threshold:,.0f}"
        )

    return decision


# ════════════════════════════════════════════════════════════════════════════════════════════════════
# PROPAGATION & STATISTICS
# ════════════════════════════════════════════════════════════════════════════════════════════════════

def simulate_delay_propagation(
    project_id: str,
    delay_days: int,
    projects: Iterable[Project],
    dependencies: Iterable[ProjectDependency],
    deadline: Optional[Deadline] = None
) -> List[DelayPropagation]:
    """
    Shift every project reachable from project_id by delay_days.

    Unknown projects stop the propagation along their branch. The delayed
    project itself is not reported.
    """
    projects_by_id = index_projects(projects)
    graph = build_adjacency(dependencies)

    impacted: List[DelayPropagation] = []
    queue = deque([project_id])
    visited = set()

    while queue:
        current = queue.popleft()
        if current in visited:
            continue
        visited.add(current)
        check(deadline)

        project = projects_by_id.get(current)
        if project is None:
            continue

        if current != project_id:
            end = project.end_date
            impacted.append(DelayPropagation(
                project_id=current,
                project_name=project.name,
                original_end_date=end.date().isoformat() if end else None,
                new_end_date=(end + timedelta(days=delay_days)).date().isoformat() if end else None,
                delay_days=delay_days,
            ))

        queue.extend(graph.get(current, []))

    return impacted


def get_dependency_statistics(
    projects: Iterable[Project],
    dependencies: Iterable[ProjectDependency]
) -> DependencyStatistics:
    """Edge counts plus the projects with most incoming / outgoing dependencies."""
    projects = list(projects)
    dependencies = list(dependencies)
    names = {p.id: p.name for p in projects}

    incoming: Dict[str, int] = {p.id: 0 for p in projects}
    outgoing: Dict[str, int] = {p.id: 0 for p in projects}
    for dep in dependencies:
        outgoing[dep.from_project_id] = outgoing.get(dep.from_project_id, 0) + 1
        incoming[dep.to_project_id] = incoming.get(dep.to_project_id, 0) + 1

    def _top(counts: Dict[str, int]) -> Optional[DependencyCount]:
        top_id, top_count = None, 0
        for pid, count in counts.items():
            if count > top_count:
                top_id, top_count = pid, count
        if top_id is None:
            return None
        return DependencyCount(project_id=top_id, project_name=names.get(top_id, ""), count=top_count)

    return DependencyStatistics(
        total_dependencies=len(dependencies),
        critical_dependencies=sum(1 for d in dependencies if d.criticality == Criticality.CRITICAL),
        most_dependent_project=_top(incoming),
        most_blocking_project=_top(outgoing),
    )


def analyze_dependency_graph(
    dependencies: Iterable[ProjectDependency],
    projects: Iterable[Project],
    deadline: Optional[Deadline] = None
) -> DependencyGraphAnalysis:
    """
    Cycles, statistics and critical path in one pass.

    The critical path is None when the graph is cyclic.
    """
    dependencies = list(dependencies)
    projects = list(projects)

    analysis = DependencyGraphAnalysis(
        cycles=detect_cycles(dependencies, deadline),
        statistics=get_dependency_statistics(projects, dependencies),
    )
    if analysis.is_acyclic:
        analysis.critical_path = calculate_critical_path(dependencies, projects, deadline)
    else:
        logger.warning("Critical path skipped: dependency graph is cyclic")

    return analysis
