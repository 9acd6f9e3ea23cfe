"""
═══════════════════════════════════════════════════════════════════════════════════════════════════════
                    PMO ENGINE — PORTFOLIO DATA MODEL
═══════════════════════════════════════════════════════════════════════════════════════════════════════

Typed snapshot records for the portfolio engines.

DEFINITION
══════════

A PORTFOLIO is the set of projects governed by the PMO together with:
- The factor definitions used to score them
- The resource pool they draw from
- The dependencies declared between them

Mathematical Notation:
─────────────────────

Let:
    P = {p₁, p₂, ..., pₙ} be the set of projects
    F = {f₁, f₂, ..., fₖ} be the set of factor definitions
    R = {r₁, r₂, ..., rₘ} be the resource pool

    x_{p,f} ∈ [0, 10]   Raw score of project p on factor f
    w_f ≥ 0             Weight of factor f
    C_r                 Capacity (total quantity) of resource r
    E ⊆ P × P           Dependency edges (from → to)

UNIT CONVERSION
───────────────

Resource requirement durations are normalised to day-equivalents:

    day = 1      month = 30      year = 365

All records are snapshots supplied by the persistence layer. Engines never
mutate them; derived values are returned as new records.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Set

logger = logging.getLogger(__name__)


# ════════════════════════════════════════════════════════════════════════════════════════════════════
# ENUMS
# ════════════════════════════════════════════════════════════════════════════════════════════════════

class ProjectStatus(str, Enum):
    """Project lifecycle status."""
    PLANNING = "planning"
    ACTIVE = "active"
    COMPLETED = "completed"
    ON_HOLD = "on-hold"


class ResourceUnit(str, Enum):
    """Time unit of a resource requirement duration."""
    DAY = "day"
    MONTH = "month"
    YEAR = "year"

    @property
    def days(self) -> int:
        """Day-equivalent of one unit."""
        return UNIT_DAYS[self]


UNIT_DAYS: Dict[ResourceUnit, int] = {
    ResourceUnit.DAY: 1,
    ResourceUnit.MONTH: 30,
    ResourceUnit.YEAR: 365,
}


class DependencyType(str, Enum):
    """Kind of dependency between two projects."""
    BLOCKS = "blocks"
    REQUIRES = "requires"
    RELATED = "related"


class Criticality(str, Enum):
    """How critical a dependency edge is."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ChangeRequestStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


# ════════════════════════════════════════════════════════════════════════════════════════════════════
# HELPERS
# ════════════════════════════════════════════════════════════════════════════════════════════════════

def parse_datetime(value: Any) -> Optional[datetime]:
    """
    Parse an ISO date/datetime (or date object) into a naive datetime.

    Date-only values map to midnight. Timezone information is dropped so that
    all snapshot dates compare against each other.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.replace(tzinfo=None)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    text = str(value).strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(text).replace(tzinfo=None)
    except ValueError:
        logger.warning(f"Unparseable date value: {value!r}")
        return None


def span_days_ceil(start: Optional[datetime], end: Optional[datetime]) -> int:
    """Calendar span rounded up to whole days: ceil((end - start) / 1 day)."""
    if start is None or end is None:
        return 0
    return math.ceil((end - start).total_seconds() / 86400)


def _pick(data: Dict[str, Any], snake: str, camel: Optional[str] = None, default: Any = None) -> Any:
    # Snapshots arrive either from Python callers (snake_case) or the JS client (camelCase)
    if snake in data:
        return data[snake]
    if camel and camel in data:
        return data[camel]
    return default


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


# ════════════════════════════════════════════════════════════════════════════════════════════════════
# REFERENCE DATA
# ════════════════════════════════════════════════════════════════════════════════════════════════════

@dataclass
class FactorDefinition:
    """
    A named, weighted scoring dimension shared by all projects.

    Attributes:
        id: Factor identifier (key into Project.factors)
        name: Human-readable name
        weight: Non-negative weight w_f
        description: Optional description
    """
    id: str
    name: str = ""
    weight: float = 0.0
    description: Optional[str] = None

    def __post_init__(self):
        self.weight = float(self.weight)
        if self.weight < 0:
            raise ValueError(f"Factor '{self.id}' has negative weight {self.weight}")

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'name': self.name,
            'weight': self.weight,
            'description': self.description,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'FactorDefinition':
        return cls(
            id=str(data['id']),
            name=data.get('name', ''),
            weight=data.get('weight', 0.0),
            description=data.get('description'),
        )


@dataclass
class ResourcePoolItem:
    """A pool of interchangeable resource units (e.g. a team of 10 engineers)."""
    id: str
    name: str = ""
    total_quantity: float = 0.0
    skills: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'name': self.name,
            'total_quantity': self.total_quantity,
            'skills': list(self.skills),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ResourcePoolItem':
        skills = _pick(data, 'skills', default=[]) or []
        return cls(
            id=str(data['id']),
            name=data.get('name', ''),
            total_quantity=float(_pick(data, 'total_quantity', 'totalQuantity', 0.0) or 0.0),
            skills=[s if isinstance(s, str) else str(s.get('id', s)) for s in skills],
        )


# ════════════════════════════════════════════════════════════════════════════════════════════════════
# PROJECT CONTENTS
# ════════════════════════════════════════════════════════════════════════════════════════════════════

@dataclass
class ResourceRequirement:
    """
    Planned consumption of a resource by a project.

    count units of resource_id for `duration` x `unit`.
    """
    resource_id: str
    count: float = 0.0
    duration: float = 0.0
    unit: ResourceUnit = ResourceUnit.DAY

    def __post_init__(self):
        if not isinstance(self.unit, ResourceUnit):
            self.unit = ResourceUnit(str(self.unit))

    @property
    def duration_days(self) -> float:
        """Duration normalised to day-equivalents."""
        return self.duration * self.unit.days

    @property
    def workload(self) -> float:
        """Units × day-equivalents (e.g. person-days)."""
        return self.count * self.duration_days

    def to_dict(self) -> Dict[str, Any]:
        return {
            'resource_id': self.resource_id,
            'count': self.count,
            'duration': self.duration,
            'unit': self.unit.value,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ResourceRequirement':
        return cls(
            resource_id=str(_pick(data, 'resource_id', 'resourceId')),
            count=float(data.get('count', 0) or 0),
            duration=float(data.get('duration', 0) or 0),
            unit=ResourceUnit(data.get('unit', 'day')),
        )


@dataclass
class Task:
    """Task snapshot from the task-management collaborator."""
    id: str
    name: str = ""
    progress: float = 0.0
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None

    def __post_init__(self):
        self.start_date = parse_datetime(self.start_date)
        self.end_date = parse_datetime(self.end_date)

    @property
    def is_completed(self) -> bool:
        return self.progress == 100

    @property
    def duration_days(self) -> int:
        return span_days_ceil(self.start_date, self.end_date)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'name': self.name,
            'progress': self.progress,
            'start_date': _iso(self.start_date),
            'end_date': _iso(self.end_date),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Task':
        return cls(
            id=str(data['id']),
            name=data.get('name', ''),
            progress=float(data.get('progress', 0) or 0),
            start_date=_pick(data, 'start_date', 'startDate'),
            end_date=_pick(data, 'end_date', 'endDate'),
        )


@dataclass
class Requirement:
    """A requirement and the tasks that implement it (traceability links)."""
    id: str
    project_id: str = ""
    title: str = ""
    related_task_ids: Set[str] = field(default_factory=set)

    def __post_init__(self):
        if not isinstance(self.related_task_ids, set):
            self.related_task_ids = set(self.related_task_ids or [])

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'project_id': self.project_id,
            'title': self.title,
            'related_task_ids': sorted(self.related_task_ids),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Requirement':
        return cls(
            id=str(data['id']),
            project_id=str(_pick(data, 'project_id', 'projectId', '')),
            title=data.get('title', ''),
            related_task_ids=set(_pick(data, 'related_task_ids', 'relatedTaskIds', []) or []),
        )


@dataclass
class ChangeRequest:
    """A requested change to a project's scope, cost or schedule."""
    id: str
    project_id: str = ""
    status: ChangeRequestStatus = ChangeRequestStatus.PENDING
    estimated_cost_increase: float = 0.0
    schedule_impact_days: int = 0
    business_justification: str = ""

    def __post_init__(self):
        if not isinstance(self.status, ChangeRequestStatus):
            self.status = ChangeRequestStatus(str(self.status))

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'project_id': self.project_id,
            'status': self.status.value,
            'estimated_cost_increase': self.estimated_cost_increase,
            'schedule_impact_days': self.schedule_impact_days,
            'business_justification': self.business_justification,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ChangeRequest':
        return cls(
            id=str(data['id']),
            project_id=str(_pick(data, 'project_id', 'projectId', '')),
            status=data.get('status', 'pending'),
            estimated_cost_increase=float(
                _pick(data, 'estimated_cost_increase', 'estimatedCostIncrease', 0) or 0
            ),
            schedule_impact_days=int(_pick(data, 'schedule_impact_days', 'scheduleImpactDays', 0) or 0),
            business_justification=_pick(data, 'business_justification', 'businessJustification', '') or '',
        )


@dataclass
class ProjectDependency:
    """
    Directed edge of the portfolio graph: from_project_id → to_project_id.

    Edges may form cycles; this is an error condition detected by the
    dependency analyzer, never assumed absent.
    """
    from_project_id: str
    to_project_id: str
    dependency_type: DependencyType = DependencyType.BLOCKS
    criticality: Criticality = Criticality.MEDIUM
    description: Optional[str] = None

    def __post_init__(self):
        if not isinstance(self.dependency_type, DependencyType):
            self.dependency_type = DependencyType(str(self.dependency_type))
        if not isinstance(self.criticality, Criticality):
            self.criticality = Criticality(str(self.criticality))

    def to_dict(self) -> Dict[str, Any]:
        return {
            'from_project_id': self.from_project_id,
            'to_project_id': self.to_project_id,
            'dependency_type': self.dependency_type.value,
            'criticality': self.criticality.value,
            'description': self.description,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ProjectDependency':
        return cls(
            from_project_id=str(_pick(data, 'from_project_id', 'fromProjectId')),
            to_project_id=str(_pick(data, 'to_project_id', 'toProjectId')),
            dependency_type=_pick(data, 'dependency_type', 'dependencyType', 'blocks'),
            criticality=data.get('criticality', 'medium'),
            description=data.get('description'),
        )


@dataclass
class DependencyLink:
    """Dependency declared on a project, pointing at another project."""
    target_project_id: str
    criticality: Criticality = Criticality.MEDIUM
    dependency_type: DependencyType = DependencyType.BLOCKS

    def __post_init__(self):
        if not isinstance(self.criticality, Criticality):
            self.criticality = Criticality(str(self.criticality))
        if not isinstance(self.dependency_type, DependencyType):
            self.dependency_type = DependencyType(str(self.dependency_type))

    def to_dict(self) -> Dict[str, Any]:
        return {
            'target_project_id': self.target_project_id,
            'criticality': self.criticality.value,
            'dependency_type': self.dependency_type.value,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'DependencyLink':
        return cls(
            target_project_id=str(_pick(data, 'target_project_id', 'targetProjectId')),
            criticality=data.get('criticality', 'medium'),
            dependency_type=_pick(data, 'dependency_type', 'dependencyType', 'blocks'),
        )


# ════════════════════════════════════════════════════════════════════════════════════════════════════
# PROJECT
# ════════════════════════════════════════════════════════════════════════════════════════════════════

@dataclass
class Project:
    """
    Represents a portfolio project.

    Attributes:
        id: Unique identifier
        name: Human-readable name
        status: Lifecycle status
        start_date / end_date: Planned window
        factors: factor id -> raw score x_{p,f} in [0, 10]
        score: Derived weighted score (only set by the scoring engine)
        rank: Derived dense rank 1..N (only set by the rank assigner)
        resource_requirements: Planned resource consumption
        tasks: Task snapshots
        requirements: Requirements with traceability links
        dependencies: Dependencies declared by this project
        baseline_tasks: Task snapshot of the active baseline, if any
        budget: Approved budget (None when not tracked)
        actual_cost: Cost incurred so far
        metadata: Additional attributes

    Mathematical Properties:
    ───────────────────────
    - score_p = Σ_f x_{p,f}·w_f / Σ_f w_f
    - rank_p  = 1 + |{q : q precedes p in (score desc, id asc)}|
    """
    id: str
    name: str = ""
    status: ProjectStatus = ProjectStatus.PLANNING
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    factors: Dict[str, float] = field(default_factory=dict)
    score: Optional[float] = None
    rank: Optional[int] = None
    resource_requirements: List[ResourceRequirement] = field(default_factory=list)
    tasks: List[Task] = field(default_factory=list)
    requirements: List[Requirement] = field(default_factory=list)
    dependencies: List[DependencyLink] = field(default_factory=list)
    baseline_tasks: Optional[List[Task]] = None
    budget: Optional[float] = None
    actual_cost: float = 0.0
    metadata: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if not isinstance(self.status, ProjectStatus):
            self.status = ProjectStatus(str(self.status))
        self.start_date = parse_datetime(self.start_date)
        self.end_date = parse_datetime(self.end_date)

    @property
    def num_tasks(self) -> int:
        return len(self.tasks)

    @property
    def duration_days(self) -> int:
        """ceil((end - start) / 1 day); 0 when either date is unknown."""
        return span_days_ceil(self.start_date, self.end_date)

    @property
    def is_open(self) -> bool:
        """Whether the project still consumes resources (planning or active)."""
        return self.status in (ProjectStatus.PLANNING, ProjectStatus.ACTIVE)

    def outgoing_dependencies(self) -> List[ProjectDependency]:
        """Declared dependencies as portfolio graph edges."""
        return [
            ProjectDependency(
                from_project_id=self.id,
                to_project_id=link.target_project_id,
                dependency_type=link.dependency_type,
                criticality=link.criticality,
            )
            for link in self.dependencies
        ]

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to dictionary."""
        return {
            'id': self.id,
            'name': self.name,
            'status': self.status.value,
            'start_date': _iso(self.start_date),
            'end_date': _iso(self.end_date),
            'factors': dict(self.factors),
            'score': round(self.score, 4) if self.score is not None else None,
            'rank': self.rank,
            'resource_requirements': [r.to_dict() for r in self.resource_requirements],
            'tasks': [t.to_dict() for t in self.tasks],
            'requirements': [r.to_dict() for r in self.requirements],
            'dependencies': [d.to_dict() for d in self.dependencies],
            'baseline_tasks': (
                [t.to_dict() for t in self.baseline_tasks]
                if self.baseline_tasks is not None else None
            ),
            'budget': self.budget,
            'actual_cost': self.actual_cost,
            'metadata': self.metadata,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Project':
        """Deserialize from dictionary (snake_case or camelCase keys)."""
        baseline = _pick(data, 'baseline_tasks', 'baselineTasks')
        budget = data.get('budget')
        return cls(
            id=str(data['id']),
            name=data.get('name', ''),
            status=data.get('status', 'planning'),
            start_date=_pick(data, 'start_date', 'startDate'),
            end_date=_pick(data, 'end_date', 'endDate'),
            factors={str(k): float(v or 0) for k, v in (data.get('factors') or {}).items()},
            score=data.get('score'),
            rank=data.get('rank'),
            resource_requirements=[
                ResourceRequirement.from_dict(r)
                for r in _pick(data, 'resource_requirements', 'resourceRequirements', []) or []
            ],
            tasks=[Task.from_dict(t) for t in data.get('tasks') or []],
            requirements=[Requirement.from_dict(r) for r in data.get('requirements') or []],
            dependencies=[DependencyLink.from_dict(d) for d in data.get('dependencies') or []],
            baseline_tasks=[Task.from_dict(t) for t in baseline] if baseline is not None else None,
            budget=float(budget) if budget is not None else None,
            actual_cost=float(_pick(data, 'actual_cost', 'actualCost', 0) or 0),
            metadata=data.get('metadata', {}),
        )


# ════════════════════════════════════════════════════════════════════════════════════════════════════
# COLLECTION HELPERS
# ════════════════════════════════════════════════════════════════════════════════════════════════════

def index_projects(projects: Iterable[Project]) -> Dict[str, Project]:
    """Map project id -> project (last one wins on duplicate ids)."""
    return {p.id: p for p in projects}


def collect_dependencies(projects: Iterable[Project]) -> List[ProjectDependency]:
    """Flatten the dependencies declared on each project into graph edges."""
    edges: List[ProjectDependency] = []
    for project in projects:
        edges.extend(project.outgoing_dependencies())
    return edges

