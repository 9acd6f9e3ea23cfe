"""
═══════════════════════════════════════════════════════════════════════════════════════════════════════
                    PMO ENGINE — PORTFOLIO MODULE
═══════════════════════════════════════════════════════════════════════════════════════════════════════

Decision engines for a project portfolio.

Given projects, their resource commitments, requirement-to-task links and
inter-project dependencies, this module provides:
1. Weighted priority score and dense rank per project
2. Ghost-task detection, scope-creep metrics and change-request validation
3. Multi-month resource load forecasts
4. Delivery-efficiency metrics with status classification
5. Dependency-graph analysis (cycles, critical path, delay impact, circuit breaker)

ARCHITECTURE
════════════

    ┌─────────────────────────────────────────────────────────────────────────┐
    │                         PORTFOLIO SNAPSHOT                               │
    │        projects · factor definitions · resource pool · dependencies      │
    └────────────────────────────────┬────────────────────────────────────────┘
                                     │ (immutable)
    ┌──────────────┐  ┌──────────────┐  ┌──────────────┐  ┌──────────────┐  ┌──────────────┐
    │ scoring      │  │ scope        │  │ resource     │  │ delivery     │  │ dependency   │
    │              │  │              │  │ forecasting  │  │ metrics      │  │ graph        │
    │ • score      │  │ • ghost tasks│  │ • monthly    │  │ • throughput │  │ • cycles     │
    │ • rank       │  │ • scope creep│  │   load       │  │ • lead time  │  │ • crit. path │
    │ • sync       │  │ • CR checks  │  │ • warnings   │  │ • status     │  │ • breaker    │
    └──────┬───────┘  └──────────────┘  └──────────────┘  └──────────────┘  └──────────────┘
           │
    ┌──────▼──────────────────────────────────────────────────────────────────┐
    │           PortfolioStore (store.py): snapshot-read, batch-write          │
    └─────────────────────────────────────────────────────────────────────────┘

The store and the HTTP router (api.py) are imported from their own modules.
"""

from .errors import (
    PortfolioEngineError,
    GraphNotAcyclicError,
    DeadlineExceededError,
    SnapshotLoadError,
)
from .deadline import Deadline
from .project_model import (
    Project,
    ProjectStatus,
    ResourceUnit,
    DependencyType,
    Criticality,
    ChangeRequestStatus,
    FactorDefinition,
    ResourcePoolItem,
    ResourceRequirement,
    Task,
    Requirement,
    ChangeRequest,
    ProjectDependency,
    DependencyLink,
    collect_dependencies,
)
from .scoring_engine import (
    ProjectScore,
    RankingResult,
    compute_project_score,
    assign_ranks,
    sync_scores_and_ranks,
)
from .scope_engine import (
    GhostTask,
    ChangeRequestValidation,
    ScopeCreepMetrics,
    detect_ghost_tasks,
    compute_scope_creep_metrics,
    validate_change_request,
)
from .resource_forecasting import (
    LoadTrend,
    ForecastConfig,
    MonthlyPrediction,
    ResourceLoadPrediction,
    PredictionAnalysis,
    predict_resource_load,
    predict_all_resource_loads,
    analyze_predictions,
    aggregate_monthly_load,
)
from .delivery_metrics_engine import (
    DeliveryStatus,
    DeliveryMetrics,
    calculate_project_delivery_metrics,
    calculate_delivery_metrics,
    calculate_p85,
    detect_resource_bottlenecks,
    generate_optimization_suggestions,
    summarize_delivery_metrics,
    delivery_metrics_table,
)
from .dependency_graph import (
    RiskLevel,
    RecommendationAction,
    CriticalPath,
    DependencyImpact,
    CircuitBreakerRecommendation,
    DelayPropagation,
    DependencyStatistics,
    detect_cycles,
    calculate_critical_path,
    analyze_dependency_impact,
    generate_circuit_breaker_recommendation,
    simulate_delay_propagation,
    get_dependency_statistics,
    analyze_dependency_graph,
)

__all__ = [
    # Errors
    "PortfolioEngineError",
    "GraphNotAcyclicError",
    "DeadlineExceededError",
    "SnapshotLoadError",
    "Deadline",
    # Model
    "Project",
    "ProjectStatus",
    "ResourceUnit",
    "DependencyType",
    "Criticality",
    "ChangeRequestStatus",
    "FactorDefinition",
    "ResourcePoolItem",
    "ResourceRequirement",
    "Task",
    "Requirement",
    "ChangeRequest",
    "ProjectDependency",
    "DependencyLink",
    "collect_dependencies",
    # Scoring
    "ProjectScore",
    "RankingResult",
    "compute_project_score",
    "assign_ranks",
    "sync_scores_and_ranks",
    # Scope
    "GhostTask",
    "ChangeRequestValidation",
    "ScopeCreepMetrics",
    "detect_ghost_tasks",
    "compute_scope_creep_metrics",
    "validate_change_request",
    # Forecasting
    "LoadTrend",
    "ForecastConfig",
    "MonthlyPrediction",
    "ResourceLoadPrediction",
    "PredictionAnalysis",
    "predict_resource_load",
    "predict_all_resource_loads",
    "analyze_predictions",
    "aggregate_monthly_load",
    # Delivery
    "DeliveryStatus",
    "DeliveryMetrics",
    "calculate_project_delivery_metrics",
    "calculate_delivery_metrics",
    "calculate_p85",
    "detect_resource_bottlenecks",
    "generate_optimization_suggestions",
    "summarize_delivery_metrics",
    "delivery_metrics_table",
    # Dependencies
    "RiskLevel",
    "RecommendationAction",
    "CriticalPath",
    "DependencyImpact",
    "CircuitBreakerRecommendation",
    "DelayPropagation",
    "DependencyStatistics",
    "detect_cycles",
    "calculate_critical_path",
    "analyze_dependency_impact",
    "generate_circuit_breaker_recommendation",
    "simulate_delay_propagation",
    "get_dependency_statistics",
    "analyze_dependency_graph",
]
