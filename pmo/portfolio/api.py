"""
════════════════════════════════════════════════════════════════════════════════════════════════════
PMO API - Endpoints do motor de decisão de portfólio
════════════════════════════════════════════════════════════════════════════════════════════════════

API REST para:
- Recalcular scores e ranking de projetos
- Tarefas fantasma, scope creep e validação de pedidos de alteração
- Métricas de entrega, gargalos e sugestões
- Previsão de carga de recursos
- Análise de dependências e circuit breaker
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Query
from pydantic import BaseModel, Field

from pmo.data_loader import bundle_from_dict
from pmo.settings import Settings

from .deadline import Deadline
from .delivery_metrics_engine import (
    calculate_delivery_metrics,
    detect_resource_bottlenecks,
    generate_optimization_suggestions,
    summarize_delivery_metrics,
)
from .dependency_graph import (
    analyze_dependency_graph,
    analyze_dependency_impact,
    calculate_critical_path,
    generate_circuit_breaker_recommendation,
    simulate_delay_propagation,
)
from .errors import DeadlineExceededError, GraphNotAcyclicError, SnapshotLoadError
from .resource_forecasting import (
    aggregate_monthly_load,
    analyze_predictions,
    predict_all_resource_loads,
)
from .scope_engine import compute_scope_creep_metrics, detect_ghost_tasks, validate_change_request
from .store import PortfolioStore, get_portfolio_store

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/pmo", tags=["PMO"])


# ═══════════════════════════════════════════════════════════════════════════════
# PYDANTIC MODELS
# ═══════════════════════════════════════════════════════════════════════════════

class ProjectRankEntry(BaseModel):
    project_id: str
    score: float
    rank: int


class SyncResponse(BaseModel):
    """Response for a score + rank sync."""
    version: int
    total_projects: int
    results: List[ProjectRankEntry]


class RankingResponse(BaseModel):
    total: int
    rankings: List[Dict[str, Any]]


class ImpactRequest(BaseModel):
    """Input for delay impact analysis."""
    project_id: str = Field(..., description="Delayed project")
    delay_days: int = Field(..., ge=0, description="Expected delay in days")
    waiting_cost_per_day: Optional[float] = Field(None, ge=0)
    threshold: Optional[float] = Field(None, ge=0)


class ImpactResponse(BaseModel):
    project_id: str
    delay_days: int
    impacts: List[Dict[str, Any]]
    circuit_breakers: List[Dict[str, Any]]
    propagation: List[Dict[str, Any]]


class SnapshotResponse(BaseModel):
    version: int
    projects: int
    resources: int
    dependencies: int


# ═══════════════════════════════════════════════════════════════════════════════
# HELPERS
# ═══════════════════════════════════════════════════════════════════════════════

def _deadline_exceeded(exc: DeadlineExceededError) -> HTTPException:
    logger.warning(str(exc))
    return HTTPException(
        status_code=503,
        detail={"message": str(exc), "operation": exc.operation, "steps": exc.steps},
    )


# ═══════════════════════════════════════════════════════════════════════════════
# SCORING & RANKING
# ═══════════════════════════════════════════════════════════════════════════════

@router.post("/sync", summary="Recompute all scores and ranks")
async def sync_portfolio(store: PortfolioStore = Depends(get_portfolio_store)) -> SyncResponse:
    result = store.sync_scores_and_ranks()
    return SyncResponse(
        version=store.version,
        total_projects=result.total_projects,
        results=[
            ProjectRankEntry(project_id=p.id, score=round(p.score or 0.0, 4), rank=p.rank)
            for p in result.projects
        ],
    )


@router.get("/ranking", summary="Current portfolio ranking")
async def get_ranking(store: PortfolioStore = Depends(get_portfolio_store)) -> RankingResponse:
    rankings = store.ranking()
    return RankingResponse(total=len(rankings), rankings=[r.to_dict() for r in rankings])


# ═══════════════════════════════════════════════════════════════════════════════
# SCOPE
# ═══════════════════════════════════════════════════════════════════════════════

@router.get("/scope-metrics/{project_id}", summary="Scope creep metrics of a project")
async def get_scope_metrics(
    project_id: str,
    store: PortfolioStore = Depends(get_portfolio_store),
) -> Optional[Dict[str, Any]]:
    """
    Scope growth against baseline; null when the project is unknown.
    """
    bundle = store.snapshot()
    project = bundle.get_project(project_id)
    if project is None:
        return None
    return compute_scope_creep_metrics(project, bundle.change_requests).to_dict()


@router.get("/ghost-tasks/{project_id}", summary="Tasks without requirement link")
async def get_ghost_tasks(
    project_id: str,
    store: PortfolioStore = Depends(get_portfolio_store),
) -> List[Dict[str, Any]]:
    project = store.get_project(project_id)
    if project is None:
        return []
    return [g.to_dict() for g in detect_ghost_tasks(project)]


@router.get(
    "/change-requests/{change_request_id}/validation",
    summary="Budget, schedule and justification checks of a change request",
)
async def get_change_request_validation(
    change_request_id: str,
    store: PortfolioStore = Depends(get_portfolio_store),
) -> Optional[Dict[str, Any]]:
    """
    Validation of a change request against its project; null when either is unknown.
    """
    bundle = store.snapshot()
    change_request = next((c for c in bundle.change_requests if c.id == change_request_id), None)
    if change_request is None:
        return None
    project = bundle.get_project(change_request.project_id)
    if project is None:
        return None
    return validate_change_request(project, change_request).to_dict()


# ═══════════════════════════════════════════════════════════════════════════════
# DELIVERY & RESOURCES
# ═══════════════════════════════════════════════════════════════════════════════

@router.get("/delivery-metrics", summary="Delivery efficiency metrics")
async def get_delivery_metrics(store: PortfolioStore = Depends(get_portfolio_store)) -> Dict[str, Any]:
    bundle = store.snapshot()
    metrics = calculate_delivery_metrics(bundle.projects, bundle.resource_pool)
    return {
        "metrics": [m.to_dict() for m in metrics],
        "summary": summarize_delivery_metrics(metrics).to_dict(),
        "bottlenecks": [b.to_dict() for b in detect_resource_bottlenecks(metrics)],
        "suggestions": [s.to_dict() for s in generate_optimization_suggestions(metrics)],
    }


# Forecast and graph handlers are plain def so they run in the threadpool

@router.get("/resource-forecast", summary="Resource load forecast")
def get_resource_forecast(
    months: Optional[int] = Query(None, ge=1, le=36, description="Forecast horizon in months"),
    store: PortfolioStore = Depends(get_portfolio_store),
) -> Dict[str, Any]:
    bundle = store.snapshot()
    months = months or Settings.get_config().forecast_months
    try:
        predictions = predict_all_resource_loads(
            bundle.resource_pool,
            bundle.projects,
            months_ahead=months,
            deadline=Deadline.from_settings("resource_forecast"),
        )
    except DeadlineExceededError as exc:
        raise _deadline_exceeded(exc)

    analysis = analyze_predictions(predictions, bundle.resource_pool)
    totals = aggregate_monthly_load(predictions, bundle.resource_pool)
    return {
        "months": months,
        "predictions": [p.to_dict() for p in predictions],
        "analysis": analysis.to_dict(),
        "monthly_totals": totals.round(2).to_dict(orient="records"),
    }


# ═══════════════════════════════════════════════════════════════════════════════
# DEPENDENCIES
# ═══════════════════════════════════════════════════════════════════════════════

@router.get("/dependencies/analysis", summary="Cycles, statistics and critical path")
def get_dependency_analysis(store: PortfolioStore = Depends(get_portfolio_store)) -> Dict[str, Any]:
    bundle = store.snapshot()
    try:
        analysis = analyze_dependency_graph(
            bundle.dependency_edges(),
            bundle.projects,
            deadline=Deadline.from_settings("dependency_analysis"),
        )
    except DeadlineExceededError as exc:
        raise _deadline_exceeded(exc)
    return analysis.to_dict()


@router.get("/dependencies/critical-path", summary="Critical path of the portfolio")
def get_critical_path(store: PortfolioStore = Depends(get_portfolio_store)) -> Dict[str, Any]:
    """
    Longest dependency chain. 409 with the cycles when the graph is cyclic.
    """
    bundle = store.snapshot()
    try:
        critical_path = calculate_critical_path(
            bundle.dependency_edges(),
            bundle.projects,
            deadline=Deadline.from_settings("critical_path"),
        )
    except GraphNotAcyclicError as exc:
        raise HTTPException(status_code=409, detail={"message": str(exc), "cycles": exc.cycles})
    except DeadlineExceededError as exc:
        raise _deadline_exceeded(exc)
    return critical_path.to_dict()


@router.post("/dependencies/impact", summary="Delay impact and circuit breaker")
def post_dependency_impact(
    request: ImpactRequest,
    store: PortfolioStore = Depends(get_portfolio_store),
) -> ImpactResponse:
    bundle = store.snapshot()
    edges = bundle.dependency_edges()
    delayed = bundle.get_project(request.project_id)

    impacts = analyze_dependency_impact(request.project_id, request.delay_days, bundle.projects, edges)
    breakers = []
    if delayed is not None:
        breakers = [
            generate_circuit_breaker_recommendation(
                delayed,
                impact,
                waiting_cost_per_day=request.waiting_cost_per_day,
                threshold=request.threshold,
            )
            for impact in impacts
        ]

    try:
        propagation = simulate_delay_propagation(
            request.project_id,
            request.delay_days,
            bundle.projects,
            edges,
            deadline=Deadline.from_settings("delay_propagation"),
        )
    except DeadlineExceededError as exc:
        raise _deadline_exceeded(exc)

    return ImpactResponse(
        project_id=request.project_id,
        delay_days=request.delay_days,
        impacts=[i.to_dict() for i in impacts],
        circuit_breakers=[b.to_dict() for b in breakers],
        propagation=[p.to_dict() for p in propagation],
    )


# ═══════════════════════════════════════════════════════════════════════════════
# SNAPSHOT
# ═══════════════════════════════════════════════════════════════════════════════

@router.put("/portfolio", summary="Replace the portfolio snapshot")
async def put_portfolio(
    snapshot: Dict[str, Any] = Body(..., description="Portfolio snapshot document"),
    store: PortfolioStore = Depends(get_portfolio_store),
) -> SnapshotResponse:
    try:
        bundle = bundle_from_dict(snapshot)
    except SnapshotLoadError as exc:
        raise HTTPException(status_code=422, detail={"message": str(exc), "errors": exc.errors})

    version = store.replace_snapshot(bundle)
    return SnapshotResponse(
        version=version,
        projects=len(bundle.projects),
        resources=len(bundle.resource_pool),
        dependencies=len(bundle.dependencies),
    )
