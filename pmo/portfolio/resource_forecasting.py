"""
═══════════════════════════════════════════════════════════════════════════════════════════════════════
                    PMO ENGINE — RESOURCE LOAD FORECASTING
═══════════════════════════════════════════════════════════════════════════════════════════════════════

Multi-month demand forecast per resource pool.

BOOKED DEMAND
═════════════

A requirement (count c, duration D day-equivalents) of an open project
(planning or active) books the window

    W = [start_p, start_p + D)          (start_p defaults to the as-of date)

Its demand in calendar month m (d_m days) is

    load_m = c × |W ∩ m|_days / d_m

so a requirement covering the whole month contributes exactly c units.

FORECAST MODEL
══════════════

History h_0..h_{n-1}: booked demand of the n months ending with the as-of month.
For future month k = 1..K with booked demand s_k:

    linear_k      = intercept + slope × (n - 1 + k)          (numpy.polyfit, deg 1)
    moving_avg    = mean(h_{n-w} .. h_{n-1})
    statistical_k = α × linear_k + (1 - α) × moving_avg       α = trend_weight
    predicted_k   = max(0, β × s_k + (1 - β) × statistical_k) β = scheduled_weight

CONFIDENCE
══════════

    cv           = σ(h) / μ(h)                      (0 if μ = 0)
    penalty      = min(max_volatility_penalty, cv × 50)
    confidence_k = max(floor, 100 - 10k - penalty)

Confidence decays with horizon and with historical volatility.

FALLBACK
════════

With no non-zero history the resource's current allocation (Σ counts of
consumer requirements) is held flat at the confidence floor.

TREND
═════

Slope of the historical fit (the same polyfit as above):
    > +threshold → increasing,  < -threshold → decreasing,  else stable

The fallback path (no history) is stable.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Tuple

import numpy as np
import pandas as pd

from pmo.settings import EngineSettings, Settings

from .deadline import Deadline, check
from .project_model import Project, ResourcePoolItem

logger = logging.getLogger(__name__)


# ════════════════════════════════════════════════════════════════════════════════════════════════════
# DATA STRUCTURES
# ════════════════════════════════════════════════════════════════════════════════════════════════════

class LoadTrend(str, Enum):
    INCREASING = "increasing"
    DECREASING = "decreasing"
    STABLE = "stable"


@dataclass
class ForecastConfig:
    """Configuration for resource load forecasting."""
    months_ahead: int = 6
    history_months: int = 6
    moving_average_window: int = 3
    trend_weight: float = 0.5
    scheduled_weight: float = 0.5
    confidence_floor: int = 30
    max_volatility_penalty: float = 30.0
    trend_threshold: float = 0.1

    @classmethod
    def from_settings(cls, settings: Optional[EngineSettings] = None) -> 'ForecastConfig':
        settings = settings or Settings.get_config()
        return cls(
            months_ahead=settings.forecast_months,
            history_months=settings.history_months,
            moving_average_window=settings.moving_average_window,
            trend_weight=settings.trend_weight,
            scheduled_weight=settings.scheduled_weight,
            confidence_floor=settings.confidence_floor,
            max_volatility_penalty=settings.max_volatility_penalty,
            trend_threshold=settings.trend_threshold,
        )


@dataclass
class MonthlyLoad:
    """Booked demand of one past (or current) month."""
    month: str
    load: float

    def to_dict(self) -> Dict[str, Any]:
        return {'month': self.month, 'load': round(self.load, 2)}


@dataclass
class MonthlyPrediction:
    """Forecast point for one future month."""
    month: str
    predicted: float
    confidence: int
    scheduled: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            'month': self.month,
            'predicted': round(self.predicted, 2),
            'confidence': self.confidence,
            'scheduled': round(self.scheduled, 2),
        }


@dataclass
class ResourceLoadPrediction:
    """
    Forecast result for a resource pool item.
    """
    resource_id: str
    resource_name: str
    capacity: float

    predictions: List[MonthlyPrediction] = field(default_factory=list)
    trend: LoadTrend = LoadTrend.STABLE
    peak_load: float = 0.0
    peak_month: Optional[str] = None

    history: List[MonthlyLoad] = field(default_factory=list)
    current_allocation: float = 0.0
    consumer_project_ids: List[str] = field(default_factory=list)
    used_fallback: bool = False
    created_at: str = ""

    def utilization(self, prediction: MonthlyPrediction) -> Optional[float]:
        """Predicted utilization % of a month (None when capacity is 0)."""
        if self.capacity <= 0:
            return None
        return prediction.predicted / self.capacity * 100

    def to_dict(self) -> Dict[str, Any]:
        return {
            'resource_id': self.resource_id,
            'resource_name': self.resource_name,
            'capacity': self.capacity,
            'predictions': [p.to_dict() for p in self.predictions],
            'trend': self.trend.value,
            'peak_load': round(self.peak_load, 2),
            'peak_month': self.peak_month,
            'history': [h.to_dict() for h in self.history],
            'current_allocation': round(self.current_allocation, 2),
            'consumer_project_ids': list(self.consumer_project_ids),
            'used_fallback': self.used_fallback,
            'created_at': self.created_at,
        }


# ════════════════════════════════════════════════════════════════════════════════════════════════════
# BOOKED DEMAND
# ════════════════════════════════════════════════════════════════════════════════════════════════════

def _month_bounds(period: pd.Period) -> Tuple[datetime, datetime]:
    start = period.start_time.to_pydatetime()
    return start, start + timedelta(days=period.days_in_month)


def _overlap_days(a_start: datetime, a_end: datetime, b_start: datetime, b_end: datetime) -> float:
    seconds = (min(a_end, b_end) - max(a_start, b_start)).total_seconds()
    return max(0.0, seconds / 86400)


def find_consumers(resource_id: str, projects: Iterable[Project]) -> List[Project]:
    """Open projects with at least one requirement on the resource."""
    return [
        p for p in projects
        if p.is_open and any(r.resource_id == resource_id for r in p.resource_requirements)
    ]


def booking_windows(
    resource_id: str,
    consumers: Iterable[Project],
    as_of: datetime
) -> List[Tuple[datetime, datetime, float]]:
    """(window start, window end, count) per requirement on the resource."""
    windows = []
    for project in consumers:
        start = project.start_date or as_of
        for req in project.resource_requirements:
            if req.resource_id != resource_id:
                continue
            windows.append((start, start + timedelta(days=req.duration_days), req.count))
    return windows


def monthly_demand(
    windows: List[Tuple[datetime, datetime, float]],
    period: pd.Period
) -> float:
    """Units of the resource booked in a calendar month (prorated by overlap)."""
    m_start, m_end = _month_bounds(period)
    days = period.days_in_month
    return sum(
        count * _overlap_days(w_start, w_end, m_start, m_end) / days
        for w_start, w_end, count in windows
    )


def current_allocation(resource_id: str, consumers: Iterable[Project]) -> float:
    return sum(
        req.count
        for p in consumers
        for req in p.resource_requirements
        if req.resource_id == resource_id
    )


# ════════════════════════════════════════════════════════════════════════════════════════════════════
# STATISTICAL PROJECTION
# ════════════════════════════════════════════════════════════════════════════════════════════════════

def _linear_fit(values: np.ndarray) -> Tuple[float, float]:
    """(slope, intercept) of a degree-1 least-squares fit; flat line for < 2 points."""
    if len(values) < 2:
        return 0.0, float(values[0]) if len(values) else 0.0
    slope, intercept = np.polyfit(np.arange(len(values)), values, 1)
    return float(slope), float(intercept)


def _volatility_penalty(history: np.ndarray, config: ForecastConfig) -> float:
    mean = float(np.mean(history)) if len(history) else 0.0
    cv = float(np.std(history)) / mean if mean > 0 else 0.0
    return min(config.max_volatility_penalty, cv * 50)


def classify_slope(slope: float, threshold: float) -> LoadTrend:
    if slope > threshold:
        return LoadTrend.INCREASING
    if slope < -threshold:
        return LoadTrend.DECREASING
    return LoadTrend.STABLE


def classify_trend(values: List[float], threshold: float) -> LoadTrend:
    """Trend of a series from its least-squares slope."""
    slope, _ = _linear_fit(np.array(values, dtype=np.float64))
    return classify_slope(slope, threshold)


def project_statistical(history: np.ndarray, months_ahead: int, config: ForecastConfig) -> np.ndarray:
    """Blend of linear trend extrapolation and moving average for k = 1..K."""
    n = len(history)
    slope, intercept = _linear_fit(history)
    window = history[-max(1, config.moving_average_window):]
    moving_avg = float(np.mean(window)) if len(window) else 0.0

    steps = np.arange(1, months_ahead + 1)
    linear = intercept + slope * (n - 1 + steps)
    return config.trend_weight * linear + (1 - config.trend_weight) * moving_avg


# ════════════════════════════════════════════════════════════════════════════════════════════════════
# MAIN FORECAST
# ════════════════════════════════════════════════════════════════════════════════════════════════════

def predict_resource_load(
    resource: ResourcePoolItem,
    projects: Iterable[Project],
    months_ahead: Optional[int] = None,
    as_of: Optional[datetime] = None,
    config: Optional[ForecastConfig] = None,
    deadline: Optional[Deadline] = None
) -> ResourceLoadPrediction:
    """
    Forecast the monthly load of one resource.

    Args:
        resource: Resource pool item
        projects: Portfolio snapshot
        months_ahead: Forecast horizon (default from settings)
        as_of: Reference date (default now)
        config: Forecast configuration (default from settings)
        deadline: Optional computation budget, ticked once per month

    Returns:
        ResourceLoadPrediction with one MonthlyPrediction per future month
    """
    config = config or ForecastConfig.from_settings()
    months_ahead = config.months_ahead if months_ahead is None else months_ahead
    as_of = as_of or datetime.now()

    consumers = find_consumers(resource.id, projects)
    windows = booking_windows(resource.id, consumers, as_of)
    allocation = current_allocation(resource.id, consumers)

    result = ResourceLoadPrediction(
        resource_id=resource.id,
        resource_name=resource.name,
        capacity=resource.total_quantity,
        current_allocation=allocation,
        consumer_project_ids=[p.id for p in consumers],
        created_at=datetime.now().isoformat(),
    )

    current = pd.Period(as_of, freq='M')

    # History
    history_periods = [current - i for i in range(config.history_months - 1, -1, -1)]
    history_values = []
    for period in history_periods:
        check(deadline)
        load = monthly_demand(windows, period)
        history_values.append(load)
        result.history.append(MonthlyLoad(month=str(period), load=load))
    history = np.array(history_values, dtype=np.float64)

    # Future booked demand
    future_periods = [current + k for k in range(1, months_ahead + 1)]
    scheduled = []
    for period in future_periods:
        check(deadline)
        scheduled.append(monthly_demand(windows, period))

    if not np.any(history > 0):
        if consumers:
            logger.warning(f"No booked history for resource {resource.id}; holding current allocation flat")
        result.used_fallback = True
        for period, booked in zip(future_periods, scheduled):
            result.predictions.append(MonthlyPrediction(
                month=str(period),
                predicted=round(max(0.0, allocation), 2),
                confidence=int(config.confidence_floor),
                scheduled=booked,
            ))
    else:
        statistical = project_statistical(history, months_ahead, config)
        result.trend = classify_trend(history, config.trend_threshold)
        penalty = _volatility_penalty(history, config)
        for k, (period, booked, stat) in enumerate(zip(future_periods, scheduled, statistical), 1):
            value = config.scheduled_weight * booked + (1 - config.scheduled_weight) * float(stat)
            confidence = max(config.confidence_floor, 100 - 10 * k - penalty)
            result.predictions.append(MonthlyPrediction(
                month=str(period),
                predicted=round(max(0.0, value), 2),
                confidence=int(round(confidence)),
                scheduled=booked,
            ))

    if result.predictions:
        values = [p.predicted for p in result.predictions]
        peak_index = int(np.argmax(values))
        result.peak_load = values[peak_index]
        result.peak_month = result.predictions[peak_index].month

    logger.debug(
        f"Resource {resource.id}: {len(consumers)} consumers, peak {result.peak_load:.2f} "
        f"in {result.peak_month} ({result.trend.value})"
    )

    return result


def predict_all_resource_loads(
    resource_pool: Iterable[ResourcePoolItem],
    projects: Iterable[Project],
    months_ahead: Optional[int] = None,
    as_of: Optional[datetime] = None,
    config: Optional[ForecastConfig] = None,
    deadline: Optional[Deadline] = None
) -> List[ResourceLoadPrediction]:
    """Forecast every resource of the pool (pool order)."""
    projects = list(projects)
    as_of = as_of or datetime.now()
    predictions = [
        predict_resource_load(resource, projects, months_ahead, as_of, config, deadline)
        for resource in resource_pool
    ]
    logger.info(f"Forecast {len(predictions)} resources over {len(projects)} projects")
    return predictions


# ════════════════════════════════════════════════════════════════════════════════════════════════════
# ANALYSIS
# ════════════════════════════════════════════════════════════════════════════════════════════════════

@dataclass
class CapacityWarning:
    """A resource predicted to exceed its capacity."""
    resource_id: str
    resource_name: str
    capacity: float
    first_overload_month: str
    peak_month: Optional[str]
    peak_load: float
    months_overloaded: int
    overload_ratio: Optional[float]  # peak / capacity; None when capacity is 0

    @property
    def message(self) -> str:
        return (
            f"{self.resource_name or self.resource_id} exceeds capacity from "
            f"{self.first_overload_month} (peak {self.peak_load:.1f} of {self.capacity:.1f} in {self.peak_month})"
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'resource_id': self.resource_id,
            'resource_name': self.resource_name,
            'capacity': self.capacity,
            'first_overload_month': self.first_overload_month,
            'peak_month': self.peak_month,
            'peak_load': round(self.peak_load, 2),
            'months_overloaded': self.months_overloaded,
            'overload_ratio': round(self.overload_ratio, 3) if self.overload_ratio is not None else None,
            'message': self.message,
        }


@dataclass
class CapacityOpportunity:
    """A resource predicted to stay under-utilized for the whole horizon."""
    resource_id: str
    resource_name: str
    capacity: float
    average_utilization: float
    spare_capacity: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            'resource_id': self.resource_id,
            'resource_name': self.resource_name,
            'capacity': self.capacity,
            'average_utilization': round(self.average_utilization, 1),
            'spare_capacity': round(self.spare_capacity, 2),
        }


@dataclass
class PredictionAnalysis:
    warnings: List[CapacityWarning] = field(default_factory=list)
    opportunities: List[CapacityOpportunity] = field(default_factory=list)
    summary: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            'warnings': [w.to_dict() for w in self.warnings],
            'opportunities': [o.to_dict() for o in self.opportunities],
            'summary': self.summary,
        }


def analyze_predictions(
    predictions: Iterable[ResourceLoadPrediction],
    resource_pool: Optional[Iterable[ResourcePoolItem]] = None,
    low_utilization_pct: Optional[float] = None
) -> PredictionAnalysis:
    """
    Turn forecasts into capacity warnings and reallocation opportunities.

    Capacity comes from the pool when given, otherwise from the prediction.
    """
    predictions = list(predictions)
    if low_utilization_pct is None:
        low_utilization_pct = Settings.get_config().low_utilization_pct
    capacities = {r.id: r.total_quantity for r in resource_pool or []}

    warnings: List[CapacityWarning] = []
    opportunities: List[CapacityOpportunity] = []
    horizon = 0

    for pred in predictions:
        if not pred.predictions:
            continue
        horizon = max(horizon, len(pred.predictions))
        capacity = capacities.get(pred.resource_id, pred.capacity)
        values = np.array([p.predicted for p in pred.predictions], dtype=np.float64)

        overloaded = [p for p in pred.predictions if p.predicted > capacity]
        if overloaded:
            warnings.append(CapacityWarning(
                resource_id=pred.resource_id,
                resource_name=pred.resource_name,
                capacity=capacity,
                first_overload_month=overloaded[0].month,
                peak_month=pred.peak_month,
                peak_load=pred.peak_load,
                months_overloaded=len(overloaded),
                overload_ratio=pred.peak_load / capacity if capacity > 0 else None,
            ))
            continue

        if capacity > 0:
            utilization = values / capacity * 100
            if np.all(utilization < low_utilization_pct):
                opportunities.append(CapacityOpportunity(
                    resource_id=pred.resource_id,
                    resource_name=pred.resource_name,
                    capacity=capacity,
                    average_utilization=float(np.mean(utilization)),
                    spare_capacity=capacity - float(np.mean(values)),
                ))

    warnings.sort(key=lambda w: (
        -(w.overload_ratio if w.overload_ratio is not None else float('inf')),
        w.resource_id,
    ))
    opportunities.sort(key=lambda o: (-o.spare_capacity, o.resource_id))

    if warnings:
        summary = (
            f"{len(warnings)} of {len(predictions)} resources are predicted to exceed capacity "
            f"within the next {horizon} months; {len(opportunities)} stay below "
            f"{low_utilization_pct:.0f}% utilization."
        )
    else:
        summary = (
            f"All {len(predictions)} resources stay within capacity over the next {horizon} months; "
            f"{len(opportunities)} stay below {low_utilization_pct:.0f}% utilization."
        )

    return PredictionAnalysis(warnings=warnings, opportunities=opportunities, summary=summary)


def aggregate_monthly_load(
    predictions: Iterable[ResourceLoadPrediction],
    resource_pool: Optional[Iterable[ResourcePoolItem]] = None
) -> pd.DataFrame:
    """
    Portfolio-wide predicted load and capacity per month.

    Returns:
        DataFrame[month, predicted_load, capacity, utilization_pct] sorted by month
    """
    columns = ['month', 'predicted_load', 'capacity', 'utilization_pct']
    capacities = {r.id: r.total_quantity for r in resource_pool or []}

    rows = [
        {
            'month': p.month,
            'predicted_load': p.predicted,
            'capacity': capacities.get(pred.resource_id, pred.capacity),
        }
        for pred in predictions
        for p in pred.predictions
    ]
    if not rows:
        return pd.DataFrame(columns=columns)

    df = pd.DataFrame(rows).groupby('month', as_index=False).sum()
    df['utilization_pct'] = np.where(
        df['capacity'] > 0,
        df['predicted_load'] / df['capacity'].where(df['capacity'] > 0, 1) * 100,
        0.0,
    )
    return df.sort_values('month').reset_index(drop=True)[columns]
