"""
Testes para as métricas de entrega.
"""
from datetime import datetime

import pytest

from pmo.portfolio.delivery_metrics_engine import (
    DeliveryMetrics,
    DeliveryStatus,
    calculate_delivery_metrics,
    calculate_p85,
    calculate_project_delivery_metrics,
    classify_delivery_status,
    delivery_metrics_table,
    detect_resource_bottlenecks,
    generate_optimization_suggestions,
    summarize_delivery_metrics,
)
from pmo.portfolio.project_model import Project, ResourceRequirement, Task


def _tasks(completed, partial=0, progress=50):
    done = [Task(id=f"d{i}", progress=100) for i in range(completed)]
    open_ = [Task(id=f"o{i}", progress=progress) for i in range(partial)]
    return done + open_


def _project(counts, tasks=(), start="2026-01-01", end="2026-01-15", status="active", resource_id="R"):
    return Project(
        id="P",
        name="Project",
        status=status,
        start_date=start,
        end_date=end,
        tasks=list(tasks),
        resource_requirements=[
            ResourceRequirement(resource_id=resource_id, count=c, duration=1, unit="day") for c in counts
        ],
    )


def _metrics(project_id, utilization, throughput, lead_time, granularity=10.0):
    return DeliveryMetrics(
        project_id=project_id,
        project_name=project_id,
        throughput=throughput,
        lead_time=lead_time,
        granularity=granularity,
        resource_utilization=utilization,
        status=classify_delivery_status(throughput, lead_time, utilization),
    )


class TestProjectMetrics:
    """Métricas por projeto."""

    def test_overallocation_is_critical(self, resource_pool):
        project = _project([4, 4, 5], tasks=_tasks(2))
        metrics = calculate_project_delivery_metrics(project, resource_pool)
        assert metrics.resource_count == 13
        assert metrics.resource_utilization == pytest.approx(130.0)
        assert metrics.status == DeliveryStatus.CRITICAL

    def test_efficient_project(self, resource_pool):
        project = _project([8], tasks=_tasks(12))
        metrics = calculate_project_delivery_metrics(project, resource_pool)
        assert metrics.duration_days == 14
        assert metrics.throughput == pytest.approx(6.0)
        assert metrics.lead_time == pytest.approx(14.0)
        assert metrics.resource_utilization == pytest.approx(80.0)
        assert metrics.status == DeliveryStatus.EFFICIENT

    def test_warning_on_high_utilization(self, resource_pool):
        metrics = calculate_project_delivery_metrics(_project([9], tasks=_tasks(1)), resource_pool)
        assert metrics.status == DeliveryStatus.WARNING

    def test_lead_time_extrapolated_from_progress(self, resource_pool):
        project = _project([5], tasks=_tasks(1, partial=1, progress=50))
        metrics = calculate_project_delivery_metrics(project, resource_pool)
        # average progress 75% over 14 days
        assert metrics.lead_time == pytest.approx(14 / 0.75)
        assert metrics.completed_tasks == 1
        assert metrics.total_tasks == 2

    def test_no_tasks(self, resource_pool):
        project = Project(
            id="P",
            status="active",
            start_date="2026-01-01",
            end_date="2026-01-31",
            resource_requirements=[ResourceRequirement(resource_id="R", count=2, duration=1, unit="month")],
        )
        metrics = calculate_project_delivery_metrics(project, resource_pool)
        assert metrics.throughput == 0.0
        assert metrics.lead_time == 30
        assert metrics.granularity == pytest.approx(60.0)
        assert metrics.project_size == pytest.approx(60.0)

    def test_granularity_per_task(self, resource_pool):
        project = _project([3], tasks=_tasks(0, partial=3))
        project.resource_requirements[0].duration = 10
        metrics = calculate_project_delivery_metrics(project, resource_pool)
        assert metrics.granularity == pytest.approx(10.0)

    def test_missing_dates_default_to_one_unit(self, resource_pool):
        project = Project(id="P", status="active", tasks=_tasks(3))
        metrics = calculate_project_delivery_metrics(project, resource_pool, as_of=datetime(2026, 1, 1))
        assert metrics.duration_days == 1
        assert metrics.throughput == pytest.approx(3.0)

    def test_unknown_resource_has_no_capacity(self, resource_pool):
        metrics = calculate_project_delivery_metrics(_project([4], resource_id="nope"), resource_pool)
        assert metrics.resource_utilization == 0.0

    def test_capacity_over_distinct_resources(self, resource_pool):
        project = Project(
            id="P",
            status="active",
            start_date="2026-01-01",
            end_date="2026-01-15",
            resource_requirements=[
                ResourceRequirement(resource_id="R", count=4, duration=1),
                ResourceRequirement(resource_id="Q", count=3, duration=1),
                ResourceRequirement(resource_id="R", count=2, duration=1),
            ],
        )
        metrics = calculate_project_delivery_metrics(project, resource_pool)
        assert metrics.resource_utilization == pytest.approx(9 / 14 * 100)

    def test_batch_filters_status(self, resource_pool):
        projects = [
            _project([1], status="active"),
            _project([1], status="completed"),
            _project([1], status="planning"),
            _project([1], status="on-hold"),
        ]
        assert len(calculate_delivery_metrics(projects, resource_pool)) == 2


class TestStatusClassification:
    """Limiares de estado."""

    @pytest.mark.parametrize("throughput,lead_time,utilization,expected", [
        (10, 10, 96, DeliveryStatus.CRITICAL),
        (10, 61, 50, DeliveryStatus.CRITICAL),
        (10, 10, 86, DeliveryStatus.WARNING),
        (10, 46, 50, DeliveryStatus.WARNING),
        (6, 10, 70, DeliveryStatus.EFFICIENT),
        (6, 10, 85, DeliveryStatus.EFFICIENT),
        (5, 10, 80, DeliveryStatus.NORMAL),
        (6, 10, 69, DeliveryStatus.NORMAL),
        (0, 45, 85, DeliveryStatus.NORMAL),
    ])
    def test_thresholds(self, throughput, lead_time, utilization, expected):
        assert classify_delivery_status(throughput, lead_time, utilization) == expected


class TestPortfolioAggregates:
    """P85, gargalos e sugestões."""

    @pytest.mark.parametrize("values,expected", [
        ([], 0.0),
        ([10], 10.0),
        ([5, 1, 3], 5.0),
        (list(range(1, 11)), 9.0),
    ])
    def test_p85(self, values, expected):
        assert calculate_p85(values) == expected

    def test_bottlenecks_ordered_by_severity(self):
        metrics = [
            _metrics("slow", utilization=30, throughput=2, lead_time=10),
            _metrics("busy", utilization=95, throughput=1, lead_time=70, granularity=150),
        ]
        bottlenecks = detect_resource_bottlenecks(metrics)
        assert [(b.project_id, b.severity.value) for b in bottlenecks] == [
            ("busy", "high"),
            ("busy", "high"),
            ("slow", "medium"),
            ("busy", "medium"),
        ]

    def test_no_bottlenecks_for_healthy_project(self):
        assert detect_resource_bottlenecks([_metrics("ok", 75, 6, 10)]) == []

    def test_suggestions(self):
        metrics = [
            _metrics("busy", utilization=95, throughput=1, lead_time=70),
            _metrics("slow", utilization=30, throughput=2, lead_time=10),
        ]
        suggestions = generate_optimization_suggestions(metrics)
        assert [s.type for s in suggestions] == ["process", "process", "priority"]
        assert all(s.impact.value == "high" for s in suggestions)

    def test_low_utilization_suggestion_sorted_last(self):
        metrics = [_metrics("idle", utilization=20, throughput=1, lead_time=70)]
        suggestions = generate_optimization_suggestions(metrics)
        assert suggestions[-1].type == "resource"
        assert suggestions[-1].impact.value == "medium"

    def test_high_utilization_suggestion(self):
        suggestions = generate_optimization_suggestions([_metrics("hot", 99, 6, 10)])
        assert suggestions[0].type == "resource"
        assert suggestions[0].impact.value == "high"

    def test_no_metrics_no_suggestions(self):
        assert generate_optimization_suggestions([]) == []

    def test_summary(self):
        metrics = [_metrics("a", 80, 6, 10), _metrics("b", 96, 1, 30)]
        summary = summarize_delivery_metrics(metrics)
        assert summary.total_projects == 2
        assert summary.avg_lead_time == pytest.approx(20.0)
        assert summary.p85_lead_time == 30.0
        assert summary.status_counts == {"efficient": 1, "normal": 0, "warning": 0, "critical": 1}

    def test_table(self):
        df = delivery_metrics_table([_metrics("a", 80, 6, 10)])
        assert len(df) == 1
        assert df.iloc[0]["Status"] == "efficient"
