"""
Testes para a análise do grafo de dependências entre projetos.
"""
import pytest

from pmo.portfolio.deadline import Deadline
from pmo.portfolio.dependency_graph import (
    RecommendationAction,
    RiskLevel,
    analyze_dependency_graph,
    analyze_dependency_impact,
    build_adjacency,
    calculate_critical_path,
    detect_cycles,
    generate_circuit_breaker_recommendation,
    get_dependency_statistics,
    simulate_delay_propagation,
)
from pmo.portfolio.errors import DeadlineExceededError, GraphNotAcyclicError
from pmo.portfolio.project_model import Project, ProjectDependency


def _edge(src, dst, **kwargs):
    return ProjectDependency(from_project_id=src, to_project_id=dst, **kwargs)


class TestCycleDetection:
    """Deteção de dependências circulares."""

    def test_ring_yields_single_cycle(self, ring_dependencies):
        assert detect_cycles(ring_dependencies) == [["A", "B", "C", "A"]]

    def test_diamond_has_no_cycle(self):
        diamond = [_edge("A", "B"), _edge("A", "C"), _edge("B", "D"), _edge("C", "D")]
        assert detect_cycles(diamond) == []

    def test_self_loop(self):
        assert detect_cycles([_edge("A", "A")]) == [["A", "A"]]

    def test_cycle_reached_from_tail(self):
        edges = [_edge("X", "A"), _edge("A", "B"), _edge("B", "A")]
        assert detect_cycles(edges) == [["A", "B", "A"]]

    def test_empty_graph(self):
        assert detect_cycles([]) == []

    def test_adjacency_keeps_declaration_order(self):
        graph = build_adjacency([_edge("A", "C"), _edge("B", "A"), _edge("A", "B")])
        assert graph == {"A": ["C", "B"], "B": ["A"]}

    def test_deep_chain_without_recursion_limit(self):
        edges = [_edge(f"n{i}", f"n{i + 1}") for i in range(5000)]
        assert detect_cycles(edges) == []

    def test_step_budget_exceeded(self):
        edges = [_edge(f"n{i}", f"n{i + 1}") for i in range(100)]
        with pytest.raises(DeadlineExceededError) as exc_info:
            detect_cycles(edges, deadline=Deadline(max_steps=10, operation="cycles"))
        assert exc_info.value.operation == "cycles"


class TestCriticalPath:
    """Caminho crítico (cadeia mais longa)."""

    def test_chain_total_duration(self, chain_projects, chain_dependencies):
        result = calculate_critical_path(chain_dependencies, chain_projects)
        assert result.path == ["A", "B", "C"]
        assert result.total_duration == 35
        assert [p.id for p in result.projects] == ["A", "B", "C"]

    def test_longest_branch_wins(self, chain_projects):
        projects = chain_projects + [
            Project(id="D", start_date="2026-01-01", end_date="2026-03-02"),
        ]
        edges = [_edge("A", "B"), _edge("B", "C"), _edge("A", "D")]
        result = calculate_critical_path(edges, projects)
        assert result.path == ["A", "D"]
        assert result.total_duration == 5 + 60

    def test_tie_keeps_first_branch(self):
        projects = [
            Project(id="R", start_date="2026-01-01", end_date="2026-01-02"),
            Project(id="X", start_date="2026-01-01", end_date="2026-01-11"),
            Project(id="Y", start_date="2026-01-01", end_date="2026-01-11"),
        ]
        result = calculate_critical_path([_edge("R", "X"), _edge("R", "Y")], projects)
        assert result.path == ["R", "X"]
        assert result.total_duration == 11

    def test_unknown_projects_have_zero_duration(self, chain_projects):
        result = calculate_critical_path([_edge("A", "ghost")], chain_projects)
        assert result.path == ["A", "ghost"]
        assert result.total_duration == 5
        assert [p.id for p in result.projects] == ["A"]

    def test_all_zero_durations_give_empty_path(self):
        result = calculate_critical_path([_edge("u", "v")], [])
        assert result.path == []
        assert result.total_duration == 0

    def test_cyclic_graph_raises(self, chain_projects, ring_dependencies):
        with pytest.raises(GraphNotAcyclicError) as exc_info:
            calculate_critical_path(ring_dependencies, chain_projects)
        assert exc_info.value.cycles == [["A", "B", "C", "A"]]

    def test_analysis_omits_path_when_cyclic(self, chain_projects, ring_dependencies):
        analysis = analyze_dependency_graph(ring_dependencies, chain_projects)
        assert not analysis.is_acyclic
        assert analysis.critical_path is None
        assert analysis.to_dict()["critical_path"] is None

    def test_analysis_of_dag(self, chain_projects, chain_dependencies):
        analysis = analyze_dependency_graph(chain_dependencies, chain_projects)
        assert analysis.is_acyclic
        assert analysis.critical_path.total_duration == 35
        assert analysis.statistics.total_dependencies == 2


class TestDependencyImpact:
    """Impacto de atrasos e circuit breaker."""

    def test_risk_levels(self, chain_projects):
        edges = [
            _edge("A", "B", criticality="critical"),
            _edge("A", "C", criticality="high"),
        ]
        impacts = analyze_dependency_impact("A", 5, chain_projects, edges)
        assert [(i.affected_project_id, i.risk_level) for i in impacts] == [
            ("B", RiskLevel.HIGH),
            ("C", RiskLevel.MEDIUM),
        ]
        assert impacts[0].action == RecommendationAction.SUSPEND
        assert impacts[1].action == RecommendationAction.RESCHEDULE

    @pytest.mark.parametrize("delay,expected", [
        (31, RiskLevel.HIGH),
        (30, RiskLevel.MEDIUM),
        (15, RiskLevel.MEDIUM),
        (14, RiskLevel.LOW),
    ])
    def test_risk_by_delay(self, chain_projects, delay, expected):
        impacts = analyze_dependency_impact("A", delay, chain_projects, [_edge("A", "B", criticality="low")])
        assert impacts[0].risk_level == expected

    def test_only_blocks_edges_with_known_target(self, chain_projects):
        edges = [
            _edge("A", "B", dependency_type="requires"),
            _edge("A", "missing"),
            _edge("B", "C"),
            _edge("A", "C"),
        ]
        impacts = analyze_dependency_impact("A", 3, chain_projects, edges)
        assert [i.affected_project_id for i in impacts] == ["C"]
        assert impacts[0].risk_level == RiskLevel.LOW
        assert impacts[0].action == RecommendationAction.MONITOR

    def test_circuit_breaker_suspends(self, chain_projects):
        impact = analyze_dependency_impact("A", 40, chain_projects, [_edge("A", "B", criticality="critical")])[0]
        decision = generate_circuit_breaker_recommendation(chain_projects[0], impact, waiting_cost_per_day=5000)
        assert decision.total_waiting_cost == 200000
        assert decision.should_suspend
        assert decision.action == RecommendationAction.SUSPEND
        assert decision.estimated_savings == 200000
        assert decision.schedule_slip_days == 40
        assert len(decision.steps) == 3

    def test_circuit_breaker_defaults_from_settings(self, chain_projects):
        impact = analyze_dependency_impact("A", 40, chain_projects, [_edge("A", "B", criticality="critical")])[0]
        decision = generate_circuit_breaker_recommendation(chain_projects[0], impact)
        assert decision.waiting_cost_per_day == 5000
        assert decision.threshold == 50000
        assert decision.should_suspend

    def test_circuit_breaker_below_threshold(self, chain_projects):
        impact = analyze_dependency_impact("A", 8, chain_projects, [_edge("A", "B", criticality="critical")])[0]
        decision = generate_circuit_breaker_recommendation(chain_projects[0], impact)
        assert decision.total_waiting_cost == 40000
        assert not decision.should_suspend
        assert decision.action == RecommendationAction.MONITOR
        assert decision.estimated_savings == 0

    def test_expensive_but_not_high_risk_keeps_waiting(self, chain_projects):
        impact = analyze_dependency_impact("A", 20, chain_projects, [_edge("A", "B", criticality="low")])[0]
        decision = generate_circuit_breaker_recommendation(chain_projects[0], impact)
        assert decision.total_waiting_cost == 100000
        assert impact.risk_level == RiskLevel.MEDIUM
        assert not decision.should_suspend


class TestPropagationAndStatistics:
    """Propagação de atrasos e estatísticas."""

    def test_delay_propagates_downstream(self, chain_projects, chain_dependencies):
        shifted = simulate_delay_propagation("A", 7, chain_projects, chain_dependencies)
        assert [(s.project_id, s.original_end_date, s.new_end_date) for s in shifted] == [
            ("B", "2026-01-16", "2026-01-23"),
            ("C", "2026-02-05", "2026-02-12"),
        ]

    def test_cycle_visits_each_project_once(self, chain_projects, ring_dependencies):
        shifted = simulate_delay_propagation("A", 1, chain_projects, ring_dependencies)
        assert [s.project_id for s in shifted] == ["B", "C"]

    def test_unknown_start_has_no_impact(self, chain_projects, chain_dependencies):
        assert simulate_delay_propagation("nope", 5, chain_projects, chain_dependencies) == []

    def test_statistics(self, chain_projects):
        edges = [
            _edge("A", "B", criticality="critical"),
            _edge("A", "C"),
            _edge("B", "C"),
        ]
        stats = get_dependency_statistics(chain_projects, edges)
        assert stats.total_dependencies == 3
        assert stats.critical_dependencies == 1
        assert stats.most_dependent_project.project_id == "C"
        assert stats.most_dependent_project.count == 2
        assert stats.most_blocking_project.project_id == "A"
        assert stats.most_blocking_project.project_name == "Alpha"

    def test_statistics_without_dependencies(self, chain_projects):
        stats = get_dependency_statistics(chain_projects, [])
        assert stats.most_dependent_project is None
        assert stats.most_blocking_project is None
