"""
Testes para o carregamento de snapshots de portfólio.
"""
import json

import pytest

from pmo import data_loader
from pmo.data_loader import (
    DEFAULT_SNAPSHOT,
    PortfolioBundle,
    bundle_from_dict,
    load_portfolio,
    refresh_portfolio,
    resolve_snapshot_path,
)
from pmo.portfolio.errors import SnapshotLoadError
from pmo.portfolio.project_model import (
    Criticality,
    DependencyLink,
    DependencyType,
    Project,
    ProjectDependency,
    ResourceUnit,
)


@pytest.fixture
def snapshot_document():
    return {
        "factorDefinitions": [{"id": "a", "name": "Strategic", "weight": 2}],
        "resourcePool": [{"id": "R", "name": "Engineers", "totalQuantity": 10}],
        "projects": [
            {
                "id": "P1",
                "status": "active",
                "startDate": "2026-01-01",
                "endDate": "2026-02-01T00:00:00Z",
                "factors": {"a": 7},
                "resourceRequirements": [{"resourceId": "R", "count": 2, "duration": 1, "unit": "month"}],
                "tasks": [{"id": "t1", "progress": 100}],
                "requirements": [{"id": "q1", "projectId": "P1", "relatedTaskIds": ["t1"]}],
                "dependencies": [{"targetProjectId": "P2", "criticality": "high"}],
            },
            {"id": "P2", "status": "planning"},
        ],
        "dependencies": [{"fromProjectId": "P1", "toProjectId": "P2"}],
        "changeRequests": [{"id": "c1", "projectId": "P1", "status": "approved"}],
    }


@pytest.fixture
def no_cache(monkeypatch):
    monkeypatch.setattr(data_loader, "_CACHE", None)


class TestBundleFromDict:
    """Conversão de documentos JSON em registos tipados."""

    def test_camel_case_document(self, snapshot_document):
        bundle = bundle_from_dict(snapshot_document)
        project = bundle.get_project("P1")

        assert len(bundle.projects) == 2
        assert project.duration_days == 31
        assert project.end_date.tzinfo is None
        assert project.resource_requirements[0].unit == ResourceUnit.MONTH
        assert project.resource_requirements[0].workload == 60
        assert project.requirements[0].related_task_ids == {"t1"}
        assert project.dependencies[0].criticality == Criticality.HIGH
        assert bundle.resource_pool[0].total_quantity == 10
        assert bundle.change_requests[0].status.value == "approved"

    def test_snake_case_sections(self):
        bundle = bundle_from_dict({
            "factor_definitions": [{"id": "a", "weight": 1}],
            "resource_pool": [{"id": "R", "total_quantity": 3}],
        })
        assert bundle.factor_definitions[0].weight == 1.0
        assert bundle.resource_pool[0].total_quantity == 3

    def test_missing_sections_are_empty(self):
        bundle = bundle_from_dict({})
        assert bundle == PortfolioBundle(loaded_at=bundle.loaded_at)

    def test_all_errors_reported(self):
        with pytest.raises(SnapshotLoadError) as exc_info:
            bundle_from_dict({
                "projects": [{"name": "no id"}, {"id": "ok"}, {"id": "x", "status": "archived"}],
                "factorDefinitions": [{"id": "neg", "weight": -1}],
                "resourcePool": "eng",
            })
        errors = exc_info.value.errors
        assert len(errors) == 4
        assert errors[0].startswith("projects[0]")
        assert errors[1].startswith("projects[2]")

    def test_duplicate_project_ids_rejected(self):
        with pytest.raises(SnapshotLoadError) as exc_info:
            bundle_from_dict({"projects": [{"id": "A"}, {"id": "B"}, {"id": "A", "name": "copy"}]})
        assert exc_info.value.errors == ["projects: duplicate id 'A'"]

    def test_change_request_and_budget_fields(self):
        bundle = bundle_from_dict({
            "projects": [{"id": "A", "budget": 5000, "actualCost": 1200}],
            "changeRequests": [{
                "id": "cr",
                "projectId": "A",
                "estimatedCostIncrease": 800,
                "scheduleImpactDays": 4,
                "businessJustification": "Customer asked for SSO",
            }],
        })
        project = bundle.get_project("A")
        change = bundle.change_requests[0]
        assert project.budget == 5000.0
        assert project.actual_cost == 1200.0
        assert change.estimated_cost_increase == 800.0
        assert change.schedule_impact_days == 4
        assert change.business_justification == "Customer asked for SSO"

    def test_not_an_object(self):
        with pytest.raises(SnapshotLoadError):
            bundle_from_dict([1, 2, 3])

    def test_dependency_edges_merge_declared_links(self):
        bundle = PortfolioBundle(
            projects=(
                Project(id="A", dependencies=[
                    DependencyLink(target_project_id="B"),
                    DependencyLink(target_project_id="C", criticality="critical"),
                ]),
            ),
            dependencies=(ProjectDependency(from_project_id="A", to_project_id="B"),),
        )
        edges = bundle.dependency_edges()
        assert [(e.from_project_id, e.to_project_id) for e in edges] == [("A", "B"), ("A", "C")]
        assert edges[1].criticality == Criticality.CRITICAL
        assert edges[1].dependency_type == DependencyType.BLOCKS

    def test_to_dict_round_trips_through_parser(self, snapshot_document):
        bundle = bundle_from_dict(snapshot_document)
        again = bundle_from_dict(bundle.to_dict())
        assert again.projects == bundle.projects
        assert again.dependencies == bundle.dependencies


class TestLoadPortfolio:
    """Leitura de ficheiros de snapshot."""

    def test_load_from_path(self, tmp_path, snapshot_document, no_cache):
        path = tmp_path / "portfolio.json"
        path.write_text(json.dumps(snapshot_document), encoding="utf-8")

        bundle = load_portfolio(path)
        assert bundle.raw_path == path
        assert len(bundle.projects) == 2
        assert data_loader._CACHE is None

    def test_missing_file(self, tmp_path, no_cache):
        with pytest.raises(FileNotFoundError):
            load_portfolio(tmp_path / "nope.json")

    def test_invalid_json(self, tmp_path, no_cache):
        path = tmp_path / "broken.json"
        path.write_text("{not json", encoding="utf-8")
        with pytest.raises(SnapshotLoadError):
            load_portfolio(path)

    def test_configured_path_is_cached(self, tmp_path, snapshot_document, monkeypatch, no_cache):
        path = tmp_path / "configured.json"
        path.write_text(json.dumps(snapshot_document), encoding="utf-8")
        monkeypatch.setenv("PMO_PORTFOLIO_PATH", str(path))

        assert resolve_snapshot_path() == path
        first = load_portfolio()
        assert load_portfolio() is first

        snapshot_document["projects"] = []
        path.write_text(json.dumps(snapshot_document), encoding="utf-8")
        assert refresh_portfolio().projects == ()

    def test_bundled_sample_snapshot(self, no_cache):
        bundle = load_portfolio(DEFAULT_SNAPSHOT)
        assert [p.id for p in bundle.projects] == ["billing", "portal", "analytics"]
        assert len(bundle.dependency_edges()) == 2
