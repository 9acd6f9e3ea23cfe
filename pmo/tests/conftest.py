"""
Fixtures comuns para os testes do motor PMO.
"""
import os
from datetime import datetime

import pytest
from fastapi.testclient import TestClient

from pmo.data_loader import PortfolioBundle
from pmo.portfolio.project_model import (
    ChangeRequest,
    FactorDefinition,
    Project,
    ProjectDependency,
    Requirement,
    ResourcePoolItem,
    ResourceRequirement,
    Task,
)
from pmo.portfolio.store import PortfolioStore, reset_portfolio_store
from pmo.settings import Settings


@pytest.fixture(autouse=True)
def reset_settings(monkeypatch):
    """Settings limpos (sem PMO_* do ambiente) em cada teste."""
    for name in list(os.environ):
        if name.startswith("PMO_"):
            monkeypatch.delenv(name, raising=False)
    Settings.reset()
    yield
    Settings.reset()


@pytest.fixture
def as_of():
    """Data de referência fixa."""
    return datetime(2026, 3, 15)


@pytest.fixture
def factor_definitions():
    return [
        FactorDefinition(id="a", name="Strategic", weight=2),
        FactorDefinition(id="b", name="ROI", weight=1),
    ]


@pytest.fixture
def scored_projects():
    """P1 = 6.67, P2 = 8.0, P3 = 3.33 with the factor_definitions fixture."""
    return [
        Project(id="P1", name="Project 1", factors={"a": 8, "b": 4}),
        Project(id="P2", name="Project 2", factors={"a": 9, "b": 6}),
        Project(id="P3", name="Project 3", factors={"a": 2, "b": 6}),
    ]


@pytest.fixture
def resource_pool():
    return [
        ResourcePoolItem(id="R", name="Engineers", total_quantity=10),
        ResourcePoolItem(id="Q", name="QA", total_quantity=4),
    ]


@pytest.fixture
def chain_projects():
    """A → B → C with durations 5, 10 and 20 days."""
    return [
        Project(id="A", name="Alpha", start_date="2026-01-01", end_date="2026-01-06"),
        Project(id="B", name="Beta", start_date="2026-01-06", end_date="2026-01-16"),
        Project(id="C", name="Gamma", start_date="2026-01-16", end_date="2026-02-05"),
    ]


@pytest.fixture
def chain_dependencies():
    return [
        ProjectDependency(from_project_id="A", to_project_id="B"),
        ProjectDependency(from_project_id="B", to_project_id="C"),
    ]


@pytest.fixture
def ring_dependencies():
    return [
        ProjectDependency(from_project_id="A", to_project_id="B"),
        ProjectDependency(from_project_id="B", to_project_id="C"),
        ProjectDependency(from_project_id="C", to_project_id="A"),
    ]


@pytest.fixture
def sample_bundle(factor_definitions, resource_pool, chain_dependencies):
    """Portfólio pequeno com todas as secções preenchidas."""
    projects = (
        Project(
            id="A",
            name="Alpha",
            status="active",
            start_date="2026-01-01",
            end_date="2026-01-06",
            factors={"a": 8, "b": 4},
            resource_requirements=[ResourceRequirement(resource_id="R", count=4, duration=1, unit="month")],
            tasks=[
                Task(id="t1", name="Design", progress=100, start_date="2026-01-01", end_date="2026-01-03"),
                Task(id="t2", name="Build", progress=50, start_date="2026-01-03", end_date="2026-01-06"),
            ],
            requirements=[Requirement(id="q1", project_id="A", related_task_ids={"t1"})],
        ),
        Project(
            id="B",
            name="Beta",
            status="planning",
            start_date="2026-01-06",
            end_date="2026-01-16",
            factors={"a": 9, "b": 6},
        ),
        Project(
            id="C",
            name="Gamma",
            status="active",
            start_date="2026-01-16",
            end_date="2026-02-05",
            factors={"a": 2, "b": 6},
        ),
    )
    return PortfolioBundle(
        projects=projects,
        factor_definitions=tuple(factor_definitions),
        resource_pool=tuple(resource_pool),
        dependencies=tuple(chain_dependencies),
        change_requests=(
            ChangeRequest(id="cr1", project_id="A", status="approved"),
            ChangeRequest(id="cr2", project_id="A", status="pending"),
            ChangeRequest(id="cr3", project_id="B", status="rejected"),
        ),
    )


@pytest.fixture
def store(sample_bundle):
    """Store global isolado para cada teste."""
    portfolio_store = PortfolioStore(sample_bundle)
    reset_portfolio_store(portfolio_store)
    yield portfolio_store
    reset_portfolio_store(None)


@pytest.fixture
def test_client(store):
    """Cliente de teste FastAPI."""
    from pmo.api import app
    return TestClient(app)
