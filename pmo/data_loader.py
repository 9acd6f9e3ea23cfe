"""
Utilities for loading a JSON portfolio snapshot into typed records.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple

from dotenv import load_dotenv

from pmo import PROJECT_ROOT
from pmo.portfolio.errors import SnapshotLoadError
from pmo.portfolio.project_model import (
    ChangeRequest,
    FactorDefinition,
    Project,
    ProjectDependency,
    ResourcePoolItem,
    collect_dependencies,
)
from pmo.settings import Settings

# Load environment variables from .env if present
load_dotenv()

logger = logging.getLogger(__name__)

# Default snapshot path (relative to project root)
DEFAULT_SNAPSHOT = PROJECT_ROOT / "data" / "portfolio.json"

# Top-level keys of a snapshot document (camelCase, as exported by the web client)
SNAPSHOT_KEYS = (
    "projects",
    "factorDefinitions",
    "resourcePool",
    "dependencies",
    "changeRequests",
)


# ---------------------------------------------------
# Data container
# ---------------------------------------------------

@dataclass(frozen=True)
class PortfolioBundle:
    """Typed container for one portfolio snapshot and its metadata."""

    projects: Tuple[Project, ...] = ()
    factor_definitions: Tuple[FactorDefinition, ...] = ()
    resource_pool: Tuple[ResourcePoolItem, ...] = ()
    dependencies: Tuple[ProjectDependency, ...] = ()
    change_requests: Tuple[ChangeRequest, ...] = ()

    raw_path: Optional[Path] = None
    loaded_at: datetime = field(default_factory=datetime.now)

    def get_project(self, project_id: str) -> Optional[Project]:
        for project in self.projects:
            if project.id == project_id:
                return project
        return None

    def dependency_edges(self) -> List[ProjectDependency]:
        """
        Explicit dependencies followed by those declared on the projects.

        A declared link is skipped when the same (from, to, type) edge is
        already listed explicitly.
        """
        edges = list(self.dependencies)
        seen = {(d.from_project_id, d.to_project_id, d.dependency_type) for d in edges}
        for dep in collect_dependencies(self.projects):
            key = (dep.from_project_id, dep.to_project_id, dep.dependency_type)
            if key not in seen:
                seen.add(key)
                edges.append(dep)
        return edges

    def to_dict(self) -> Dict[str, Any]:
        return {
            "projects": [p.to_dict() for p in self.projects],
            "factorDefinitions": [f.to_dict() for f in self.factor_definitions],
            "resourcePool": [r.to_dict() for r in self.resource_pool],
            "dependencies": [d.to_dict() for d in self.dependencies],
            "changeRequests": [c.to_dict() for c in self.change_requests],
        }


# Cache: the snapshot file is only read once
_CACHE: Optional[PortfolioBundle] = None


# ---------------------------------------------------
# Parsing
# ---------------------------------------------------

_PARSERS: Dict[str, Callable[[Dict[str, Any]], Any]] = {
    "projects": Project.from_dict,
    "factorDefinitions": FactorDefinition.from_dict,
    "resourcePool": ResourcePoolItem.from_dict,
    "dependencies": ProjectDependency.from_dict,
    "changeRequests": ChangeRequest.from_dict,
}


def _parse_section(key: str, items: Any, errors: List[str]) -> Tuple[Any, ...]:
    if items is None:
        return ()
    if not isinstance(items, list):
        errors.append(f"'{key}' must be a list, got {type(items).__name__}")
        return ()

    parser = _PARSERS[key]
    parsed = []
    for index, item in enumerate(items):
        try:
            parsed.append(parser(item))
        except (KeyError, TypeError, ValueError, AttributeError) as exc:
            errors.append(f"{key}[{index}]: {exc!r}")
    return tuple(parsed)


def bundle_from_dict(data: Any, raw_path: Optional[Path] = None) -> PortfolioBundle:
    """
    Build a PortfolioBundle from a decoded snapshot document.

    Missing sections default to empty. Every malformed entry is reported in
    a single SnapshotLoadError.
    """
    if not isinstance(data, dict):
        raise SnapshotLoadError("Portfolio snapshot must be a JSON object")

    # snake_case section names are accepted as well
    aliases = {
        "factor_definitions": "factorDefinitions",
        "resource_pool": "resourcePool",
        "change_requests": "changeRequests",
    }
    data = {aliases.get(k, k): v for k, v in data.items()}

    errors: List[str] = []
    sections = {key: _parse_section(key, data.get(key), errors) for key in SNAPSHOT_KEYS}

    seen_ids = set()
    for project in sections["projects"]:
        if project.id in seen_ids:
            errors.append(f"projects: duplicate id '{project.id}'")
        seen_ids.add(project.id)

    if errors:
        raise SnapshotLoadError(
            f"Invalid portfolio snapshot ({len(errors)} errors)",
            errors=errors,
        )

    return PortfolioBundle(
        projects=sections["projects"],
        factor_definitions=sections["factorDefinitions"],
        resource_pool=sections["resourcePool"],
        dependencies=sections["dependencies"],
        change_requests=sections["changeRequests"],
        raw_path=raw_path,
        loaded_at=datetime.now(),
    )


# ---------------------------------------------------
# Snapshot resolution
# ---------------------------------------------------

def resolve_snapshot_path() -> Path:
    """Return the snapshot path, prioritizing PMO_PORTFOLIO_PATH."""
    configured = Settings.get_config().portfolio_path
    if configured:
        return Path(configured)
    return DEFAULT_SNAPSHOT


# ---------------------------------------------------
# Main loader
# ---------------------------------------------------

def load_portfolio(path: Optional[Path] = None) -> PortfolioBundle:
    """
    Load a portfolio snapshot.

    Without an explicit path the configured snapshot is loaded once and cached.
    """
    global _CACHE

    if path is None and _CACHE is not None:
        return _CACHE

    snapshot_path = Path(path) if path is not None else resolve_snapshot_path()

    if not snapshot_path.exists():
        raise FileNotFoundError(f"Portfolio snapshot not found at: {snapshot_path}")

    try:
        with open(snapshot_path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except json.JSONDecodeError as exc:
        raise SnapshotLoadError(f"Portfolio snapshot is not valid JSON: {exc}") from exc

    bundle = bundle_from_dict(data, raw_path=snapshot_path)
    logger.info(
        f"Loaded portfolio snapshot {snapshot_path}: {len(bundle.projects)} projects, "
        f"{len(bundle.resource_pool)} resources, {len(bundle.dependencies)} dependencies"
    )

    if path is None:
        _CACHE = bundle
    return bundle


def refresh_portfolio() -> PortfolioBundle:
    """
    Reload the configured snapshot, ignoring the current cache.
    """
    global _CACHE
    _CACHE = None
    return load_portfolio()
