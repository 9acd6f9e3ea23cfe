"""
PMO Engine - Settings
=====================

Tunable parameters of the portfolio engines.

Uso:
    from pmo.settings import Settings

    months = Settings.get_config().forecast_months

Configuração via variáveis de ambiente:
    PMO_FORECAST_MONTHS=6
    PMO_CIRCUIT_BREAKER_THRESHOLD=50000
    PMO_ANALYSIS_TIMEOUT_SEC=5
"""

from __future__ import annotations

import os
import logging
from dataclasses import asdict, dataclass
from typing import Any, Callable, Dict, Optional, Tuple

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════════
# SETTINGS DATACLASS
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass
class EngineSettings:
    """
    Engine configuration.

    Defaults reproduce the reference behaviour of the PMO dashboards.
    """
    # Resource load forecasting
    forecast_months: int = 6
    history_months: int = 6
    moving_average_window: int = 3
    trend_weight: float = 0.5          # linear fit vs moving average
    scheduled_weight: float = 0.5      # booked demand vs statistical projection
    confidence_floor: int = 30
    max_volatility_penalty: float = 30.0
    trend_threshold: float = 0.1       # units per month
    low_utilization_pct: float = 50.0

    # Circuit breaker
    circuit_breaker_threshold: float = 50000.0
    waiting_cost_per_day: float = 5000.0

    # Graph analysis budget
    max_graph_steps: Optional[int] = 1_000_000
    analysis_timeout_sec: Optional[float] = 5.0

    # Runtime
    portfolio_path: Optional[str] = None
    log_level: str = "INFO"


def _optional(caster: Callable[[str], Any]) -> Callable[[str], Any]:
    def convert(value: str) -> Any:
        if value.strip().lower() in ("", "none", "off"):
            return None
        return caster(value)
    return convert


_ENV_MAPPING: Dict[str, Tuple[str, Callable[[str], Any]]] = {
    "PMO_FORECAST_MONTHS": ("forecast_months", int),
    "PMO_HISTORY_MONTHS": ("history_months", int),
    "PMO_MOVING_AVERAGE_WINDOW": ("moving_average_window", int),
    "PMO_TREND_WEIGHT": ("trend_weight", float),
    "PMO_SCHEDULED_WEIGHT": ("scheduled_weight", float),
    "PMO_CONFIDENCE_FLOOR": ("confidence_floor", int),
    "PMO_MAX_VOLATILITY_PENALTY": ("max_volatility_penalty", float),
    "PMO_TREND_THRESHOLD": ("trend_threshold", float),
    "PMO_LOW_UTILIZATION_PCT": ("low_utilization_pct", float),
    "PMO_CIRCUIT_BREAKER_THRESHOLD": ("circuit_breaker_threshold", float),
    "PMO_WAITING_COST_PER_DAY": ("waiting_cost_per_day", float),
    "PMO_MAX_GRAPH_STEPS": ("max_graph_steps", _optional(int)),
    "PMO_ANALYSIS_TIMEOUT_SEC": ("analysis_timeout_sec", _optional(float)),
    "PMO_PORTFOLIO_PATH": ("portfolio_path", _optional(str)),
    "PMO_LOG_LEVEL": ("log_level", str.upper),
}


# ═══════════════════════════════════════════════════════════════════════════════
# SETTINGS CLASS
# ═══════════════════════════════════════════════════════════════════════════════

class Settings:
    """
    Singleton para gestão de settings.

    Carrega configuração de variáveis de ambiente ou usa defaults.

    Uso:
        config = Settings.get_config()
        Settings.override(circuit_breaker_threshold=80000)
        Settings.reset()
    """

    _instance: Optional[EngineSettings] = None

    @classmethod
    def _load_from_env(cls) -> EngineSettings:
        """Carrega configuração de variáveis de ambiente."""
        config = EngineSettings()

        for env_var, (attr_name, caster) in _ENV_MAPPING.items():
            value = os.environ.get(env_var)
            if value is None:
                continue
            try:
                setattr(config, attr_name, caster(value))
                logger.info(f"Setting {attr_name} = {value}")
            except ValueError:
                logger.warning(f"Invalid value for {env_var}: {value}")

        return config

    @classmethod
    def get_config(cls) -> EngineSettings:
        """Obtém configuração atual."""
        if cls._instance is None:
            cls._instance = cls._load_from_env()
        return cls._instance

    @classmethod
    def reset(cls) -> None:
        """Reset para recarregar config."""
        cls._instance = None

    @classmethod
    def override(cls, **values: Any) -> EngineSettings:
        """
        Override settings at runtime (tests, what-if analysis).

        Unknown names are logged and ignored.
        """
        config = cls.get_config()
        for name, value in values.items():
            if not hasattr(config, name):
                logger.warning(f"Unknown setting: {name}")
                continue
            setattr(config, name, value)
        return config

    @classmethod
    def to_dict(cls) -> Dict[str, Any]:
        """Exporta configuração como dict."""
        return asdict(cls.get_config())
