"""
PMO decision engine backend package.
"""
from pathlib import Path

PMO_ROOT = Path(__file__).resolve().parent
PROJECT_ROOT = PMO_ROOT.parent

__all__ = ["PMO_ROOT", "PROJECT_ROOT"]
