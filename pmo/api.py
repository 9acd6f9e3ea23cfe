from __future__ import annotations

import logging
from typing import Any, Dict

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from pmo.portfolio.api import router as pmo_router
from pmo.settings import Settings

logging.basicConfig(
    level=getattr(logging, Settings.get_config().log_level, logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


app = FastAPI(title="PMO Decision Engine")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(pmo_router)
logger.info("PMO API loaded successfully")


# -------------------------------
# Endpoints
# -------------------------------

@app.get("/health")
def health() -> Dict[str, str]:
    return {"status": "ok"}


@app.get("/settings")
def get_settings() -> Dict[str, Any]:
    """Effective engine settings (defaults overridden by PMO_* variables)."""
    return Settings.to_dict()
