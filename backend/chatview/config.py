"""Chatview client configuration.

Loads settings from a single YAML file:
  * chatview.settings.yaml  (path overridable via CHATVIEW_SETTINGS)

Every section has defaults, so a missing file yields a working client that
talks to ws://localhost:8080/.
"""
from __future__ import annotations

import logging
import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, Literal, Optional

import yaml
from pydantic import BaseModel, Field, field_validator

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

SETTINGS_FILE = Path("chatview.settings.yaml")
SETTINGS_ENV_VAR = "CHATVIEW_SETTINGS"


def _load_yaml(path: Path) -> Dict[str, Any]:
    if not path.exists():
        logger.warning("Config file not found: %s", path)
        return {}
    with path.open(encoding="utf-8") as fh:
        try:
            data = yaml.safe_load(fh) or {}
        except yaml.YAMLError as e:
            raise RuntimeError(f"Failed to parse config file {path}: {e}") from e
    if not isinstance(data, dict):
        raise RuntimeError(f"Invalid config format in {path}, expected a mapping.")
    return data


# ---------------------------------------------------------------------------
# Settings models
# ---------------------------------------------------------------------------


class ConnectionSettings(BaseModel):
    url:                         str   = "ws://localhost:8080/"
    max_reconnect_attempts:      int   = Field(default=5, ge=0)
    reconnect_step_seconds:      float = Field(default=1.0, gt=0)
    max_reconnect_delay_seconds: float = Field(default=30.0, gt=0)


class ReconciliationSettings(BaseModel):
    """How authoritative batches replace optimistic entries and how order is derived."""
    optimistic_prefix: str                                = "temp-"
    eviction:          Literal["all", "matching"]         = "all"
    ordering:          Literal["pairwise", "topological"] = "pairwise"

    @field_validator("optimistic_prefix")
    @classmethod
    def _prefix_not_empty(cls, value: str) -> str:
        if not value:
            raise ValueError("optimistic_prefix must not be empty")
        return value


class DeliverySettings(BaseModel):
    """Sends are fire-and-forget unless a confirmation timeout is set."""
    confirm_timeout_seconds: Optional[float] = Field(default=None, gt=0)


class InspectorSettings(BaseModel):
    base_url:        str   = "http://localhost:8080"
    timeout_seconds: float = 5.0


class LoggingSettings(BaseModel):
    level: str = "info"


class AppSettings(BaseModel):
    connection:     ConnectionSettings     = Field(default_factory=ConnectionSettings)
    reconciliation: ReconciliationSettings = Field(default_factory=ReconciliationSettings)
    delivery:       DeliverySettings       = Field(default_factory=DeliverySettings)
    inspector:      InspectorSettings      = Field(default_factory=InspectorSettings)
    logging:        LoggingSettings        = Field(default_factory=LoggingSettings)


# ---------------------------------------------------------------------------
# Public loader
# ---------------------------------------------------------------------------


def load_settings(path: Optional[Path] = None) -> AppSettings:
    """Load settings from ``path``, $CHATVIEW_SETTINGS, or chatview.settings.yaml."""
    if path is None:
        path = Path(os.environ.get(SETTINGS_ENV_VAR, SETTINGS_FILE))

    app_settings = AppSettings(**_load_yaml(Path(path)))
    logger.info(
        "Settings loaded (url=%s, eviction=%s, ordering=%s)",
        app_settings.connection.url,
        app_settings.reconciliation.eviction,
        app_settings.reconciliation.ordering,
    )
    return app_settings


@lru_cache(maxsize=1)
def get_settings() -> AppSettings:
    """Process-wide settings, loaded once."""
    return load_settings()
