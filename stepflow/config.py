from __future__ import annotations

import os
from typing import Optional

import yaml
from pydantic import BaseModel, Field

from .constants import DEFAULT_BATCH_CONCURRENCY, DEFAULT_HISTORY_LIMIT


class EngineConfig(BaseModel):
    """Execution settings for the workflow engine."""

    batch_concurrency: int = Field(default=DEFAULT_BATCH_CONCURRENCY, ge=1)
    default_step_timeout_ms: Optional[float] = Field(default=None, gt=0)
    history_limit: int = Field(default=DEFAULT_HISTORY_LIMIT, ge=0)


class StepflowConfig(BaseModel):
    """Top-level configuration model."""

    engine: EngineConfig = EngineConfig()
    database_url: Optional[str] = None
    log_level: str = "INFO"


def load_config(path: Optional[str] = None) -> StepflowConfig:
    """Load configuration from YAML file.

    Args:
        path: Optional path to config file. Falls back to STEPFLOW_CONFIG env
            variable or 'stepflow.yaml' in the current directory.
    """

    config_path = path or os.getenv("STEPFLOW_CONFIG", "stepflow.yaml")
    if os.path.exists(config_path):
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}
        config = StepflowConfig(**data)
    else:
        config = StepflowConfig()

    env_db_url = os.getenv("STEPFLOW_DATABASE_URL") or os.getenv("DATABASE_URL")
    if env_db_url:
        config.database_url = env_db_url
    env_log_level = os.getenv("STEPFLOW_LOG_LEVEL")
    if env_log_level:
        config.log_level = env_log_level
    return config
