from __future__ import annotations

import os
from typing import Optional

import yaml
from pydantic import BaseModel

from .constants import DEFAULT_HISTORY_PATH, DEFAULT_SAVE_ATTEMPTS


class PersistenceConfig(BaseModel):
    """History store settings."""

    database_url: Optional[str] = None
    history_path: str = DEFAULT_HISTORY_PATH
    save_attempts: int = DEFAULT_SAVE_ATTEMPTS


class TempoliteConfig(BaseModel):
    """Top-level configuration model."""

    persistence: PersistenceConfig = PersistenceConfig()
    log_level: str = "INFO"


def load_config(path: Optional[str] = None) -> TempoliteConfig:
    """Load configuration from YAML file.

    Args:
        path: Optional path to config file. Falls back to TEMPOLITE_CONFIG env
            variable or 'tempolite.yaml' in the current directory.
    """

    config_path = path or os.getenv("TEMPOLITE_CONFIG", "tempolite.yaml")
    if os.path.exists(config_path):
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}
        config = TempoliteConfig(**data)
    else:
        config = TempoliteConfig()

    env_db_url = os.getenv("TEMPOLITE_DATABASE_URL")
    if env_db_url:
        config.persistence.database_url = env_db_url
    env_history_path = os.getenv("TEMPOLITE_HISTORY_PATH")
    if env_history_path:
        config.persistence.history_path = env_history_path
    env_log_level = os.getenv("TEMPOLITE_LOG_LEVEL")
    if env_log_level:
        config.log_level = env_log_level.upper()
    return config
