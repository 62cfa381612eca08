"""
FastAPI Dependency Providers.

    1. get_settings() - Loads and caches the YAML settings
    2. get_db_engine() - One SQLAlchemy engine (connection pool) per process
    3. get_gate() - The RequestGate shared by every route

All three are cached singletons. Tests replace them through
``app.dependency_overrides``.

Usage in Route Handlers:
    @router.get("/user")
    def get_user(gate: RequestGate = Depends(get_gate)):
        ...
"""
from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path

from sqlalchemy.engine import Engine

from tts_api.core.config import Settings, load_settings
from tts_api.core.logging import get_logger, warn
from tts_api.services.gate import RequestGate
from tts_api.store.database import create_db_engine

_LOG = get_logger("tts-api.api")

SETTINGS_ENV = "TTS_API_SETTINGS"
DEFAULT_SETTINGS_PATH = "config/settings.yaml"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Load settings from TTS_API_SETTINGS (default config/settings.yaml).

    A missing file means built-in defaults; a malformed one is an error.
    """
    path = os.getenv(SETTINGS_ENV, DEFAULT_SETTINGS_PATH)
    if not Path(path).exists():
        warn(_LOG, "settings_missing", path=path, using="defaults")
        return Settings(raw={})
    return load_settings(path)


@lru_cache(maxsize=1)
def get_db_engine() -> Engine:
    config = get_settings().get_service_config()
    return create_db_engine(config.database)


@lru_cache(maxsize=1)
def get_gate() -> RequestGate:
    config = get_settings().get_service_config()
    return RequestGate.from_config(config, db_engine=get_db_engine())
