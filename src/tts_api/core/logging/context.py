"""
Request Context and Logging State.

The request id lives in a ``ContextVar`` so that concurrent requests
handled on FastAPI's worker threads each log under their own id. The
level and configuration flag are process-wide.

Environment Variables:
    - TTS_API_LOG_LEVEL: Log level (1-4 or name)
    - TTS_API_LOG_DIR: Directory for the JSONL log file
    - TTS_API_JSONL_FILE: JSONL filename (default tts-api.jsonl)
    - TTS_API_LOG_ROTATE_BYTES: Max file size before rotation
    - TTS_API_LOG_ROTATE_BACKUP: Number of rotated files to keep
"""
from __future__ import annotations

import os
from contextvars import ContextVar
from typing import Any, Dict

from .levels import LEVEL_NAMES, LogLevel

# "-" marks log lines emitted outside a request
_request_id: ContextVar[str] = ContextVar("request_id", default="-")

_configured: bool = False
_current_level: LogLevel = LogLevel.NORMAL


def get_request_id() -> str:
    """Return the request id bound to the current context, or "-"."""
    return _request_id.get()


def set_request_id(rid: str) -> None:
    """Bind a request id to the current context."""
    _request_id.set(rid)


def get_level() -> LogLevel:
    return _current_level


def set_level(level: LogLevel) -> None:
    global _current_level
    _current_level = level


def get_level_name() -> str:
    return LEVEL_NAMES.get(_current_level, "NORMAL")


def is_configured() -> bool:
    return _configured


def set_configured(value: bool) -> None:
    global _configured
    _configured = value


def read_logging_config() -> Dict[str, Any]:
    """
    Resolve the logging section from the settings file and environment.

    Priority (highest first):
        1. TTS_API_LOG_* environment variables
        2. ``logging`` section of the settings file (TTS_API_SETTINGS)
        3. Built-in defaults (applied by the caller)

    A missing or unreadable settings file is not an error here; logging
    must come up before configuration problems can be reported.
    """
    cfg: Dict[str, Any] = {}

    settings_path = os.getenv("TTS_API_SETTINGS", "config/settings.yaml")
    try:
        from tts_api.core.config import load_settings
        settings = load_settings(settings_path)
        cfg.update(settings.raw.get("logging", {}) or {})
    except (FileNotFoundError, OSError, ValueError):
        pass

    if os.getenv("TTS_API_LOG_LEVEL"):
        cfg["level"] = os.environ["TTS_API_LOG_LEVEL"]
    if os.getenv("TTS_API_LOG_DIR"):
        cfg["log_dir"] = os.environ["TTS_API_LOG_DIR"]
    if os.getenv("TTS_API_JSONL_FILE"):
        cfg["jsonl_file"] = os.environ["TTS_API_JSONL_FILE"]
    for env_name, key in (
        ("TTS_API_LOG_ROTATE_BYTES", "rotate_max_bytes"),
        ("TTS_API_LOG_ROTATE_BACKUP", "rotate_backup_count"),
    ):
        raw = os.getenv(env_name)
        if raw:
            try:
                cfg[key] = int(raw)
            except ValueError:
                pass  # keep file/default value

    return cfg
