"""
Request correlation and logging state.

The request id lives in a ContextVar so that every log line emitted while
handling one HTTP request (including lines from dispatcher worker threads
that copy the context) carries the same id. Level and file settings are
process-wide module state.

Environment Variables:
    - SPEECH_STUDIO_SETTINGS: Settings file to read the logging section from
    - SPEECH_STUDIO_LOG_LEVEL: Override log level (1-4 or name)
    - SPEECH_STUDIO_LOG_DIR: Directory for the JSONL log file
    - SPEECH_STUDIO_JSONL_FILE: JSONL log filename
"""
from __future__ import annotations

import os
from contextvars import ContextVar
from typing import Any, Dict

import yaml

from .levels import LogLevel

# "-" marks log lines emitted outside of a request
_request_id: ContextVar[str] = ContextVar("request_id", default="-")

_configured: bool = False
_current_level: LogLevel = LogLevel.NORMAL


def get_request_id() -> str:
    """Return the request id of the current context, or "-"."""
    return _request_id.get()


def set_request_id(rid: str) -> None:
    """Bind a request id to the current context."""
    _request_id.set(rid)


def get_level() -> LogLevel:
    return _current_level


def set_level(level: LogLevel) -> None:
    global _current_level
    _current_level = level


def is_configured() -> bool:
    return _configured


def set_configured(value: bool) -> None:
    global _configured
    _configured = value


def read_logging_config() -> Dict[str, Any]:
    """
    Resolve the logging configuration.

    The ``logging`` section of the settings file is read directly with
    PyYAML (not through load_settings) so that logging can be configured
    before the rest of the configuration is validated. Environment
    variables take precedence over the file.

    Returns:
        Dictionary with keys among level, log_dir, jsonl_file.
    """
    cfg: Dict[str, Any] = {}

    settings_path = os.getenv("SPEECH_STUDIO_SETTINGS", "config/settings.yaml")
    if os.path.exists(settings_path):
        with open(settings_path, "r", encoding="utf-8") as f:
            raw = yaml.safe_load(f) or {}
        if isinstance(raw, dict):
            cfg.update(raw.get("logging", {}) or {})

    if os.getenv("SPEECH_STUDIO_LOG_LEVEL"):
        cfg["level"] = os.environ["SPEECH_STUDIO_LOG_LEVEL"]
    if os.getenv("SPEECH_STUDIO_LOG_DIR"):
        cfg["log_dir"] = os.environ["SPEECH_STUDIO_LOG_DIR"]
    if os.getenv("SPEECH_STUDIO_JSONL_FILE"):
        cfg["jsonl_file"] = os.environ["SPEECH_STUDIO_JSONL_FILE"]

    return cfg
