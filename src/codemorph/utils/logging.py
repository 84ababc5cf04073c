"""Structured logging for CodeMorph.

Every invocation appends JSON lines to ~/.cache/codemorph/logs/codemorph.log.
Nothing is logged to the terminal: stderr carries user messages and stdout may
carry the updated file.

    CODEMORPH_LOG_LEVEL=DEBUG codemorph update app.py
    tail -f ~/.cache/codemorph/logs/codemorph.log | jq .

DEBUG adds the Gemini request payload, raw response bodies and buffer edits.
"""

import logging
import os
from pathlib import Path
from typing import Any, MutableMapping, Optional

import structlog

LOG_LEVELS = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
}

_SECRET_KEYS = ("api_key", "apiKey", "x-goog-api-key")


def log_file_path() -> Path:
    return Path.home() / ".cache" / "codemorph" / "logs" / "codemorph.log"


def _redact_secrets(
    logger: Any, method_name: str, event_dict: MutableMapping[str, Any]
) -> MutableMapping[str, Any]:
    """Replace API keys anywhere at the top level of an event with a marker."""
    for key in _SECRET_KEYS:
        if key in event_dict:
            event_dict[key] = "***"

    headers = event_dict.get("headers")
    if isinstance(headers, dict) and "x-goog-api-key" in headers:
        event_dict["headers"] = {**headers, "x-goog-api-key": "***"}

    return event_dict


def configure_logging(level: Optional[str] = None) -> Path:
    """
    Send structlog output to the CodeMorph log file.

    Args:
        level: Level name; defaults to CODEMORPH_LOG_LEVEL, then INFO.
            Unknown names fall back to INFO.

    Returns:
        Path of the log file
    """
    log_file = log_file_path()
    log_file.parent.mkdir(parents=True, exist_ok=True)

    name = (level or os.environ.get("CODEMORPH_LOG_LEVEL") or "INFO").upper()
    min_level = LOG_LEVELS.get(name, logging.INFO)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            _redact_secrets,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(min_level),
        context_class=dict,
        logger_factory=structlog.WriteLoggerFactory(file=open(log_file, "a", encoding="utf-8")),
        cache_logger_on_first_use=True,
    )

    return log_file


def get_logger(name: str) -> Any:
    """
    Get a structured logger instance.

    Example:
        >>> logger = get_logger(__name__)
        >>> logger.info("gemini_request_started", model="gemini-2.0-flash")
    """
    return structlog.get_logger(name)
