"""
Structured Logging Utilities

Helpers for wiring the SDK's loggers: a JSON formatter that masks API keys and
other secrets, and a :func:`configure_logging` convenience for applications
that want the SDK's records on a handler of their own. The SDK itself only
creates module-level loggers under the ``HostedSearch`` namespace and never
installs handlers on import.
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Dict, Optional, TextIO

LOGGER_NAME = "HostedSearch"

SENSITIVE_KEYS = frozenset(
    {"authorization", "api_key", "apikey", "x-algolia-api-key", "token", "secret", "password"}
)


def mask_sensitive_data(payload: Dict[str, object]) -> Dict[str, object]:
    """Remove secrets from structured payloads prior to logging.

    Args:
        payload: Arbitrary key-value pairs that may contain API keys.

    Returns:
        Copy of the payload where secret fields are replaced with ``***masked***``.

    Examples:
        >>> mask_sensitive_data({"apiKey": "secret", "status": "ok"})
        {'apiKey': '***masked***', 'status': 'ok'}
    """
    masked: Dict[str, object] = {}
    for key, value in payload.items():
        if key.lower() in SENSITIVE_KEYS:
            masked[key] = "***masked***"
        elif isinstance(value, dict):
            masked[key] = mask_sensitive_data(value)
        else:
            masked[key] = value
    return masked


class JSONFormatter(logging.Formatter):
    """Formatter emitting one JSON object per record.

    Examples:
        >>> formatter = JSONFormatter()
        >>> isinstance(formatter.format(logging.makeLogRecord({'msg': 'test'})), str)
        True
    """

    def format(self, record: logging.LogRecord) -> str:
        now = datetime.now(timezone.utc)
        log_obj: Dict[str, object] = {
            "timestamp": now.isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "host": getattr(record, "host", None),
        }
        if hasattr(record, "extra_fields") and isinstance(record.extra_fields, dict):
            log_obj.update(record.extra_fields)
        if record.exc_info:
            log_obj["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(mask_sensitive_data(log_obj), default=str)


def configure_logging(
    level: int | str = logging.INFO,
    *,
    json_format: bool = False,
    stream: Optional[TextIO] = None,
) -> logging.Logger:
    """Attach a stream handler to the SDK's root logger.

    Calling it again replaces the handler it installed previously.
    """
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level if isinstance(level, int) else level.upper())
    for handler in list(logger.handlers):
        if getattr(handler, "_hostedsearch_handler", False):
            logger.removeHandler(handler)

    handler = logging.StreamHandler(stream or sys.stderr)
    if json_format:
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(
            logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s")
        )
    handler._hostedsearch_handler = True  # type: ignore[attr-defined]
    logger.addHandler(handler)
    return logger


__all__ = ["JSONFormatter", "configure_logging", "mask_sensitive_data"]
