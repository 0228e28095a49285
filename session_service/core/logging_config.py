"""
Structured logging configuration for the session store service.

JSON log lines carry the request correlation ID and any ``extra`` fields.
Extra fields with sensitive-looking names are redacted; session payloads are
redacted unconditionally, dev mode included.
"""

import json
import logging
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from session_service.core.config import Settings, settings

# Correlation ID of the request being handled, set by CorrelationIdMiddleware
correlation_id_ctx: ContextVar[Optional[str]] = ContextVar('correlation_id', default=None)

# Attributes every LogRecord has; anything else came in through ``extra``
_RECORD_ATTRS = frozenset({
    'name', 'msg', 'args', 'levelname', 'levelno', 'pathname',
    'filename', 'module', 'lineno', 'funcName', 'created',
    'msecs', 'relativeCreated', 'thread', 'threadName', 'taskName',
    'processName', 'process', 'exc_info', 'exc_text', 'stack_info',
    'message', 'asctime',
})

SENSITIVE_KEYWORDS = ('password', 'secret', 'token', 'credential', 'auth', 'cookie', 'private')
ALWAYS_REDACTED_KEYWORDS = ('payload',)

NOISY_LOGGERS = ('uvicorn.access', 'urllib3', 'botocore', 'aiobotocore')

REDACTED = "[REDACTED]"


class StructuredFormatter(logging.Formatter):
    """Render log records as one JSON object per line"""

    def __init__(self, include_sensitive: bool = False):
        """
        Args:
            include_sensitive: Keep credential-like extra fields. Payload
                fields stay redacted regardless.
        """
        super().__init__()
        self.include_sensitive = include_sensitive

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        correlation_id = correlation_id_ctx.get()
        if correlation_id:
            entry["correlation_id"] = correlation_id

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        extra = {
            key: self._redact(key, value)
            for key, value in record.__dict__.items()
            if key not in _RECORD_ATTRS
        }
        if extra:
            entry["extra"] = extra

        return json.dumps(entry, default=str)

    def _redact(self, key: str, value: Any) -> Any:
        key_lower = key.lower()
        if any(word in key_lower for word in ALWAYS_REDACTED_KEYWORDS):
            return REDACTED
        if not self.include_sensitive and any(word in key_lower for word in SENSITIVE_KEYWORDS):
            return REDACTED
        return value


def _build_handlers(formatter: logging.Formatter, log_file: Optional[str]) -> List[logging.Handler]:
    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if log_file:
        handlers.append(logging.FileHandler(log_file))
    for handler in handlers:
        handler.setFormatter(formatter)
    return handlers


def setup_logging(
    log_level: str = "INFO",
    enable_json: bool = True,
    log_file: Optional[str] = None,
    include_sensitive: bool = False
) -> None:
    """
    Replace the root logger's handlers.

    Args:
        log_level: Logging level name (DEBUG, INFO, WARNING, ERROR)
        enable_json: JSON lines when true, plain text otherwise
        log_file: Also write to this file when given
        include_sensitive: Passed to StructuredFormatter
    """
    if enable_json:
        formatter: logging.Formatter = StructuredFormatter(include_sensitive=include_sensitive)
    else:
        formatter = logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s')

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(log_level.upper())
    for handler in _build_handlers(formatter, log_file):
        root_logger.addHandler(handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def set_correlation_id(correlation_id: Optional[str]) -> None:
    """Bind a correlation ID to the current context, or clear it with None"""
    correlation_id_ctx.set(correlation_id)


def init_application_logging(app_settings: Settings = settings) -> None:
    """Configure logging from application settings"""
    is_dev = app_settings.DEV_MODE
    log_level = app_settings.effective_log_level
    enable_json = app_settings.LOG_JSON and not is_dev

    setup_logging(
        log_level=log_level,
        enable_json=enable_json,
        log_file=app_settings.LOG_FILE,
        include_sensitive=is_dev,
    )

    logging.getLogger("session_service.startup").info(
        "Structured logging initialized",
        extra={"dev_mode": is_dev, "json_logging": enable_json, "log_level": log_level},
    )
