"""
Centralized logging configuration for dohFilter.

Provides structured JSONL logging with rotation and request-id injection.
Configured through environment variables with sensible defaults.

Request ID Propagation:
    The HTTP middleware calls `set_request_id()` for every inbound request;
    all records emitted while handling it carry that id.

    Example:
        from dohFilter.logging_config import get_logger, set_request_id

        token = set_request_id(str(uuid.uuid4()))
        logger.info("Query answered", extra={"domain": "ads.example.com"})
        # Log will include: "request_id": "<uuid>"
"""
import contextvars
import json
import logging
import logging.handlers
import os
import sys
import traceback
from datetime import datetime, timezone
from typing import Any, Dict, Optional


_request_id_var: contextvars.ContextVar[str] = contextvars.ContextVar(
    "request_id", default=""
)


def set_request_id(request_id: str) -> contextvars.Token:
    """
    Set the current request ID for this async context.

    Args:
        request_id: The request ID to set

    Returns:
        Token that can be used to reset the context variable
    """
    return _request_id_var.set(request_id)


def get_request_id() -> str:
    """Return the current request ID, or an empty string if not set."""
    return _request_id_var.get()


def reset_request_id(token: contextvars.Token) -> None:
    _request_id_var.reset(token)


class JSONLFormatter(logging.Formatter):
    """
    Formatter that outputs one JSON object per line.
    Automatically includes request_id from contextvars if set.
    """

    # Extra attributes copied onto the JSON record when present
    EXTRA_ATTRS = [
        "request_id", "domain", "transaction_id", "qtype", "blocked",
        "duration", "status_code", "outcome", "state", "error_type",
        "total", "stored", "failed", "url", "method", "path", "mode",
        "backend", "settings",
    ]

    def __init__(self, component: str = "dohfilter"):
        super().__init__()
        self.component = component
        self.hostname = os.getenv("HOSTNAME", os.getenv("COMPUTERNAME", "unknown"))

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc)
            .isoformat()
            .replace("+00:00", "Z"),
            "level": record.levelname,
            "component": self.component,
            "logger": record.name,
            "message": record.getMessage(),
            "hostname": self.hostname,
            "process_id": record.process,
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        request_id = get_request_id()
        if request_id:
            log_data["request_id"] = request_id

        if record.exc_info:
            log_data["exception"] = {
                "type": record.exc_info[0].__name__,
                "message": str(record.exc_info[1]),
                "traceback": traceback.format_exception(*record.exc_info),
            }

        for attr in self.EXTRA_ATTRS:
            if hasattr(record, attr):
                log_data[attr] = getattr(record, attr)

        return json.dumps(log_data, default=str)


def setup_logging(
    component: str = "dohfilter",
    log_level: Optional[str] = None,
    log_file: Optional[str] = None,
    max_bytes: Optional[int] = None,
    backup_count: int = 10,
    enable_console: bool = True,
) -> logging.Logger:
    """
    Set up logging for a dohFilter component.

    Args:
        component: Component name (api, router, store, upstream, ...)
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Path to log file (default: logs/dohfilter.jsonl)
        max_bytes: Max bytes per log file before rotation (default: 100MB)
        backup_count: Number of backup files to keep (default: 10)
        enable_console: Whether to enable console logging (default: True)

    Returns:
        Configured logger instance
    """
    log_level = log_level or os.getenv("DOHFILTER_LOG_LEVEL", "INFO").upper()
    log_file = log_file or os.getenv("DOHFILTER_LOG_FILE", "logs/dohfilter.jsonl")
    max_bytes = max_bytes or int(os.getenv("DOHFILTER_LOG_MAX_BYTES", str(100 * 1024 * 1024)))

    numeric_level = getattr(logging, log_level, logging.INFO)

    logger = logging.getLogger(f"dohfilter.{component}")
    logger.setLevel(numeric_level)
    logger.propagate = False
    logger.handlers.clear()

    log_dir = os.path.dirname(log_file)
    if log_dir and not os.path.exists(log_dir):
        os.makedirs(log_dir, exist_ok=True)

    formatter = JSONLFormatter(component=component)

    try:
        file_handler = logging.handlers.RotatingFileHandler(
            log_file,
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding="utf-8",
        )
        file_handler.setLevel(numeric_level)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)
    except (IOError, OSError) as e:
        # If we can't write to file, log to stderr
        sys.stderr.write(f"Failed to set up file logging to {log_file}: {e}\n")

    if enable_console:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(numeric_level)
        console_handler.setFormatter(
            logging.Formatter(
                "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
                datefmt="%Y-%m-%d %H:%M:%S",
            )
        )
        logger.addHandler(console_handler)

    return logger


def get_logger(component: str) -> logging.Logger:
    """Get or create the logger for a component, setting it up on first use."""
    logger = logging.getLogger(f"dohfilter.{component}")
    if not logger.handlers:
        logger = setup_logging(component)
    return logger


def sanitize_log_data(data: Dict[str, Any], sensitive_keys: Optional[list] = None) -> Dict[str, Any]:
    """
    Sanitize sensitive data from log dictionaries.

    Keys matching a sensitive name are replaced outright; URL values with
    embedded credentials keep only the part after the ``@``.
    """
    sensitive_keys = sensitive_keys or [
        "password", "passwd", "pwd", "token", "secret", "api_key",
        "apikey", "auth", "authorization",
    ]

    sanitized = {}
    for key, value in data.items():
        if any(sensitive in key.lower() for sensitive in sensitive_keys):
            sanitized[key] = "***REDACTED***"
        elif isinstance(value, dict):
            sanitized[key] = sanitize_log_data(value, sensitive_keys)
        elif isinstance(value, str) and "://" in value and "@" in value:
            scheme, _, rest = value.partition("://")
            sanitized[key] = f"{scheme}://***REDACTED***@{rest.split('@')[-1]}"
        else:
            sanitized[key] = value

    return sanitized
