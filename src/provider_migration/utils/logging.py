"""Logging configuration for Provider Migrator using structlog.

Console output goes through Rich for operators; the optional log file gets
one JSON object per line. Anything that may carry a legacy connection's
credentials is passed through ``sanitize_payload`` first.
"""

import json
import logging
import re
from pathlib import Path
from typing import Any

import structlog
from rich.console import Console
from rich.logging import RichHandler
from structlog.typing import EventDict, WrappedLogger

from provider_migration import __version__

APP_NAME = "provider-migrator"

_ANSI_PATTERN = re.compile(r"\x1b\[[0-9;]*m")

# Key fragments whose values never reach a log sink (case-insensitive)
SENSITIVE_FIELDS = frozenset(
    {
        "api_key",
        "apikey",
        "token",
        "password",
        "secret",
        "authorization",
        "access_key",
        "private_key",
        "credential",
        "session_key",
    }
)

REDACTED = "[REDACTED]"


def add_app_context(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    """structlog processor stamping every event with the application name and version."""
    event_dict.setdefault("app", APP_NAME)
    event_dict.setdefault("version", __version__)
    return event_dict


class JSONFileFormatter(logging.Formatter):
    """One JSON object per line for the log file.

    structlog has already rendered the event for the console, so the
    rendering is stripped of colour codes and stored under ``event``.
    """

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": self.formatTime(record, "%Y-%m-%dT%H:%M:%S"),
            "level": record.levelname.lower(),
            "logger": record.name,
            "event": _ANSI_PATTERN.sub("", record.getMessage()),
            "app": APP_NAME,
            "version": __version__,
        }
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry)


def configure_logging(
    level: str = "WARNING",
    log_format: str = "json",
    log_file: str | None = None,
    file_level: str | None = None,
) -> None:
    """Configure structured logging for the application.

    Args:
        level: Console log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_format: File output format ('json' or 'console'). Console output
            is always human-readable.
        log_file: Optional path to log file
        file_level: File log level (defaults to DEBUG)
    """
    console_level = logging.getLevelName(level.upper())
    if not isinstance(console_level, int):
        console_level = logging.WARNING
    file_log_level = logging.getLevelName((file_level or "DEBUG").upper())
    if not isinstance(file_log_level, int):
        file_log_level = logging.DEBUG

    handlers: list[logging.Handler] = []

    console_handler = RichHandler(
        console=Console(stderr=True),
        show_time=False,
        show_path=False,
        markup=False,
        rich_tracebacks=True,
    )
    console_handler.setLevel(console_level)
    handlers.append(console_handler)

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path)
        file_handler.setLevel(file_log_level)
        file_handler.setFormatter(
            JSONFileFormatter() if log_format == "json" else logging.Formatter("%(message)s")
        )
        handlers.append(file_handler)

    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
        handler.close()
    root_logger.setLevel(logging.DEBUG)  # handlers filter
    for handler in handlers:
        root_logger.addHandler(handler)

    # The bound logger must let through everything the most verbose handler wants
    effective_level = min(h.level for h in handlers)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso"),
            add_app_context,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.UnicodeDecoder(),
            structlog.dev.ConsoleRenderer(colors=False),  # RichHandler colours
        ],
        wrapper_class=structlog.make_filtering_bound_logger(effective_level),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Get a logger, typically ``get_logger(__name__)``."""
    return structlog.get_logger(name)


def log_api_request(
    logger: structlog.stdlib.BoundLogger,
    method: str,
    url: str,
    status_code: int,
    duration_ms: float,
    **extra: Any,
) -> None:
    """Log one completed registry exchange.

    Successful calls are DEBUG noise; 4xx responses are usually a policy
    outcome (conflict, not found) and 5xx responses an outage, so both are
    raised to WARNING.
    """
    log_data: dict[str, Any] = {
        "method": method,
        "url": url,
        "status_code": status_code,
        "duration_ms": round(duration_ms, 2),
        **extra,
    }
    if status_code < 400:
        logger.debug("registry_request_ok", **log_data)
    elif status_code < 500:
        logger.warning("registry_request_rejected", **log_data)
    else:
        logger.warning("registry_request_server_error", **log_data)


def log_migration_progress(
    logger: structlog.stdlib.BoundLogger,
    plan_id: str,
    phase: str,
    percent: float,
    message: str,
    **extra: Any,
) -> None:
    """Log a progress update of an executing plan.

    Args:
        logger: Logger instance
        plan_id: Plan being executed
        phase: Executor phase name
        percent: Overall completion (0-100)
        message: Human-readable progress message
        **extra: Additional context (current record id, batch number)
    """
    logger.info(
        "migration_progress",
        plan_id=plan_id,
        phase=phase,
        percent=round(percent, 2),
        message=message,
        **{k: v for k, v in extra.items() if v is not None},
    )


def log_error(
    logger: structlog.stdlib.BoundLogger,
    error: Exception,
    context: str,
    **extra: Any,
) -> None:
    """Log ``error`` with its traceback as ``<context>_failed``."""
    logger.error(
        f"{context}_failed",
        error_type=type(error).__name__,
        error_message=str(error),
        status_code=getattr(error, "status_code", None),
        **extra,
        exc_info=True,
    )


def sanitize_payload(payload: Any, max_depth: int = 10) -> Any:
    """Redact sensitive fields in a payload before logging.

    Recursively walks dicts and lists and replaces the value of every key
    containing one of ``SENSITIVE_FIELDS`` with ``"[REDACTED]"``. Legacy
    ``raw_config`` documents and registry request bodies both go through
    here.

    Args:
        payload: The payload to sanitize (dict, list, or primitive)
        max_depth: Maximum recursion depth

    Returns:
        Sanitized copy of the payload
    """
    if max_depth <= 0:
        return "[MAX_DEPTH_EXCEEDED]"

    if isinstance(payload, dict):
        return {
            key: (
                REDACTED
                if any(fragment in str(key).lower() for fragment in SENSITIVE_FIELDS)
                else sanitize_payload(value, max_depth - 1)
                if isinstance(value, (dict, list))
                else value
            )
            for key, value in payload.items()
        }

    if isinstance(payload, list):
        return [sanitize_payload(item, max_depth - 1) for item in payload]

    return payload


def truncate_payload(payload: Any, max_size: int = 10000) -> str:
    """Render ``payload`` as indented JSON, cut to ``max_size`` characters."""
    try:
        text = json.dumps(payload, indent=2, default=str)
    except (TypeError, ValueError):
        text = str(payload)

    if len(text) > max_size:
        return text[:max_size] + f"\n... [TRUNCATED - {len(text)} total chars]"
    return text


def should_log_payloads(logger: structlog.stdlib.BoundLogger, log_payloads_enabled: bool) -> bool:
    """Payload logging needs the ``log_payloads`` flag and DEBUG enabled on the logger."""
    if not log_payloads_enabled:
        return False
    try:
        return logger.is_enabled_for(logging.DEBUG)  # type: ignore[attr-defined]
    except AttributeError:
        return logging.getLogger().isEnabledFor(logging.DEBUG)
