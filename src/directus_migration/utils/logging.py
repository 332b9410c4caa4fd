"""structlog setup for extract and apply runs.

Console output goes through Rich for people watching a run; the optional
log file receives one JSON object per line so a failed apply can be
inspected afterwards.
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

from directus_migration import __version__

APP_NAME = "directus-bridge"

REDACTED = "[REDACTED]"

# Substrings of payload keys whose values never reach a log
SENSITIVE_KEYS = (
    "token",
    "password",
    "secret",
    "auth_data",
    "authorization",
    "api_key",
    "credentials",
)

_ANSI_ESCAPE = re.compile(r"\x1b\[[0-9;]*m")

# Most verbose level any handler accepts; set by configure_logging
_effective_level = logging.WARNING


def _parse_level(name: str | None, default: int) -> int:
    level = logging.getLevelName((name or "").upper())
    return level if isinstance(level, int) else default


def add_app_context(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    event_dict.setdefault("app", APP_NAME)
    event_dict.setdefault("version", __version__)
    return event_dict


class JSONFileFormatter(logging.Formatter):
    """Write each record as a single JSON line.

    structlog has already rendered the event into the message, so only
    colour codes need removing.
    """

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": self.formatTime(record, "%Y-%m-%dT%H:%M:%S"),
            "level": record.levelname.lower(),
            "logger": record.name,
            "event": _ANSI_ESCAPE.sub("", record.getMessage()),
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
    """Route structlog events to the console and, optionally, a file.

    Safe to call more than once: the CLI configures logging at start-up and
    again once the configuration file has been read.

    Args:
        level: Console level name
        log_format: ``json`` for JSON lines in the file, ``console`` for plain text
        log_file: File receiving the log, created with its parent directories
        file_level: File level name, DEBUG when not given
    """
    global _effective_level

    console_level = _parse_level(level, logging.WARNING)
    file_log_level = _parse_level(file_level, logging.DEBUG)
    _effective_level = min(console_level, file_log_level) if log_file else console_level

    root = logging.getLogger()
    root.setLevel(logging.DEBUG)
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()

    console_handler = RichHandler(
        console=Console(stderr=True),
        show_time=False,
        show_path=False,
        markup=False,
        rich_tracebacks=True,
    )
    console_handler.setLevel(console_level)
    root.addHandler(console_handler)

    if log_file:
        path = Path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(path, encoding="utf-8")
        file_handler.setLevel(file_log_level)
        file_handler.setFormatter(
            JSONFileFormatter() if log_format == "json" else logging.Formatter("%(message)s")
        )
        root.addHandler(file_handler)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso"),
            add_app_context,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.UnicodeDecoder(),
            # Colours come from RichHandler
            structlog.dev.ConsoleRenderer(colors=False),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(_effective_level),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=False,
    )


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


def log_api_request(
    logger: structlog.stdlib.BoundLogger,
    method: str,
    url: str,
    status_code: int | None = None,
    duration_ms: float | None = None,
    **extra: Any,
) -> None:
    """Log one finished HTTP exchange.

    Successful calls are DEBUG; error statuses are WARNING so they show on
    the console at the default level.
    """
    fields: dict[str, Any] = {"method": method, "url": url, "status_code": status_code, **extra}
    if duration_ms is not None:
        fields["duration_ms"] = round(duration_ms, 2)

    if status_code is not None and status_code >= 400:
        logger.warning("api_request_failed", **fields)
    else:
        logger.debug("api_request", **fields)


def sanitize_payload(payload: Any, max_depth: int = 10) -> Any:
    """Return a copy of a request or response body with secrets redacted.

    Keys are compared case-insensitively against ``SENSITIVE_KEYS``; nested
    objects and arrays are walked up to ``max_depth`` levels.
    """
    if not isinstance(payload, (dict, list)):
        return payload
    if max_depth <= 0:
        return "[MAX_DEPTH_EXCEEDED]"

    if isinstance(payload, dict):
        return {
            key: REDACTED
            if any(marker in str(key).lower() for marker in SENSITIVE_KEYS)
            else sanitize_payload(value, max_depth - 1)
            for key, value in payload.items()
        }
    return [sanitize_payload(item, max_depth - 1) for item in payload]


def truncate_payload(payload: Any, max_size: int = 10000) -> str:
    """Serialize a payload for logging, cut to ``max_size`` characters."""
    try:
        text = json.dumps(payload, default=str)
    except (TypeError, ValueError):
        text = str(payload)

    if len(text) <= max_size:
        return text
    return f"{text[:max_size]}... ({len(text)} chars)"


def should_log_payloads(enabled: bool) -> bool:
    """Payloads are logged only when enabled and some handler accepts DEBUG."""
    return enabled and _effective_level <= logging.DEBUG
