"""Structured logging configuration using structlog."""

import logging
import re
import sys
from typing import IO, Optional

import structlog

# Record payload keys: history text and full records never reach log output
_PAYLOAD_KEYS = {"message", "record", "records", "local", "remote"}
_SECRET_KEYS = {"api_token", "authorization", "token"}

_SCRUBBERS = [
    (re.compile(r"(Bearer\s+)[a-zA-Z0-9_.-]{8,}"), r"\1REDACTED"),
    (re.compile(r"(api[_-]?token['\"]?\s*[:=]\s*['\"]?)[a-zA-Z0-9_.-]{8,}"), r"\1REDACTED"),
    (re.compile(r"[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}"), "REDACTED@email"),
]

# Libraries that log every request or job run at INFO
_NOISY_LOGGERS = ("httpx", "httpcore", "apscheduler")


def _scrub(value: str) -> str:
    for pattern, replacement in _SCRUBBERS:
        value = pattern.sub(replacement, value)
    return value


def _redact_sensitive(_, __, event_dict: dict) -> dict:
    """Structlog processor: drop record payloads and secrets, mask tokens in text."""
    for key, value in event_dict.items():
        if key in _PAYLOAD_KEYS or key in _SECRET_KEYS:
            event_dict[key] = "[redacted]"
        elif isinstance(value, str):
            event_dict[key] = _scrub(value)
    return event_dict


def _processors() -> list[structlog.types.Processor]:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        _redact_sensitive,
    ]


def setup_logging(json_mode: bool = False, level: str = "INFO", stream: Optional[IO[str]] = None) -> None:
    """Route structlog through stdlib logging to a single handler.

    Args:
        json_mode: JSON lines, for ``sync watch`` output collected by a supervisor.
                   False = colored console renderer for interactive use.
        level: Log level string (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        stream: Destination, stderr by default so command output stays clean.
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    structlog.configure(
        processors=[*_processors(), structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    renderer = structlog.processors.JSONRenderer() if json_mode else structlog.dev.ConsoleRenderer()
    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
        )
    )

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(log_level)
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(log_level, logging.WARNING))
