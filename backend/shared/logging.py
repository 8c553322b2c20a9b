"""Structured logging configuration with structlog.

Environment variables (used when the caller does not pass explicit values):
- LOG_FORMAT: "json" for production log aggregation, "console" or unset for
  human-readable colored output.
- LOG_LEVEL: "DEBUG", "INFO" (default), "WARNING", "ERROR", or "CRITICAL".
"""

from __future__ import annotations

import logging
import os
import sys
from datetime import UTC, datetime
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from collections.abc import MutableMapping
    from typing import Any

LOG_FILE_TIMESTAMP_FORMAT = "%Y-%m-%d_%H-%M-%S"

_VALID_LOG_FORMATS = {"json", "console", ""}
_VALID_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}

# Third-party loggers that are too chatty at INFO.
_QUIET_LOGGERS = ("httpx", "httpcore", "uvicorn.access")


def _serialize_enums(
    _logger: object,
    _method_name: str,
    event_dict: MutableMapping[str, Any],
) -> MutableMapping[str, Any]:
    """Render Enum values (top-level and one level into dicts/lists) as their .value."""
    for key, value in event_dict.items():
        if isinstance(value, Enum):
            event_dict[key] = value.value
        elif isinstance(value, dict):
            event_dict[key] = {k: v.value if isinstance(v, Enum) else v for k, v in value.items()}
        elif isinstance(value, (list, tuple, set, frozenset)):
            event_dict[key] = [v.value if isinstance(v, Enum) else v for v in value]
    return event_dict


def _is_test() -> bool:
    return "pytest" in sys.modules


def resolve_log_format(value: str | None = None) -> bool:
    """Return True for JSON output. Falls back to the LOG_FORMAT env var."""
    if value is None:
        value = os.environ.get("LOG_FORMAT", "")
    value = value.lower()
    if value not in _VALID_LOG_FORMATS:
        msg = f"Invalid LOG_FORMAT={value!r}. Must be 'json', 'console', or unset."
        raise ValueError(msg)
    return value == "json"


def resolve_log_level(value: str | None = None) -> int:
    """Resolve a level name to a stdlib level. Falls back to LOG_LEVEL, then INFO."""
    if value is None:
        value = os.environ.get("LOG_LEVEL", "INFO")
    value = value.upper()
    if value not in _VALID_LOG_LEVELS:
        msg = f"Invalid LOG_LEVEL={value!r}. Must be one of {', '.join(sorted(_VALID_LOG_LEVELS))}."
        raise ValueError(msg)
    return getattr(logging, value)


def _renderer(*, json_mode: bool, colors: bool) -> Any:
    if json_mode:
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer(colors=colors)


def _handler(stream_or_path: Path | None, *, json_mode: bool) -> logging.Handler:
    """Build a stdout handler (stream_or_path is None) or a file handler."""
    if stream_or_path is None:
        handler: logging.Handler = logging.StreamHandler(sys.stdout)
        colors = sys.stdout.isatty()
    else:
        handler = logging.FileHandler(stream_or_path)
        colors = False
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                structlog.processors.format_exc_info,
                _renderer(json_mode=json_mode, colors=colors),
            ],
        ),
    )
    return handler


def setup_logging(
    log_dir: Path | str | None = None,
    level: int | str | None = None,
    log_format: str | None = None,
) -> Path | None:
    """Configure structlog with stdout and optional file output.

    Returns the log file path when a file handler was added, None otherwise.
    File output is skipped under pytest.
    """
    json_mode = resolve_log_format(log_format)
    if level is None or isinstance(level, str):
        level = resolve_log_level(level)

    # format_exc_info runs in the handler formatter, not here.
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            _serialize_enums,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.UnicodeDecoder(),
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    for existing in root_logger.handlers[:]:
        existing.close()
        root_logger.removeHandler(existing)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    root_logger.addHandler(_handler(None, json_mode=json_mode))

    if log_dir is None or _is_test():
        return None

    dir_path = Path(log_dir)
    dir_path.mkdir(parents=True, exist_ok=True)
    file_path = dir_path / f"{datetime.now(tz=UTC).strftime(LOG_FILE_TIMESTAMP_FORMAT)}.log"
    root_logger.addHandler(_handler(file_path, json_mode=json_mode))
    return file_path
