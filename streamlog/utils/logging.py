"""
Structured logging for streamlog, built on structlog.

Events are logged with keyword context (``log``, ``group``, ``consumer``,
``entry_id``...). Identifiers and other rich values may be passed as-is;
``stringify_values`` turns them into their text form before rendering, so
JSON output carries ``"1700000000000-3"`` rather than a repr.

The command shell binds the running command into structlog contextvars, and
every event logged while it runs carries it.
"""

import logging
import sys
from typing import Any, List

import structlog
from structlog.types import EventDict, Processor

from streamlog.errors import ValidationError

LOG_FORMATS = ("json", "console")
LOG_OUTPUTS = ("stdout", "stderr")

_PLAIN_TYPES = (str, int, float, bool, type(None), list, tuple, dict)


def add_app_context(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    """Tag every event with the application name."""
    event_dict["app"] = "streamlog"
    return event_dict


def stringify_values(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    """Render non-primitive context values (ids, policies) with str()."""
    for key, value in event_dict.items():
        if not isinstance(value, _PLAIN_TYPES):
            event_dict[key] = str(value)
    return event_dict


def _renderer(log_format: str) -> Processor:
    if log_format == "json":
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer(colors=False)


def configure_logging(
    log_level: str = "INFO",
    log_format: str = "json",
    log_output: str = "stderr",
) -> None:
    """
    Configure structlog and the stdlib root logger.

    Args:
        log_level: Logging level name (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_format: ``json`` or ``console``
        log_output: ``stdout`` or ``stderr``; the shell keeps stdout for
            command replies, so stderr is the default

    Raises:
        ValidationError: On an unknown level, format or output
    """
    level = logging.getLevelName(str(log_level).upper())
    if not isinstance(level, int):
        raise ValidationError(f"unknown log level {log_level!r}")
    if log_format not in LOG_FORMATS:
        raise ValidationError(f"log format must be one of {', '.join(LOG_FORMATS)}")
    if log_output not in LOG_OUTPUTS:
        raise ValidationError(f"log output must be one of {', '.join(LOG_OUTPUTS)}")

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout if log_output == "stdout" else sys.stderr,
        level=level,
        force=True,
    )

    processors: List[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        add_app_context,
        structlog.processors.TimeStamper(fmt="iso"),
        stringify_values,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        _renderer(log_format),
    ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """
    Get a logger for a module.

    Args:
        name: Logger name (typically __name__)

    Returns:
        structlog logger
    """
    return structlog.get_logger(name)
