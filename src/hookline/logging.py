"""Structlog setup shared by every Hookline component.

Engine modules log with ``logging.getLogger(__name__)`` and %-style
arguments. ``configure_logging`` routes those records through structlog so
they come out as JSON lines in production or coloured console lines during
development, with bound context (e.g. a processing run ID) merged in and
webhook secrets masked.
"""

from __future__ import annotations

import logging
import sys
from collections.abc import MutableMapping
from typing import TYPE_CHECKING, Any

import structlog

if TYPE_CHECKING:
    from structlog.typing import Processor

    from hookline.config import Settings

# Event dict keys whose values must never reach a log sink
SENSITIVE_KEYS = frozenset({"secret", "signature", "authorization", "x-webhook-signature"})

_configured = False


def redact_secrets(
    _logger: Any, _method_name: str, event_dict: MutableMapping[str, Any]
) -> MutableMapping[str, Any]:
    """Mask webhook secrets and signatures bound to a log event."""
    for key in list(event_dict):
        if key.lower() in SENSITIVE_KEYS:
            event_dict[key] = "***"
    return event_dict


def _base_processors() -> list[Processor]:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        redact_secrets,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]


def _render_processors(format: str) -> list[Processor]:
    if format.lower() == "json":
        return [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
    return [structlog.dev.ConsoleRenderer(colors=True)]


def configure_logging(level: str = "INFO", format: str = "json") -> None:
    """Install the Hookline logging pipeline.

    Safe to call repeatedly; the last call wins. Unknown level names fall
    back to INFO.

    Args:
        level: DEBUG, INFO, WARNING, ERROR or CRITICAL.
        format: "json" for machine-readable output, "text" for a console.

    Example:
        ```python
        from hookline.logging import bind_context, configure_logging, get_logger

        configure_logging(level="DEBUG", format="text")
        bind_context(run_id="run_42")
        get_logger(__name__).info("scheduler tick", due=12)
        ```
    """
    global _configured

    log_level = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=log_level)
    logging.getLogger("hookline").setLevel(log_level)
    # httpx logs every request at INFO, which duplicates delivery logs
    logging.getLogger("httpx").setLevel(max(log_level, logging.WARNING))

    structlog.configure(
        processors=_base_processors() + _render_processors(format),
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
    _configured = True


def configure_from_settings(settings: Settings) -> None:
    """Apply ``settings.log_level`` and ``settings.log_format``."""
    configure_logging(level=settings.log_level, format=settings.log_format)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Return a structlog logger, installing default config on first use."""
    if not _configured:
        configure_logging()
    return structlog.get_logger(name)  # type: ignore[no-any-return]


def bind_context(**kwargs: object) -> None:
    """Attach key-value pairs to every later log line in this context."""
    structlog.contextvars.bind_contextvars(**kwargs)


def unbind_context(*keys: str) -> None:
    structlog.contextvars.unbind_contextvars(*keys)


def clear_context() -> None:
    structlog.contextvars.clear_contextvars()
