"""
Structured logging for storecast.

``configure_logging()`` installs a structlog processor chain once per
process (CLI entry, trigger startup).  ``get_logger()`` returns a bound
structlog logger.  Run-scoped identifiers (``run_id``, ``tenant_id``,
``post_target_id``) are pushed into a ContextVar and merged into every
entry by :func:`add_context_processor`; asyncio tasks copy the context, so
items processed in parallel keep their own identifiers.

The log context is for observability only.  Data access never reads it:
the tenant scope is always passed explicitly.

Configuration is read from arguments, falling back to environment:
- STORECAST_LOG_LEVEL: DEBUG | INFO | WARNING | ERROR (default: INFO)
- STORECAST_LOG_FORMAT: json | console (default: console)

Usage:
    from storecast.core.logging import configure_logging, get_logger

    configure_logging(level="DEBUG", format="json")
    log = get_logger(__name__)
    log.info("publish_run_started", due=3)
"""

from __future__ import annotations

import logging
import os
import sys
from contextvars import ContextVar, Token
from dataclasses import asdict, dataclass
from typing import Any, Literal

import structlog
from structlog.types import Processor

_configured = False


# =============================================================================
# Context
# =============================================================================


@dataclass(frozen=True)
class LogContext:
    """Identifiers attached to every log entry of the current task."""

    run_id: str | None = None
    tenant_id: str | None = None
    post_id: str | None = None
    post_target_id: str | None = None
    platform: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Return non-None fields as dict."""
        return {k: v for k, v in asdict(self).items() if v is not None}

    def merge(self, **kwargs: Any) -> LogContext:
        """Create new context with merged values."""
        current = asdict(self)
        current.update({k: v for k, v in kwargs.items() if v is not None})
        return LogContext(**current)


_log_context: ContextVar[LogContext] = ContextVar("storecast_log_context")  # noqa: B039


def get_context() -> LogContext:
    """Get the current log context."""
    return _log_context.get(LogContext())


def push_context(**kwargs: Any) -> Token[LogContext]:
    """
    Push new context values, returning a token to restore later.

    Usage:
        token = push_context(run_id=run_id)
        try:
            ...
        finally:
            pop_context(token)
    """
    return _log_context.set(get_context().merge(**kwargs))


def pop_context(token: Token[LogContext]) -> None:
    """Restore the context that was active before ``push_context``."""
    _log_context.reset(token)


def add_context_processor(
    logger: Any,
    method_name: str,
    event_dict: dict[str, Any],
) -> dict[str, Any]:
    """Structlog processor that adds the current LogContext to every entry."""
    for key, value in get_context().to_dict().items():
        event_dict.setdefault(key, value)
    return event_dict


# =============================================================================
# Configuration
# =============================================================================


def configure_logging(
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] | str | None = None,
    format: Literal["json", "console"] | str | None = None,
    force: bool = False,
) -> None:
    """
    Configure structured logging for the application.

    Subsequent calls are no-ops unless force=True.

    Args:
        level: Log level (overrides STORECAST_LOG_LEVEL)
        format: Output format (overrides STORECAST_LOG_FORMAT)
        force: Reconfigure even if already configured
    """
    global _configured

    if _configured and not force:
        return

    log_level = (level or os.environ.get("STORECAST_LOG_LEVEL", "INFO")).upper()
    log_format = (format or os.environ.get("STORECAST_LOG_FORMAT", "console")).lower()

    processors: list[Processor] = [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        add_context_processor,
        structlog.processors.format_exc_info,
        structlog.processors.StackInfoRenderer(),
    ]

    if log_format == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(
            structlog.dev.ConsoleRenderer(
                colors=sys.stderr.isatty(),
                exception_formatter=structlog.dev.plain_traceback,
            )
        )

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    # Stdlib loggers (scheduling, adapters) share the same stream and level
    logging.basicConfig(
        format="%(asctime)s %(levelname)-8s %(name)s: %(message)s",
        stream=sys.stderr,
        level=getattr(logging, log_level),
        force=True,
    )
    logging.getLogger("storecast").setLevel(getattr(logging, log_level))

    _configured = True


def is_configured() -> bool:
    """Check if logging has been configured."""
    return _configured


def get_logger(name: str | None = None) -> Any:
    """
    Get a structured logger.

    Args:
        name: Logger name (typically __name__)
    """
    return structlog.get_logger(name)


__all__ = [
    "LogContext",
    "add_context_processor",
    "configure_logging",
    "get_context",
    "get_logger",
    "is_configured",
    "pop_context",
    "push_context",
]
