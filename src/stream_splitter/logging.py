"""Structured logging with structlog."""

import logging
import sys

import structlog

from stream_splitter.config import get_settings

_configured = False


def configure_logging(
    level: str | None = None,
    format: str | None = None,
    force: bool = False,
) -> None:
    """
    Configure structlog for the application.

    Called once at process entry (CLI, event handler). Later calls are no-ops
    unless ``force`` is set.

    Args:
        level: Log level, overrides settings.log_level
        format: "json" or "console", overrides settings.log_format
        force: Reconfigure even if already configured
    """
    global _configured

    if _configured and not force:
        return

    settings = get_settings()
    log_level = (level or settings.log_level).upper()
    log_format = (format or settings.log_format).lower()

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stderr,
        level=getattr(logging, log_level),
        force=True,
    )

    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if log_format == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty()))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.getLogger("stream_splitter").setLevel(getattr(logging, log_level))
    # botocore is chatty at DEBUG
    logging.getLogger("botocore").setLevel(logging.WARNING)

    _configured = True


def bind_context(**kwargs) -> None:
    """Bind context variables for structured logging."""
    structlog.contextvars.bind_contextvars(**kwargs)


def clear_context() -> None:
    """Clear context variables."""
    structlog.contextvars.clear_contextvars()
