"""Structured logging setup for the Stress Analytics engine.

Every module obtains its logger through ``get_logger(__name__)`` and logs
events with keyword context, e.g. ``logger.info("Run recomputed", run_id=...)``.
``configure_logging`` is called once by the application and CLI entry points.
"""

import logging
import sys

import structlog


def configure_logging(level: str = "INFO", json_logs: bool = True) -> None:
    """Configure structlog on top of the standard library logging module.

    Args:
        level: Root log level name (e.g. 'INFO', 'DEBUG').
        json_logs: Render events as JSON lines when True, or as coloured
            console output when False.
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=log_level,
        force=True,
    )

    renderer: structlog.types.Processor = (
        structlog.processors.JSONRenderer()
        if json_logs
        else structlog.dev.ConsoleRenderer()
    )

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Return a structured logger bound to the given module name.

    Args:
        name: Logger name, normally ``__name__``.

    Returns:
        A structlog logger accepting keyword event context.
    """
    return structlog.get_logger(name)
