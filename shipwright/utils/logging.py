"""Structured logging setup for Shipwright.

Uses structlog for JSON-structured logging with run IDs, stage names,
and timestamps in every log entry.
"""

import logging

import structlog


def configure_logging(json_output: bool = True, level: str = "INFO") -> None:
    """Configure structlog for the Shipwright system.

    Args:
        json_output: If True (default), render logs as JSON.
                     If False, use console-friendly output for development.
        level: Minimum level name (DEBUG, INFO, WARNING, ERROR).
    """
    processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if json_output:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    level_num = getattr(logging, level.upper(), logging.INFO)
    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level_num),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(run_id: str, target_host: str | None = None) -> structlog.BoundLogger:
    """Get a logger bound with run_id and optional target host.

    Args:
        run_id: ID of the deployment run.
        target_host: Host the run deploys to.

    Returns:
        A structlog BoundLogger with run_id and target_host bound.
    """
    logger = structlog.get_logger()
    logger = logger.bind(run_id=run_id)
    if target_host:
        logger = logger.bind(target_host=target_host)
    return logger
