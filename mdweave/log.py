"""structlog configuration for mdweave.

Two output modes:
- Human (default): console-formatted output to stderr
- JSON (--log-json): structured JSON lines to stderr

Module loggers come from ``get_logger`` and write through stdlib logging,
so nothing is printed until ``configure_logging`` installs a handler.
"""

from __future__ import annotations

import logging
import sys
from typing import Any

import structlog


def configure_logging(*, verbose: bool = False, log_json: bool = False) -> None:
    """Configure structlog processors and output routing.

    Args:
        verbose: Enable DEBUG-level output for mdweave. When False, only WARNING+.
        log_json: Use JSON renderer instead of console renderer.
    """
    level = logging.DEBUG if verbose else logging.WARNING

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if log_json:
        renderer: structlog.types.Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(logging.WARNING)

    logging.getLogger("mdweave").setLevel(level)


def get_logger(name: str) -> Any:
    """Get a structlog logger backed by the stdlib logger ``name``.

    Processors are looked up when the logger is first used, so loggers
    created at import time pick up a later ``configure_logging`` call.

    Args:
        name: Module name (typically __name__).

    Returns:
        Lazy structlog logger proxy.
    """
    return structlog.wrap_logger(logging.getLogger(name))
