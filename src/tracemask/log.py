"""
structlog setup.

Console rendering for local runs, one JSON object per line for shipping.
Library code only calls ``structlog.get_logger(__name__)``; this module is
for applications that embed or run the service.
"""

import logging
from typing import Any, List

import structlog

LOG_FORMATS = ("console", "json")


def configure_logging(log_level: str = "INFO", log_format: str = "console") -> None:
    """Route structlog through stdlib logging at the given level."""
    level = logging.getLevelName(log_level.upper())
    if not isinstance(level, int):
        level = logging.INFO

    logging.basicConfig(format="%(message)s", level=level)
    logging.getLogger("watchfiles").setLevel(logging.WARNING)

    processors: List[Any] = [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
    ]
    if log_format == "json":
        processors += [
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )
