"""structlog configuration for applications embedding linkglance.

linkglance itself only calls ``structlog.get_logger()``. Applications that
already configure structlog keep their setup; ``setup_logging`` is for hosts
that have none.
"""

from __future__ import annotations

import logging
import sys

import structlog

from linkglance.config import Settings

LIBRARY_NAME = "linkglance"


def _add_library_name(
    logger: object, method_name: str, event_dict: structlog.types.EventDict
) -> structlog.types.EventDict:
    event_dict.setdefault("library", LIBRARY_NAME)
    return event_dict


def setup_logging(settings: Settings | None = None, *, force: bool = False) -> bool:
    """Configure structlog from ``settings.logging``.

    Leaves an existing structlog configuration alone unless ``force`` is set.
    Returns whether the configuration was applied.
    """
    if structlog.is_configured() and not force:
        return False
    settings = settings if settings is not None else Settings()
    log_level = logging.getLevelNamesMapping()[settings.logging.level]

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        _add_library_name,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
    ]

    if settings.logging.format == "json":
        # Store errors are logged with exc_info; JSON needs them pre-rendered
        processors = [
            *shared_processors,
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        processors = [*shared_processors, structlog.dev.ConsoleRenderer()]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        # stdout belongs to the host application
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )
    return True
