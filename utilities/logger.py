"""
Structured logging setup using structlog.

structlog events and plain stdlib records both go through
``structlog.stdlib.ProcessorFormatter``: stdout gets the configured renderer,
the optional log file always gets JSON lines.
"""

import logging
import sys
from pathlib import Path
from typing import List, Optional, Union

import structlog
from structlog.stdlib import LoggerFactory, ProcessorFormatter

# Handlers installed by the last setup_logging call
_handlers: List[logging.Handler] = []


def _shared_processors(debug: bool) -> list:
    processors = [
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]
    if debug:
        processors.append(structlog.processors.CallsiteParameterAdder())
    return processors


def _attach(handler: logging.Handler, renderer, shared: list, level: int) -> None:
    handler.setLevel(level)
    handler.setFormatter(ProcessorFormatter(
        foreign_pre_chain=shared,
        processors=[ProcessorFormatter.remove_processors_meta, renderer],
    ))
    logging.getLogger().addHandler(handler)
    _handlers.append(handler)


def setup_logging(
    log_level: str = "INFO",
    log_format: str = "json",
    log_file: Optional[Union[str, Path]] = None,
    debug: bool = False
) -> None:
    """
    Set up structured logging.

    Calling it again replaces the handlers installed by the previous call.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_format: stdout format, ``json`` or ``console``
        log_file: Optional path for an additional JSON log file
        debug: Add call-site information to every event
    """
    level = getattr(logging, log_level.upper())
    shared = _shared_processors(debug)

    root = logging.getLogger()
    for handler in _handlers:
        root.removeHandler(handler)
        handler.close()
    _handlers.clear()
    root.setLevel(level)

    if log_format == "json":
        stdout_renderer = structlog.processors.JSONRenderer()
    else:
        stdout_renderer = structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())
    _attach(logging.StreamHandler(sys.stdout), stdout_renderer, shared, level)

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        _attach(logging.FileHandler(log_path), structlog.processors.JSONRenderer(), shared, level)

    structlog.configure(
        processors=[structlog.stdlib.filter_by_level, *shared, ProcessorFormatter.wrap_for_formatter],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=LoggerFactory(),
        context_class=dict,
        cache_logger_on_first_use=True,
    )

    structlog.get_logger(__name__).info(
        "Logging system initialized",
        level=log_level,
        format=log_format,
        file=str(log_file) if log_file else None,
        debug=debug
    )


def get_logger(name: str) -> structlog.BoundLogger:
    """
    Get a structured logger instance.

    Args:
        name: Logger name (usually __name__)

    Returns:
        Configured structlog logger
    """
    return structlog.get_logger(name)
