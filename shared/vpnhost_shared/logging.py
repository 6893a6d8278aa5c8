"""Shared logging configuration for the VPN host manager."""

import logging
import sys
from typing import Any, List, Optional, Union

import structlog
from structlog.types import Processor


def setup_logging(
    level: Union[str, int] = logging.INFO,
    json_format: bool = True,
    log_file: Optional[str] = None,
) -> None:
    """
    Configure structured logging for the manager and its CLI.

    Args:
        level: Logging level (default: INFO)
        json_format: Render events as JSON lines; use the console renderer otherwise
        log_file: Optional file to mirror log output into
    """
    if isinstance(level, str):
        level = getattr(logging, level.upper(), logging.INFO)

    logging.basicConfig(
        level=level,
        format="%(message)s",
        force=True,
        handlers=[],
    )

    # Logs go to stderr so CLI output on stdout stays machine readable
    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(level)
    logging.getLogger().addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(level)
        logging.getLogger().addHandler(file_handler)

    # httpx logs every request at INFO, which drowns out the polling loop
    logging.getLogger("httpx").setLevel(max(level, logging.WARNING))

    processors: List[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
    ]

    if json_format:
        processors.append(structlog.processors.format_exc_info)
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """
    Get a structured logger with the given name.

    Args:
        name: Logger name

    Returns:
        Structured logger
    """
    return structlog.get_logger(name)


def bind_context(**kwargs: Any) -> None:
    """
    Bind context variables to the current context.

    Args:
        **kwargs: Context variables
    """
    structlog.contextvars.bind_contextvars(**kwargs)


def clear_context(*keys: str) -> None:
    """
    Clear context variables from the current context.

    Args:
        *keys: Context variable keys
    """
    structlog.contextvars.unbind_contextvars(*keys)
