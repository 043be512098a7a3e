"""
Structured diagnostics logging for chainlog.

chainlog persists log entries for host entities; this module is about the
library's *own* diagnostics (entry persisted, batch failed, cleanup counts).
It integrates structlog for structured key-value output while staying
compatible with standard Python logging, so host applications control
handlers and levels the usual way.

Functions:
    setup_logging(): Initialize logging configuration
    get_logger(name): Get configured logger instance
    bind_chain(chain): Get a logger with a bound chain id

Configuration:
    Logging behavior is controlled by Settings / environment variables:
    - LOG_LEVEL: Minimum log level (DEBUG/INFO/WARNING/ERROR/CRITICAL)
    - LOG_FORMAT: Output format (json/text)
    - LOG_FILE_PATH: Optional file output path
    - DEBUG / ENVIRONMENT: Rich console output in development

Example:
    >>> from chainlog.core.logging.logger import get_logger
    >>> logger = get_logger(__name__)
    >>> logger.info("Entry persisted", owner="User:42", log_chain="c0ffee")
"""

import logging
import logging.config
import sys
from pathlib import Path

import structlog
from rich.console import Console
from rich.logging import RichHandler

from chainlog.core.config.settings import settings


def setup_logging() -> None:
    """
    Initialize structlog and standard library logging.

    Selects handlers the same way for every deployment:
        - Development: Rich console handler with colors and tracebacks
        - Otherwise: plain stream handler on stdout
        - File: additional file handler when LOG_FILE_PATH is set

    Safe to call more than once; later calls reconfigure structlog.
    """
    processors = [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="ISO"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    if settings.LOG_FORMAT.lower() == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        context_class=dict,
        cache_logger_on_first_use=True,
    )

    handlers = []

    if settings.DEBUG or settings.ENVIRONMENT == "development":
        console = Console(stderr=True)
        rich_handler = RichHandler(
            console=console,
            show_time=True,
            show_level=True,
            show_path=True,
            markup=False,
            rich_tracebacks=True,
        )
        rich_handler.setLevel(settings.LOG_LEVEL)
        handlers.append(rich_handler)
    else:
        stream_handler = logging.StreamHandler(sys.stdout)
        stream_handler.setLevel(settings.LOG_LEVEL)
        handlers.append(stream_handler)

    if settings.LOG_FILE_PATH:
        file_path = Path(settings.LOG_FILE_PATH)
        file_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(file_path)
        file_handler.setLevel(settings.LOG_LEVEL)
        handlers.append(file_handler)

    logging.basicConfig(
        level=settings.LOG_LEVEL,
        handlers=handlers,
        format="%(message)s",
    )

    # SQL echo is controlled by DATABASE_ECHO, not by our level
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """
    Get a configured structured logger instance.

    Args:
        name (str): Logger name, typically __name__ of the calling module

    Returns:
        structlog.stdlib.BoundLogger: Logger supporting key-value context

    Note:
        If logging hasn't been configured yet, this function calls
        setup_logging() first.
    """
    if not structlog.is_configured():
        setup_logging()
    return structlog.get_logger(name)


def bind_chain(chain: str, name: str = __name__) -> structlog.stdlib.BoundLogger:
    """
    Create a diagnostics logger with a bound chain id.

    Every message emitted through the returned logger carries ``log_chain``
    so library diagnostics line up with the persisted entries of the same
    chain.

    Example:
        >>> block_logger = bind_chain("2f1c...")
        >>> block_logger.debug("Block started", label="checkout")
    """
    return get_logger(name).bind(log_chain=chain)


setup_logging()
