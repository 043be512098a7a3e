"""
chainlog Logging Module - Structured Diagnostics.

Diagnostics for the library itself, built on structlog with rich console
output in development and JSON output elsewhere. These are distinct from
the log *entries* chainlog persists for host entities.

Example:
    >>> from chainlog.core.logging import get_logger
    >>> logger = get_logger(__name__)
    >>> logger.info("Cleanup finished", owner="Order:7", deleted=10)
"""

from chainlog.core.logging.logger import bind_chain, get_logger, setup_logging

__all__ = ["bind_chain", "get_logger", "setup_logging"]
