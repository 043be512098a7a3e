"""
Exception hierarchy for chainlog error handling.

Every error raised by the library derives from ChainLogError and carries a
human-readable message, a machine-readable error code and a details
dictionary with the context needed to debug the failure.

Exception Hierarchy:
    ChainLogError (base)
    ├── ConfigurationError: Settings and retention policy problems
    ├── ValidationError: Malformed owners, levels or metadata payloads
    └── StoreError: Persistence failures (constraint violations,
                    store unavailability)

Error Handling Rules:
    - Store failures surface to the immediate caller as StoreError and are
      never retried by the library.
    - Chain id generation never fails.
    - Block logging never swallows the wrapped operation's exception.
    - Cleanup with nothing to delete is a success, not an error.

Example:
    >>> try:
    ...     user_logger.log("Payment captured", status="success")
    ... except StoreError as e:
    ...     logger.error("Could not persist log entry",
    ...                  error_code=e.error_code,
    ...                  details=e.details)
    >>>
    >>> raise StoreError(
    ...     "Insert failed",
    ...     error_code="STORE_INSERT_ERROR",
    ...     details={"owner": "User:42"}
    ... )
"""

from typing import Any, Dict, Optional


class ChainLogError(Exception):
    """
    Base exception class for all chainlog errors.

    Attributes:
        message (str): Human-readable error description
        error_code (str): Machine-readable error identifier, defaults to
            the class name
        details (Dict[str, Any]): Additional contextual information

    Example:
        >>> raise ChainLogError(
        ...     "Owner reference is incomplete",
        ...     error_code="OWNER_REF_INCOMPLETE",
        ...     details={"owner_type": "User", "owner_id": None}
        ... )
    """

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self.__class__.__name__
        self.details = details or {}


class ConfigurationError(ChainLogError):
    """
    Raised when configuration validation or setup fails.

    Common scenarios:
        - Unreadable or malformed retention policy files
        - Unsupported store URLs
        - Invalid per-host logging defaults

    Example:
        >>> raise ConfigurationError(
        ...     "Retention policy file not found",
        ...     error_code="POLICY_FILE_MISSING",
        ...     details={"path": "retention.yaml"}
        ... )
    """

    pass


class ValidationError(ChainLogError):
    """Raised when an owner, level or metadata payload is malformed"""

    pass


class StoreError(ChainLogError):
    """
    Raised when a log store operation fails.

    Wraps the underlying driver exception (available as ``__cause__``) and
    records the failing operation in ``details["operation"]``. The library
    never retries a failed store operation; callers decide whether to.

    Example:
        >>> raise StoreError(
        ...     "Batch insert failed",
        ...     error_code="STORE_INSERT_BATCH_ERROR",
        ...     details={"operation": "insert_batch", "size": 6}
        ... )
    """

    pass
