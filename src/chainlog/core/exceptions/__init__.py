from chainlog.core.exceptions.custom_exceptions import (
    ChainLogError,
    ConfigurationError,
    StoreError,
    ValidationError,
)

__all__ = [
    "ChainLogError",
    "ConfigurationError",
    "StoreError",
    "ValidationError",
]
