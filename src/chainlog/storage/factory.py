"""
Store registry and URL-based construction.

``memory://`` selects the in-process store; any other URL is handed to
SQLAlchemy. Additional schemes can be registered by hosts that bring their
own LogStore implementation.

Example:
    >>> store = StoreFactory.create("sqlite:///logs.db")
    >>> StoreFactory.register("audit", AuditLogStore)
    >>> store = StoreFactory.create("audit://primary")
"""

from typing import Any, Callable, Dict, List, Optional

from chainlog.core.config.settings import settings
from chainlog.core.exceptions.custom_exceptions import ConfigurationError
from chainlog.storage.base import LogStore
from chainlog.storage.memory_store import InMemoryLogStore
from chainlog.storage.sql_store import SQLAlchemyLogStore

StoreBuilder = Callable[..., LogStore]


def _build_memory_store(url: str, **options: Any) -> LogStore:
    return InMemoryLogStore(**options)


def _build_sql_store(url: str, **options: Any) -> LogStore:
    return SQLAlchemyLogStore(url=url, **options)


class StoreFactory:
    """
    Registry mapping URL schemes to store builders.

    Builders receive the full URL plus keyword options. Registration is
    expected at import time, before concurrent use.
    """

    _builders: Dict[str, StoreBuilder] = {"memory": _build_memory_store}

    @classmethod
    def register(cls, scheme: str, builder: StoreBuilder) -> None:
        """Register ``builder`` for URLs starting with ``scheme://``."""
        cls._builders[scheme] = builder

    @classmethod
    def list_schemes(cls) -> List[str]:
        return sorted(cls._builders)

    @classmethod
    def create(cls, url: Optional[str] = None, **options: Any) -> LogStore:
        """
        Create a store for ``url`` (defaults to settings.DATABASE_URL).

        Raises:
            ConfigurationError: If the URL is empty or malformed
        """
        url = url or settings.DATABASE_URL
        if not url or "://" not in url:
            raise ConfigurationError(
                f"Invalid store URL: {url!r}",
                error_code="STORE_URL_INVALID",
                details={"url": url},
            )
        scheme = url.split("://", 1)[0]
        builder = cls._builders.get(scheme, _build_sql_store)
        return builder(url, **options)


def create_store(url: Optional[str] = None, **options: Any) -> LogStore:
    """Shortcut for StoreFactory.create."""
    return StoreFactory.create(url, **options)
