"""
Process-level entry point wiring store, chain cache and retention.

Hosts usually build one ChainLog at startup and hand out EntityLoggers
from it, so every logger shares the same store and chain cache.

Example:
    >>> chainlog = ChainLog.from_settings()
    >>> user_logger = chainlog.for_owner(user)
    >>> user_logger.log("Signed in")
    >>> chainlog.owners_with_recent_logs(timedelta(hours=1))
"""

from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional, Union

from chainlog.chain.cache import ChainCache
from chainlog.core.config.settings import Settings, settings
from chainlog.core.logging.logger import get_logger
from chainlog.loggable.capability import EntityLogger, LoggableConfig
from chainlog.models.log_entry import OwnerRef
from chainlog.query.helpers import LogQuery
from chainlog.retention.manager import RetentionManager
from chainlog.retention.policy import (
    RetentionPolicy,
    RetentionPolicySet,
    load_policies,
)
from chainlog.storage.base import LogFilter, LogStore, utcnow
from chainlog.storage.factory import create_store

logger = get_logger(__name__)


class ChainLog:
    """
    Shared logging service.

    Args:
        store: Store persisting entries (defaults to one built from settings)
        chain_cache: Chain cache shared by every logger handed out
        retention: Retention manager (defaults to one on ``store``)
        clock: Callable returning the current time
    """

    def __init__(
        self,
        store: Optional[LogStore] = None,
        chain_cache: Optional[ChainCache] = None,
        retention: Optional[RetentionManager] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        # stores and caches define __len__, so an empty one is falsy
        self.store = store if store is not None else create_store()
        self.chains = chain_cache if chain_cache is not None else ChainCache()
        self.retention = (
            retention
            if retention is not None
            else RetentionManager(self.store, clock=clock)
        )
        self._clock = clock

    @classmethod
    def from_settings(cls, app_settings: Optional[Settings] = None) -> "ChainLog":
        """Build a service from application settings."""
        app_settings = app_settings or settings
        url = app_settings.DATABASE_URL
        if url.startswith("memory://"):
            store = create_store(url)
        else:
            store = create_store(
                url,
                table_name=app_settings.LOG_TABLE_NAME,
                echo=app_settings.DATABASE_ECHO,
            )
        logger.info("ChainLog service created", store=type(store).__name__)
        return cls(store=store)

    def for_owner(
        self, entity: Any, config: Optional[LoggableConfig] = None
    ) -> EntityLogger:
        """EntityLogger for ``entity`` sharing this service's collaborators."""
        return EntityLogger(
            entity,
            self.store,
            self.chains,
            config=config,
            retention=self.retention,
        )

    def query(self) -> LogQuery:
        """Query across every owner."""
        return LogQuery(self.store)

    def owners_with_recent_logs(
        self,
        since: Union[timedelta, datetime],
        owner_type: Optional[str] = None,
    ) -> List[OwnerRef]:
        """
        Owners that logged at or after ``since``.

        Args:
            since: Absolute moment, or a lookback window from now
            owner_type: Restrict to one owner type
        """
        start = self._clock() - since if isinstance(since, timedelta) else since
        return self.store.distinct_owners(
            LogFilter(owner_type=owner_type, created_from=start)
        )

    def cleanup_all(
        self,
        older_than: Optional[timedelta] = None,
        keep_recent: Optional[int] = None,
        policies: Union[RetentionPolicySet, RetentionPolicy, None] = None,
        owner_type: Optional[str] = None,
    ) -> Dict[OwnerRef, int]:
        """
        Apply retention to every owner with entries.

        Explicit ``older_than``/``keep_recent`` override the matching
        policy bound for every owner. ``policies`` defaults to the file
        named by RETENTION_POLICY_FILE, or to the settings bounds when no
        file is configured. A single RetentionPolicy applies to every
        owner type.
        """
        if policies is None:
            if settings.RETENTION_POLICY_FILE:
                policies = load_policies(settings.RETENTION_POLICY_FILE)
            else:
                policies = RetentionPolicySet()
        elif isinstance(policies, RetentionPolicy):
            policies = RetentionPolicySet(default=policies)
        if older_than is not None or keep_recent is not None:
            policies = policies.overridden(older_than, keep_recent)
        return self.retention.cleanup_all(policies, owner_type=owner_type)

    def close(self) -> None:
        self.store.close()

    def __enter__(self) -> "ChainLog":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
