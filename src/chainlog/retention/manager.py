"""
Age and count bounded retention for log entries.

Cleanup deletes an owner's entries that are older than a threshold while
always keeping a floor of recent entries:

    1. Rank the owner's entries newest first (created_at, then higher id).
    2. The first ``keep_recent`` ranks are protected regardless of age.
    3. Every other entry created strictly before ``now - older_than`` is
       deleted with a single delete_where call.

Deleting nothing is a success with a count of 0, and running the same
cleanup again without new writes deletes nothing more.

Example:
    >>> manager = RetentionManager(store)
    >>> manager.cleanup(OwnerRef("User", 1), timedelta(days=7), keep_recent=10)
    10
"""

from datetime import datetime, timedelta
from typing import Callable, Dict, Optional

from chainlog.core.exceptions.custom_exceptions import ValidationError
from chainlog.core.logging.logger import get_logger
from chainlog.models.log_entry import OwnerRef
from chainlog.retention.policy import RetentionPolicy, RetentionPolicySet
from chainlog.storage.base import LogFilter, LogStore, utcnow

logger = get_logger(__name__)


class RetentionManager:
    """
    Applies retention bounds through the LogStore contract.

    Args:
        store: Store holding the entries
        clock: Callable returning the current time (defaults to UTC now)
    """

    def __init__(self, store: LogStore, clock: Callable[[], datetime] = utcnow):
        self._store = store
        self._clock = clock

    def cleanup(
        self, owner: OwnerRef, older_than: timedelta, keep_recent: int
    ) -> int:
        """
        Delete old entries of ``owner`` beyond the ``keep_recent`` floor.

        Args:
            owner: Owner whose entries are cleaned up
            older_than: Minimum age of a deletable entry
            keep_recent: Number of most recent entries always kept

        Returns:
            int: Number of deleted entries

        Raises:
            ValidationError: On negative bounds
            StoreError: If the store fails
        """
        if older_than < timedelta(0):
            raise ValidationError(
                "older_than must not be negative",
                error_code="INVALID_RETENTION_AGE",
                details={"older_than": str(older_than)},
            )
        if keep_recent < 0:
            raise ValidationError(
                "keep_recent must not be negative",
                error_code="INVALID_RETENTION_COUNT",
                details={"keep_recent": keep_recent},
            )

        cutoff = self._clock() - older_than
        protected = frozenset()
        if keep_recent:
            newest = self._store.query(
                LogFilter(owner=owner, order="desc", limit=keep_recent)
            )
            protected = frozenset(entry.id for entry in newest)

        deleted = self._store.delete_where(
            owner, LogFilter(created_before=cutoff, exclude_ids=protected)
        )
        logger.info(
            "Retention cleanup finished",
            owner=owner.key,
            older_than=str(older_than),
            keep_recent=keep_recent,
            deleted=deleted,
        )
        return deleted

    def apply_policy(self, owner: OwnerRef, policy: RetentionPolicy) -> int:
        return self.cleanup(owner, policy.older_than, policy.keep_recent)

    def cleanup_all(
        self,
        policies: RetentionPolicySet,
        owner_type: Optional[str] = None,
    ) -> Dict[OwnerRef, int]:
        """
        Clean up every owner with entries, using the policy of its type.

        Args:
            policies: Per-type policies with a default
            owner_type: Restrict the sweep to one owner type

        Returns:
            Dict[OwnerRef, int]: Deleted count per owner (zeros included)
        """
        results: Dict[OwnerRef, int] = {}
        for owner in self._store.distinct_owners(LogFilter(owner_type=owner_type)):
            results[owner] = self.apply_policy(owner, policies.for_type(owner.owner_type))
        logger.info(
            "Retention sweep finished",
            owners=len(results),
            deleted=sum(results.values()),
        )
        return results
