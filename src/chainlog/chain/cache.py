"""
Per-owner correlation chain cache.

Entries emitted by one owner in quick succession share a chain id unless
the caller supplies one. The cache remembers the last chain used by each
owner for the lifetime of the process. It is not persisted: after a
restart the next implicit log call simply mints a new chain.

Resolution rules (``ChainCache.resolve``):
    1. A non-empty explicit chain is cached for the owner and returned.
    2. Otherwise the cached chain is returned unchanged.
    3. Otherwise a new random chain id is minted, cached and returned.

The check-then-act sequence runs under a lock scoped to the owner, so two
concurrent first calls for the same owner cannot mint two different first
chains. Calls for different owners never wait on each other; a global
guard is only held while looking up or creating an owner's lock.

Example:
    >>> cache = ChainCache()
    >>> owner = OwnerRef("User", 1)
    >>> first = cache.resolve(owner)
    >>> cache.resolve(owner) == first
    True
    >>> cache.resolve(owner, "checkout-7")
    'checkout-7'
    >>> cache.resolve(owner)
    'checkout-7'
"""

import threading
import uuid
from typing import Callable, Dict, Optional

from chainlog.core.exceptions.custom_exceptions import ValidationError
from chainlog.core.logging.logger import get_logger
from chainlog.models.log_entry import OwnerRef

logger = get_logger(__name__)


def new_chain_id() -> str:
    """Mint a random, collision-resistant chain id."""
    return str(uuid.uuid4())


def normalize_chain(chain: Optional[str]) -> Optional[str]:
    """Return the chain stripped of whitespace, or None when blank."""
    if chain is None:
        return None
    text = str(chain).strip()
    return text or None


class ChainCache:
    """
    Thread-safe mapping of owner to last-used chain id.

    Args:
        id_factory: Callable minting new chain ids (defaults to UUID4)
    """

    def __init__(self, id_factory: Callable[[], str] = new_chain_id):
        self._id_factory = id_factory
        self._chains: Dict[OwnerRef, str] = {}
        self._locks: Dict[OwnerRef, threading.Lock] = {}
        self._guard = threading.Lock()

    def lock_for(self, owner: OwnerRef) -> threading.Lock:
        """Lock serializing chain resolution for ``owner``."""
        with self._guard:
            lock = self._locks.get(owner)
            if lock is None:
                lock = threading.Lock()
                self._locks[owner] = lock
            return lock

    def resolve(self, owner: OwnerRef, explicit_chain: Optional[str] = None) -> str:
        """
        Resolve the chain for the next entry of ``owner``.

        Blank explicit chains are ignored and fall back to the cached or a
        freshly minted chain; they are never cached.
        """
        explicit = normalize_chain(explicit_chain)
        with self.lock_for(owner):
            if explicit is not None:
                self._chains[owner] = explicit
                return explicit
            cached = self._chains.get(owner)
            if cached is not None:
                return cached
            minted = self._id_factory()
            self._chains[owner] = minted
            logger.debug("Minted log chain", owner=owner.key, log_chain=minted)
            return minted

    def set(self, owner: OwnerRef, chain: str) -> None:
        """Make ``chain`` the cached chain of ``owner``."""
        value = normalize_chain(chain)
        if value is None:
            raise ValidationError(
                "Chain id must be a non-empty string",
                error_code="INVALID_LOG_CHAIN",
                details={"owner": owner.key},
            )
        with self.lock_for(owner):
            self._chains[owner] = value

    def _existing_lock(self, owner: OwnerRef) -> Optional[threading.Lock]:
        with self._guard:
            return self._locks.get(owner)

    def peek(self, owner: OwnerRef) -> Optional[str]:
        """Cached chain of ``owner`` without minting one."""
        lock = self._existing_lock(owner)
        if lock is None:
            return None
        with lock:
            return self._chains.get(owner)

    def forget(self, owner: OwnerRef) -> None:
        """Drop the cached chain so the next implicit call mints a new one."""
        lock = self._existing_lock(owner)
        if lock is None:
            return
        with lock:
            self._chains.pop(owner, None)

    def clear(self) -> None:
        """
        Forget every cached chain.

        Owner locks are kept: a thread may still hold one, and replacing it
        would let two threads mint competing chains for the same owner.
        """
        with self._guard:
            locks = list(self._locks.items())
        for owner, lock in locks:
            with lock:
                self._chains.pop(owner, None)

    def __contains__(self, owner: object) -> bool:
        return owner in self._chains

    def __len__(self) -> int:
        return len(self._chains)


_default_cache: Optional[ChainCache] = None
_default_cache_guard = threading.Lock()


def default_chain_cache() -> ChainCache:
    """Process-wide cache for hosts that do not inject their own."""
    global _default_cache
    with _default_cache_guard:
        if _default_cache is None:
            _default_cache = ChainCache()
        return _default_cache
