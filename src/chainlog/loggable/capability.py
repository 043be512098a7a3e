"""
Logging capability bound to one owner entity.

An EntityLogger is what a host entity holds to emit log entries. It is
bound to the entity's stable OwnerRef and composes three collaborators:

    - ChainCache: resolves the correlation chain of each entry
    - LogStore: persists entries
    - RetentionManager: bounds stored volume on cleanup

Operations:
    log(message, ...)        one entry, chain resolved through the cache
    log_batch(entries)       several entries in one store call
    log_block(label, fn)     start/completed/failed entries around fn
    block(label)             context-manager form of log_block
    cleanup(...)             retention scoped to this owner
    logs                     LogQuery scoped to this owner

Metadata layout of every entry:
    log_level, visible_to, log_chain    always present
    status, category, data              when given
    any extra caller metadata keys      merged at top level

Example:
    >>> user_logger = EntityLogger(user, store, ChainCache())
    >>> user_logger.log("Signed in", category="auth", data={"ip": "10.0.0.7"})
    >>> user_logger.log_batch([
    ...     {"message": "Step 1", "status": "success"},
    ...     {"message": "Step 2", "status": "success"},
    ... ])
    >>> user_logger.log_block("checkout", lambda block: block.log("charged"))
"""

from contextlib import contextmanager
from typing import (
    Any,
    Callable,
    Dict,
    Iterable,
    Iterator,
    List,
    Mapping,
    Optional,
    Tuple,
    TypeVar,
    Union,
)

from pydantic import BaseModel, ConfigDict, Field, field_validator

from chainlog.chain.cache import ChainCache, normalize_chain
from chainlog.core.config.settings import settings
from chainlog.core.exceptions.custom_exceptions import ChainLogError, ValidationError
from chainlog.core.logging.logger import bind_chain, get_logger
from chainlog.models.log_entry import LogEntry, LogLevel, NewLogEntry, OwnerRef
from chainlog.models.metadata import MetadataTree
from chainlog.query.helpers import LogQuery
from chainlog.retention.manager import RetentionManager
from chainlog.retention.policy import RetentionPolicy
from chainlog.storage.base import LogStore

logger = get_logger(__name__)

T = TypeVar("T")

ENTRY_OPTIONS = frozenset(
    {
        "message",
        "log_level",
        "level",
        "visible_to",
        "status",
        "category",
        "data",
        "log_chain",
        "metadata",
    }
)


class LoggableConfig(BaseModel):
    """
    Per-host logging defaults.

    Attributes:
        default_visible_to: Audience tag for entries logged without one
        default_log_level: Level for entries logged without one
        retention: Bounds used by ``cleanup`` when called without arguments

    Example:
        >>> order_config = LoggableConfig(default_visible_to="admin")
        >>> user_config = LoggableConfig(default_visible_to="user",
        ...                              default_log_level="info")
    """

    model_config = ConfigDict(frozen=True)

    default_visible_to: str = Field(
        default_factory=lambda: settings.DEFAULT_VISIBLE_TO
    )
    default_log_level: LogLevel = Field(
        default_factory=lambda: LogLevel.parse(settings.DEFAULT_LOG_LEVEL)
    )
    retention: RetentionPolicy = Field(default_factory=RetentionPolicy.from_settings)

    @field_validator("default_log_level", mode="before")
    @classmethod
    def validate_default_log_level(cls, v):
        try:
            return LogLevel.parse(v)
        except ValidationError as e:
            raise ValueError(e.message) from e


class BlockHandle:
    """
    Logger for one unit of work inside ``log_block``.

    Every entry written through the handle carries the block's chain. The
    handle belongs to one logical unit of work and must not be shared
    between concurrent callers.

    Attributes:
        label (str): Block label
        chain (str): Chain id shared by all entries of the block
        entries (List[LogEntry]): Entries written for this block so far
    """

    def __init__(self, owner_logger: "EntityLogger", label: str, chain: str):
        self._owner_logger = owner_logger
        self.label = label
        self.chain = chain
        self.entries: List[LogEntry] = []
        self.diagnostics = bind_chain(chain, __name__)

    def log(
        self,
        message: str = "",
        *,
        log_level: Union[LogLevel, str, None] = None,
        visible_to: Optional[str] = None,
        status: Optional[str] = None,
        category: Optional[str] = None,
        data: Any = None,
        metadata: Optional[Mapping[str, Any]] = None,
    ) -> LogEntry:
        """Write one entry on the block chain."""
        tree = self._owner_logger._build_metadata(
            log_level=log_level,
            visible_to=visible_to,
            status=status,
            category=category,
            data=data,
            metadata=metadata,
        )
        entry = self._owner_logger._persist(message, tree, self.chain)
        self.entries.append(entry)
        return entry


class EntityLogger:
    """
    Logging capability of one owner.

    Args:
        owner: OwnerRef or any entity OwnerRef.of() understands
        store: Store persisting the entries
        chain_cache: Cache resolving chains (one per process is typical)
        config: Per-host defaults
        retention: Retention manager used by ``cleanup``
    """

    def __init__(
        self,
        owner: Any,
        store: LogStore,
        chain_cache: ChainCache,
        config: Optional[LoggableConfig] = None,
        retention: Optional[RetentionManager] = None,
    ):
        self.owner = OwnerRef.of(owner)
        self.store = store
        self.config = config or LoggableConfig()
        self._chains = chain_cache
        self._retention = retention if retention is not None else RetentionManager(store)

    # -- metadata assembly -------------------------------------------------

    def _build_metadata(
        self,
        *,
        log_level: Union[LogLevel, str, None] = None,
        visible_to: Optional[str] = None,
        status: Optional[str] = None,
        category: Optional[str] = None,
        data: Any = None,
        metadata: Optional[Mapping[str, Any]] = None,
    ) -> MetadataTree:
        if metadata is not None and not isinstance(metadata, Mapping):
            raise ValidationError(
                "metadata must be a mapping",
                error_code="METADATA_NOT_MAPPING",
                details={"type": type(metadata).__name__},
            )
        extra: Dict[str, Any] = {str(k): v for k, v in (metadata or {}).items()}
        # the resolved chain is injected later
        extra.pop("log_chain", None)

        level = log_level if log_level is not None else extra.pop("log_level", None)
        extra.pop("log_level", None)
        audience = visible_to if visible_to is not None else extra.pop("visible_to", None)
        extra.pop("visible_to", None)

        fields = dict(extra)
        fields["log_level"] = (
            LogLevel.parse(level) if level is not None else self.config.default_log_level
        ).value
        fields["visible_to"] = audience if audience is not None else self.config.default_visible_to
        for name, value in (("status", status), ("category", category), ("data", data)):
            if value is not None:
                fields[name] = value
        return MetadataTree.from_value(fields)

    @staticmethod
    def _explicit_chain(
        log_chain: Optional[str], metadata: Optional[Mapping[str, Any]]
    ) -> Optional[str]:
        if log_chain is None and isinstance(metadata, Mapping):
            log_chain = metadata.get("log_chain")
        return normalize_chain(log_chain)

    def _persist(self, message: Any, tree: MetadataTree, chain: str) -> LogEntry:
        draft = NewLogEntry(
            owner=self.owner,
            message="" if message is None else str(message),
            metadata=tree.merged({"log_chain": chain}),
        )
        entry = self.store.insert(draft)
        logger.debug(
            "Log entry persisted",
            owner=self.owner.key,
            entry_id=entry.id,
            log_chain=chain,
        )
        return entry

    # -- write operations --------------------------------------------------

    def log(
        self,
        message: str = "",
        *,
        log_level: Union[LogLevel, str, None] = None,
        visible_to: Optional[str] = None,
        status: Optional[str] = None,
        category: Optional[str] = None,
        data: Any = None,
        log_chain: Optional[str] = None,
        metadata: Optional[Mapping[str, Any]] = None,
    ) -> LogEntry:
        """
        Persist one entry for this owner.

        The chain is resolved through the chain cache: an explicit
        ``log_chain`` (or ``metadata["log_chain"]``) becomes the cached
        chain, otherwise the cached chain is reused or a new one minted.
        Blank chains are ignored.

        Raises:
            ValidationError: On an unknown level or unsupported metadata
            StoreError: If the store fails; nothing is retried
        """
        tree = self._build_metadata(
            log_level=log_level,
            visible_to=visible_to,
            status=status,
            category=category,
            data=data,
            metadata=metadata,
        )
        chain = self._chains.resolve(self.owner, self._explicit_chain(log_chain, metadata))
        return self._persist(message, tree, chain)

    def _prepare_batch_item(
        self, item: Mapping[str, Any]
    ) -> Tuple[Optional[str], str, MetadataTree]:
        if not isinstance(item, Mapping):
            raise ValidationError(
                "Batch entries must be mappings",
                error_code="BATCH_ENTRY_NOT_MAPPING",
                details={"type": type(item).__name__},
            )
        unknown = set(item) - ENTRY_OPTIONS
        if unknown:
            raise ValidationError(
                f"Unknown batch entry keys: {sorted(unknown)}",
                error_code="BATCH_ENTRY_UNKNOWN_KEYS",
                details={"keys": sorted(unknown)},
            )
        metadata = item.get("metadata")
        level = item.get("log_level", item.get("level"))
        tree = self._build_metadata(
            log_level=level,
            visible_to=item.get("visible_to"),
            status=item.get("status"),
            category=item.get("category"),
            data=item.get("data"),
            metadata=metadata,
        )
        message = item.get("message")
        explicit = self._explicit_chain(item.get("log_chain"), metadata)
        return explicit, "" if message is None else str(message), tree

    def log_batch(self, entries: Iterable[Mapping[str, Any]]) -> List[LogEntry]:
        """
        Persist several entries with one store call.

        Each entry is a mapping with the keyword arguments of ``log`` plus
        ``message`` (``level`` is accepted for ``log_level``). The chain is
        resolved once for the first entry; a later entry with an explicit
        chain switches the active chain for itself and every following
        entry. After a successful insert the cache holds the last chain
        used, so work continuing after the batch stays on its tail chain.

        Returns:
            List[LogEntry]: Persisted entries in input order

        Raises:
            ValidationError: If any entry is malformed (nothing is written)
            StoreError: If the store fails (see the store's atomicity notes)
        """
        prepared = [self._prepare_batch_item(item) for item in entries]
        if not prepared:
            return []

        active = self._chains.resolve(self.owner, prepared[0][0])
        drafts = []
        for index, (explicit, message, tree) in enumerate(prepared):
            if index and explicit is not None:
                active = explicit
            drafts.append(
                NewLogEntry(
                    owner=self.owner,
                    message=message,
                    metadata=tree.merged({"log_chain": active}),
                )
            )

        stored = self.store.insert_batch(drafts)
        self._chains.set(self.owner, active)
        logger.debug(
            "Log batch persisted",
            owner=self.owner.key,
            size=len(stored),
            log_chain=active,
        )
        return stored

    @contextmanager
    def block(self, label: str, **options: Any) -> Iterator[BlockHandle]:
        """
        Context manager logging the start, completion or failure of a block.

        ``options`` take the keyword arguments of ``log`` and apply to the
        lifecycle entries; ``status`` is always set by the lifecycle
        (started / completed / failed). The body's exception is recorded
        in an error entry and re-raised unchanged.
        """
        explicit = normalize_chain(options.pop("log_chain", None))
        options.pop("status", None)
        block_metadata = dict(options.pop("metadata", None) or {})
        block_metadata["block"] = label

        chain = self._chains.resolve(self.owner, explicit)
        handle = BlockHandle(self, label, chain)
        handle.log(f"{label} started", status="started", metadata=block_metadata, **options)
        handle.diagnostics.debug("Block started", label=label, owner=self.owner.key)

        try:
            yield handle
        except Exception as exc:
            failure = {
                "error_class": type(exc).__name__,
                "error_message": str(exc),
            }
            try:
                handle.log(
                    f"{label} failed: {exc}",
                    log_level=LogLevel.ERROR,
                    status="failed",
                    visible_to=options.get("visible_to"),
                    category=options.get("category"),
                    data=failure,
                    metadata=block_metadata,
                )
            except ChainLogError as log_error:
                handle.diagnostics.error(
                    "Could not record block failure",
                    label=label,
                    owner=self.owner.key,
                    error=str(log_error),
                    **failure,
                )
            raise

        # completion entry is best-effort, the body already succeeded
        try:
            handle.log(
                f"{label} completed", status="completed", metadata=block_metadata, **options
            )
        except ChainLogError as log_error:
            handle.diagnostics.error(
                "Could not record block completion",
                label=label,
                owner=self.owner.key,
                error=str(log_error),
            )
            return
        handle.diagnostics.debug("Block completed", label=label, owner=self.owner.key)

    def log_block(self, label: str, fn: Callable[[BlockHandle], T], **options: Any) -> T:
        """
        Run ``fn`` inside a logged block and return its result.

        Writes "<label> started", calls ``fn(handle)``, then writes
        "<label> completed" and returns the result. If ``fn`` raises, an
        error-level "<label> failed: ..." entry is written and the original
        exception propagates; block logging never swallows it.

        Entries for the block are best-effort once ``fn`` has run: if the
        completed or failed entry cannot be written, the store error is
        reported through diagnostics and the outcome of ``fn`` (its result
        or its exception) is what the caller sees.
        """
        with self.block(label, **options) as handle:
            return fn(handle)

    # -- chain state -------------------------------------------------------

    @property
    def current_chain(self) -> Optional[str]:
        """Chain the next implicit ``log`` call would reuse, if any."""
        return self._chains.peek(self.owner)

    def reset_chain(self) -> None:
        """Forget the cached chain; the next implicit call mints a new one."""
        self._chains.forget(self.owner)

    # -- reads and retention -----------------------------------------------

    @property
    def logs(self) -> LogQuery:
        return LogQuery(self.store, owner=self.owner)

    def query(self) -> LogQuery:
        return self.logs

    def cleanup(
        self,
        older_than: Any = None,
        keep_recent: Optional[int] = None,
    ) -> int:
        """
        Delete this owner's old entries, keeping the most recent ones.

        Args:
            older_than: timedelta; defaults to the configured retention age
            keep_recent: entries always kept; defaults to the configured floor

        Returns:
            int: Number of deleted entries (0 when nothing matched)
        """
        policy = self.config.retention
        return self._retention.cleanup(
            self.owner,
            older_than if older_than is not None else policy.older_than,
            keep_recent if keep_recent is not None else policy.keep_recent,
        )

    def __repr__(self) -> str:
        return f"EntityLogger({self.owner.key})"
