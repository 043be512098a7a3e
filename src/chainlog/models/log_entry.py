"""
Log entry records and owner references.

Classes:
    OwnerRef: Polymorphic (owner type, owner id) reference to an entity
    LogLevel: Entry severity enum
    NewLogEntry: Unsaved entry handed to a LogStore
    LogEntry: Persisted, immutable entry returned by a LogStore

Entries are created through EntityLogger operations or by inserting
directly into a store (test fixtures, importers). They are only destroyed
by retention cleanup or administrative bulk deletion. The owner entity may
have been deleted in the meantime; reading its entries never dereferences
the owner, so that is not an error.

Example:
    >>> owner = OwnerRef("User", 42)
    >>> draft = NewLogEntry(owner, "Signed in", MetadataTree.from_value({
    ...     "log_level": "info", "log_chain": "c1"}))
    >>> entry = store.insert(draft)
    >>> entry.log_chain
    'c1'
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional, Union

from chainlog.core.exceptions.custom_exceptions import ValidationError
from chainlog.models.metadata import MetadataTree, extract

OwnerId = Union[str, int]


class LogLevel(Enum):
    """
    Severity of a log entry.

    Values are the lowercase strings stored in metadata. ``parse`` accepts
    the enum itself, any casing, and ``warning`` as an alias of ``warn``.
    """

    DEBUG = "debug"
    INFO = "info"
    WARN = "warn"
    ERROR = "error"

    @classmethod
    def parse(cls, value: Union["LogLevel", str]) -> "LogLevel":
        if isinstance(value, LogLevel):
            return value
        if isinstance(value, str):
            normalized = value.strip().lower()
            if normalized == "warning":
                normalized = "warn"
            for level in cls:
                if level.value == normalized:
                    return level
        raise ValidationError(
            f"Unknown log level: {value!r}",
            error_code="INVALID_LOG_LEVEL",
            details={"value": repr(value), "allowed": [lvl.value for lvl in cls]},
        )


@dataclass(frozen=True)
class OwnerRef:
    """
    Stable identity of an entity that emits log entries.

    Attributes:
        owner_type (str): Type discriminator, usually the class name
        owner_id (str): Identifier within that type; ints are stored as text
    """

    owner_type: str
    owner_id: OwnerId

    def __post_init__(self) -> None:
        if not isinstance(self.owner_type, str) or not self.owner_type.strip():
            raise ValidationError(
                "Owner type is required",
                error_code="OWNER_REF_INCOMPLETE",
                details={"owner_type": self.owner_type},
            )
        if self.owner_id is None or not str(self.owner_id).strip():
            raise ValidationError(
                "Owner id is required",
                error_code="OWNER_REF_INCOMPLETE",
                details={"owner_type": self.owner_type, "owner_id": self.owner_id},
            )
        # ids are stored as text; normalize so OwnerRef("User", 1) == OwnerRef("User", "1")
        object.__setattr__(self, "owner_id", str(self.owner_id))

    @classmethod
    def of(cls, entity: Any) -> "OwnerRef":
        """
        Derive the owner reference of a host entity.

        Resolution order:
            1. an OwnerRef is returned unchanged
            2. ``entity.loggable_ref()`` if the entity defines it
            3. ``loggable_type`` (default: class name) and ``loggable_id``
               (default: the ``id`` attribute)

        Raises:
            ValidationError: If the entity has no usable identity
        """
        if isinstance(entity, OwnerRef):
            return entity
        ref_method = getattr(entity, "loggable_ref", None)
        if callable(ref_method):
            ref = ref_method()
            if not isinstance(ref, OwnerRef):
                raise ValidationError(
                    "loggable_ref() must return an OwnerRef",
                    error_code="OWNER_REF_INVALID",
                    details={"type": type(entity).__name__},
                )
            return ref
        owner_type = getattr(entity, "loggable_type", None) or type(entity).__name__
        owner_id = getattr(entity, "loggable_id", None)
        if owner_id is None:
            owner_id = getattr(entity, "id", None)
        return cls(owner_type, owner_id)

    @property
    def key(self) -> str:
        """Stable string form, also used as the stored owner id."""
        return f"{self.owner_type}:{self.owner_id}"

    def __str__(self) -> str:
        return self.key


@dataclass(frozen=True)
class NewLogEntry:
    """An entry that has not been persisted yet."""

    owner: OwnerRef
    message: str = ""
    metadata: MetadataTree = field(default_factory=MetadataTree.empty_object)


@dataclass(frozen=True)
class LogEntry:
    """
    A persisted log entry.

    Attributes:
        id (int): Store-assigned identifier, unique, breaks created_at ties
        owner (OwnerRef): Entity that emitted the entry
        message (str): Display string
        metadata (MetadataTree): Conventional fields plus caller payload
        created_at (datetime): Creation time, timezone-aware UTC
        updated_at (datetime): Last update time, timezone-aware UTC
    """

    id: int
    owner: OwnerRef
    message: str
    metadata: MetadataTree
    created_at: datetime
    updated_at: datetime

    @property
    def owner_type(self) -> str:
        return self.owner.owner_type

    @property
    def owner_id(self) -> str:
        return self.owner.owner_id

    @property
    def log_level(self) -> LogLevel:
        """Entry level; missing or unrecognized values read as info."""
        raw = extract(self.metadata, "log_level")
        if raw is None:
            return LogLevel.INFO
        try:
            return LogLevel.parse(raw)
        except ValidationError:
            return LogLevel.INFO

    @property
    def visible_to(self) -> Optional[str]:
        return extract(self.metadata, "visible_to")

    @property
    def status(self) -> Optional[str]:
        return extract(self.metadata, "status")

    @property
    def category(self) -> Optional[str]:
        return extract(self.metadata, "category")

    @property
    def log_chain(self) -> Optional[str]:
        return extract(self.metadata, "log_chain")

    @property
    def data(self) -> Any:
        return extract(self.metadata, "data")

    def to_dict(self) -> Dict[str, Any]:
        """Convert the entry to a JSON-serializable dictionary."""
        return {
            "id": self.id,
            "owner_type": self.owner.owner_type,
            "owner_id": self.owner.owner_id,
            "message": self.message,
            "metadata": self.metadata.to_value(),
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }
