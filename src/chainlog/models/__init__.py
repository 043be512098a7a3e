"""
Record model and metadata payloads.

Example:
    >>> from chainlog.models import MetadataTree, OwnerRef, has_key
    >>> tree = MetadataTree.from_value({"data": {"contact": {"email": "a@b"}}})
    >>> has_key(tree, "email")
    True
"""

from chainlog.models.log_entry import LogEntry, LogLevel, NewLogEntry, OwnerRef
from chainlog.models.metadata import (
    CONVENTIONAL_FIELDS,
    MetadataTree,
    NodeKind,
    extract,
    has_all_keys,
    has_key,
)

__all__ = [
    "CONVENTIONAL_FIELDS",
    "LogEntry",
    "LogLevel",
    "MetadataTree",
    "NewLogEntry",
    "NodeKind",
    "OwnerRef",
    "extract",
    "has_all_keys",
    "has_key",
]
