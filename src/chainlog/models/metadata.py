"""
Nested metadata payloads and the deep-key matcher.

Every log entry carries a free-form metadata payload. Instead of passing
raw dictionaries around, payloads are converted into a MetadataTree: a
tagged value that is exactly one of null, boolean, number, string, array or
object. Conversion always builds a fresh tree, so entries never alias the
caller's data and a tree can never contain a cycle.

Conventional top-level fields:
    log_level: debug/info/warn/error
    visible_to: free-form audience tag
    status: free-form status string
    category: free-form category string
    log_chain: correlation id of the entry
    data: caller payload, arbitrarily nested

Deep-key matching:
    has_key(tree, "email") is true when "email" appears as an object key
    anywhere in the tree, including inside objects held in arrays.
    has_all_keys(tree, ["email", "sms"]) requires each key to exist
    somewhere in the tree; the keys do not have to be siblings.

Example:
    >>> tree = MetadataTree.from_value(
    ...     {"data": {"settings": {"notifications": {"email": True}}}}
    ... )
    >>> has_key(tree, "email")
    True
    >>> extract(tree, "data")
    {'settings': {'notifications': {'email': True}}}
"""

from dataclasses import dataclass
from datetime import date, datetime, time
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Tuple
from uuid import UUID

from chainlog.core.exceptions.custom_exceptions import ValidationError

CONVENTIONAL_FIELDS = (
    "log_level",
    "visible_to",
    "status",
    "category",
    "log_chain",
    "data",
)


class NodeKind(Enum):
    """Variant tag of a MetadataTree node."""

    NULL = "null"
    BOOLEAN = "boolean"
    NUMBER = "number"
    STRING = "string"
    ARRAY = "array"
    OBJECT = "object"


@dataclass(frozen=True, eq=False)
class MetadataTree:
    """
    Immutable tagged value used for entry metadata.

    The ``value`` slot holds a Python scalar for scalar kinds, a tuple of
    child trees for ARRAY, and a dict of str -> child tree for OBJECT. Use
    ``from_value`` to build trees and ``to_value`` to get plain data back;
    the constructor is not meant to be called directly.

    Attributes:
        kind (NodeKind): Variant tag
        value (Any): Payload for the variant
    """

    kind: NodeKind
    value: Any = None

    @classmethod
    def null(cls) -> "MetadataTree":
        return cls(NodeKind.NULL, None)

    @classmethod
    def empty_object(cls) -> "MetadataTree":
        return cls(NodeKind.OBJECT, {})

    @classmethod
    def from_value(cls, value: Any) -> "MetadataTree":
        """
        Build a tree from plain Python data.

        Accepted inputs:
            - None, bool, int, float, Decimal, str
            - Mapping (keys are converted with str())
            - list / tuple
            - datetime / date / time (ISO-8601 string)
            - Enum members (their value), UUID (its string form)
            - an existing MetadataTree (returned as is, trees are immutable)

        Raises:
            ValidationError: On unsupported types or self-containing
                containers
        """
        return _build(value, ())

    # -- accessors -----------------------------------------------------

    @property
    def is_object(self) -> bool:
        return self.kind is NodeKind.OBJECT

    @property
    def is_array(self) -> bool:
        return self.kind is NodeKind.ARRAY

    def is_empty(self) -> bool:
        """Null, empty string, empty array and empty object count as empty."""
        if self.kind is NodeKind.NULL:
            return True
        if self.kind in (NodeKind.STRING, NodeKind.ARRAY, NodeKind.OBJECT):
            return len(self.value) == 0
        return False

    def get(self, key: str) -> Optional["MetadataTree"]:
        """Child tree under ``key`` for objects, None otherwise."""
        if self.kind is not NodeKind.OBJECT:
            return None
        return self.value.get(key)

    def keys(self) -> List[str]:
        if self.kind is not NodeKind.OBJECT:
            return []
        return list(self.value.keys())

    def children(self) -> Iterable["MetadataTree"]:
        if self.kind is NodeKind.OBJECT:
            return self.value.values()
        if self.kind is NodeKind.ARRAY:
            return self.value
        return ()

    def to_value(self) -> Any:
        """Return fresh, JSON-compatible plain data for this tree."""
        if self.kind is NodeKind.OBJECT:
            return {key: child.to_value() for key, child in self.value.items()}
        if self.kind is NodeKind.ARRAY:
            return [child.to_value() for child in self.value]
        return self.value

    def merged(self, overrides: Mapping[str, Any]) -> "MetadataTree":
        """
        Return a new object tree with top-level ``overrides`` applied.

        Override values are converted with ``from_value``. Only valid on
        object trees.
        """
        if self.kind is not NodeKind.OBJECT:
            raise ValidationError(
                "Only object metadata can be merged",
                error_code="METADATA_NOT_OBJECT",
                details={"kind": self.kind.value},
            )
        items = dict(self.value)
        for key, value in overrides.items():
            items[str(key)] = MetadataTree.from_value(value)
        return MetadataTree(NodeKind.OBJECT, items)

    # -- protocol --------------------------------------------------------

    def __contains__(self, key: object) -> bool:
        return self.kind is NodeKind.OBJECT and key in self.value

    def __iter__(self) -> Iterator[str]:
        return iter(self.keys())

    def __len__(self) -> int:
        if self.kind in (NodeKind.OBJECT, NodeKind.ARRAY, NodeKind.STRING):
            return len(self.value)
        return 0

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, MetadataTree):
            return NotImplemented
        return self.kind is other.kind and self.value == other.value

    def __hash__(self) -> int:
        return hash((self.kind, repr(self.to_value())))

    def __repr__(self) -> str:
        return f"MetadataTree({self.kind.value}, {self.to_value()!r})"


def _build(value: Any, stack: Tuple[int, ...]) -> MetadataTree:
    if isinstance(value, MetadataTree):
        return value
    if value is None:
        return MetadataTree(NodeKind.NULL, None)
    # bool before int: bool is an int subclass
    if isinstance(value, bool):
        return MetadataTree(NodeKind.BOOLEAN, value)
    if isinstance(value, Enum):
        return _build(value.value, stack)
    if isinstance(value, (int, float)):
        return MetadataTree(NodeKind.NUMBER, value)
    if isinstance(value, Decimal):
        number = int(value) if value == value.to_integral_value() else float(value)
        return MetadataTree(NodeKind.NUMBER, number)
    if isinstance(value, str):
        return MetadataTree(NodeKind.STRING, value)
    if isinstance(value, (datetime, date, time)):
        return MetadataTree(NodeKind.STRING, value.isoformat())
    if isinstance(value, UUID):
        return MetadataTree(NodeKind.STRING, str(value))

    if isinstance(value, (Mapping, list, tuple)):
        marker = id(value)
        if marker in stack:
            raise ValidationError(
                "Metadata contains a reference cycle",
                error_code="METADATA_CYCLE",
            )
        inner = stack + (marker,)
        if isinstance(value, Mapping):
            items: Dict[str, MetadataTree] = {
                str(key): _build(child, inner) for key, child in value.items()
            }
            return MetadataTree(NodeKind.OBJECT, items)
        return MetadataTree(
            NodeKind.ARRAY, tuple(_build(child, inner) for child in value)
        )

    raise ValidationError(
        f"Unsupported metadata value of type {type(value).__name__}",
        error_code="METADATA_UNSUPPORTED_TYPE",
        details={"type": type(value).__name__},
    )


def has_key(tree: MetadataTree, key: str) -> bool:
    """
    True if ``key`` occurs as an object key anywhere in ``tree``.

    Depth-first with early termination; arrays are searched element by
    element so objects nested inside arrays are covered.
    """
    pending = [tree]
    while pending:
        node = pending.pop()
        if node.kind is NodeKind.OBJECT:
            if key in node.value:
                return True
            pending.extend(node.value.values())
        elif node.kind is NodeKind.ARRAY:
            pending.extend(node.value)
    return False


def has_all_keys(tree: MetadataTree, keys: Iterable[str]) -> bool:
    """Each key must exist somewhere in ``tree``; they need not be siblings."""
    return all(has_key(tree, key) for key in keys)


def extract(tree: MetadataTree, field: str) -> Any:
    """Plain value of a top-level field, or None when absent."""
    child = tree.get(field)
    if child is None:
        return None
    return child.to_value()
