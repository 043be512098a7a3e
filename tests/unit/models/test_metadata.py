from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from uuid import UUID

import pytest

from chainlog.core.exceptions.custom_exceptions import ValidationError
from chainlog.models.metadata import (
    MetadataTree,
    NodeKind,
    extract,
    has_all_keys,
    has_key,
)


class Color(Enum):
    RED = "red"


def test_from_value_builds_tagged_tree():
    tree = MetadataTree.from_value(
        {"a": 1, "b": [True, None, "x"], "c": {"d": 2.5}}
    )
    assert tree.kind is NodeKind.OBJECT
    assert tree.get("a").kind is NodeKind.NUMBER
    assert tree.get("b").kind is NodeKind.ARRAY
    assert [child.kind for child in tree.get("b").children()] == [
        NodeKind.BOOLEAN,
        NodeKind.NULL,
        NodeKind.STRING,
    ]
    assert tree.to_value() == {"a": 1, "b": [True, None, "x"], "c": {"d": 2.5}}


def test_from_value_converts_rich_scalars():
    moment = datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)
    uid = UUID("12345678-1234-5678-1234-567812345678")
    tree = MetadataTree.from_value(
        {
            "when": moment,
            "id": uid,
            "color": Color.RED,
            "whole": Decimal("3"),
            "part": Decimal("1.5"),
            "key_not_str": {1: "one"},
            "tuple": (1, 2),
        }
    )
    value = tree.to_value()
    assert value["when"] == moment.isoformat()
    assert value["id"] == str(uid)
    assert value["color"] == "red"
    assert value["whole"] == 3
    assert value["part"] == 1.5
    assert value["key_not_str"] == {"1": "one"}
    assert value["tuple"] == [1, 2]


def test_bool_is_not_a_number():
    assert MetadataTree.from_value(True).kind is NodeKind.BOOLEAN


def test_unsupported_type_is_rejected():
    with pytest.raises(ValidationError) as exc_info:
        MetadataTree.from_value({"obj": object()})
    assert exc_info.value.error_code == "METADATA_UNSUPPORTED_TYPE"


def test_cycles_are_rejected():
    cyclic = {"a": {}}
    cyclic["a"]["back"] = cyclic
    with pytest.raises(ValidationError) as exc_info:
        MetadataTree.from_value(cyclic)
    assert exc_info.value.error_code == "METADATA_CYCLE"


def test_shared_subtrees_are_not_cycles():
    shared = {"x": 1}
    tree = MetadataTree.from_value({"a": shared, "b": shared})
    assert tree.to_value() == {"a": {"x": 1}, "b": {"x": 1}}


def test_to_value_returns_fresh_data():
    tree = MetadataTree.from_value({"data": {"items": [1]}})
    plain = tree.to_value()
    plain["data"]["items"].append(2)
    assert tree.to_value() == {"data": {"items": [1]}}


def test_is_empty():
    assert MetadataTree.null().is_empty()
    assert MetadataTree.empty_object().is_empty()
    assert MetadataTree.from_value("").is_empty()
    assert MetadataTree.from_value([]).is_empty()
    assert not MetadataTree.from_value(0).is_empty()
    assert not MetadataTree.from_value(False).is_empty()


def test_merged_overrides_top_level_only():
    tree = MetadataTree.from_value({"log_level": "info", "data": {"a": 1}})
    merged = tree.merged({"log_chain": "c1", "log_level": "error"})
    assert merged.to_value() == {
        "log_level": "error",
        "data": {"a": 1},
        "log_chain": "c1",
    }
    assert tree.to_value() == {"log_level": "info", "data": {"a": 1}}


def test_merged_requires_object():
    with pytest.raises(ValidationError):
        MetadataTree.from_value([1]).merged({"a": 1})


def test_equality_and_hash():
    a = MetadataTree.from_value({"a": [1, 2]})
    b = MetadataTree.from_value({"a": [1, 2]})
    assert a == b
    assert hash(a) == hash(b)
    assert a != MetadataTree.from_value({"a": [2, 1]})


def test_has_key_finds_key_three_levels_deep():
    tree = MetadataTree.from_value(
        {"data": {"user": {"contact": {"email": "a@example.com"}}}}
    )
    assert has_key(tree, "email")
    assert has_key(tree, "contact")
    assert not has_key(tree, "phone")


def test_has_key_searches_inside_arrays():
    tree = MetadataTree.from_value({"data": {"items": [{"sku": "A1"}, 3]}})
    assert has_key(tree, "sku")


def test_has_key_ignores_string_values():
    tree = MetadataTree.from_value({"note": "email"})
    assert not has_key(tree, "email")


def test_has_all_keys_does_not_require_siblings():
    tree = MetadataTree.from_value(
        {"data": {"channels": {"email": True}, "fallback": {"sms": True}}}
    )
    assert has_all_keys(tree, ["email", "sms"])
    assert not has_all_keys(tree, ["email", "push"])
    assert has_all_keys(tree, [])


def test_has_key_on_scalars():
    assert not has_key(MetadataTree.from_value(5), "a")
    assert not has_key(MetadataTree.null(), "a")


def test_extract_top_level_field():
    tree = MetadataTree.from_value({"status": "ok", "data": {"status": "nested"}})
    assert extract(tree, "status") == "ok"
    assert extract(tree, "missing") is None
    assert extract(MetadataTree.from_value([1]), "status") is None


def test_protocol_methods():
    tree = MetadataTree.from_value({"a": 1, "b": 2})
    assert "a" in tree
    assert "z" not in tree
    assert list(tree) == ["a", "b"]
    assert len(tree) == 2
    assert tree.keys() == ["a", "b"]
