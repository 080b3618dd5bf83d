"""Tests for wire format mapping."""

import pytest

from hulunote_outline.core.wire import (
    NodeRequest,
    parse_node,
    parse_node_list_response,
    parse_timestamp,
    parse_upsert_response,
    to_wire,
)


def test_to_wire_omits_unset_fields() -> None:
    request = NodeRequest(note_id="n", id="x", content="hi", is_delete=False)
    assert to_wire(request) == {"note-id": "n", "id": "x", "content": "hi", "is-delete": False}


def test_to_wire_create_has_no_id() -> None:
    request = NodeRequest(note_id="n", parent_id="p", order=1.5, content="")
    assert request.is_create
    assert to_wire(request) == {"note-id": "n", "parid": "p", "order": 1.5, "content": ""}


def test_parse_node_plain_keys() -> None:
    node = parse_node(
        {
            "id": "x",
            "note-id": "n",
            "parid": "p",
            "same-deep-order": 2,
            "content": "hello",
            "is-display": False,
            "is-delete": False,
            "updated-at": 1700000000000,
        }
    )
    assert node is not None
    assert node.order == 2.0
    assert node.parent_id == "p"
    assert node.is_display is False
    assert node.updated_at == 1700000000000


def test_parse_node_namespaced_keys() -> None:
    node = parse_node(
        {
            "hulunote-navs/id": "x",
            "hulunote-navs/note-id": "n",
            "hulunote-navs/parid": "p",
            "hulunote-navs/same-deep-order": 0.5,
            "hulunote-navs/content": "ns",
            "hulunote-navs/properties": '{"k": 1}',
        }
    )
    assert node is not None
    assert (node.id, node.note_id, node.content, node.order) == ("x", "n", "ns", 0.5)
    assert node.properties == '{"k": 1}'
    assert node.is_display is True


def test_parse_node_requires_ids() -> None:
    assert parse_node({"id": "x"}) is None
    assert parse_node({"note-id": "n", "id": "  "}) is None


def test_parse_node_list_skips_malformed() -> None:
    data = {"nav-list": [{"id": "x", "note-id": "n"}, {"content": "orphan"}, "junk"]}
    assert [n.id for n in parse_node_list_response(data)] == ["x"]
    assert parse_node_list_response({}) == []


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        (1234, 1234),
        ("1234", 1234),
        ("1970-01-01T00:00:01Z", 1000),
        ("not a date", 0),
        (None, 0),
        (True, 0),
    ],
)
def test_parse_timestamp(value: object, expected: int) -> None:
    assert parse_timestamp(value) == expected


def test_parse_upsert_response_create() -> None:
    request = NodeRequest(note_id="n", parent_id="p", order=0.0)
    result = parse_upsert_response(
        {"nav": {"id": "real", "updated-at": 99}}, request=request, received_ms=5
    )
    assert (result.id, result.backend_ts) == ("real", 99)


def test_parse_upsert_response_falls_back_to_request_and_receive_time() -> None:
    request = NodeRequest(note_id="n", id="x", content="c")
    result = parse_upsert_response({"success": True}, request=request, received_ms=5)
    assert (result.id, result.backend_ts) == ("x", 5)


def test_parse_upsert_response_create_without_id_fails() -> None:
    request = NodeRequest(note_id="n", parent_id="p", order=0.0)
    with pytest.raises(ValueError, match="no node id"):
        parse_upsert_response({"success": True}, request=request, received_ms=5)
