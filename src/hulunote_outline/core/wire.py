"""Mapping between internal node fields and the backend's wire format."""

from dataclasses import dataclass
from datetime import datetime
from typing import Any

from loguru import logger

from hulunote_outline.models.node import Node

# Internal field -> wire key.
WIRE_NAMES: dict[str, str] = {
    "note_id": "note-id",
    "id": "id",
    "parent_id": "parid",
    "content": "content",
    "order": "order",
    "is_display": "is-display",
    "is_delete": "is-delete",
    "properties": "properties",
}

_NAMESPACE = "hulunote-navs/"


@dataclass(frozen=True)
class NodeRequest:
    """Body of a create-or-update call. ``id=None`` means create."""

    note_id: str
    id: str | None = None
    parent_id: str | None = None
    content: str | None = None
    order: float | None = None
    is_display: bool | None = None
    is_delete: bool | None = None
    properties: str | None = None

    @property
    def is_create(self) -> bool:
        return self.id is None


@dataclass(frozen=True)
class UpsertResult:
    id: str
    backend_ts: int


def to_wire(request: NodeRequest) -> dict[str, Any]:
    """Serialize a request, leaving out fields that are not being written."""
    return {
        wire: getattr(request, name)
        for name, wire in WIRE_NAMES.items()
        if getattr(request, name) is not None
    }


def parse_timestamp(value: Any) -> int:
    """Backend timestamps arrive as epoch ms or ISO strings. Returns epoch ms, 0 if unknown."""
    if isinstance(value, bool) or value is None:
        return 0
    if isinstance(value, int | float):
        return int(value)
    if isinstance(value, str):
        text = value.strip()
        if text.isdigit():
            return int(text)
        try:
            return int(datetime.fromisoformat(text.replace("Z", "+00:00")).timestamp() * 1000)
        except ValueError:
            return 0
    return 0


def _get(item: dict[str, Any], key: str) -> Any:
    if key in item:
        return item[key]
    return item.get(_NAMESPACE + key)


def parse_node(item: dict[str, Any]) -> Node | None:
    """Parse one nav object; plain kebab-case keys preferred, namespaced keys accepted."""
    node_id = _get(item, "id")
    note_id = _get(item, "note-id")
    if not isinstance(node_id, str) or not node_id.strip():
        return None
    if not isinstance(note_id, str) or not note_id.strip():
        return None

    order = _get(item, "same-deep-order")
    if order is None:
        order = _get(item, "order")
    is_display = _get(item, "is-display")
    is_delete = _get(item, "is-delete")
    properties = _get(item, "properties")

    return Node(
        id=node_id,
        note_id=note_id,
        parent_id=_get(item, "parid") or "",
        order=float(order) if order is not None else 0.0,
        content=_get(item, "content") or "",
        is_display=True if is_display is None else bool(is_display),
        is_delete=bool(is_delete),
        created_at=parse_timestamp(_get(item, "created-at")),
        updated_at=parse_timestamp(_get(item, "updated-at")),
        properties=properties if isinstance(properties, str) and properties.strip() else None,
    )


def parse_node_list_response(data: dict[str, Any]) -> list[Node]:
    """Parse a ``get-note-navs`` response, dropping malformed entries."""
    out: list[Node] = []
    for item in data.get("nav-list") or []:
        node = parse_node(item) if isinstance(item, dict) else None
        if node is None:
            logger.warning("Skipping malformed nav entry: {!r}", item)
            continue
        out.append(node)
    return out


def parse_upsert_response(
    data: dict[str, Any], *, request: NodeRequest, received_ms: int
) -> UpsertResult:
    """Extract the node id and backend timestamp from a create-or-update response.

    The backend echoes the nav, either at top level or under ``nav``. Missing timestamps
    fall back to the local receive time.
    """
    body = data.get("nav") if isinstance(data.get("nav"), dict) else data
    node_id = _get(body, "id") or request.id
    if not isinstance(node_id, str) or not node_id.strip():
        msg = f"Create response carries no node id: {data!r}"
        raise ValueError(msg)
    backend_ts = parse_timestamp(_get(body, "updated-at")) or received_ms
    return UpsertResult(id=node_id, backend_ts=backend_ts)
