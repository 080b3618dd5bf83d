"""Domain models for outline nodes and their local drafts."""

from dataclasses import dataclass
from typing import Any

# Fields a draft can carry. Structural fields are mirrored from Node only when changed.
CONTENT_FIELDS: tuple[str, ...] = ("content",)
META_FIELDS: tuple[str, ...] = ("parent_id", "order", "is_display", "is_delete", "properties")
DRAFT_FIELDS: tuple[str, ...] = CONTENT_FIELDS + META_FIELDS


@dataclass(frozen=True)
class Node:
    """A single outline node (a "nav" on the backend)."""

    id: str
    note_id: str
    parent_id: str
    order: float
    content: str = ""
    is_display: bool = True
    is_delete: bool = False
    created_at: int = 0
    updated_at: int = 0
    properties: str | None = None

    def sort_key(self) -> tuple[float, str]:
        """Sibling rank; ties are broken by id."""
        return (self.order, self.id)


@dataclass(frozen=True)
class Draft:
    """Pending local edit for one node. Authoritative until acknowledged."""

    database_id: str
    note_id: str
    node_id: str
    content: str | None = None
    parent_id: str | None = None
    order: float | None = None
    is_display: bool | None = None
    is_delete: bool | None = None
    properties: str | None = None
    dirty: bool = True
    seq: int = 0
    acked_seq: int = 0
    retry_count: int = 0
    next_retry_at_ms: int = 0
    updated_ms: int = 0
    synced_ms: int = 0
    last_error: str | None = None

    def fields(self) -> dict[str, Any]:
        """Return only the fields this draft covers."""
        return {
            name: getattr(self, name) for name in DRAFT_FIELDS if getattr(self, name) is not None
        }

    def is_due(self, now_ms: int) -> bool:
        return self.dirty and (self.next_retry_at_ms == 0 or self.next_retry_at_ms <= now_ms)


@dataclass(frozen=True)
class RouteContext:
    """Which database/note (and node) the user is currently editing.

    Captured by value at edit time so deferred callbacks never see a later route.
    """

    database_id: str = ""
    note_id: str = ""
    editing_node_id: str | None = None

    @property
    def is_set(self) -> bool:
        return bool(self.database_id.strip() and self.note_id.strip())
