"""Protocols for dependency injection in the sync core."""

from typing import Protocol, runtime_checkable

from hulunote_outline.core.wire import NodeRequest, UpsertResult
from hulunote_outline.models.node import Node


@runtime_checkable
class BackendProtocol(Protocol):
    """Protocol for Hulunote backend clients."""

    async def create_or_update_node(self, request: NodeRequest) -> UpsertResult:
        """Create (no id) or update a node and return its id and backend timestamp."""
        ...

    async def get_note_nodes(self, note_id: str) -> list[Node]:
        """Fetch every node of a note."""
        ...
