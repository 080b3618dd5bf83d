"""One open note: tree, visible index, and the wiring to the sync controller."""

import dataclasses
from collections.abc import Callable
from typing import Any

from loguru import logger

from hulunote_outline.core.drafts.snapshot import load_note_snapshot, save_note_snapshot
from hulunote_outline.core.drafts.store import DraftStore
from hulunote_outline.core.editor.commands import (
    Command,
    CommandResult,
    Delete,
    EditContent,
    Indent,
    InsertSibling,
    Move,
    Outdent,
    SetDisplay,
)
from hulunote_outline.core.sync.controller import SyncController, SyncEvent
from hulunote_outline.core.tree.markdown import render_outline_as_markdown
from hulunote_outline.core.tree.model import OutlineTree
from hulunote_outline.core.tree.visible_index import VisibleIndex
from hulunote_outline.errors import PrecisionExhausted, StructuralError, TransportFailure
from hulunote_outline.models.node import RouteContext
from hulunote_outline.protocols import BackendProtocol
from hulunote_outline.util import now_ms


class NoteSession:
    """Editing surface for a single note.

    Structural errors are caught here and reported as unsuccessful ``CommandResult``s;
    the tree is left unchanged. Closing a session never cancels pending sync work.
    """

    def __init__(
        self,
        tree: OutlineTree,
        controller: SyncController,
        *,
        database_id: str,
        note_id: str,
        offline: bool = False,
    ) -> None:
        self.tree = tree
        self.controller = controller
        self.database_id = database_id
        self.note_id = note_id
        self.offline = offline
        self._route = RouteContext(database_id=database_id, note_id=note_id)
        self.index = VisibleIndex(tree)
        tree.bind(self._write_through)
        self._unsubscribe: Callable[[], None] | None = controller.subscribe(self._on_sync_event)

    @classmethod
    async def open(
        cls,
        controller: SyncController,
        store: DraftStore,
        backend: BackendProtocol,
        *,
        database_id: str,
        note_id: str,
    ) -> "NoteSession":
        """Load a note from the backend (or the last snapshot when offline) with drafts on top."""
        controller.set_route(database_id, note_id)
        offline = False
        try:
            nodes = await backend.get_note_nodes(note_id)
        except TransportFailure as e:
            logger.warning("Cannot load note {} from backend ({}), using snapshot", note_id, e)
            nodes = load_note_snapshot(store.conn, database_id=database_id, note_id=note_id) or []
            offline = True
        else:
            save_note_snapshot(
                store.conn, database_id=database_id, note_id=note_id, nodes=nodes,
                saved_ms=now_ms(),
            )

        merged = [n for n in store.overlay(nodes, note_id=note_id) if not n.is_delete]
        tree = OutlineTree(merged, note_id=note_id)
        logger.info("Opened note {} with {} nodes", note_id, len(tree))
        return cls(tree, controller, database_id=database_id, note_id=note_id, offline=offline)

    def close(self) -> None:
        """Detach from the controller. Pending writes keep draining."""
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def _write_through(self, node_id: str, fields: dict[str, Any]) -> None:
        if set(fields) == {"content"}:
            self.controller.on_node_changed(node_id, fields["content"], route=self._route)
        else:
            self.controller.on_node_meta_changed(node_id, fields, route=self._route)

    def _on_sync_event(self, event: SyncEvent) -> None:
        if event.kind != "id_assigned" or not event.new_id:
            return
        if self.tree.rename(event.node_id, event.new_id):
            self.index.rebuild(self.tree)

    # --- Focus ---

    def focus(self, node_id: str | None) -> None:
        self.controller.set_editing_node(node_id)

    def blur(self, node_id: str) -> None:
        """Leaving a block sends its draft without waiting for the debounce."""
        self.controller.flush_now(node_id)

    # --- Commands ---

    def apply(self, command: Command) -> CommandResult:
        if command.node_id is not None:
            # Callers may still hold a temporary id the backend has since replaced.
            node_id = self.controller.resolve_id(command.node_id)
            command = dataclasses.replace(command, node_id=node_id)
        try:
            result = self._retry_after_renormalize(command)
        except StructuralError as e:
            logger.info("{} not applied: {}", type(command).__name__, e)
            return CommandResult(False, node_id=command.node_id, error=str(e))
        if not isinstance(command, EditContent):
            self.index.rebuild(self.tree)
        return result

    def _retry_after_renormalize(self, command: Command) -> CommandResult:
        try:
            return self._dispatch(command)
        except PrecisionExhausted as e:
            self.tree.renormalize(e.parent_id)
            return self._dispatch(command)

    def _dispatch(self, command: Command) -> CommandResult:
        tree = self.tree
        if isinstance(command, InsertSibling):
            if command.node_id is None:
                new_id = tree.insert_child(tree.root_id, command.content)
            else:
                new_id = tree.insert_sibling_after(command.node_id, command.content)
            return CommandResult(True, node_id=new_id)
        if isinstance(command, Indent):
            tree.indent(command.node_id)
        elif isinstance(command, Outdent):
            tree.outdent(command.node_id)
        elif isinstance(command, Move):
            if not tree.reorder(command.node_id, command.direction):
                return CommandResult(False, node_id=command.node_id)
        elif isinstance(command, Delete):
            focus = self.index.previous(command.node_id) or self.index.next(command.node_id)
            tree.soft_delete(command.node_id)
            return CommandResult(True, node_id=focus)
        elif isinstance(command, EditContent):
            tree.set_content(command.node_id, command.content)
        elif isinstance(command, SetDisplay):
            tree.set_display(command.node_id, command.is_display)
        else:
            msg = f"Unknown command: {command!r}"
            raise TypeError(msg)
        return CommandResult(True, node_id=command.node_id)

    # --- Navigation ---

    def visible_ids(self) -> tuple[str, ...]:
        return self.index.ids

    def previous_visible(self, node_id: str) -> str | None:
        return self.index.previous(node_id)

    def next_visible(self, node_id: str) -> str | None:
        return self.index.next(node_id)

    def render(self, *, max_depth: int | None = None) -> str:
        return render_outline_as_markdown(self.tree, max_depth=max_depth)
