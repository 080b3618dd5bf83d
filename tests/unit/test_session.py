"""Tests for NoteSession: loading, commands and id reconciliation."""

import asyncio
import dataclasses
import math
from collections.abc import Callable, Coroutine
from typing import Any

from hulunote_outline.config import ROOT_ID
from hulunote_outline.core.drafts.snapshot import load_note_snapshot, save_note_snapshot
from hulunote_outline.core.drafts.store import DraftStore
from hulunote_outline.core.editor.commands import (
    Delete,
    EditContent,
    Indent,
    InsertSibling,
    Move,
    Outdent,
    SetDisplay,
)
from hulunote_outline.core.editor.session import NoteSession
from hulunote_outline.core.sync.controller import SyncController
from hulunote_outline.errors import TransportFailure
from hulunote_outline.models.node import Node
from hulunote_outline.util import is_tmp_id
from tests.unit.conftest import DATABASE_ID, NOTE_ID, ROUTE, SAMPLE_NODES
from tests.unit.fakes import FakeBackend


def _run(scenario: Callable[[], Coroutine[Any, Any, None]]) -> None:
    asyncio.run(scenario())


async def _open(store: DraftStore, backend: FakeBackend) -> NoteSession:
    controller = SyncController(store, backend, debounce_ms=10_000)
    return await NoteSession.open(
        controller, store, backend, database_id=DATABASE_ID, note_id=NOTE_ID
    )


def test_open_loads_note_and_saves_snapshot(store: DraftStore, backend: FakeBackend) -> None:
    async def scenario() -> None:
        session = await _open(store, backend)

        assert session.visible_ids() == ("a", "a1", "a2", "b", "d")
        assert session.offline is False
        assert session.controller.route.note_id == NOTE_ID
        snapshot = load_note_snapshot(store.conn, database_id=DATABASE_ID, note_id=NOTE_ID)
        assert snapshot == SAMPLE_NODES

    _run(scenario)


def test_open_falls_back_to_snapshot_when_offline(
    store: DraftStore, backend: FakeBackend
) -> None:
    save_note_snapshot(
        store.conn, database_id=DATABASE_ID, note_id=NOTE_ID, nodes=SAMPLE_NODES[:3], saved_ms=1
    )
    backend.fetch_error = TransportFailure("unreachable")

    async def scenario() -> None:
        session = await _open(store, backend)

        assert session.offline is True
        assert session.visible_ids() == ("a", "a1", "a2")

    _run(scenario)


def test_open_overlays_drafts_and_drops_deleted_rows(
    store: DraftStore, backend: FakeBackend
) -> None:
    store.write("a", {"content": "edited offline"}, route=ROUTE)
    backend.notes[NOTE_ID] = [
        dataclasses.replace(n, is_delete=True) if n.id == "b" else n for n in SAMPLE_NODES
    ]

    async def scenario() -> None:
        session = await _open(store, backend)

        assert session.tree.get("a").content == "edited offline"
        assert "b" not in session.tree
        assert session.visible_ids() == ("a", "a1", "a2", "d")

    _run(scenario)


def test_insert_sibling_writes_full_draft(store: DraftStore, backend: FakeBackend) -> None:
    async def scenario() -> None:
        session = await _open(store, backend)

        result = session.apply(InsertSibling("a", "fresh"))

        assert result.success
        assert result.node_id is not None
        assert is_tmp_id(result.node_id)
        assert session.visible_ids() == ("a", "a1", "a2", result.node_id, "b", "d")
        draft = store.read(result.node_id)
        assert draft is not None
        assert draft.fields() == {
            "content": "fresh",
            "parent_id": ROOT_ID,
            "order": 0.5,
            "is_display": True,
            "is_delete": False,
        }
        session.controller.close()

    _run(scenario)


def test_insert_with_no_anchor_appends_to_note(store: DraftStore, backend: FakeBackend) -> None:
    async def scenario() -> None:
        session = await _open(store, backend)

        result = session.apply(InsertSibling(None, "last"))

        assert session.visible_ids()[-1] == result.node_id
        session.controller.close()

    _run(scenario)


def test_structural_error_is_reported_not_raised(
    store: DraftStore, backend: FakeBackend
) -> None:
    async def scenario() -> None:
        session = await _open(store, backend)

        indent = session.apply(Indent("a"))
        outdent = session.apply(Outdent("b"))
        missing = session.apply(EditContent("nope", "x"))

        assert not indent.success
        assert indent.error is not None
        assert "previous sibling" in indent.error
        assert not outdent.success
        assert not missing.success
        assert session.visible_ids() == ("a", "a1", "a2", "b", "d")
        assert store.all_dirty() == []

    _run(scenario)


def test_edit_content_is_sent_as_content_change(
    store: DraftStore, backend: FakeBackend
) -> None:
    async def scenario() -> None:
        session = await _open(store, backend)

        result = session.apply(EditContent("b", "Beta!"))
        session.blur("b")
        await session.controller.drain()

        assert result.success
        assert [(r.id, r.content, r.parent_id) for r in backend.requests] == [("b", "Beta!", None)]

    _run(scenario)


def test_delete_hides_subtree_keeps_tombstone_draft(
    store: DraftStore, backend: FakeBackend
) -> None:
    async def scenario() -> None:
        session = await _open(store, backend)

        result = session.apply(Delete("b"))

        assert result.success
        assert result.node_id == "a2"
        assert session.visible_ids() == ("a", "a1", "a2", "d")
        draft = store.read("b")
        assert draft is not None
        assert draft.is_delete is True
        assert "b" in store.all_dirty()
        session.controller.close()

    _run(scenario)


def test_move_at_top_is_noop(store: DraftStore, backend: FakeBackend) -> None:
    async def scenario() -> None:
        session = await _open(store, backend)

        result = session.apply(Move("a", "up"))

        assert not result.success
        assert result.error is None

    _run(scenario)


def test_set_display_expands_children(store: DraftStore, backend: FakeBackend) -> None:
    async def scenario() -> None:
        session = await _open(store, backend)

        session.apply(SetDisplay("d", True))

        assert session.visible_ids()[-2:] == ("d", "d1")
        assert session.next_visible("d") == "d1"
        assert session.previous_visible("a") is None
        session.controller.close()

    _run(scenario)


def test_precision_exhaustion_renormalizes_and_retries(
    store: DraftStore, backend: FakeBackend
) -> None:
    backend.notes[NOTE_ID] = [
        Node(id="x", note_id=NOTE_ID, parent_id=ROOT_ID, order=1.0),
        Node(id="y", note_id=NOTE_ID, parent_id=ROOT_ID, order=math.nextafter(1.0, 2.0)),
        Node(id="z", note_id=NOTE_ID, parent_id=ROOT_ID, order=7.0),
    ]

    async def scenario() -> None:
        session = await _open(store, backend)

        result = session.apply(InsertSibling("x", "between"))

        assert result.success
        assert session.visible_ids() == ("x", result.node_id, "y", "z")
        assert [session.tree.get(i).order for i in ("x", "y", "z")] == [0.0, 1.0, 2.0]
        assert session.tree.get(result.node_id).order == 0.5
        assert {"x", "y", "z"} <= set(store.all_dirty())
        session.controller.close()

    _run(scenario)


def test_backend_id_replaces_temporary_id_in_tree(
    store: DraftStore, backend: FakeBackend
) -> None:
    async def scenario() -> None:
        session = await _open(store, backend)
        result = session.apply(InsertSibling("b", "created"))
        assert result.node_id is not None
        tmp_id = result.node_id

        session.blur(tmp_id)
        await session.controller.drain()

        assert tmp_id not in session.tree
        assert session.tree.get("real-1").content == "created"
        assert "real-1" in session.visible_ids()

        edit = session.apply(EditContent(tmp_id, "renamed later"))
        assert edit.success
        assert edit.node_id == "real-1"
        assert session.tree.get("real-1").content == "renamed later"
        session.controller.close()

    _run(scenario)


def test_closed_session_ignores_sync_events(store: DraftStore, backend: FakeBackend) -> None:
    async def scenario() -> None:
        session = await _open(store, backend)
        result = session.apply(InsertSibling("b", "created"))
        assert result.node_id is not None

        session.close()
        session.controller.flush_now(None)
        await session.controller.drain()

        assert result.node_id in session.tree
        assert store.all_dirty() == []

    _run(scenario)


def test_single_block_note_is_visible_and_editable(
    store: DraftStore, backend: FakeBackend
) -> None:
    backend.notes[NOTE_ID] = [
        Node(id="first", note_id=NOTE_ID, parent_id=ROOT_ID, order=0.0, content="Hello")
    ]

    async def scenario() -> None:
        session = await _open(store, backend)

        assert session.visible_ids() == ("first",)
        assert session.render() == "- Hello\n"
        result = session.apply(InsertSibling("first", "second"))
        assert result.success
        assert session.visible_ids() == ("first", result.node_id)
        session.controller.close()

    _run(scenario)


def test_edit_from_earlier_session_keeps_its_note(
    store: DraftStore, backend: FakeBackend
) -> None:
    backend.notes["note-2"] = [
        Node(id="other", note_id="note-2", parent_id=ROOT_ID, order=0.0, content="Other")
    ]

    async def scenario() -> None:
        controller = SyncController(store, backend, debounce_ms=10_000)
        first = await NoteSession.open(
            controller, store, backend, database_id=DATABASE_ID, note_id=NOTE_ID
        )
        await NoteSession.open(
            controller, store, backend, database_id="db-2", note_id="note-2"
        )

        result = first.apply(InsertSibling("a", "late"))

        assert result.node_id is not None
        draft = store.read(result.node_id)
        assert draft is not None
        assert (draft.database_id, draft.note_id) == (DATABASE_ID, NOTE_ID)
        controller.flush_now(result.node_id)
        await controller.drain()
        assert backend.creates[-1].note_id == NOTE_ID
        controller.close()

    _run(scenario)
