"""Shared test fixtures."""

import sqlite3
from collections.abc import Iterator

import pytest

from hulunote_outline.config import ROOT_ID
from hulunote_outline.core.drafts.store import DraftStore
from hulunote_outline.core.tree.model import OutlineTree
from hulunote_outline.models.node import Node, RouteContext
from tests.unit.fakes import FakeBackend, FakeClock, RecordingSink

NOTE_ID = "note-1"
DATABASE_ID = "db-1"
# Note layout:
#   - Alpha
#       - Alpha one
#       - Alpha two
#   - Beta
#   - Delta (collapsed)
#       - Delta one
SAMPLE_NODES = [
    Node(id="a", note_id=NOTE_ID, parent_id=ROOT_ID, order=0.0, content="Alpha"),
    Node(id="a1", note_id=NOTE_ID, parent_id="a", order=0.0, content="Alpha one"),
    Node(id="a2", note_id=NOTE_ID, parent_id="a", order=1.0, content="Alpha two"),
    Node(id="b", note_id=NOTE_ID, parent_id=ROOT_ID, order=1.0, content="Beta"),
    Node(
        id="d", note_id=NOTE_ID, parent_id=ROOT_ID, order=2.0, content="Delta",
        is_display=False,
    ),
    Node(id="d1", note_id=NOTE_ID, parent_id="d", order=0.0, content="Delta one"),
]

ROUTE = RouteContext(database_id=DATABASE_ID, note_id=NOTE_ID)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store(clock: FakeClock) -> Iterator[DraftStore]:
    """In-memory draft store."""
    s = DraftStore(sqlite3.connect(":memory:"), clock=clock)
    yield s
    s.close()


@pytest.fixture
def backend() -> FakeBackend:
    b = FakeBackend()
    b.notes[NOTE_ID] = list(SAMPLE_NODES)
    return b


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def tree(sink: RecordingSink) -> OutlineTree:
    """Sample note with a recording write-through sink."""
    counter = iter(range(1, 1000))
    return OutlineTree(
        SAMPLE_NODES,
        note_id=NOTE_ID,
        sink=sink,
        id_factory=lambda: f"tmp-1-{next(counter)}",
    )
