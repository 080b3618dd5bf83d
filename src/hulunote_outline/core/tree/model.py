"""In-memory outline tree with Roam-style structural edits.

All mutations go through ``_commit``, which updates the in-memory node and then writes
the changed fields through to the sink (normally the sync controller, which persists a
draft before returning). If the sink raises, the in-memory change is rolled back.
"""

import dataclasses
from collections.abc import Callable, Iterable, Iterator
from typing import Any, Literal

from loguru import logger

from hulunote_outline.config import ROOT_ID
from hulunote_outline.errors import (
    NodeNotFound,
    NoGrandparent,
    NoPreviousSibling,
    PrecisionExhausted,
)
from hulunote_outline.models.node import Node
from hulunote_outline.util import make_tmp_id, now_ms

WriteSink = Callable[[str, dict[str, Any]], None]
Direction = Literal["up", "down"]


def _discard(_node_id: str, _fields: dict[str, Any]) -> None:
    pass


def midpoint(parent_id: str, low: float, high: float | None) -> float:
    """Rank strictly between ``low`` and ``high``, or ``low + 1.0`` when there is no upper bound."""
    if high is None:
        rank = low + 1.0
        if rank <= low:
            raise PrecisionExhausted(parent_id, low, rank)
        return rank
    rank = (low + high) / 2
    if not low < rank < high:
        raise PrecisionExhausted(parent_id, low, high)
    return rank


class OutlineTree:
    """Outline nodes of a single note, keyed by id."""

    def __init__(
        self,
        nodes: Iterable[Node] = (),
        *,
        note_id: str = "",
        sink: WriteSink | None = None,
        clock: Callable[[], int] = now_ms,
        id_factory: Callable[[], str] = make_tmp_id,
    ) -> None:
        self.note_id = note_id
        # Top-level nodes hang directly under the sentinel.
        self.root_id = ROOT_ID
        self._sink: WriteSink = sink or _discard
        self._clock = clock
        self._id_factory = id_factory
        self._nodes: dict[str, Node] = {}
        self._by_parent: dict[str, set[str]] = {}
        for node in nodes:
            self._nodes[node.id] = node
            self._by_parent.setdefault(node.parent_id, set()).add(node.id)

    def __contains__(self, node_id: object) -> bool:
        return node_id in self._nodes

    def __len__(self) -> int:
        return len(self._nodes)

    def nodes(self) -> list[Node]:
        return list(self._nodes.values())

    def bind(self, sink: WriteSink) -> None:
        """Attach the write-through sink."""
        self._sink = sink

    def get(self, node_id: str) -> Node:
        try:
            return self._nodes[node_id]
        except KeyError:
            raise NodeNotFound(node_id) from None

    def _live(self, node_id: str) -> Node:
        node = self.get(node_id)
        if node.is_delete:
            raise NodeNotFound(node_id)
        return node

    # --- Queries ---

    def children(self, parent_id: str) -> list[Node]:
        """Live (not tombstoned) children of ``parent_id`` in sibling order."""
        kids = (self._nodes[i] for i in self._by_parent.get(parent_id, ()))
        return sorted((n for n in kids if not n.is_delete), key=Node.sort_key)

    def previous_sibling(self, node_id: str) -> Node | None:
        node = self.get(node_id)
        before = [s for s in self.children(node.parent_id) if s.sort_key() < node.sort_key()]
        return before[-1] if before else None

    def next_sibling(self, node_id: str) -> Node | None:
        node = self.get(node_id)
        for sibling in self.children(node.parent_id):
            if sibling.sort_key() > node.sort_key():
                return sibling
        return None

    def is_visible(self, node_id: str) -> bool:
        """True when the node and all its ancestors are live and every ancestor is expanded."""
        node = self._nodes.get(node_id)
        if node is None or node.is_delete:
            return False
        seen: set[str] = set()
        while node.parent_id != self.root_id:
            if node.parent_id in seen:
                return False
            seen.add(node.parent_id)
            parent = self._nodes.get(node.parent_id)
            if parent is None or parent.is_delete or not parent.is_display:
                return False
            node = parent
        return True

    def visible_order(self) -> Iterator[str]:
        """Preorder traversal honoring collapse and tombstones.

        Each call returns a fresh generator.
        """
        stack = list(reversed(self.children(self.root_id)))
        while stack:
            node = stack.pop()
            yield node.id
            if node.is_display:
                stack.extend(reversed(self.children(node.id)))

    def last_visible_descendant(self, node_id: str) -> str:
        node = self.get(node_id)
        while node.is_display:
            kids = self.children(node.id)
            if not kids:
                break
            node = kids[-1]
        return node.id

    # --- Mutations ---

    def _commit(self, node_id: str, changes: dict[str, Any]) -> Node:
        before = self._nodes[node_id]
        after = dataclasses.replace(before, updated_at=self._clock(), **changes)
        self._place(before, after)
        try:
            self._sink(node_id, changes)
        except Exception:
            self._place(after, before)
            raise
        return after

    def _place(self, old: Node | None, new: Node | None) -> None:
        if old is not None:
            self._by_parent.get(old.parent_id, set()).discard(old.id)
            self._nodes.pop(old.id, None)
        if new is not None:
            self._nodes[new.id] = new
            self._by_parent.setdefault(new.parent_id, set()).add(new.id)

    def insert_sibling_after(self, current_id: str, content: str = "") -> str:
        """Create a node right after ``current_id`` under the same parent and return its id."""
        current = self._live(current_id)
        following = self.next_sibling(current_id)
        order = midpoint(
            current.parent_id, current.order, following.order if following else None
        )
        return self._create(current.parent_id, order, content)

    def insert_child(self, parent_id: str, content: str = "") -> str:
        """Append a node as the last child of ``parent_id`` (the root allowed)."""
        if parent_id != self.root_id:
            self._live(parent_id)
        kids = self.children(parent_id)
        order = kids[-1].order + 1.0 if kids else 0.0
        return self._create(parent_id, order, content)

    def _create(self, parent_id: str, order: float, content: str) -> str:
        ts = self._clock()
        node = Node(
            id=self._id_factory(),
            note_id=self.note_id,
            parent_id=parent_id,
            order=order,
            content=content,
            created_at=ts,
            updated_at=ts,
        )
        self._place(None, node)
        try:
            self._sink(
                node.id,
                {
                    "parent_id": parent_id,
                    "order": order,
                    "content": content,
                    "is_display": True,
                    "is_delete": False,
                },
            )
        except Exception:
            self._place(node, None)
            raise
        logger.debug("Inserted {} under {} at {}", node.id, parent_id, order)
        return node.id

    def set_content(self, node_id: str, content: str) -> None:
        if self._live(node_id).content != content:
            self._commit(node_id, {"content": content})

    def set_display(self, node_id: str, is_display: bool) -> None:
        if self._live(node_id).is_display != is_display:
            self._commit(node_id, {"is_display": is_display})

    def indent(self, node_id: str) -> None:
        """Make the node the last child of its previous sibling."""
        self._live(node_id)
        prev = self.previous_sibling(node_id)
        if prev is None:
            raise NoPreviousSibling(node_id)
        kids = self.children(prev.id)
        order = max(k.order for k in kids) + 1.0 if kids else 0.0
        if not prev.is_display:
            self._commit(prev.id, {"is_display": True})
        self._commit(node_id, {"parent_id": prev.id, "order": order})

    def outdent(self, node_id: str) -> None:
        """Move the node right after its parent, under the grandparent."""
        node = self._live(node_id)
        if node.parent_id == self.root_id:
            raise NoGrandparent(node_id)
        parent = self.get(node.parent_id)
        following = self.next_sibling(parent.id)
        order = midpoint(parent.parent_id, parent.order, following.order if following else None)
        self._commit(node_id, {"parent_id": parent.parent_id, "order": order})

    def reorder(self, node_id: str, direction: Direction) -> bool:
        """Swap rank with the adjacent sibling. Returns False at either end of the list."""
        node = self._live(node_id)
        other = self.previous_sibling(node_id) if direction == "up" else self.next_sibling(node_id)
        if other is None:
            return False
        if other.order == node.order:
            self.renormalize(node.parent_id)
            node, other = self.get(node.id), self.get(other.id)
        self._commit(node.id, {"order": other.order})
        try:
            self._commit(other.id, {"order": node.order})
        except Exception:
            # Put the first node back so the pair never shares a rank.
            self._commit(node.id, {"order": node.order})
            raise
        return True

    def soft_delete(self, node_id: str) -> None:
        """Tombstone the node only; descendants keep their own flags."""
        self._live(node_id)
        self._commit(node_id, {"is_delete": True})

    def renormalize(self, parent_id: str) -> int:
        """Reassign ``0.0, 1.0, 2.0, ...`` across a sibling group.

        Returns the number of nodes whose order changed.
        """
        changed = 0
        for index, sibling in enumerate(self.children(parent_id)):
            if sibling.order != float(index):
                self._commit(sibling.id, {"order": float(index)})
                changed += 1
        logger.info("Renormalized {} siblings under {}", changed, parent_id)
        return changed

    def rename(self, old_id: str, new_id: str) -> bool:
        """Swap in the backend id for a temporary one. Local only; nothing is written through."""
        node = self._nodes.get(old_id)
        if node is None:
            return False
        self._place(node, dataclasses.replace(node, id=new_id))
        for child_id in list(self._by_parent.get(old_id, ())):
            child = self._nodes[child_id]
            self._place(child, dataclasses.replace(child, parent_id=new_id))
        self._by_parent.pop(old_id, None)
        return True
