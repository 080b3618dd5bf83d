"""Tests for VisibleIndex adjacency lookups."""

from hulunote_outline.core.tree.model import OutlineTree
from hulunote_outline.core.tree.visible_index import VisibleIndex


def test_adjacency_crosses_depth(tree: OutlineTree) -> None:
    index = VisibleIndex(tree)

    assert index.ids == ("a", "a1", "a2", "b", "d")
    assert index.next("a2") == "b"
    assert index.previous("b") == "a2"
    assert index.previous("a") is None
    assert index.next("d") is None
    assert index.first() == "a"
    assert index.last() == "d"


def test_hidden_nodes_have_no_position(tree: OutlineTree) -> None:
    index = VisibleIndex(tree)

    assert "d1" not in index
    assert index.position("d1") is None
    assert index.next("d1") is None


def test_rebuild_after_structural_edit(tree: OutlineTree) -> None:
    index = VisibleIndex(tree)
    tree.set_display("d", True)
    tree.soft_delete("a")

    index.rebuild(tree)

    assert index.ids == ("b", "d", "d1")
    assert len(index) == 3
    assert index.at(1) == "d"
    assert index.at(5) is None
    assert index.at(-1) is None


def test_empty_index() -> None:
    index = VisibleIndex()
    assert len(index) == 0
    assert index.first() is None
