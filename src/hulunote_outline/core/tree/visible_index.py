"""Materialized visible order for keyboard navigation."""

from hulunote_outline.core.tree.model import OutlineTree


class VisibleIndex:
    """Positional array of visible node ids plus an id -> position map.

    Rebuilt after every structural edit; adjacency lookups are O(1) regardless of depth.
    """

    def __init__(self, tree: OutlineTree | None = None) -> None:
        self._ids: list[str] = []
        self._positions: dict[str, int] = {}
        if tree is not None:
            self.rebuild(tree)

    def rebuild(self, tree: OutlineTree) -> None:
        self._ids = list(tree.visible_order())
        self._positions = {node_id: i for i, node_id in enumerate(self._ids)}

    @property
    def ids(self) -> tuple[str, ...]:
        return tuple(self._ids)

    def __len__(self) -> int:
        return len(self._ids)

    def __contains__(self, node_id: object) -> bool:
        return node_id in self._positions

    def position(self, node_id: str) -> int | None:
        return self._positions.get(node_id)

    def at(self, position: int) -> str | None:
        if 0 <= position < len(self._ids):
            return self._ids[position]
        return None

    def previous(self, node_id: str) -> str | None:
        """Block visually above ``node_id``, or None at the top or when hidden."""
        pos = self._positions.get(node_id)
        if pos is None:
            return None
        return self.at(pos - 1)

    def next(self, node_id: str) -> str | None:
        """Block visually below ``node_id``, or None at the bottom or when hidden."""
        pos = self._positions.get(node_id)
        if pos is None:
            return None
        return self.at(pos + 1)

    def first(self) -> str | None:
        return self.at(0)

    def last(self) -> str | None:
        return self.at(len(self._ids) - 1)
