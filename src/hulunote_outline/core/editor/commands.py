"""Editor commands accepted by a note session."""

from dataclasses import dataclass

from hulunote_outline.core.tree.model import Direction


@dataclass(frozen=True)
class InsertSibling:
    """Enter: new node right after ``node_id``. With ``node_id=None``, append at top level."""

    node_id: str | None
    content: str = ""


@dataclass(frozen=True)
class Indent:
    node_id: str


@dataclass(frozen=True)
class Outdent:
    node_id: str


@dataclass(frozen=True)
class Move:
    node_id: str
    direction: Direction


@dataclass(frozen=True)
class Delete:
    node_id: str


@dataclass(frozen=True)
class EditContent:
    node_id: str
    content: str


@dataclass(frozen=True)
class SetDisplay:
    """Expand (``True``) or collapse (``False``) a node's children."""

    node_id: str
    is_display: bool


Command = InsertSibling | Indent | Outdent | Move | Delete | EditContent | SetDisplay


@dataclass(frozen=True)
class CommandResult:
    """Outcome of applying a command.

    A failed structural command leaves the tree unchanged; ``error`` says why.
    ``node_id`` is the node to focus afterwards.
    """

    success: bool
    node_id: str | None = None
    error: str | None = None
