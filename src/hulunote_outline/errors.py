"""Error taxonomy for outline editing and backend sync."""


class OutlineError(Exception):
    """Base class for all hulunote-outline errors."""


class StructuralError(OutlineError):
    """A structural edit could not be applied; the tree is unchanged."""


class NodeNotFound(StructuralError):
    def __init__(self, node_id: str) -> None:
        super().__init__(f"Node {node_id!r} not found")
        self.node_id = node_id


class PrecisionExhausted(StructuralError):
    """Midpoint ordering can no longer separate two sibling ranks.

    Recoverable by renormalizing the sibling group under ``parent_id``.
    """

    def __init__(self, parent_id: str, low: float, high: float) -> None:
        super().__init__(f"No float strictly between {low!r} and {high!r} under {parent_id!r}")
        self.parent_id = parent_id
        self.low = low
        self.high = high


class NoPreviousSibling(StructuralError):
    def __init__(self, node_id: str) -> None:
        super().__init__(f"Node {node_id!r} has no previous sibling to indent under")
        self.node_id = node_id


class NoGrandparent(StructuralError):
    def __init__(self, node_id: str) -> None:
        super().__init__(f"Node {node_id!r} is already at the top level")
        self.node_id = node_id


class SyncError(OutlineError):
    """Reconciliation with the backend failed. The local draft is kept."""


class TransportFailure(SyncError):
    """Backend unreachable, timed out, or answered with a 5xx."""

    def __init__(self, message: str, *, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status


class RejectedByBackend(SyncError):
    """Backend refused the request (4xx)."""

    def __init__(self, message: str, *, status: int, body: str = "") -> None:
        super().__init__(message)
        self.status = status
        self.body = body


class Unauthorized(RejectedByBackend):
    def __init__(self) -> None:
        super().__init__("Unauthorized", status=401)
