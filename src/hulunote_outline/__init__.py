"""Local-first outline editing and sync for Hulunote."""

from hulunote_outline.api import HulunoteApi
from hulunote_outline.core.drafts.store import DraftStore
from hulunote_outline.core.editor.session import NoteSession
from hulunote_outline.core.sync.controller import SyncController
from hulunote_outline.core.tree.model import OutlineTree
from hulunote_outline.protocols import BackendProtocol

__all__ = [
    "BackendProtocol",
    "DraftStore",
    "HulunoteApi",
    "NoteSession",
    "OutlineTree",
    "SyncController",
]
