"""CLI for hulunote-outline (inspect and push local drafts, quick edits)."""

import asyncio
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime
from pathlib import Path
from typing import Annotated, TypeVar

import typer
from loguru import logger

from hulunote_outline.api import HulunoteApi
from hulunote_outline.config import DRAFTS_DB_NAME, resolve_data_directory
from hulunote_outline.core.database.schema import get_metadata, set_metadata
from hulunote_outline.core.drafts.store import DraftStore
from hulunote_outline.core.editor.commands import Command, EditContent, InsertSibling
from hulunote_outline.core.editor.session import NoteSession
from hulunote_outline.core.sync.controller import SyncController
from hulunote_outline.logging_config import configure_logging
from hulunote_outline.protocols import BackendProtocol
from hulunote_outline.util import now_ms

app = typer.Typer(help="Hulunote outline client: local drafts and background sync.")

T = TypeVar("T")

DataDirOption = Annotated[
    Path | None,
    typer.Option("--data-dir", "-d", help="Draft database directory"),
]
ApiUrlOption = Annotated[
    str | None,
    typer.Option("--api-url", help="Backend URL (default: $HULUNOTE_API_URL)"),
]
DatabaseOption = Annotated[
    str,
    typer.Option(
        "--database", "-D", envvar="HULUNOTE_DATABASE", help="Database id the note belongs to"
    ),
]


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    configure_logging(verbose=verbose)


def _open_store(data_dir: Path | None) -> DraftStore:
    dst = data_dir or resolve_data_directory()
    return DraftStore.open(dst / DRAFTS_DB_NAME)


def make_backend(api_url: str | None) -> BackendProtocol:
    return HulunoteApi(api_url=api_url)


def _with_controller(
    data_dir: Path | None,
    api_url: str | None,
    body: Callable[[DraftStore, BackendProtocol, SyncController], Awaitable[T]],
) -> T:
    """Run ``body`` on a fresh event loop, then drain outstanding writes and close."""
    store = _open_store(data_dir)
    try:
        backend = make_backend(api_url)

        async def run() -> T:
            controller = SyncController(store, backend)
            try:
                result = await body(store, backend, controller)
                await controller.drain()
                return result
            finally:
                controller.close()

        return asyncio.run(run())
    finally:
        store.close()


@app.command()
def pending(data_dir: DataDirOption = None) -> None:
    """List drafts not yet acknowledged by the backend."""
    store = _open_store(data_dir)
    try:
        last_push = get_metadata(store.conn, "last_push_ms")
        if last_push:
            dt = datetime.fromtimestamp(int(last_push) / 1000, tz=UTC)
            typer.echo(f"Last push: {dt:%Y-%m-%d %H:%M}")
        ids = store.all_dirty()
        typer.echo(f"{len(ids)} pending drafts:\n")
        for node_id in ids:
            draft = store.read(node_id)
            if draft is None:
                continue
            dt = datetime.fromtimestamp(draft.updated_ms / 1000, tz=UTC)
            fields = ", ".join(sorted(draft.fields()))
            typer.echo(f"  {node_id}  note={draft.note_id}  [{fields}]")
            line = f"    edited {dt:%Y-%m-%d %H:%M}  seq={draft.seq}"
            if draft.retry_count:
                line += f"  retries={draft.retry_count}  error={draft.last_error}"
            typer.echo(line)
    finally:
        store.close()


@app.command()
def push(data_dir: DataDirOption = None, api_url: ApiUrlOption = None) -> None:
    """Send every pending draft now and report what is still unsynced."""

    async def body(
        store: DraftStore, _backend: BackendProtocol, controller: SyncController
    ) -> None:
        controller.flush_now(None)
        await controller.drain()
        set_metadata(store.conn, "last_push_ms", str(now_ms()))

    def remaining() -> list[str]:
        store = _open_store(data_dir)
        try:
            return store.all_dirty()
        finally:
            store.close()

    before = remaining()
    if not before:
        typer.echo("Nothing to push.")
        return
    _with_controller(data_dir, api_url, body)
    left = remaining()
    typer.echo(f"Pushed {len(before) - len(left)} of {len(before)} drafts.")
    if left:
        logger.error("{} drafts could not be synced, see 'pending'", len(left))
        raise typer.Exit(1)


@app.command()
def show(
    note_id: str = typer.Argument(..., help="Note id"),
    database: DatabaseOption = "",
    max_depth: Annotated[
        int | None,
        typer.Option("--max-depth", "-m", help="Max depth levels to render"),
    ] = None,
    data_dir: DataDirOption = None,
    api_url: ApiUrlOption = None,
) -> None:
    """Print a note as markdown, local drafts included."""

    async def body(store: DraftStore, backend: BackendProtocol, controller: SyncController) -> str:
        session = await NoteSession.open(
            controller, store, backend, database_id=database, note_id=note_id
        )
        try:
            if session.offline:
                logger.warning("Backend unreachable, showing the last saved copy")
            return session.render(max_depth=max_depth)
        finally:
            session.close()

    md = _with_controller(data_dir, api_url, body)
    typer.echo(md if md else f"Note '{note_id}' is empty.")


def _apply_and_push(
    data_dir: Path | None,
    api_url: str | None,
    *,
    database: str,
    note_id: str,
    command: Command,
) -> str | None:
    async def body(
        store: DraftStore, backend: BackendProtocol, controller: SyncController
    ) -> str | None:
        session = await NoteSession.open(
            controller, store, backend, database_id=database, note_id=note_id
        )
        try:
            result = session.apply(command)
            if not result.success:
                typer.echo(f"Not applied: {result.error or 'nothing to do'}")
                raise typer.Exit(1)
            controller.flush_now(None)
            await controller.drain()
            return controller.resolve_id(result.node_id) if result.node_id else None
        finally:
            session.close()

    return _with_controller(data_dir, api_url, body)


@app.command()
def add(
    note_id: str = typer.Argument(..., help="Note id"),
    content: str = typer.Argument(..., help="Content of the new node"),
    database: DatabaseOption = "",
    after: Annotated[
        str | None,
        typer.Option("--after", "-a", help="Insert after this node (default: end of note)"),
    ] = None,
    data_dir: DataDirOption = None,
    api_url: ApiUrlOption = None,
) -> None:
    """Add a node to a note."""
    new_id = _apply_and_push(
        data_dir, api_url, database=database, note_id=note_id,
        command=InsertSibling(after, content),
    )
    typer.echo(f"Added {new_id}")


@app.command()
def edit(
    note_id: str = typer.Argument(..., help="Note id"),
    node_id: str = typer.Argument(..., help="Node id"),
    content: str = typer.Argument(..., help="New content"),
    database: DatabaseOption = "",
    data_dir: DataDirOption = None,
    api_url: ApiUrlOption = None,
) -> None:
    """Replace a node's content."""
    _apply_and_push(
        data_dir, api_url, database=database, note_id=note_id,
        command=EditContent(node_id, content),
    )
    typer.echo(f"Updated {node_id}")
