"""Local-first sync controller.

Local edits land in the draft store synchronously. This controller decides when each
dirty draft is sent to the backend and reconciles the response. It is a process-lifetime
object; views come and go without cancelling its timers.

Per-node states::

    clean -> dirty -> in_flight -> clean
                          |
                          +-> retry_wait -> (due or online) -> in_flight ...

All methods run on the event loop thread. The only suspension points are the debounce
and retry timers and backend request completion.
"""

import asyncio
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from enum import StrEnum
from typing import Any, Literal

from loguru import logger

from hulunote_outline.config import DEBOUNCE_MS
from hulunote_outline.core.drafts.store import DraftStore
from hulunote_outline.core.sync.backoff import compute_retry_delay_ms
from hulunote_outline.core.wire import NodeRequest, UpsertResult
from hulunote_outline.errors import RejectedByBackend, TransportFailure
from hulunote_outline.models.node import Draft, RouteContext
from hulunote_outline.protocols import BackendProtocol
from hulunote_outline.util import is_tmp_id, now_ms


class SyncState(StrEnum):
    CLEAN = "clean"
    DIRTY = "dirty"
    IN_FLIGHT = "in_flight"
    RETRY_WAIT = "retry_wait"


@dataclass(frozen=True)
class SyncEvent:
    """Notification for UI indicators and for the editor session."""

    kind: Literal["state", "id_assigned", "rejected", "connectivity"]
    node_id: str = ""
    state: SyncState | None = None
    new_id: str | None = None
    error: str | None = None


Subscriber = Callable[[SyncEvent], None]


def build_request(draft: Draft) -> NodeRequest:
    """Request for the fields a draft covers; temporary nodes are sent as creates."""
    if is_tmp_id(draft.node_id):
        return NodeRequest(
            note_id=draft.note_id,
            id=None,
            parent_id=draft.parent_id,
            content=draft.content if draft.content is not None else "",
            order=draft.order,
            is_display=True if draft.is_display is None else draft.is_display,
            is_delete=bool(draft.is_delete),
            properties=draft.properties,
        )
    return NodeRequest(note_id=draft.note_id, id=draft.node_id, **draft.fields())


class SyncController:
    """Schedules and reconciles backend writes for dirty drafts."""

    def __init__(
        self,
        store: DraftStore,
        backend: BackendProtocol,
        *,
        debounce_ms: int = DEBOUNCE_MS,
        backoff: Callable[[int], int] = compute_retry_delay_ms,
        clock: Callable[[], int] = now_ms,
        loop: asyncio.AbstractEventLoop | None = None,
    ) -> None:
        self._store = store
        self._clock = clock
        self._backend = backend
        self.debounce_ms = debounce_ms
        self._backoff = backoff
        self._loop = loop

        self._route = RouteContext()
        self._states: dict[str, SyncState] = {}
        self._timers: dict[str, asyncio.TimerHandle] = {}
        self._in_flight: set[str] = set()
        # Nodes flushed while a request was outstanding: send right after it resolves.
        self._flush_after: set[str] = set()
        # Temporary id -> backend id, for edits still addressed by the old id.
        self._aliases: dict[str, str] = {}
        self._tasks: set[asyncio.Task[None]] = set()
        self._subscribers: list[Subscriber] = []

        self.backend_online = True
        self.last_error: str | None = None

    # --- Context ---

    @property
    def route(self) -> RouteContext:
        return self._route

    def set_route(self, database_id: str, note_id: str) -> None:
        """Target a new note. Pending writes for the previous note keep draining."""
        self._route = RouteContext(database_id=database_id, note_id=note_id)
        logger.debug("Route set to {}/{}", database_id, note_id)

    def set_editing_node(self, node_id: str | None) -> None:
        if node_id is not None:
            node_id = self.resolve_id(node_id)
        self._route = RouteContext(
            database_id=self._route.database_id,
            note_id=self._route.note_id,
            editing_node_id=node_id,
        )

    def resolve_id(self, node_id: str) -> str:
        """Map a temporary id to its backend id once known."""
        return self._aliases.get(node_id, node_id)

    def state(self, node_id: str) -> SyncState:
        node_id = self.resolve_id(node_id)
        if node_id in self._states:
            return self._states[node_id]
        draft = self._store.read(node_id)
        return SyncState.DIRTY if draft is not None and draft.dirty else SyncState.CLEAN

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Register for sync events. Returns an unsubscribe function."""
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    # --- Write entry points ---

    def on_node_changed(
        self, node_id: str, content: str, *, route: RouteContext | None = None
    ) -> None:
        """Persist a content edit and (re)arm the node's debounce timer.

        ``route`` is the note the edit was made in; the current route is used when omitted.
        """
        self._write(node_id, {"content": content}, route)

    def on_node_meta_changed(
        self, node_id: str, fields: dict[str, Any], *, route: RouteContext | None = None
    ) -> None:
        """Persist structural fields (``parent_id``, ``order``, ``is_display``, ``is_delete``).

        Node creation passes the full field set, content included.
        """
        self._write(node_id, fields, route)

    def flush_now(self, node_id: str | None = None) -> None:
        """Send now, bypassing the debounce. Does not wait for responses.

        ``None`` flushes every dirty draft, the node being edited first. While the backend
        is unreachable only the first target is sent, and only when no other request is
        outstanding.
        """
        if node_id is not None:
            targets = [self.resolve_id(node_id)]
        else:
            targets = self._store.all_dirty()
            editing = self._route.editing_node_id
            if editing in targets:
                targets.remove(editing)
                targets.insert(0, editing)
        if not self.backend_online:
            if self._in_flight:
                logger.debug("Offline with a request outstanding; skipping flush")
                return
            targets = targets[:1]
        for target in targets:
            if target in self._in_flight:
                self._flush_after.add(target)
            else:
                self._send(target)

    # --- Lifecycle ---

    def on_online(self) -> None:
        """Network is back: send every waiting draft now instead of at its backoff time."""
        self._mark_online()
        self._resume_waiting()

    def on_page_hide(self) -> None:
        logger.debug("Page hide: flushing all dirty drafts")
        self.flush_now(None)

    def start(self) -> None:
        """Pick up drafts left dirty by a previous process."""
        now = self._clock()
        resumed = 0
        for node_id in self._store.all_dirty():
            if node_id in self._states:
                continue
            draft = self._store.read(node_id)
            if draft is None:
                continue
            if draft.is_due(now):
                self._arm(node_id, SyncState.DIRTY, self.debounce_ms)
            else:
                self._arm(node_id, SyncState.RETRY_WAIT, draft.next_retry_at_ms - now)
            resumed += 1
        if resumed:
            logger.info("Resumed sync for {} dirty drafts", resumed)

    async def drain(self) -> None:
        """Wait for every outstanding request, including follow-ups they trigger."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def close(self) -> None:
        """Cancel timers. Dirty drafts stay in the store for the next start()."""
        for handle in self._timers.values():
            handle.cancel()
        self._timers.clear()

    # --- Internals ---

    def _get_loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def _emit(self, event: SyncEvent) -> None:
        for callback in list(self._subscribers):
            try:
                callback(event)
            except Exception:
                logger.exception("Sync subscriber failed on {}", event)

    def _set_state(self, node_id: str, state: SyncState) -> None:
        if self._states.get(node_id) == state:
            return
        if state == SyncState.CLEAN:
            self._states.pop(node_id, None)
        else:
            self._states[node_id] = state
        self._emit(SyncEvent(kind="state", node_id=node_id, state=state))

    def _cancel_timer(self, node_id: str) -> None:
        handle = self._timers.pop(node_id, None)
        if handle is not None:
            handle.cancel()

    def _arm(self, node_id: str, state: SyncState, delay_ms: int) -> None:
        self._cancel_timer(node_id)
        self._timers[node_id] = self._get_loop().call_later(
            max(delay_ms, 0) / 1000, self._on_timer, node_id
        )
        self._set_state(node_id, state)

    def _on_timer(self, node_id: str) -> None:
        self._timers.pop(node_id, None)
        self._send(node_id)

    def _write(
        self, node_id: str, fields: dict[str, Any], route: RouteContext | None
    ) -> None:
        node_id = self.resolve_id(node_id)
        self._store.write(node_id, fields, route=route if route is not None else self._route)
        if node_id in self._in_flight:
            # The follow-up is scheduled when the outstanding request resolves.
            return
        if self._states.get(node_id) == SyncState.RETRY_WAIT:
            # The retry sends the latest draft; keep the backoff.
            return
        self._arm(node_id, SyncState.DIRTY, self.debounce_ms)

    def _send(self, node_id: str) -> None:
        if node_id in self._in_flight:
            self._flush_after.add(node_id)
            return
        self._cancel_timer(node_id)

        draft = self._store.read(node_id)
        if draft is None or not draft.dirty:
            self._set_state(node_id, SyncState.CLEAN)
            return
        if not draft.note_id:
            logger.warning("Draft {} has no note; not sending", node_id)
            self._set_state(node_id, SyncState.DIRTY)
            return
        if draft.parent_id is not None and is_tmp_id(draft.parent_id):
            # Sent once the parent's create returns a real id.
            self._set_state(node_id, SyncState.DIRTY)
            return
        if is_tmp_id(node_id) and (draft.parent_id is None or draft.order is None):
            logger.error("Cannot create {}: draft has no parent or order", node_id)
            self._set_state(node_id, SyncState.DIRTY)
            return

        request = build_request(draft)
        self._in_flight.add(node_id)
        self._set_state(node_id, SyncState.IN_FLIGHT)
        task = self._get_loop().create_task(self._run(node_id, request, draft.seq))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _run(self, node_id: str, request: NodeRequest, seq: int) -> None:
        try:
            result = await self._backend.create_or_update_node(request)
        except RejectedByBackend as e:
            self._in_flight.discard(node_id)
            self._on_failure(node_id, e, rejected=True)
        except TransportFailure as e:
            self._in_flight.discard(node_id)
            self._on_failure(node_id, e, rejected=False)
        except Exception as e:
            logger.exception("Unexpected error syncing {}", node_id)
            self._in_flight.discard(node_id)
            self._on_failure(node_id, e, rejected=False)
        else:
            self._in_flight.discard(node_id)
            self._on_success(node_id, request, result, seq)

    def _on_success(
        self, node_id: str, request: NodeRequest, result: UpsertResult, seq: int
    ) -> None:
        was_offline = not self.backend_online
        self._mark_online()
        if request.is_create and result.id != node_id:
            node_id = self._assign_id(node_id, result.id)

        flush = node_id in self._flush_after
        self._flush_after.discard(node_id)
        if self._store.ack(node_id, result.backend_ts, seq=seq):
            self._set_state(node_id, SyncState.CLEAN)
            logger.debug("Synced {} (seq {})", node_id, seq)
        elif flush:
            self._send(node_id)
        else:
            # Edited while in flight: one follow-up behind the finished request.
            self._arm(node_id, SyncState.DIRTY, self.debounce_ms)

        if request.is_create:
            self._release_children(node_id)
        if was_offline:
            # Backend reachable again: send what was held back.
            self._resume_waiting()

    def _on_failure(self, node_id: str, error: Exception, *, rejected: bool) -> None:
        self._flush_after.discard(node_id)
        if not rejected:
            self._mark_offline(str(error))

        draft = self._store.read(node_id)
        retry_count = (draft.retry_count if draft else 0) + 1
        delay_ms = self._backoff(retry_count)
        self._store.mark_failed(node_id, delay_ms=delay_ms, error=str(error))
        self._arm(node_id, SyncState.RETRY_WAIT, delay_ms)

        if rejected:
            logger.warning(
                "Backend rejected {}: {} (retry {} in {} ms)", node_id, error, retry_count, delay_ms
            )
            self._emit(SyncEvent(kind="rejected", node_id=node_id, error=str(error)))
        else:
            logger.info(
                "Sync of {} failed: {} (retry {} in {} ms)", node_id, error, retry_count, delay_ms
            )

    def _assign_id(self, old_id: str, new_id: str) -> str:
        """Swap a temporary id for the backend id everywhere the controller knows about."""
        self._store.rename(old_id, new_id)
        self._aliases[old_id] = new_id

        self._cancel_timer(old_id)
        self._states.pop(old_id, None)
        if old_id in self._flush_after:
            self._flush_after.discard(old_id)
            self._flush_after.add(new_id)
        if self._route.editing_node_id == old_id:
            self.set_editing_node(new_id)

        logger.debug("Node {} created as {}", old_id, new_id)
        self._emit(SyncEvent(kind="id_assigned", node_id=old_id, new_id=new_id))
        return new_id

    def _resume_waiting(self) -> None:
        """Send drafts waiting on a backoff timer or held back by an offline flush."""
        for node_id in self._store.all_dirty():
            if node_id in self._in_flight:
                continue
            if self._states.get(node_id, SyncState.RETRY_WAIT) == SyncState.RETRY_WAIT:
                self._send(node_id)

    def _release_children(self, parent_id: str) -> None:
        """Send creates that were waiting for this parent's backend id."""
        for child_id in self._children_waiting_on(parent_id):
            if child_id not in self._in_flight and child_id not in self._timers:
                self._send(child_id)

    def _children_waiting_on(self, parent_id: str) -> Iterable[str]:
        for node_id in self._store.all_dirty():
            draft = self._store.read(node_id)
            if draft is not None and draft.parent_id == parent_id:
                yield node_id

    def _mark_online(self) -> None:
        if not self.backend_online:
            logger.info("Backend reachable again")
            self.backend_online = True
            self.last_error = None
            self._emit(SyncEvent(kind="connectivity"))

    def _mark_offline(self, error: str) -> None:
        self.last_error = error
        if self.backend_online:
            logger.warning("Backend unreachable: {}", error)
            self.backend_online = False
            self._emit(SyncEvent(kind="connectivity", error=error))
