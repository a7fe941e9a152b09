"""Lifecycle coordinator.

Drives each connection through CONNECTING → ACTIVE → DISCONNECTED and keeps
the session registry and the visitor ledger consistent with it. Registry
mutations happen synchronously on the event loop; ledger notifications run
as background tasks whose failures are logged and never reach the chat path.
"""

import asyncio
import logging
from typing import Any, Coroutine, Dict, List, Optional, Set
from uuid import uuid4

from chat_relay.broadcast import BroadcastEngine
from chat_relay.connection import Connection
from chat_relay.errors import DuplicateSessionError, SendFailure, TransportTeardownFailure
from chat_relay.events import ErrorMessage, InvalidEvent, parse_client_event
from chat_relay.ledger import VisitorLedger, ledger_timestamp
from chat_relay.registry import SessionEntry, SessionRegistry, SessionState

logger = logging.getLogger(__name__)

CLOSE_GOING_AWAY = 1001
CLOSE_INTERNAL_ERROR = 1011


class LifecycleCoordinator:
    """Owns the session registry, the broadcast engine and the ledger hookup."""

    def __init__(
        self,
        ledger: Optional[VisitorLedger] = None,
        *,
        registry: Optional[SessionRegistry] = None,
        shutdown_timeout: float = 5.0,
        log_visitors: bool = True,
    ):
        self.registry = registry if registry is not None else SessionRegistry()
        self.broadcaster = BroadcastEngine(self.registry)
        self.ledger = ledger
        self.shutdown_timeout = shutdown_timeout
        self.log_visitors = log_visitors
        self.accepting = True
        self._ledger_tasks: Set[asyncio.Task] = set()
        self._insert_tasks: Dict[str, asyncio.Task] = {}

    @property
    def active_count(self) -> int:
        return self.registry.count()

    # ── Connect ───────────────────────────────────────────────

    async def connect(self, connection: Connection, user_id: Optional[str] = None) -> Optional[SessionEntry]:
        """Create and register the session for a freshly accepted connection.

        :param connection: The accepted connection.
        :param user_id: Identity cookie value, None for anonymous visitors.
        :return: The ACTIVE session, or None if the connection was refused.
        """
        if not self.accepting:
            logger.info(f"[LIFECYCLE] Refusing connection {connection.connection_id}: shutting down")
            await self._close_quietly(connection, CLOSE_GOING_AWAY, "Server shutting down")
            return None

        # The count includes the connecting visitor and is taken before the insert
        entry = SessionEntry(
            session_id=str(uuid4()),
            connection=connection,
            user_id=user_id or None,
            visitor_count=self.registry.count() + 1,
        )
        try:
            self.registry.register(entry)
        except DuplicateSessionError as e:
            logger.error(f"[LIFECYCLE] {e}; closing connection {connection.connection_id}")
            await self._close_quietly(connection, CLOSE_INTERNAL_ERROR, "Session conflict")
            return None
        entry.state = SessionState.ACTIVE

        if entry.user_id and self.ledger is not None:
            timestamp = ledger_timestamp(entry.connected_at)
            self._insert_tasks[entry.session_id] = self._spawn(
                self._record_connect(entry, timestamp),
                f"insert for session {entry.session_id}",
            )
        else:
            logger.info(f"[LIFECYCLE] Anonymous user connected (sessionId: {entry.session_id})")
        return entry

    async def _record_connect(self, entry: SessionEntry, timestamp: str) -> None:
        entry.record_id = await self.ledger.insert(
            entry.user_id, entry.session_id, entry.visitor_count, timestamp
        )
        logger.info(f"[LIFECYCLE] A user connected with record {entry.record_id} "
                    f"(userId: {entry.user_id}, sessionId: {entry.session_id})")
        await self._log_visitors()

    # ── Messages ──────────────────────────────────────────────

    async def handle_event(self, entry: SessionEntry, data: Any) -> None:
        """Forward one inbound frame of an ACTIVE session to the broadcast engine."""
        if entry.state != SessionState.ACTIVE:
            return
        try:
            event = parse_client_event(data)
        except InvalidEvent as e:
            logger.debug(f"[LIFECYCLE] Rejected frame from session {entry.session_id}: {e}")
            await self._send_error(entry, e.to_error_message())
            return
        logger.info(f"[LIFECYCLE] Message from session {entry.session_id} "
                    f"(record {entry.record_id}): {event.payload!r}")
        self.broadcaster.broadcast(event.payload, entry.session_id)

    async def _send_error(self, entry: SessionEntry, error: ErrorMessage) -> None:
        try:
            await entry.connection.send_json(error.model_dump())
        except SendFailure as e:
            logger.debug(f"[LIFECYCLE] Could not report error to session {entry.session_id}: {e}")

    # ── Disconnect ────────────────────────────────────────────

    def disconnect(self, entry: SessionEntry) -> bool:
        """Tear down a session. Safe to call any number of times.

        The registry entry is gone when this returns; the ledger removal runs
        in the background after the session's own insert (if any) settled.

        :return: True if this call performed the transition.
        """
        if entry.state == SessionState.DISCONNECTED:
            return False
        entry.state = SessionState.DISCONNECTED
        entry.connection.mark_closed()
        self.registry.unregister(entry.session_id)
        logger.info(f"[LIFECYCLE] User disconnected (sessionId: {entry.session_id}, record {entry.record_id})")

        insert_task = self._insert_tasks.pop(entry.session_id, None)
        if self.ledger is not None:
            self._spawn(
                self._record_disconnect(entry, insert_task),
                f"remove for session {entry.session_id}",
            )
        return True

    async def _record_disconnect(self, entry: SessionEntry, insert_task: Optional[asyncio.Task]) -> None:
        if insert_task is not None and not insert_task.done():
            await asyncio.wait([insert_task])
        await self.ledger.remove(entry.session_id)
        logger.info(f"[LIFECYCLE] Removed session with sessionId: {entry.session_id} "
                    f"(record {entry.record_id})")
        await self._log_visitors()

    # ── Connection loop ───────────────────────────────────────

    async def serve(self, connection: Connection, user_id: Optional[str] = None) -> None:
        """Run one connection from accept to disconnect."""
        entry = await self.connect(connection, user_id)
        if entry is None:
            return
        try:
            while entry.state == SessionState.ACTIVE:
                try:
                    data = await connection.receive_json()
                except ValueError:
                    await self._send_error(entry, ErrorMessage(error_type="InvalidJSON", message="Invalid JSON"))
                    continue
                if data is None:
                    break
                await self.handle_event(entry, data)
        except Exception as e:
            logger.error(f"[LIFECYCLE] Error in session {entry.session_id}: {type(e).__name__}: {e}")
            await self._close_quietly(connection, CLOSE_INTERNAL_ERROR, "Internal error")
        finally:
            self.disconnect(entry)

    # ── Ledger tasks ──────────────────────────────────────────

    def _spawn(self, coro: Coroutine[Any, Any, None], description: str) -> asyncio.Task:
        task = asyncio.create_task(coro)
        task.set_name(f"ledger {description}")
        self._ledger_tasks.add(task)
        task.add_done_callback(self._on_ledger_task_done)
        return task

    def _on_ledger_task_done(self, task: asyncio.Task) -> None:
        self._ledger_tasks.discard(task)
        if task.cancelled():
            logger.warning(f"[LEDGER] {task.get_name()} cancelled")
            return
        exc = task.exception()
        if exc is not None:
            logger.error(f"[LEDGER] {task.get_name()} failed: {type(exc).__name__}: {exc}")

    async def _log_visitors(self) -> None:
        if not self.log_visitors or self.ledger is None:
            return
        try:
            records = await self.ledger.list_all()
        except Exception as e:
            logger.error(f"[LEDGER] Failed to fetch visitors: {e}")
            return
        for record in records:
            logger.info(f"[LEDGER] {record.model_dump()}")

    async def wait_for_ledger(self, timeout: Optional[float] = None) -> int:
        """Wait for background ledger notifications.

        :return: Number of tasks still pending after the timeout.
        """
        pending = set(self._ledger_tasks)
        # Removals scheduled while waiting are picked up by the next round
        while pending:
            _, not_done = await asyncio.wait(pending, timeout=timeout)
            if not_done:
                return len(not_done)
            pending = set(self._ledger_tasks)
        return 0

    # ── Shutdown ──────────────────────────────────────────────

    async def shutdown(self) -> None:
        """Stop accepting, close every live connection and release the ledger.

        Queued outbound frames get up to ``shutdown_timeout`` to drain before
        the connections are closed; whatever is left is dropped.
        """
        logger.info("[SHUTDOWN] Shutting down gracefully...")
        self.accepting = False

        entries = self.registry.entries()
        await self._flush_outboxes(entries)
        for entry in entries:
            await self._close_quietly(entry.connection, CLOSE_GOING_AWAY, "Server shutting down")
            self.disconnect(entry)
        logger.info(f"[SHUTDOWN] Closed {len(entries)} connection(s)")

        still_pending = await self.wait_for_ledger(timeout=self.shutdown_timeout)
        if still_pending:
            logger.warning(f"[SHUTDOWN] Abandoning {still_pending} pending ledger task(s)")
            for task in list(self._ledger_tasks):
                task.cancel()
            await asyncio.gather(*list(self._ledger_tasks), return_exceptions=True)

        self.registry.clear()
        self._insert_tasks.clear()

        if self.ledger is not None:
            try:
                await self.ledger.close()
                logger.info("[SHUTDOWN] Closed the ledger connection")
            except Exception as e:
                logger.error(f"[SHUTDOWN] Failed to close ledger: {type(e).__name__}: {e}")

    async def _flush_outboxes(self, entries: List[SessionEntry]) -> None:
        flushes = [asyncio.create_task(entry.connection.flush()) for entry in entries]
        if not flushes:
            return
        _, stuck = await asyncio.wait(flushes, timeout=self.shutdown_timeout)
        if stuck:
            logger.warning(f"[SHUTDOWN] {len(stuck)} connection(s) did not drain their outbound queue")
            for task in stuck:
                task.cancel()
            await asyncio.gather(*stuck, return_exceptions=True)

    async def _close_quietly(self, connection: Connection, code: int, reason: str) -> None:
        try:
            await connection.close(code=code, reason=reason)
        except TransportTeardownFailure as e:
            logger.error(f"[LIFECYCLE] {e}")
