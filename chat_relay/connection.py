"""Connection abstraction.

Connection — one live bidirectional channel to a remote peer
WebSocketConnection — Connection backed by a Starlette WebSocket
"""

import asyncio
import json
import logging
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Mapping, Optional
from uuid import uuid4

from starlette.websockets import WebSocket, WebSocketState

from chat_relay.errors import SendFailure, TransportTeardownFailure

logger = logging.getLogger(__name__)


class ConnectionState(str, Enum):
    OPEN = "open"
    CLOSED = "closed"


class Connection(ABC):
    """A live channel owned by the transport layer.

    The registry only holds a reference to it. The state moves from OPEN to
    CLOSED exactly once.

    Outbound frames either go out directly through ``send_json`` or are
    queued with ``enqueue_json``. Queued frames are written in FIFO order by a
    per-connection writer task, so a peer that stops reading only delays its
    own queue.
    """

    def __init__(self, *, cookies: Optional[Mapping[str, str]] = None):
        self.connection_id = uuid4().hex
        self.cookies: dict[str, str] = dict(cookies or {})
        self._state = ConnectionState.OPEN
        self._send_lock = asyncio.Lock()
        self._outbox: asyncio.Queue = asyncio.Queue()
        self._writer: Optional[asyncio.Task] = None

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_open(self) -> bool:
        return self._state == ConnectionState.OPEN

    @property
    def pending_frames(self) -> int:
        return self._outbox.qsize()

    def mark_closed(self) -> bool:
        """Move to CLOSED. Returns True only for the first transition.

        Stops the writer task and drops every frame still queued.
        """
        if self._state == ConnectionState.CLOSED:
            return False
        self._state = ConnectionState.CLOSED
        if self._writer is not None and not self._writer.done():
            self._writer.cancel()
        dropped = 0
        while not self._outbox.empty():
            self._outbox.get_nowait()
            self._outbox.task_done()
            dropped += 1
        if dropped:
            logger.debug(f"[WS] Dropped {dropped} queued frame(s) for connection {self.connection_id}")
        return True

    def enqueue_json(self, data: dict) -> None:
        """Queue one JSON frame for the writer task and return immediately.

        :raises SendFailure: If the connection is closed.
        """
        if not self.is_open:
            raise SendFailure(self.connection_id)
        if self._writer is None:
            self._writer = asyncio.create_task(self._write_loop())
            self._writer.set_name(f"writer {self.connection_id}")
        self._outbox.put_nowait(data)

    async def flush(self) -> None:
        """Wait until every queued frame was written or dropped."""
        if self.is_open:
            await self._outbox.join()

    async def _write_loop(self) -> None:
        while True:
            data = await self._outbox.get()
            try:
                await self.send_json(data)
            except SendFailure as e:
                logger.warning(f"[WS] Dropping frame: {e}")
            finally:
                self._outbox.task_done()

    async def send_json(self, data: dict) -> None:
        """Send one JSON frame. Frames on a single connection never interleave.

        :raises SendFailure: If the connection is closed or the transport fails.
        """
        if not self.is_open:
            raise SendFailure(self.connection_id)
        async with self._send_lock:
            if not self.is_open:
                raise SendFailure(self.connection_id)
            try:
                await self._send(data)
            except Exception as e:
                raise SendFailure(self.connection_id, e) from e

    async def close(self, code: int = 1000, reason: str = "") -> None:
        """Close the channel. Closing an already closed connection is a no-op.

        :raises TransportTeardownFailure: If the transport fails while closing.
        """
        if not self.mark_closed():
            return
        try:
            await self._close(code, reason)
        except Exception as e:
            raise TransportTeardownFailure(f"connection {self.connection_id}", e) from e

    @abstractmethod
    async def receive_json(self) -> Optional[Any]:
        """Return the next decoded frame, or None once the peer has gone away.

        :raises ValueError: If the frame is not valid JSON.
        """
        raise NotImplementedError("Subclasses must implement receive_json")

    @abstractmethod
    async def _send(self, data: dict) -> None:
        raise NotImplementedError("Subclasses must implement _send")

    @abstractmethod
    async def _close(self, code: int, reason: str) -> None:
        raise NotImplementedError("Subclasses must implement _close")


class WebSocketConnection(Connection):
    """Connection over an accepted Starlette WebSocket.

    Text and binary frames are both accepted; binary frames must hold UTF-8
    encoded JSON.
    """

    def __init__(self, ws: WebSocket):
        super().__init__(cookies=ws.cookies)
        self._ws = ws

    async def receive_json(self) -> Optional[Any]:
        if not self.is_open:
            return None
        try:
            message = await self._ws.receive()
        except RuntimeError as e:
            # Starlette raises RuntimeError when receiving after the socket closed
            logger.debug(f"[WS] Connection {self.connection_id} no longer readable: {e}")
            self.mark_closed()
            return None
        if message["type"] == "websocket.disconnect":
            logger.debug(f"[WS] Connection {self.connection_id} closed by peer (code {message.get('code')})")
            self.mark_closed()
            return None

        raw = message.get("text")
        if raw is None:
            data = message.get("bytes")
            if data is None:
                raise ValueError("Empty frame")
            raw = data.decode("utf-8")
        return json.loads(raw)

    async def _send(self, data: dict) -> None:
        if self._ws.client_state != WebSocketState.CONNECTED:
            raise RuntimeError(f"WebSocket is {self._ws.client_state.name}")
        await self._ws.send_json(data)

    async def _close(self, code: int, reason: str) -> None:
        if self._ws.client_state == WebSocketState.CONNECTED:
            await self._ws.close(code=code, reason=reason)
