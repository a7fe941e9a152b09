"""Test configuration and fixtures."""
import asyncio
import json
from typing import Any, List, Optional

import pytest

from chat_relay.connection import Connection
from chat_relay.ledger import MemoryVisitorLedger
from chat_relay.lifecycle import LifecycleCoordinator
from chat_relay.registry import SessionRegistry

HANG_UP = object()


class FakeConnection(Connection):
    """In-memory connection: frames are fed through a queue and sends are recorded."""

    def __init__(self, *, fail_sends: bool = False, fail_close: bool = False, cookies=None):
        super().__init__(cookies=cookies)
        self.inbox: asyncio.Queue = asyncio.Queue()
        self.sent: List[dict] = []
        self.fail_sends = fail_sends
        self.fail_close = fail_close
        self.close_code: Optional[int] = None

    def feed(self, data: Any) -> None:
        """Queue a frame; strings are decoded as raw JSON text."""
        self.inbox.put_nowait(data)

    def hang_up(self) -> None:
        self.inbox.put_nowait(HANG_UP)

    async def receive_json(self) -> Optional[Any]:
        item = await self.inbox.get()
        if item is HANG_UP:
            self.mark_closed()
            return None
        if isinstance(item, str):
            return json.loads(item)
        return item

    async def _send(self, data: dict) -> None:
        if self.fail_sends:
            raise ConnectionResetError("peer reset")
        await asyncio.sleep(0)
        self.sent.append(data)

    async def _close(self, code: int, reason: str) -> None:
        self.close_code = code
        if self.fail_close:
            raise OSError("socket already torn down")

    def payloads(self) -> List[str]:
        return [m["payload"] for m in self.sent if m.get("type") == "server-message"]

    async def wait_sent(self, count: int, timeout: float = 2.0) -> None:
        """Wait until at least ``count`` frames were sent to this connection."""
        async def _poll():
            while len(self.sent) < count:
                await asyncio.sleep(0.005)
        await asyncio.wait_for(_poll(), timeout)


class StalledConnection(FakeConnection):
    """A peer whose socket stopped draining: every send hangs until released."""

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self.release = asyncio.Event()

    async def _send(self, data: dict) -> None:
        await self.release.wait()
        self.sent.append(data)


async def flush_all(*connections: Connection, timeout: float = 2.0) -> None:
    """Wait until every connection wrote out its queued frames."""
    await asyncio.wait_for(asyncio.gather(*(c.flush() for c in connections)), timeout)


@pytest.fixture
def registry():
    return SessionRegistry()


@pytest.fixture
def ledger():
    return MemoryVisitorLedger()


@pytest.fixture
def coordinator(ledger):
    return LifecycleCoordinator(ledger, shutdown_timeout=1.0)
