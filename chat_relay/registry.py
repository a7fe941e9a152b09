"""Session registry: the authoritative map of live sessions to connections."""

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Optional, Tuple

from chat_relay.connection import Connection
from chat_relay.errors import DuplicateSessionError

logger = logging.getLogger(__name__)


class SessionState(str, Enum):
    """Per-connection lifecycle: CONNECTING → ACTIVE → DISCONNECTED (terminal)."""
    CONNECTING = "connecting"
    ACTIVE = "active"
    DISCONNECTED = "disconnected"


@dataclass
class SessionEntry:
    """A registered session with its connection and visitor metadata."""
    session_id: str
    connection: Connection
    user_id: Optional[str] = None
    visitor_count: int = 0
    connected_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    state: SessionState = SessionState.CONNECTING
    record_id: Optional[int] = None
    """Ledger record id, set once the connect notification has been stored."""


class SessionRegistry:
    """Maps session_id → SessionEntry.

    Every mutation and every snapshot holds the lock for one dict operation
    only; callers perform I/O on the returned copies, never under the lock.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._sessions: Dict[str, SessionEntry] = {}

    def register(self, entry: SessionEntry) -> SessionEntry:
        """Insert a session.

        :raises DuplicateSessionError: If the session id is already present.
        """
        with self._lock:
            if entry.session_id in self._sessions:
                raise DuplicateSessionError(entry.session_id)
            self._sessions[entry.session_id] = entry
            count = len(self._sessions)
        logger.info(f"[REGISTRY] Registered session {entry.session_id} "
                    f"(user {entry.user_id or 'anonymous'}, {count} live)")
        return entry

    def unregister(self, session_id: str) -> Optional[SessionEntry]:
        """Remove a session. Removing an absent session is a no-op returning None."""
        with self._lock:
            entry = self._sessions.pop(session_id, None)
            count = len(self._sessions)
        if entry:
            logger.info(f"[REGISTRY] Removed session {session_id} ({count} live)")
        return entry

    def get(self, session_id: str) -> Optional[SessionEntry]:
        with self._lock:
            return self._sessions.get(session_id)

    def snapshot(self) -> List[Tuple[str, Connection]]:
        """Point-in-time copy of (session_id, connection) pairs in registration order."""
        with self._lock:
            return [(sid, entry.connection) for sid, entry in self._sessions.items()]

    def entries(self) -> List[SessionEntry]:
        with self._lock:
            return list(self._sessions.values())

    def count(self) -> int:
        with self._lock:
            return len(self._sessions)

    def clear(self) -> int:
        """Drop every session. Returns the number removed."""
        with self._lock:
            removed = len(self._sessions)
            self._sessions.clear()
        if removed:
            logger.info(f"[REGISTRY] Cleared {removed} sessions")
        return removed

    def __contains__(self, session_id: str) -> bool:
        with self._lock:
            return session_id in self._sessions

    def __len__(self) -> int:
        return self.count()
