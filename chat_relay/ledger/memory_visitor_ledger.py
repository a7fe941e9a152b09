import logging
import threading
from typing import Dict, List

from .ledger_types import VisitorRecord
from .visitor_ledger import VisitorLedger

logger = logging.getLogger(__name__)


class MemoryVisitorLedger(VisitorLedger):
    """Visitor ledger kept in process memory."""
    name = "memory"

    def __init__(self):
        self._lock = threading.Lock()
        self._records: Dict[int, VisitorRecord] = {}
        self._next_id = 1

    async def insert(self, user_id: str, session_id: str, visitor_count: int, timestamp: str) -> int:
        with self._lock:
            record_id = self._next_id
            self._next_id += 1
            self._records[record_id] = VisitorRecord(
                id=record_id,
                user_id=user_id,
                session_id=session_id,
                count=visitor_count,
                time=timestamp,
            )
        logger.debug(f"[LEDGER] Inserted record {record_id} for session {session_id}")
        return record_id

    async def remove(self, session_id: str) -> None:
        with self._lock:
            stale = [rid for rid, rec in self._records.items() if rec.session_id == session_id]
            for rid in stale:
                del self._records[rid]
        logger.debug(f"[LEDGER] Removed {len(stale)} record(s) for session {session_id}")

    async def list_all(self) -> List[VisitorRecord]:
        with self._lock:
            return [self._records[rid] for rid in sorted(self._records)]
