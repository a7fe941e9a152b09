from abc import ABC, abstractmethod
from typing import List

from .ledger_types import VisitorRecord


class VisitorLedger(ABC):
    """Base class for visitor ledgers.

    A ledger keeps one record per connected session that arrived with an
    identity cookie. Records are keyed uniquely by session id, so backends
    never need read-modify-write coordination. Backend errors surface as
    :class:`chat_relay.errors.LedgerFailure`.
    """

    name: str = "ledger"

    @abstractmethod
    async def insert(self, user_id: str, session_id: str, visitor_count: int, timestamp: str) -> int:
        """Record a connect event.

        :param user_id: Identity cookie value of the visitor.
        :param session_id: Freshly generated session id.
        :param visitor_count: Number of live sessions at connect time.
        :param timestamp: Connect time, see :func:`ledger_timestamp`.
        :return: The id of the new record.
        """
        raise NotImplementedError("Subclasses must implement insert")

    @abstractmethod
    async def remove(self, session_id: str) -> None:
        """Delete the record of a session. Unknown session ids are ignored."""
        raise NotImplementedError("Subclasses must implement remove")

    @abstractmethod
    async def list_all(self) -> List[VisitorRecord]:
        """Return all records, oldest first."""
        raise NotImplementedError("Subclasses must implement list_all")

    async def close(self) -> None:
        """Release backend resources. The default implementation does nothing."""
        pass
