import asyncio
import logging
from typing import List, Optional

import sqlalchemy as sa
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.pool import StaticPool

from chat_relay.errors import LedgerFailure

from .ledger_types import VisitorRecord
from .visitor_ledger import VisitorLedger

logger = logging.getLogger(__name__)

metadata = sa.MetaData()

visitors = sa.Table(
    "visitors",
    metadata,
    sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
    sa.Column("userId", sa.Text),
    sa.Column("sessionId", sa.Text, index=True),
    sa.Column("count", sa.Integer),
    sa.Column("time", sa.Text),
    sqlite_autoincrement=True,
)


class SqlVisitorLedger(VisitorLedger):
    """Visitor ledger in a relational database via SQLAlchemy Core.

    Defaults to an in-memory SQLite database. Blocking driver calls run in a
    worker thread so the event loop never waits on the database.
    """
    name = "sql"

    def __init__(self, url: str = "sqlite://", engine: Optional[sa.engine.Engine] = None):
        self.url = url
        if engine is None:
            kwargs = {}
            if url in ("sqlite://", "sqlite:///:memory:"):
                # One shared connection so every thread sees the same in-memory database
                kwargs = {"connect_args": {"check_same_thread": False}, "poolclass": StaticPool}
            engine = sa.create_engine(url, **kwargs)
        self._engine = engine
        metadata.create_all(self._engine)
        logger.info(f"[LEDGER] SQL visitor ledger ready at {self._engine.url.render_as_string(hide_password=True)}")

    def _insert(self, user_id: str, session_id: str, visitor_count: int, timestamp: str) -> int:
        with self._engine.begin() as conn:
            result = conn.execute(
                visitors.insert().values(
                    userId=user_id, sessionId=session_id, count=visitor_count, time=timestamp,
                )
            )
            return int(result.inserted_primary_key[0])

    def _remove(self, session_id: str) -> int:
        with self._engine.begin() as conn:
            result = conn.execute(visitors.delete().where(visitors.c.sessionId == session_id))
            return result.rowcount

    def _list_all(self) -> List[VisitorRecord]:
        with self._engine.connect() as conn:
            rows = conn.execute(sa.select(visitors).order_by(visitors.c.id)).all()
        return [
            VisitorRecord(id=row.id, user_id=row.userId, session_id=row.sessionId, count=row.count, time=row.time)
            for row in rows
        ]

    async def insert(self, user_id: str, session_id: str, visitor_count: int, timestamp: str) -> int:
        try:
            return await asyncio.to_thread(self._insert, user_id, session_id, visitor_count, timestamp)
        except SQLAlchemyError as e:
            raise LedgerFailure("insert", str(e), session_id=session_id) from e

    async def remove(self, session_id: str) -> None:
        try:
            removed = await asyncio.to_thread(self._remove, session_id)
        except SQLAlchemyError as e:
            raise LedgerFailure("remove", str(e), session_id=session_id) from e
        logger.debug(f"[LEDGER] Deleted {removed} row(s) for session {session_id}")

    async def list_all(self) -> List[VisitorRecord]:
        try:
            return await asyncio.to_thread(self._list_all)
        except SQLAlchemyError as e:
            raise LedgerFailure("list_all", str(e)) from e

    async def close(self) -> None:
        await asyncio.to_thread(self._engine.dispose)
        logger.info("[LEDGER] SQL visitor ledger closed")
