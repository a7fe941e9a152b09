from datetime import datetime, timezone

from pydantic import BaseModel

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"


class VisitorRecord(BaseModel):
    """One row of the visitor ledger."""
    id: int
    user_id: str
    session_id: str
    count: int
    time: str


def ledger_timestamp(now: datetime | None = None) -> str:
    """UTC timestamp in the ledger's text format (same as SQLite ``datetime('now')``)."""
    now = now or datetime.now(timezone.utc)
    return now.astimezone(timezone.utc).strftime(TIMESTAMP_FORMAT)
