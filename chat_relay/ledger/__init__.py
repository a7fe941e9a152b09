from typing import TYPE_CHECKING, Optional

from .ledger_types import VisitorRecord, ledger_timestamp, TIMESTAMP_FORMAT
from .visitor_ledger import VisitorLedger
from .memory_visitor_ledger import MemoryVisitorLedger
from .sql_visitor_ledger import SqlVisitorLedger

if TYPE_CHECKING:
    from chat_relay.config import RelayConfig


def __getattr__(name):
    """Lazy imports for optional dependencies."""
    if name == "MongoDBVisitorLedger":
        from .mongodb_visitor_ledger import MongoDBVisitorLedger
        return MongoDBVisitorLedger
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


def create_ledger(config: "RelayConfig") -> Optional[VisitorLedger]:
    """Build the ledger backend selected by ``config.ledger``; None when disabled."""
    if config.ledger == "none":
        return None
    if config.ledger == "memory":
        return MemoryVisitorLedger()
    if config.ledger == "sql":
        return SqlVisitorLedger(config.sql_url)
    if config.ledger == "mongodb":
        if not config.mongo_uri:
            raise ValueError("RELAY_LEDGER=mongodb requires MONGODB_CONNECTION")
        from .mongodb_visitor_ledger import MongoDBVisitorLedger
        return MongoDBVisitorLedger(
            mongo_uri=config.mongo_uri,
            mongo_db=config.mongo_db,
            mongo_collection=config.mongo_collection,
        )
    raise ValueError(f"Unknown ledger backend: {config.ledger}")


__all__ = [
    'VisitorRecord',
    'VisitorLedger',
    'MemoryVisitorLedger',
    'SqlVisitorLedger',
    'MongoDBVisitorLedger',
    'create_ledger',
    'ledger_timestamp',
    'TIMESTAMP_FORMAT',
]
