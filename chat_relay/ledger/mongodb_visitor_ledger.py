import logging
from typing import List

from motor.motor_asyncio import AsyncIOMotorClient
from pymongo import ASCENDING, ReturnDocument
from pymongo.errors import PyMongoError

from chat_relay.errors import LedgerFailure

from .ledger_types import VisitorRecord
from .visitor_ledger import VisitorLedger

logger = logging.getLogger(__name__)


class MongoDBVisitorLedger(VisitorLedger):
    """Visitor ledger stored in MongoDB.

    Record ids are allocated atomically from a counter document so they stay
    integers, like the relational backend's autoincrement key.
    """
    name = "mongodb"

    def __init__(self, *, mongo_uri: str, mongo_db: str, mongo_collection: str):
        if not mongo_uri or not mongo_db or not mongo_collection:
            raise ValueError("MongoDB URI, database, and collection are required")
        self.mongo_uri = mongo_uri
        self.mongo_db = mongo_db
        self.mongo_collection = mongo_collection
        self._client = AsyncIOMotorClient(mongo_uri)
        self._coll = self._client[mongo_db][mongo_collection]
        self._counters = self._client[mongo_db][f"{mongo_collection}_counters"]

    async def _next_id(self) -> int:
        doc = await self._counters.find_one_and_update(
            {"_id": self.mongo_collection},
            {"$inc": {"seq": 1}},
            upsert=True,
            return_document=ReturnDocument.AFTER,
        )
        return int(doc["seq"])

    async def insert(self, user_id: str, session_id: str, visitor_count: int, timestamp: str) -> int:
        try:
            record_id = await self._next_id()
            await self._coll.insert_one({
                "id": record_id,
                "userId": user_id,
                "sessionId": session_id,
                "count": visitor_count,
                "time": timestamp,
            })
        except PyMongoError as e:
            raise LedgerFailure("insert", str(e), session_id=session_id) from e
        logger.debug(f"[LEDGER] Inserted record {record_id} for session {session_id}")
        return record_id

    async def remove(self, session_id: str) -> None:
        try:
            result = await self._coll.delete_many({"sessionId": session_id})
        except PyMongoError as e:
            raise LedgerFailure("remove", str(e), session_id=session_id) from e
        logger.debug(f"[LEDGER] Deleted {result.deleted_count} document(s) for session {session_id}")

    async def list_all(self) -> List[VisitorRecord]:
        try:
            docs = await self._coll.find({}, {"_id": 0}).sort("id", ASCENDING).to_list(length=None)
        except PyMongoError as e:
            raise LedgerFailure("list_all", str(e)) from e
        return [
            VisitorRecord(
                id=doc["id"],
                user_id=doc["userId"],
                session_id=doc["sessionId"],
                count=doc["count"],
                time=doc["time"],
            )
            for doc in docs
        ]

    async def close(self) -> None:
        self._client.close()
        logger.info("[LEDGER] MongoDB visitor ledger closed")
