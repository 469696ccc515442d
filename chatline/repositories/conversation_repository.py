from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Tuple

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING, ReturnDocument
from pymongo.errors import DuplicateKeyError

from chatline.models.conversation import ConversationDocument
from chatline.utils.clock import utcnow
from chatline.utils.ids import parse_object_id


def pair_key(user_a: str, user_b: str) -> str:
    lo, hi = sorted([user_a, user_b])
    return f"{lo}:{hi}"


class ConversationRepository:

    def __init__(self, db: AsyncIOMotorDatabase) -> None:
        self._db = db

    @property
    def collection(self):
        return self._db["conversations"]

    async def ensure_indexes(self) -> None:
        await self.collection.create_index([("pair_key", ASCENDING)], unique=True)
        await self.collection.create_index([("participants", ASCENDING)])
        await self.collection.create_index([("last_message_at", DESCENDING)])

    async def get_or_create_one_to_one(self, user_a: str, user_b: str) -> ConversationDocument:
        participants = sorted([user_a, user_b])
        key = pair_key(user_a, user_b)
        now = utcnow()
        on_insert: Dict[str, Any] = {
            "participants": participants,
            "created_at": now,
            "last_message_id": None,
            "last_message_at": now,
            "last_message_preview": None,
            "unread_counters": {user_a: 0, user_b: 0},
        }
        try:
            doc = await self.collection.find_one_and_update(
                {"pair_key": key},
                {"$setOnInsert": on_insert},
                upsert=True,
                return_document=ReturnDocument.AFTER,
            )
        except DuplicateKeyError:
            # lost an upsert race on the unique pair_key; the winner's doc is there now
            doc = await self.collection.find_one({"pair_key": key})
        doc["_id"] = str(doc.get("_id"))
        return doc

    async def get_by_id(self, conversation_id: str) -> Optional[ConversationDocument]:
        oid = parse_object_id(conversation_id)
        if oid is None:
            return None
        doc = await self.collection.find_one({"_id": oid})
        if doc:
            doc["_id"] = str(doc["_id"])
        return doc

    async def find_between(self, user_a: str, user_b: str) -> Optional[ConversationDocument]:
        doc = await self.collection.find_one({"pair_key": pair_key(user_a, user_b)})
        if doc:
            doc["_id"] = str(doc["_id"])
        return doc

    async def update_on_new_message(
        self,
        conversation_id: str,
        message_id: str,
        preview: str,
        created_at: datetime,
        recipient_ids: Iterable[str],
    ) -> None:
        update: Dict[str, Any] = {
            "$set": {
                "last_message_id": message_id,
                "last_message_at": created_at,
                "last_message_preview": preview,
            },
        }
        increments = {f"unread_counters.{rid}": 1 for rid in recipient_ids}
        if increments:
            update["$inc"] = increments
        await self.collection.update_one({"_id": parse_object_id(conversation_id)}, update)

    async def set_unread(self, conversation_id: str, user_id: str, count: int) -> None:
        await self.collection.update_one(
            {"_id": parse_object_id(conversation_id)},
            {"$set": {f"unread_counters.{user_id}": max(count, 0)}},
        )

    async def list_partner_ids(self, user_id: str) -> List[str]:
        """Ids of every user that shares a conversation with ``user_id``."""
        cursor = self.collection.find({"participants": user_id}, {"participants": 1})
        partners = []
        async for doc in cursor:
            for pid in doc.get("participants", []):
                if pid != user_id and pid not in partners:
                    partners.append(pid)
        return partners

    async def list_for_user(self, user_id: str, limit: int = 20, cursor: Optional[str] = None) -> Tuple[List[ConversationDocument], Optional[str]]:
        query: Dict[str, Any] = {"participants": {"$in": [user_id]}}
        sort = [("last_message_at", DESCENDING), ("_id", DESCENDING)]
        if cursor:
            # Cursor format: timestamp_ms:object_id_hex
            parsed = _parse_cursor(cursor)
            if parsed:
                ts, oid = parsed
                query["$or"] = [
                    {"last_message_at": {"$lt": ts}},
                    {"last_message_at": ts, "_id": {"$lt": oid}},
                ]

        cursor_db = self.collection.find(query).sort(sort).limit(limit)
        items = await cursor_db.to_list(length=limit)
        for it in items:
            it["_id"] = str(it.get("_id"))
        next_cursor = None
        if len(items) == limit:
            last = items[-1]
            next_cursor = _make_cursor(last["last_message_at"], last["_id"])
        return items, next_cursor


def _make_cursor(ts: datetime, oid_hex: str) -> str:
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return f"{int(ts.timestamp() * 1000)}:{oid_hex}"


def _parse_cursor(cursor: str):
    try:
        ts_str, oid_hex = cursor.split(":", 1)
        ts = datetime.fromtimestamp(int(ts_str) / 1000.0, tz=timezone.utc)
    except ValueError:
        return None
    oid = parse_object_id(oid_hex)
    if oid is None:
        return None
    return ts, oid
