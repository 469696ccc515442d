from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence, Tuple

from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING
from pymongo.errors import PyMongoError

from chatline.models.message import MessageDocument
from chatline.utils.clock import utcnow
from chatline.utils.ids import parse_object_id


class MessageRepository:

    def __init__(self, db: AsyncIOMotorDatabase) -> None:
        self._db = db

    @property
    def collection(self):
        return self._db["messages"]

    async def ensure_indexes(self) -> None:
        await self.collection.create_index([("conversation_id", ASCENDING), ("created_at", ASCENDING)])
        await self.collection.create_index([("conversation_id", ASCENDING), ("sender_id", ASCENDING), ("read_at", ASCENDING)])

    async def save_message(
        self,
        conversation_id: str,
        sender_id: str,
        text: str,
        message_type: str = "text",
        file_url: Optional[str] = None,
        file_name: Optional[str] = None,
        file_size: Optional[int] = None,
        mime_type: Optional[str] = None,
        client_message_id: Optional[str] = None,
    ) -> MessageDocument:
        doc: MessageDocument = {
            "conversation_id": ObjectId(conversation_id),
            "sender_id": sender_id,
            "text": text,
            "message_type": message_type,
            "created_at": utcnow(),
            "delivered_at": None,
            "read_at": None,
            "client_message_id": client_message_id,
        }
        if file_url:
            doc.update({
                "file_url": file_url,
                "file_name": file_name,
                "file_size": file_size,
                "mime_type": mime_type,
            })
        result = await self.collection.insert_one(doc)
        doc["_id"] = str(result.inserted_id)
        return doc

    async def delete_message(self, message_id: str) -> None:
        await self.collection.delete_one({"_id": parse_object_id(message_id)})

    async def get_by_id(self, message_id: str) -> Optional[MessageDocument]:
        oid = parse_object_id(message_id)
        if oid is None:
            return None
        doc = await self.collection.find_one({"_id": oid})
        if doc:
            doc["_id"] = str(doc["_id"])
        return doc

    async def get_messages_by_conversation(
        self,
        conversation_id: str,
        limit: int = 50,
        cursor: Optional[str] = None,
    ) -> Tuple[List[MessageDocument], Optional[str]]:
        query: Dict[str, Any] = {"conversation_id": ObjectId(conversation_id)}
        sort = [("created_at", DESCENDING), ("_id", DESCENDING)]
        if cursor:
            # cursor format: ts_ms:oid
            try:
                ts_str, oid_hex = cursor.split(":", 1)
                ts = datetime.fromtimestamp(int(ts_str) / 1000.0, tz=timezone.utc)
            except ValueError:
                ts, oid_hex = None, None
            oid = parse_object_id(oid_hex)
            if ts is not None and oid is not None:
                query["$or"] = [
                    {"created_at": {"$lt": ts}},
                    {"created_at": ts, "_id": {"$lt": oid}},
                ]
        cur = self.collection.find(query).sort(sort).limit(limit)
        items = await cur.to_list(length=limit)
        for it in items:
            it["_id"] = str(it.get("_id"))
        next_cursor = None
        if len(items) == limit:
            last = items[-1]
            last_ts = last["created_at"]
            if last_ts.tzinfo is None:
                last_ts = last_ts.replace(tzinfo=timezone.utc)
            next_cursor = f"{int(last_ts.timestamp() * 1000)}:{last['_id']}"
        # return ascending chronological order for UI
        return list(reversed(items)), next_cursor

    async def mark_delivered(self, message_id: str, delivered_at: datetime) -> bool:
        """Set ``delivered_at`` once. Returns False when it was already set."""
        result = await self.collection.update_one(
            {"_id": parse_object_id(message_id), "delivered_at": None},
            {"$set": {"delivered_at": delivered_at}},
        )
        return bool(result.modified_count)

    async def mark_read(self, conversation_id: str, reader_id: str, message_ids: Sequence[ObjectId], read_at: datetime) -> int:
        """Mark the listed, still unread messages of the other participant as read.

        Messages sent by ``reader_id``, outside the conversation, or already read
        are left untouched. A message read before its delivery ack also gets its
        ``delivered_at`` so that read implies delivered; if setting ``read_at``
        fails, those backfilled ``delivered_at`` values are cleared again.
        """
        query: Dict[str, Any] = {
            "_id": {"$in": list(message_ids)},
            "conversation_id": ObjectId(conversation_id),
            "sender_id": {"$ne": reader_id},
            "read_at": None,
        }
        backfill = [doc["_id"] async for doc in self.collection.find({**query, "delivered_at": None}, {"_id": 1})]
        if backfill:
            await self.collection.update_many({"_id": {"$in": backfill}}, {"$set": {"delivered_at": read_at}})
        try:
            return await self._set_read(query, read_at)
        except PyMongoError:
            if backfill:
                await self.collection.update_many(
                    {"_id": {"$in": backfill}, "read_at": None},
                    {"$set": {"delivered_at": None}},
                )
            raise

    async def _set_read(self, query: Dict[str, Any], read_at: datetime) -> int:
        result = await self.collection.update_many(query, {"$set": {"read_at": read_at}})
        return result.modified_count or 0

    async def count_unread(self, conversation_id: str, reader_id: str) -> int:
        return await self.collection.count_documents({
            "conversation_id": ObjectId(conversation_id),
            "sender_id": {"$ne": reader_id},
            "read_at": None,
        })
