from datetime import datetime
from typing import List, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ASCENDING

from chatline.models.user import UserDocument
from chatline.utils.clock import utcnow
from chatline.utils.ids import parse_object_id


class UserRepository:

    def __init__(self, db: AsyncIOMotorDatabase) -> None:
        self._collection = db.get_collection("users")

    async def ensure_indexes(self) -> None:
        await self._collection.create_index([("username", ASCENDING)], unique=True)

    async def create_user(self, username: str, hashed_password: str, email: Optional[str] = None) -> str:

        doc = {
            "username": username,
            "email": email,
            "hashed_password": hashed_password,
            "is_online": False,
            "last_seen": None,
            "created_at": utcnow(),
        }
        result = await self._collection.insert_one(doc)
        return str(result.inserted_id)

    async def get_user_by_username(self, username: str) -> Optional[UserDocument]:

        user = await self._collection.find_one({"username": username})
        if user:
            user["_id"] = str(user["_id"])  # normalize to string for API layer
        return user

    async def get_user_by_id(self, user_id: str) -> Optional[UserDocument]:
        oid = parse_object_id(user_id)
        if oid is None:
            return None
        user = await self._collection.find_one({"_id": oid})
        if user:
            user["_id"] = str(user["_id"])
        return user

    async def list_users_except(self, user_id: str) -> List[UserDocument]:
        query = {}
        oid = parse_object_id(user_id)
        if oid is not None:
            query["_id"] = {"$ne": oid}
        cursor = self._collection.find(query, {"hashed_password": 0}).sort("username", ASCENDING)
        items = await cursor.to_list(length=None)
        for it in items:
            it["_id"] = str(it["_id"])
        return items

    async def set_presence(self, user_id: str, is_online: bool, last_seen: Optional[datetime] = None) -> Optional[UserDocument]:
        """Write the presence fields and return the updated user, or None if unknown."""
        oid = parse_object_id(user_id)
        if oid is None:
            return None
        fields = {"is_online": is_online}
        if last_seen is not None:
            fields["last_seen"] = last_seen
        result = await self._collection.update_one({"_id": oid}, {"$set": fields})
        if not result.matched_count:
            return None
        return await self.get_user_by_id(user_id)
