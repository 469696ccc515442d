import logging
from typing import Optional

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase

from chatline.config import Settings


logger = logging.getLogger(__name__)

_client: Optional[AsyncIOMotorClient] = None
_db: Optional[AsyncIOMotorDatabase] = None
_owns_client = False


async def connect_to_mongo(settings: Settings, client=None) -> AsyncIOMotorDatabase:
    """Open the shared client. ``client`` lets callers supply an already built
    (e.g. in-memory) motor-compatible client instead of dialing ``mongodb_url``."""
    global _client, _db, _owns_client
    _owns_client = client is None
    if client is None:
        client = AsyncIOMotorClient(settings.mongodb_url)
        logger.info("Connecting to MongoDB at %s", settings.mongodb_url)
    _client = client
    _db = client[settings.mongodb_db]
    return _db


async def close_mongo_connection() -> None:
    """Close the client if this module built it; supplied clients belong to their caller."""
    global _client, _db, _owns_client
    if _client is not None and _owns_client:
        _client.close()
        logger.info("MongoDB connection closed")
    _client = None
    _db = None
    _owns_client = False


def get_database() -> AsyncIOMotorDatabase:
    if _db is None:
        raise RuntimeError("Database is not connected; call connect_to_mongo() first")
    return _db


async def mongo_db_dependency() -> AsyncIOMotorDatabase:
    return get_database()
