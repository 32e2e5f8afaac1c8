import logging
import asyncio
from typing import Optional
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
import certifi
from core.config import settings

logger = logging.getLogger(__name__)

_mongo_client: Optional[AsyncIOMotorClient] = None
_mongo_db: Optional[AsyncIOMotorDatabase] = None

def connect_mongo() -> AsyncIOMotorDatabase:
    """Create the process-wide client once; later calls return the same database"""
    global _mongo_client, _mongo_db
    if _mongo_db is not None:
        return _mongo_db
    client_kwargs = {
        "serverSelectionTimeoutMS": 30000,
        "connectTimeoutMS": 20000,
        "socketTimeoutMS": 20000,
    }
    # Atlas and other TLS endpoints get the certifi CA bundle explicitly
    if "mongodb.net" in settings.MONGO_URI or settings.MONGO_URI.startswith("mongodb+srv://"):
        client_kwargs.update({
            "tls": True,
            "tlsCAFile": certifi.where(),
            "retryWrites": True,
        })
    if settings.MONGO_URI.startswith("mongodb+srv://"):
        client_kwargs["directConnection"] = False
    _mongo_client = AsyncIOMotorClient(settings.MONGO_URI, **client_kwargs)
    _mongo_db = _mongo_client[settings.MONGO_DB]
    logger.info(f"Mongo client created for database '{settings.MONGO_DB}'")
    return _mongo_db

def close_mongo() -> None:
    global _mongo_client, _mongo_db
    if _mongo_client is not None:
        _mongo_client.close()
        logger.info("Mongo client closed")
    _mongo_client = None
    _mongo_db = None

def get_mongo_db() -> AsyncIOMotorDatabase:
    if _mongo_db is None:
        raise RuntimeError("Mongo client is not initialized; call connect_mongo() on startup")
    return _mongo_db

async def init_mongo_indexes(db: AsyncIOMotorDatabase, attempts: int = 5) -> bool:
    # Retry ping and index creation to allow primary election / networking delays
    for attempt in range(1, attempts + 1):
        try:
            await db.command({"ping": 1})
            # Users
            await db.users.create_index("userName", unique=True, name="u_username")
            await db.users.create_index("email", unique=True, name="u_email")
            # Subscriptions are joined from both ends
            await db.subscriptions.create_index("channel", name="i_sub_channel")
            await db.subscriptions.create_index("subscriber", name="i_sub_subscriber")
            await db.subscriptions.create_index([("subscriber", 1), ("channel", 1)], unique=True, name="u_subscriber_channel")
            # Videos
            await db.videos.create_index("owner", name="i_video_owner")
            return True
        except Exception as e:
            wait_s = min(2 ** attempt, 15)
            logger.warning(f"Mongo not ready (attempt {attempt}): {e}; retrying in {wait_s}s")
            await asyncio.sleep(wait_s)
    logger.error("Mongo index initialization failed after retries")
    return False
