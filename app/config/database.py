from motor.motor_asyncio import AsyncIOMotorClient
from app.config.settings import settings
import logging
from typing import Optional
from contextvars import ContextVar

logger = logging.getLogger(__name__)


_loop_local_async_client: ContextVar[Optional[AsyncIOMotorClient]] = ContextVar(
    "_loop_local_async_client", default=None
)

def get_async_db():
    """Return the chain database on a client bound to the current event loop.

    The client is created lazily per asyncio context, so the API process and
    ad-hoc maintenance loops never share a client across closed loops.
    """
    local_client = _loop_local_async_client.get()
    if local_client is None:
        local_client = AsyncIOMotorClient(settings.MONGODB_URI, serverSelectionTimeoutMS=5000)
        _loop_local_async_client.set(local_client)
    return local_client[settings.DB_NAME]

def get_chain_collection():
    return get_async_db()[settings.CHAIN_COLLECTION]

async def verify_connection():
    try:
        await get_async_db().command("ping")
        logger.info(f"MongoDB connected ({settings.DB_NAME})")
    except Exception as e:
        logger.error(f"MongoDB connection failed: {e}")
        raise

async def create_indexes():
    """Indexes for job lookup, status recovery on restart and newest-first listing"""
    try:
        chains = get_chain_collection()
        await chains.create_index("job_id", unique=True)
        await chains.create_index([("status", 1), ("created_at", 1)])
        await chains.create_index([("created_at", -1)])
        logger.info(f"Created indexes for {settings.CHAIN_COLLECTION}")
    except Exception as e:
        logger.warning(f"Failed to create indexes: {e}")

def close_connection():
    local_client = _loop_local_async_client.get()
    if local_client is not None:
        local_client.close()
        _loop_local_async_client.set(None)
        logger.info("MongoDB connection closed")


__all__ = [
    "get_async_db",
    "get_chain_collection",
    "verify_connection",
    "create_indexes",
    "close_connection",
]
