"""
Base Repository - Clean database operations
"""
import logging
from typing import Dict, Any, Optional, List
from datetime import datetime, timezone
from motor.motor_asyncio import AsyncIOMotorCollection
from app.config.database import get_async_db

logger = logging.getLogger(__name__)


class BaseRepository:
    """
    Base repository class for clean database operations
    Pure async operations keyed by job_id
    """

    def __init__(self, collection_name: str):
        self.collection_name = collection_name
        self._collection = None

    @property
    def collection(self) -> AsyncIOMotorCollection:
        """Get MongoDB collection with lazy initialization"""
        if self._collection is None:
            self._collection = get_async_db()[self.collection_name]
        return self._collection

    @staticmethod
    def _normalize(doc: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
        if doc is not None:
            doc["id"] = str(doc["_id"])
            del doc["_id"]
        return doc

    async def create(self, data: Dict[str, Any]) -> str:
        """Create a new document"""
        now = datetime.now(timezone.utc)
        data.setdefault("created_at", now)
        data["updated_at"] = now

        result = await self.collection.insert_one(data)
        logger.info(f"Created document in {self.collection_name}: {result.inserted_id}")
        return str(result.inserted_id)

    async def get_by_id(self, job_id: str) -> Optional[Dict[str, Any]]:
        """Get document by job_id"""
        doc = await self.collection.find_one({"job_id": job_id})
        return self._normalize(doc)

    async def update(self, job_id: str, update_data: Dict[str, Any]) -> bool:
        """Update document by job_id, touching updated_at"""
        update_data["updated_at"] = datetime.now(timezone.utc)

        result = await self.collection.update_one(
            {"job_id": job_id},
            {"$set": update_data}
        )

        if result.matched_count == 0:
            logger.warning(f"No document {job_id} in {self.collection_name}")
            return False
        return True

    async def find(self, query: Dict[str, Any], limit: int = 50, skip: int = 0) -> List[Dict[str, Any]]:
        cursor = self.collection.find(query).sort("created_at", -1).skip(skip).limit(limit)
        return [self._normalize(doc) async for doc in cursor]

    async def delete(self, job_id: str) -> bool:
        result = await self.collection.delete_one({"job_id": job_id})

        if result.deleted_count > 0:
            logger.info(f"Deleted document from {self.collection_name}: {job_id}")
            return True
        logger.warning(f"No delete for {job_id} in {self.collection_name}")
        return False
