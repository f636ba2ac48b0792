from typing import Dict, Any, Optional, List
from app.config.settings import settings
from app.config.constants import DEFAULT_QUERY_LIMIT, MAX_QUERY_LIMIT
from app.models.chain_job import ChainJob, ChainStatus
from app.repositories.base_repository import BaseRepository

class ChainRepository(BaseRepository):
    def __init__(self, collection_name: Optional[str] = None):
        super().__init__(collection_name or settings.CHAIN_COLLECTION)

    async def create_chain_job(self, job: ChainJob) -> str:
        return await self.create(job.to_document())

    async def get_job(self, job_id: str) -> Optional[ChainJob]:
        doc = await self.get_by_id(job_id)
        return ChainJob(**doc) if doc else None

    async def get_by_status(self, status: ChainStatus, limit: int = MAX_QUERY_LIMIT) -> List[Dict[str, Any]]:
        return await self.find({"status": status.value}, limit=limit)

    async def list_jobs(self, page: int = 1, limit: int = DEFAULT_QUERY_LIMIT) -> List[Dict[str, Any]]:
        limit = min(limit, MAX_QUERY_LIMIT)
        return await self.find({}, limit=limit, skip=(page - 1) * limit)
