import logging
from typing import Any, Dict, List, Optional

from app.config.settings import settings
from app.models.chain_job import ChainJob, derive_num_segments
from app.repositories.chain_repository import ChainRepository
from app.services.chain.concatenator import Concatenator
from app.services.chain.cost_calculator import calculate_chain_cost, format_cost
from app.services.chain.errors import ChainNotFoundError
from app.services.chain.frame_extractor import FrameExtractor
from app.services.chain.media_tool import FfmpegMediaTool
from app.services.chain.orchestrator import ChainOrchestrator
from app.services.chain.planner import SegmentPlanner
from app.services.chain.segment_generator import ContinuitySegmentGenerator
from app.services.openai_service import OpenAIService
from app.services.r2_service import R2Service
from app.services.webhook_service import ChainWebhookService
from app.utils.cleanup_utils import ChainWorkdirCleaner

logger = logging.getLogger(__name__)


def build_chain_orchestrator(repository: Optional[ChainRepository] = None) -> ChainOrchestrator:
    """Wire the orchestrator to OpenAI, ffmpeg, R2 and MongoDB"""
    openai_service = OpenAIService()
    media_tool = FfmpegMediaTool(timeout_seconds=settings.FFMPEG_TIMEOUT_SECONDS)
    frame_extractor = FrameExtractor(media_tool)

    return ChainOrchestrator(
        repository=repository or ChainRepository(),
        planner=SegmentPlanner(openai_service),
        generator=ContinuitySegmentGenerator(openai_service, frame_extractor),
        concatenator=Concatenator(media_tool),
        frame_extractor=frame_extractor,
        storage=R2Service(),
        workdirs=ChainWorkdirCleaner(),
        webhook_service=ChainWebhookService(),
    )


class ChainService:
    """Request-side operations behind the chain routes"""

    def __init__(self, orchestrator: ChainOrchestrator, repository=None):
        self.orchestrator = orchestrator
        self.repo = repository or orchestrator.repository

    async def create_chain(
        self,
        base_prompt: str,
        total_duration: int,
        seconds_per_segment: int,
        model: str,
        size: str,
    ) -> ChainJob:
        job = ChainJob.create_new(
            base_prompt=base_prompt,
            total_duration=total_duration,
            seconds_per_segment=seconds_per_segment,
            model=model,
            size=size,
        )
        await self.repo.create_chain_job(job)
        self.orchestrator.add_to_queue(job.job_id)
        logger.info(
            f"Created chain {job.job_id}: {job.num_segments} x {job.seconds_per_segment}s ({job.model}, {job.size})"
        )
        return job

    async def get_chain(self, job_id: str) -> Dict[str, Any]:
        job = await self.repo.get_by_id(job_id)
        if job is None:
            raise ChainNotFoundError(job_id)
        job["queue_position"] = self.orchestrator.get_queue_position(job_id)
        return job

    async def list_chains(self, page: int, limit: int) -> List[Dict[str, Any]]:
        return await self.repo.list_jobs(page=page, limit=limit)

    @staticmethod
    def estimate_cost(total_duration: int, seconds_per_segment: int, model: str, size: str) -> Dict[str, Any]:
        num_segments = derive_num_segments(total_duration, seconds_per_segment)
        cost = calculate_chain_cost(model, size, [seconds_per_segment] * num_segments)
        cost["formatted_total"] = format_cost(cost["total_cost"])
        return cost
