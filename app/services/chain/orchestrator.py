import asyncio
import json
import logging
import os
from functools import partial
from typing import Any, Dict, Optional

from app.config.constants import (
    ERROR_UNKNOWN,
    FINAL_THUMB_FILENAME,
    FINAL_VIDEO_FILENAME,
    PROGRESS_COMPLETED,
    PROGRESS_CONCATENATING,
)
from app.config.settings import settings
from app.models.chain_job import ChainJob, ChainStatus
from app.services.chain.context import ChainContext
from app.services.chain.cost_calculator import calculate_chain_cost
from app.services.chain.errors import ChainError, ChainNotFoundError, InvalidStateTransitionError
from app.services.chain.models import ChainConfig, ChainResult
from app.services.chain.planner import serialize_plan
from app.services.chain.progress import ChainProgressWriter
from app.services.chain.queue_manager import ChainQueueManager, QueuedChain
from app.services.chain.state import can_transition_chain
from app.utils.scheduling import PeriodicTask

logger = logging.getLogger(__name__)

_IN_PROGRESS_STATES = (ChainStatus.PLANNING, ChainStatus.GENERATING, ChainStatus.CONCATENATING)


class ChainOrchestrator:
    """Queue, admission and the per-chain pipeline.

    Chains wait in an in-memory FIFO and are admitted on each tick while fewer
    than max_concurrent are running. Segments inside a chain are strictly
    sequential. A failed chain is re-queued automatically up to
    max_auto_retries times before it is left in FAILED.
    """

    def __init__(
        self,
        repository,
        planner,
        generator,
        concatenator,
        frame_extractor,
        storage,
        workdirs,
        webhook_service=None,
        max_concurrent: Optional[int] = None,
        tick_seconds: Optional[float] = None,
        max_auto_retries: Optional[int] = None,
    ):
        self.repository = repository
        self.planner = planner
        self.generator = generator
        self.concatenator = concatenator
        self.frame_extractor = frame_extractor
        self.storage = storage
        self.workdirs = workdirs
        self.webhook_service = webhook_service

        self.queue = ChainQueueManager(max_concurrency=1)
        self._tasks: set = set()
        self._tick_lock = asyncio.Lock()
        self._ticker: Optional[PeriodicTask] = None

        self.reload_settings(
            max_concurrent=max_concurrent,
            tick_seconds=tick_seconds,
            max_auto_retries=max_auto_retries,
        )

    # Configuration

    def reload_settings(self, **overrides: Any) -> None:
        """Re-read pipeline settings, explicit overrides win over settings"""

        def pick(name: str, default):
            value = overrides.get(name)
            return default if value is None else value

        self.max_concurrent = pick("max_concurrent", settings.CHAIN_MAX_CONCURRENT)
        self.tick_seconds = pick("tick_seconds", settings.CHAIN_TICK_SECONDS)
        self.max_auto_retries = pick("max_auto_retries", settings.CHAIN_MAX_AUTO_RETRIES)
        self.poll_interval_seconds = pick("poll_interval_seconds", settings.CHAIN_POLL_INTERVAL_SECONDS)
        self.poll_backoff = pick("poll_backoff", settings.CHAIN_POLL_BACKOFF)
        self.poll_max_interval_seconds = pick("poll_max_interval_seconds", settings.CHAIN_POLL_MAX_INTERVAL_SECONDS)
        self.max_poll_attempts = pick("max_poll_attempts", settings.CHAIN_MAX_POLL_ATTEMPTS)

        self.queue.max_concurrency = self.max_concurrent
        if self._ticker is not None:
            self._ticker.interval_seconds = self.tick_seconds
        logger.info(
            f"Chain orchestrator settings: max_concurrent={self.max_concurrent}, tick={self.tick_seconds}s, "
            f"poll={self.poll_interval_seconds}s x{self.poll_backoff} (cap {self.poll_max_interval_seconds}s, "
            f"{self.max_poll_attempts} attempts), auto_retries={self.max_auto_retries}"
        )

    def _build_config(self, job: ChainJob) -> ChainConfig:
        return ChainConfig(
            total_duration=job.total_duration,
            seconds_per_segment=job.seconds_per_segment,
            num_segments=job.num_segments,
            resolution=job.size,
            model=job.model,
            temp_dir=self.workdirs.workdir_for(job.job_id),
            poll_interval_seconds=self.poll_interval_seconds,
            poll_backoff=self.poll_backoff,
            poll_max_interval_seconds=self.poll_max_interval_seconds,
            max_poll_attempts=self.max_poll_attempts,
        )

    # Queue

    def add_to_queue(self, job_id: str, retry_count: int = 0) -> None:
        self.queue.enqueue(QueuedChain(job_id=job_id, retry_count=retry_count))
        logger.info(f"Chain {job_id} queued (position {self.queue.get_position(job_id)})")

    def get_queue_length(self) -> int:
        return len(self.queue)

    def get_queue_position(self, job_id: str) -> Optional[int]:
        return self.queue.get_position(job_id)

    @property
    def active_count(self) -> int:
        return self.queue.inflight_count

    async def tick(self) -> int:
        """Admit queued chains up to the concurrency cap, returns how many started"""
        admitted = 0
        async with self._tick_lock:
            while True:
                item = self.queue.pop_next()
                if item is None:
                    break

                job = await self.repository.get_by_id(item.job_id)
                if job is None:
                    logger.warning(f"Chain {item.job_id} no longer exists, dropping from queue")
                    continue
                if job.get("status") != ChainStatus.QUEUED.value:
                    logger.info(f"Chain {item.job_id} is {job.get('status')}, not queued. Skipping")
                    continue

                self.queue.mark_started(item.job_id)
                task = asyncio.create_task(self._run(item), name=f"chain-{item.job_id}")
                self._tasks.add(task)
                task.add_done_callback(self._tasks.discard)
                admitted += 1

        if admitted:
            logger.info(f"Admitted {admitted} chain(s), {self.active_count} running, {len(self.queue)} waiting")
        return admitted

    def start(self) -> None:
        if self._ticker is None:
            self._ticker = PeriodicTask("Chain orchestrator", self.tick_seconds, self.tick)
        self._ticker.start()

    async def stop(self, wait: bool = True) -> None:
        if self._ticker is not None:
            await self._ticker.stop()
        if wait:
            await self.wait_idle()

    async def wait_idle(self) -> None:
        """Wait for every chain admitted so far to finish"""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # Management

    async def recover_pending(self) -> int:
        """Re-queue work left behind by a previous process.

        Queued chains are queued again in creation order. Chains caught mid
        pipeline go through the normal failure policy, so they restart from
        planning if they still have an automatic retry left.
        """
        recovered = 0
        queued = await self.repository.get_by_status(ChainStatus.QUEUED)
        for job in sorted(queued, key=lambda doc: doc.get("created_at")):
            self.add_to_queue(job["job_id"])
            recovered += 1

        for status in _IN_PROGRESS_STATES:
            for job in await self.repository.get_by_status(status):
                logger.warning(f"Chain {job['job_id']} was interrupted while {status.value}")
                await self._handle_failure(
                    QueuedChain(job_id=job["job_id"]),
                    ChainError(f"Interrupted by service restart while {status.value}"),
                )
                recovered += 1

        if recovered:
            logger.info(f"Recovered {recovered} chain(s) from a previous run")
        return recovered

    async def retry_chain(self, job_id: str) -> Dict[str, Any]:
        """Manually re-queue a failed chain with a fresh automatic retry budget"""
        job = await self.repository.get_by_id(job_id)
        if job is None:
            raise ChainNotFoundError(job_id)
        if job.get("status") != ChainStatus.FAILED.value:
            raise InvalidStateTransitionError(job_id, job.get("status"), ChainStatus.QUEUED.value)

        await self._requeue(job_id)
        self.add_to_queue(job_id)
        return await self.repository.get_by_id(job_id)

    async def delete_chain(self, job_id: str) -> bool:
        """Remove a chain's row and working directory.

        A running chain is not interrupted: its next status write finds no row
        and the pipeline stops there.
        """
        removed_from_queue = self.queue.remove(job_id)
        deleted = await self.repository.delete(job_id)
        self.workdirs.remove_workdir(job_id)
        if not deleted and not removed_from_queue:
            raise ChainNotFoundError(job_id)
        if self.queue.is_inflight(job_id):
            logger.warning(f"Chain {job_id} deleted while running")
        return True

    # Pipeline

    async def _run(self, item: QueuedChain) -> None:
        try:
            await self.process_chain(item.job_id)
        except Exception as e:
            logger.error(f"Chain {item.job_id} failed: {e}", exc_info=True)
            try:
                await self._handle_failure(item, e)
            except Exception as inner:
                logger.error(f"Could not record failure for chain {item.job_id}: {inner}", exc_info=True)
        finally:
            self.queue.mark_finished(item.job_id)

    async def process_chain(self, job_id: str) -> Optional[ChainResult]:
        job = await self.repository.get_job(job_id)
        if job is None:
            raise ChainNotFoundError(job_id)
        if job.status != ChainStatus.QUEUED:
            logger.info(f"Chain {job_id} is {job.status.value}, not queued. Skipping")
            return None

        context = ChainContext(job=job, config=self._build_config(job))
        logger.info(
            f"Starting chain {job_id}: {job.num_segments} x {job.seconds_per_segment}s, {job.model} @ {job.size}"
        )

        await self._transition(job_id, ChainStatus.PLANNING, progress=0)
        await self._plan(context)

        await self._transition(job_id, ChainStatus.GENERATING)
        await self._generate(context)

        await self._transition(job_id, ChainStatus.CONCATENATING, progress=PROGRESS_CONCATENATING)
        return await self._finalize(context)

    async def _plan(self, context: ChainContext) -> None:
        job = context.job
        context.plan = await asyncio.to_thread(
            self.planner.plan, job.base_prompt, job.seconds_per_segment, job.num_segments, job.model
        )
        await self.repository.update(context.job_id, {"plan_json": serialize_plan(context.plan)})

    async def _generate(self, context: ChainContext) -> None:
        self.workdirs.ensure_workdir(context.job_id)
        progress = ChainProgressWriter(self.repository, context.job_id)
        total = len(context.plan)

        for index, segment in enumerate(context.plan, start=1):
            logger.info(f"Chain {context.job_id}: segment {index}/{total} - {segment.title}")
            result = await self.generator.generate(
                segment,
                context.last_frame_path,
                context.config,
                index=index,
                total_segments=total,
                on_submitted=partial(self._record_segment_job, context),
                on_progress=progress.write,
            )
            context.results.append(result)

    async def _record_segment_job(self, context: ChainContext, video_id: str) -> None:
        context.segment_job_ids.append(video_id)
        await self.repository.update(context.job_id, {"segment_job_ids": list(context.segment_job_ids)})

    async def _finalize(self, context: ChainContext) -> ChainResult:
        job = context.job
        job_id = context.job_id
        temp_dir = context.config.temp_dir

        video_paths = [result.video_path for result in context.results]
        context.final_video_path = await asyncio.to_thread(
            self.concatenator.concat, video_paths, os.path.join(temp_dir, FINAL_VIDEO_FILENAME)
        )

        cost = calculate_chain_cost(
            job.model,
            job.size,
            [segment.seconds for segment in context.plan],
            [result.reported_seconds for result in context.results],
        )

        final_video_url = await asyncio.to_thread(self.storage.upload_video, job_id, context.final_video_path)
        thumbnail_url = await self._final_thumbnail(context)

        await self._transition(
            job_id,
            ChainStatus.COMPLETED,
            progress=PROGRESS_COMPLETED,
            final_video_url=final_video_url,
            thumbnail_url=thumbnail_url,
            cost_details=json.dumps(cost),
            error_message=None,
        )
        logger.info(f"Chain {job_id} completed: {final_video_url} (${cost['total_cost']:.2f})")

        result = ChainResult(
            final_video_path=context.final_video_path,
            final_video_url=final_video_url,
            thumbnail_url=thumbnail_url,
            segments=list(context.results),
            metadata={
                "resolution": job.size,
                "model": job.model,
                "total_duration": job.num_segments * job.seconds_per_segment,
                "num_segments": job.num_segments,
                "total_cost": cost["total_cost"],
                "cost": cost,
                "segment_job_ids": list(context.segment_job_ids),
            },
        )

        self.workdirs.remove_workdir(job_id)
        await self._notify("completed", job_id)
        return result

    async def _final_thumbnail(self, context: ChainContext) -> Optional[str]:
        thumb_path = os.path.join(context.config.temp_dir, FINAL_THUMB_FILENAME)
        try:
            await asyncio.to_thread(self.frame_extractor.extract_last_frame, context.final_video_path, thumb_path)
            return await asyncio.to_thread(self.storage.upload_thumbnail, context.job_id, thumb_path)
        except ChainError as e:
            logger.warning(f"Chain {context.job_id} has no thumbnail: {e}")
            return None

    # Failure handling

    async def _handle_failure(self, item: QueuedChain, error: BaseException) -> None:
        message = str(error) or ERROR_UNKNOWN
        job = await self.repository.get_by_id(item.job_id)
        if job is None:
            logger.warning(f"Chain {item.job_id} was deleted, nothing to record")
            return

        current = ChainStatus(job["status"])
        if current == ChainStatus.COMPLETED:
            logger.error(f"Chain {item.job_id} failed after completion: {message}")
            return
        if current != ChainStatus.FAILED:
            await self._transition(item.job_id, ChainStatus.FAILED, error_message=message)

        if item.retry_count < self.max_auto_retries:
            retry_count = item.retry_count + 1
            await self._requeue(item.job_id)
            self.add_to_queue(item.job_id, retry_count=retry_count)
            logger.warning(f"Chain {item.job_id} failed, automatic retry {retry_count}/{self.max_auto_retries}: {message}")
            return

        logger.error(f"Chain {item.job_id} permanently failed: {message}")
        await self._notify("failed", item.job_id)

    async def _requeue(self, job_id: str) -> None:
        await self._transition(
            job_id,
            ChainStatus.QUEUED,
            progress=0,
            plan_json=None,
            segment_job_ids=[],
            final_video_url=None,
            thumbnail_url=None,
            cost_details=None,
            error_message=None,
        )

    async def _transition(self, job_id: str, target: ChainStatus, **fields: Any) -> None:
        job = await self.repository.get_by_id(job_id)
        if job is None:
            raise ChainNotFoundError(job_id)

        current = ChainStatus(job["status"])
        if not can_transition_chain(current, target):
            raise InvalidStateTransitionError(job_id, current.value, target.value)

        fields["status"] = target.value
        if not await self.repository.update(job_id, fields):
            raise ChainNotFoundError(job_id)
        logger.info(f"Chain {job_id}: {current.value} -> {target.value}")

    async def _notify(self, event: str, job_id: str) -> None:
        if self.webhook_service is None:
            return
        try:
            job = await self.repository.get_by_id(job_id)
            if job is not None:
                await self.webhook_service.notify(event, job)
        except Exception as e:
            logger.warning(f"Webhook {event} for chain {job_id} not sent: {e}")
