"""
Continuity segment generation: submit one segment, poll it to completion,
download it and pull its last frame for the next segment.
"""

import asyncio
import logging
import os
from typing import Awaitable, Callable, Optional

from app.config.constants import (
    CONTENT_TYPE_JPEG,
    SEGMENT_LAST_FRAME_TEMPLATE,
    SEGMENT_REFERENCE_TEMPLATE,
    SEGMENT_THUMB_TEMPLATE,
    SEGMENT_VIDEO_TEMPLATE,
)
from app.services.chain.errors import ContinuityExtractionFailed, SegmentGenerationFailed
from app.services.chain.models import ChainConfig, SegmentPlan, SegmentResult
from app.services.chain.progress import compute_chain_progress
from app.utils.image_utils import resize_image_fill

logger = logging.getLogger(__name__)

SubmittedCallback = Callable[[str], Awaitable[None]]
ProgressCallback = Callable[[int], Awaitable[object]]


def read_bytes(path: str) -> bytes:
    with open(path, "rb") as f:
        return f.read()


def write_bytes(path: str, data: bytes) -> None:
    with open(path, "wb") as f:
        f.write(data)


class ContinuitySegmentGenerator:
    def __init__(self, video_client, frame_extractor, resize_image=resize_image_fill, sleep=asyncio.sleep):
        self.video_client = video_client
        self.frame_extractor = frame_extractor
        self.resize_image = resize_image
        self.sleep = sleep

    async def generate(
        self,
        segment_plan: SegmentPlan,
        previous_last_frame: Optional[str],
        config: ChainConfig,
        index: int,
        total_segments: int,
        on_submitted: Optional[SubmittedCallback] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> SegmentResult:
        """Generate segment `index` (1-based) of `total_segments`.

        on_submitted receives the provider id as soon as the request is
        accepted. on_progress receives the overall chain progress after every
        poll.
        """
        reference = None
        if previous_last_frame and config.use_continuity:
            reference = await self._build_reference(previous_last_frame, config, index)

        logger.info(f"Submitting segment {index}/{total_segments} ({segment_plan.seconds}s, {config.model}, {config.resolution})")
        try:
            video_id = await asyncio.to_thread(
                self.video_client.create_video,
                segment_plan.prompt,
                config.model,
                config.resolution,
                segment_plan.seconds,
                reference,
            )
        except Exception as e:
            raise SegmentGenerationFailed(index, "generation request was rejected", attempts=0, cause=e)

        logger.info(f"Segment {index} submitted as {video_id}")
        if on_submitted is not None:
            await on_submitted(video_id)

        reported_seconds = await self._poll_until_complete(video_id, index, total_segments, config, on_progress)
        return await self._collect(video_id, index, segment_plan, config, reported_seconds)

    async def _build_reference(self, frame_path: str, config: ChainConfig, index: int):
        width, height = config.dimensions
        try:
            frame_bytes = await asyncio.to_thread(read_bytes, frame_path)
            resized = await asyncio.to_thread(self.resize_image, frame_bytes, width, height)
        except Exception as e:
            raise ContinuityExtractionFailed(frame_path, "reference frame could not be prepared", cause=e)

        filename = SEGMENT_REFERENCE_TEMPLATE.format(index=index)
        # Kept on disk next to the segments for inspection of failed chains
        await asyncio.to_thread(write_bytes, os.path.join(config.temp_dir, filename), resized)

        logger.info(f"Segment {index} uses previous last frame as reference ({width}x{height})")
        return filename, resized, CONTENT_TYPE_JPEG

    async def _poll_until_complete(
        self,
        video_id: str,
        index: int,
        total_segments: int,
        config: ChainConfig,
        on_progress: Optional[ProgressCallback],
    ) -> Optional[float]:
        interval = config.poll_interval_seconds

        for attempt in range(1, config.max_poll_attempts + 1):
            await self.sleep(interval)
            interval = min(interval * config.poll_backoff, config.poll_max_interval_seconds)

            try:
                status = await asyncio.to_thread(self.video_client.get_video_status, video_id)
            except Exception as e:
                raise SegmentGenerationFailed(index, "status check failed", attempts=attempt, cause=e)

            chain_progress = compute_chain_progress(index - 1, status.progress, total_segments)
            logger.debug(f"Segment {index} [{video_id}] {status.state} {status.progress}% (chain {chain_progress}%)")
            if on_progress is not None:
                await on_progress(chain_progress)

            if status.state == "completed":
                logger.info(f"Segment {index} completed after {attempt} polls")
                return status.seconds
            if status.state == "failed":
                raise SegmentGenerationFailed(
                    index, status.error or "video generation failed", attempts=attempt
                )

        raise SegmentGenerationFailed(
            index, "polling exhausted", attempts=config.max_poll_attempts, timed_out=True
        )

    async def _collect(
        self,
        video_id: str,
        index: int,
        segment_plan: SegmentPlan,
        config: ChainConfig,
        reported_seconds: Optional[float],
    ) -> SegmentResult:
        video_path = os.path.join(config.temp_dir, SEGMENT_VIDEO_TEMPLATE.format(index=index))
        try:
            content = await asyncio.to_thread(self.video_client.download_video_content, video_id, "video")
            await asyncio.to_thread(write_bytes, video_path, content)
        except Exception as e:
            raise SegmentGenerationFailed(index, "download failed", attempts=0, cause=e)
        logger.info(f"Segment {index} downloaded: {len(content)} bytes")

        thumbnail_path = await self._download_thumbnail(video_id, index, config)

        last_frame_path = os.path.join(config.temp_dir, SEGMENT_LAST_FRAME_TEMPLATE.format(index=index))
        await asyncio.to_thread(self.frame_extractor.extract_last_frame, video_path, last_frame_path)

        return SegmentResult(
            index=index,
            job_id=video_id,
            video_path=video_path,
            last_frame_path=last_frame_path,
            duration_seconds=float(segment_plan.seconds),
            thumbnail_path=thumbnail_path,
            reported_seconds=reported_seconds,
        )

    async def _download_thumbnail(self, video_id: str, index: int, config: ChainConfig) -> Optional[str]:
        thumbnail_path = os.path.join(config.temp_dir, SEGMENT_THUMB_TEMPLATE.format(index=index))
        try:
            content = await asyncio.to_thread(self.video_client.download_video_content, video_id, "thumbnail")
            await asyncio.to_thread(write_bytes, thumbnail_path, content)
            return thumbnail_path
        except Exception as e:
            logger.warning(f"Segment {index} thumbnail unavailable: {e}")
            return None
