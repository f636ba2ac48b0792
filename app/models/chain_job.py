import uuid
from enum import Enum
from pydantic import BaseModel, Field, field_validator, model_validator
from typing import Optional, List
from datetime import datetime, timezone

from app.config.constants import (
    SUPPORTED_SECONDS_PER_SEGMENT,
    SUPPORTED_MODELS,
    MIN_SEGMENTS,
    MIN_BASE_PROMPT_LENGTH,
    DEFAULT_MODEL,
    DEFAULT_SIZE,
)


class ChainStatus(str, Enum):
    QUEUED = "queued"
    PLANNING = "planning"
    GENERATING = "generating"
    CONCATENATING = "concatenating"
    COMPLETED = "completed"
    FAILED = "failed"


def derive_num_segments(total_duration: int, seconds_per_segment: int) -> int:
    """Number of segments for a chain, raising ValueError for unusable pairs"""
    if seconds_per_segment not in SUPPORTED_SECONDS_PER_SEGMENT:
        raise ValueError(
            f"seconds_per_segment must be one of {list(SUPPORTED_SECONDS_PER_SEGMENT)}, got {seconds_per_segment}"
        )
    if total_duration <= 0 or total_duration % seconds_per_segment != 0:
        raise ValueError(
            f"total_duration {total_duration}s is not a multiple of {seconds_per_segment}s segments"
        )
    num_segments = total_duration // seconds_per_segment
    if num_segments < MIN_SEGMENTS:
        raise ValueError(f"A chain needs at least {MIN_SEGMENTS} segments, got {num_segments}")
    return num_segments


def validate_model(model: str) -> str:
    if model not in SUPPORTED_MODELS:
        raise ValueError(f"model must be one of {list(SUPPORTED_MODELS)}, got '{model}'")
    return model


def parse_size(size: str) -> tuple:
    """'1280x720' -> (1280, 720)"""
    try:
        width_str, height_str = size.lower().split("x")
        width, height = int(width_str), int(height_str)
    except (AttributeError, ValueError):
        raise ValueError(f"Invalid size '{size}', expected WIDTHxHEIGHT")
    if width <= 0 or height <= 0:
        raise ValueError(f"Invalid size '{size}', dimensions must be positive")
    return width, height


class ChainJob(BaseModel):
    id: Optional[str] = None  # MongoDB ObjectId
    job_id: str = Field(..., description="Unique chain job ID")

    # Configuration (immutable after creation)
    base_prompt: str = Field(..., min_length=MIN_BASE_PROMPT_LENGTH)
    total_duration: int = Field(..., gt=0, description="Total seconds of the chained video")
    seconds_per_segment: int
    num_segments: int = Field(..., ge=MIN_SEGMENTS)
    model: str = DEFAULT_MODEL
    size: str = DEFAULT_SIZE

    # Pipeline state
    status: ChainStatus = ChainStatus.QUEUED
    progress: int = Field(0, ge=0, le=100)
    plan_json: Optional[str] = None
    segment_job_ids: List[str] = Field(default_factory=list)
    final_video_url: Optional[str] = None
    thumbnail_url: Optional[str] = None
    cost_details: Optional[str] = None
    error_message: Optional[str] = None

    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @field_validator("model")
    @classmethod
    def _validate_model(cls, value: str) -> str:
        return validate_model(value)

    @field_validator("size")
    @classmethod
    def _validate_size(cls, value: str) -> str:
        parse_size(value)
        return value

    @model_validator(mode="after")
    def _check_segment_invariants(self):
        if self.num_segments * self.seconds_per_segment != self.total_duration:
            raise ValueError(
                f"num_segments ({self.num_segments}) x seconds_per_segment ({self.seconds_per_segment}) "
                f"must equal total_duration ({self.total_duration})"
            )
        if len(self.segment_job_ids) > self.num_segments:
            raise ValueError("segment_job_ids cannot exceed num_segments")
        return self

    @property
    def adjusted_total_duration(self) -> int:
        return self.num_segments * self.seconds_per_segment

    @property
    def dimensions(self) -> tuple:
        return parse_size(self.size)

    @classmethod
    def create_new(
        cls,
        base_prompt: str,
        total_duration: int,
        seconds_per_segment: int,
        model: str = DEFAULT_MODEL,
        size: str = DEFAULT_SIZE,
    ) -> "ChainJob":
        return cls(
            job_id=str(uuid.uuid4()),
            base_prompt=base_prompt.strip(),
            total_duration=total_duration,
            seconds_per_segment=seconds_per_segment,
            num_segments=derive_num_segments(total_duration, seconds_per_segment),
            model=model,
            size=size,
        )

    def to_document(self) -> dict:
        doc = self.model_dump(exclude={"id"})
        doc["status"] = self.status.value
        return doc

    def get_status_message(self) -> str:
        """Get human-readable status message"""
        messages = {
            ChainStatus.QUEUED: "Waiting in queue",
            ChainStatus.PLANNING: "Planning segments...",
            ChainStatus.GENERATING: "Generating segments...",
            ChainStatus.CONCATENATING: "Joining segments...",
            ChainStatus.COMPLETED: "Chain completed successfully",
            ChainStatus.FAILED: "Chain generation failed",
        }
        return messages.get(self.status, "Unknown status")
