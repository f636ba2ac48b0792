"""
Data models for chain generation
"""

from dataclasses import dataclass, field
from typing import Optional, List, Dict, Any

from pydantic import BaseModel, ConfigDict, Field, StrictStr

from app.config.constants import MIN_SEGMENT_PROMPT_LENGTH


class SegmentPlan(BaseModel):
    model_config = ConfigDict(extra="ignore")

    title: StrictStr = Field(..., min_length=1)
    seconds: int = Field(..., gt=0)  # whole-number floats like 8.0 are accepted
    prompt: StrictStr = Field(..., min_length=MIN_SEGMENT_PROMPT_LENGTH)


class SegmentPlanList(BaseModel):
    """Shape the planner LLM must return: {"segments": [...]}"""
    model_config = ConfigDict(extra="ignore")

    segments: List[SegmentPlan] = Field(..., min_length=1)


@dataclass
class ChainConfig:
    total_duration: int
    seconds_per_segment: int
    num_segments: int
    resolution: str
    model: str
    temp_dir: str
    use_continuity: bool = True
    poll_interval_seconds: float = 15.0
    poll_backoff: float = 1.5
    poll_max_interval_seconds: float = 60.0
    max_poll_attempts: int = 60

    @property
    def dimensions(self) -> tuple:
        width, height = self.resolution.lower().split("x")
        return int(width), int(height)


@dataclass
class SegmentResult:
    index: int  # 1-based
    job_id: str  # generation API id
    video_path: str
    last_frame_path: str
    duration_seconds: float
    thumbnail_path: Optional[str] = None
    reported_seconds: Optional[float] = None  # what the API says it produced, if anything


@dataclass
class ChainResult:
    final_video_path: str
    final_video_url: str
    thumbnail_url: Optional[str]
    segments: List[SegmentResult] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)
