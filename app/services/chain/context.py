from dataclasses import dataclass, field
from typing import List, Optional

from app.models.chain_job import ChainJob
from app.services.chain.models import ChainConfig, SegmentPlan, SegmentResult


@dataclass
class ChainContext:
    job: ChainJob
    config: ChainConfig
    plan: List[SegmentPlan] = field(default_factory=list)
    results: List[SegmentResult] = field(default_factory=list)
    segment_job_ids: List[str] = field(default_factory=list)
    final_video_path: Optional[str] = None

    @property
    def job_id(self) -> str:
        return self.job.job_id

    @property
    def last_frame_path(self) -> Optional[str]:
        return self.results[-1].last_frame_path if self.results else None
