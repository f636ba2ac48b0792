import logging
import math

from app.config.constants import PROGRESS_CONCATENATING

logger = logging.getLogger(__name__)

# Generation never reports the concatenation milestone or above
MAX_GENERATION_PROGRESS = PROGRESS_CONCATENATING - 1


def compute_chain_progress(completed_segments: int, segment_progress: float, total_segments: int) -> int:
    """floor(((completed + segment_progress/100) / total) * 100)"""
    if total_segments <= 0:
        return 0
    segment_progress = min(100.0, max(0.0, float(segment_progress)))
    return int(math.floor(((completed_segments + segment_progress / 100.0) / total_segments) * 100))


class ChainProgressWriter:
    """Persists chain progress on every poll tick without ever moving it backwards"""

    def __init__(self, repository, job_id: str, start: int = 0):
        self.repository = repository
        self.job_id = job_id
        self.current = start

    async def write(self, chain_progress: int) -> int:
        value = min(MAX_GENERATION_PROGRESS, max(self.current, chain_progress))
        self.current = value
        await self.repository.update(self.job_id, {"progress": value})
        return value
