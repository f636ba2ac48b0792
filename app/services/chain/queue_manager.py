from __future__ import annotations

from collections import deque
from dataclasses import dataclass
from typing import List, Optional


@dataclass
class QueuedChain:
    job_id: str
    retry_count: int = 0


class ChainQueueManager:
    """In-memory FIFO of chains waiting for a slot.

    - At most `max_concurrency` chains are in flight
    - Admission happens only when the orchestrator ticks
    - Provides queue position lookup for clients

    Lives on the event loop thread, so no locking.
    """

    def __init__(self, max_concurrency: int = 1):
        self._queue: deque[QueuedChain] = deque()
        self._inflight: set = set()
        self.max_concurrency = max_concurrency

    def __len__(self) -> int:
        return len(self._queue)

    @property
    def inflight_count(self) -> int:
        return len(self._inflight)

    def is_inflight(self, job_id: str) -> bool:
        return job_id in self._inflight

    def enqueue(self, item: QueuedChain) -> None:
        if any(queued.job_id == item.job_id for queued in self._queue):
            return
        self._queue.append(item)

    def remove(self, job_id: str) -> bool:
        for queued in list(self._queue):
            if queued.job_id == job_id:
                self._queue.remove(queued)
                return True
        return False

    def get_position(self, job_id: str) -> Optional[int]:
        for idx, queued in enumerate(self._queue):
            if queued.job_id == job_id:
                return idx + 1
        return None

    def pending_ids(self) -> List[str]:
        return [queued.job_id for queued in self._queue]

    def has_capacity(self) -> bool:
        return len(self._inflight) < self.max_concurrency

    def pop_next(self) -> Optional[QueuedChain]:
        if not self._queue or not self.has_capacity():
            return None
        return self._queue.popleft()

    def mark_started(self, job_id: str) -> None:
        self._inflight.add(job_id)

    def mark_finished(self, job_id: str) -> None:
        self._inflight.discard(job_id)
