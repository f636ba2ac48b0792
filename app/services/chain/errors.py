"""
Chain pipeline error types.

All errors inherit from ChainError so the orchestrator can funnel them into a
single retry policy. Messages always carry the underlying cause because they
end up verbatim in the job's error_message.
"""

from typing import Optional


class ChainError(Exception):
    """Base exception for all chain pipeline failures."""

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        self.cause = cause
        if cause is not None and str(cause) and str(cause) not in message:
            message = f"{message}: {cause}"
        super().__init__(message)


class PlanningFailed(ChainError):
    """Planner output could not be parsed, validated, or was too short."""


class SegmentGenerationFailed(ChainError):
    """Generation API reported failure, or polling ran out of attempts."""

    def __init__(
        self,
        segment_index: int,
        reason: str,
        attempts: int = 0,
        timed_out: bool = False,
        cause: Optional[BaseException] = None,
    ):
        self.segment_index = segment_index
        self.reason = reason
        self.attempts = attempts
        self.timed_out = timed_out
        if timed_out:
            message = f"Segment {segment_index} generation timed out after {attempts} poll attempts"
        else:
            message = f"Segment {segment_index} generation failed after {attempts} poll attempts: {reason}"
        super().__init__(message, cause)


class ContinuityExtractionFailed(ChainError):
    """Last frame could not be extracted, the next segment has no reference."""

    def __init__(self, video_path: str, reason: str, cause: Optional[BaseException] = None):
        self.video_path = video_path
        self.reason = reason
        super().__init__(f"Last frame extraction failed for {video_path}: {reason}", cause)


class ConcatenationFailed(ChainError):
    """Joining segment clips failed."""

    def __init__(self, reason: str, codec_mismatch: bool = False, cause: Optional[BaseException] = None):
        self.reason = reason
        self.codec_mismatch = codec_mismatch
        super().__init__(f"Concatenation failed: {reason}", cause)


class StorageFailed(ChainError):
    """Upload of a finished artifact to object storage failed."""

    def __init__(self, key: str, reason: str, cause: Optional[BaseException] = None):
        self.key = key
        self.reason = reason
        super().__init__(f"Upload of {key} failed: {reason}", cause)


class ChainNotFoundError(ChainError):
    """Raised when a chain job cannot be found."""

    def __init__(self, job_id: str):
        self.job_id = job_id
        super().__init__(f"Chain job not found: {job_id}")


class InvalidStateTransitionError(ChainError):
    """Raised when attempting an illegal status transition."""

    def __init__(self, job_id: str, current_state: str, target_state: str):
        self.job_id = job_id
        self.current_state = current_state
        self.target_state = target_state
        super().__init__(
            f"Invalid chain state transition for {job_id}: {current_state} -> {target_state}"
        )
