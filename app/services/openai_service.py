"""OpenAI service: video generation plus text completion for planning"""

import logging
from dataclasses import dataclass
from typing import Optional, Tuple

import openai
from openai import OpenAI
from tenacity import retry, stop_after_attempt, wait_exponential, retry_if_exception_type

from app.config.settings import settings

logger = logging.getLogger(__name__)

# Transient failures worth retrying for idempotent calls
TRANSIENT_ERRORS = (
    openai.APIConnectionError,
    openai.APITimeoutError,
    openai.RateLimitError,
    openai.InternalServerError,
)

_STATE_MAP = {
    "queued": "pending",
    "in_progress": "running",
    "completed": "completed",
    "failed": "failed",
}


@dataclass
class VideoStatus:
    state: str  # pending | running | completed | failed
    progress: int = 0
    error: Optional[str] = None
    seconds: Optional[float] = None


class OpenAIService:
    """Thin wrapper over the OpenAI SDK - each worker creates its own instance"""

    def __init__(self, api_key: Optional[str] = None, client: Optional[OpenAI] = None):
        self.client = client
        self.is_available = client is not None

        if self.client is None:
            api_key = api_key if api_key is not None else settings.OPENAI_API_KEY
            if api_key and api_key.strip():
                self.client = OpenAI(api_key=api_key)
                self.is_available = True
                logger.info("OpenAI service ready")
            else:
                logger.warning("OpenAI API key not configured")

    def _require_client(self) -> OpenAI:
        if not self.is_available:
            raise RuntimeError("OpenAI API key not configured")
        return self.client

    # Planning LLM

    def complete(self, system_instructions: str, user_prompt: str) -> str:
        """Single-turn completion, returns the raw response text"""
        response = self._require_client().responses.create(
            model=settings.PLANNER_MODEL,
            instructions=system_instructions,
            input=user_prompt,
            max_output_tokens=settings.PLANNER_MAX_TOKENS,
        )
        return response.output_text.strip()

    # Video generation

    def create_video(
        self,
        prompt: str,
        model: str,
        size: str,
        seconds: int,
        input_reference: Optional[Tuple[str, bytes, str]] = None,
    ) -> str:
        """Submit a generation request and return the provider's video id.

        Not retried: a duplicate submission would be billed twice.
        """
        params = {
            "model": model,
            "prompt": prompt,
            "size": size,
            "seconds": str(seconds),
        }
        if input_reference is not None:
            params["input_reference"] = input_reference

        video = self._require_client().videos.create(**params)
        return video.id

    @retry(
        wait=wait_exponential(multiplier=1, min=2, max=30),
        stop=stop_after_attempt(4),
        retry=retry_if_exception_type(TRANSIENT_ERRORS),
        reraise=True
    )
    def get_video_status(self, video_id: str) -> VideoStatus:
        video = self._require_client().videos.retrieve(video_id)
        error = getattr(video, "error", None)
        seconds = getattr(video, "seconds", None)
        return VideoStatus(
            state=_STATE_MAP.get(video.status, "running"),
            progress=int(video.progress or 0),
            error=getattr(error, "message", None) if error else None,
            seconds=float(seconds) if seconds else None,
        )

    @retry(
        wait=wait_exponential(multiplier=1, min=2, max=30),
        stop=stop_after_attempt(4),
        retry=retry_if_exception_type(TRANSIENT_ERRORS),
        reraise=True
    )
    def download_video_content(self, video_id: str, variant: str = "video") -> bytes:
        content = self._require_client().videos.download_content(video_id, variant=variant)
        return content.read()
