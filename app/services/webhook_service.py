import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import httpx

from app.config.constants import WEBHOOK_MAX_ATTEMPTS, WEBHOOK_RETRY_DELAYS_SECONDS, WEBHOOK_USER_AGENT
from app.config.settings import settings

logger = logging.getLogger(__name__)


class ChainWebhookService:
    """Best-effort notification of chain completion and failure.

    Delivery failures are logged and never raised, a job's final status does
    not depend on whether anyone was listening.
    """

    def __init__(
        self,
        urls: Optional[List[str]] = None,
        timeout_seconds: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep=asyncio.sleep,
    ):
        self.urls = list(urls) if urls is not None else list(settings.CHAIN_WEBHOOK_URLS)
        self.timeout_seconds = timeout_seconds if timeout_seconds is not None else settings.WEBHOOK_TIMEOUT_SECONDS
        self._transport = transport
        self._sleep = sleep

    @staticmethod
    def build_payload(event: str, job: Dict[str, Any]) -> Dict[str, Any]:
        return {
            "event": f"chain.{event}",
            "job_id": job.get("job_id"),
            "status": job.get("status"),
            "final_video_url": job.get("final_video_url"),
            "thumbnail_url": job.get("thumbnail_url"),
            "error_message": job.get("error_message"),
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    async def notify(self, event: str, job: Dict[str, Any]) -> Dict[str, bool]:
        """Deliver to every configured URL, returns url -> delivered"""
        if not self.urls:
            return {}

        payload = self.build_payload(event, job)
        results = {}
        async with httpx.AsyncClient(
            timeout=self.timeout_seconds,
            transport=self._transport,
            headers={"User-Agent": WEBHOOK_USER_AGENT},
        ) as client:
            for url in self.urls:
                results[url] = await self._deliver(client, url, payload)
        return results

    async def _deliver(self, client: httpx.AsyncClient, url: str, payload: Dict[str, Any]) -> bool:
        for attempt in range(1, WEBHOOK_MAX_ATTEMPTS + 1):
            try:
                response = await client.post(url, json=payload)
                response.raise_for_status()
                logger.info(f"Webhook {payload['event']} delivered to {url} for {payload['job_id']}")
                return True
            except httpx.HTTPError as e:
                if attempt < WEBHOOK_MAX_ATTEMPTS:
                    delay = WEBHOOK_RETRY_DELAYS_SECONDS[min(attempt - 1, len(WEBHOOK_RETRY_DELAYS_SECONDS) - 1)]
                    logger.warning(f"Webhook attempt {attempt} to {url} failed: {e}. Retrying in {delay}s")
                    await self._sleep(delay)
                else:
                    logger.error(f"Webhook to {url} failed after {attempt} attempts: {e}")
        return False
