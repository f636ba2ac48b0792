import os
import logging
import time

import boto3

from app.config.constants import CONTENT_TYPE_JPEG, CONTENT_TYPE_MP4
from app.config.settings import settings
from app.services.chain.errors import StorageFailed

logger = logging.getLogger(__name__)


class R2Service:
    """R2 object storage for finished chain artifacts"""

    def __init__(self, client=None, max_attempts: int = 4, base_delay: float = 0.5, sleep=time.sleep):
        # Cloudflare R2 uses 'auto' but boto3 needs 'us-east-1' for compatibility
        self._region = settings.R2_REGION if settings.R2_REGION != "auto" else "us-east-1"
        self._client = client
        self.bucket_name = settings.R2_BUCKET_NAME
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self._sleep = sleep
        logger.info(f"R2Service configured - bucket: {self.bucket_name}")

    @property
    def client(self):
        """Lazy initialization of boto3 client to speed up startup"""
        if self._client is None:
            self._client = boto3.client(
                's3',
                endpoint_url=settings.R2_ENDPOINT_URL,
                aws_access_key_id=settings.R2_ACCESS_KEY_ID,
                aws_secret_access_key=settings.R2_SECRET_ACCESS_KEY,
                region_name=self._region,
                config=boto3.session.Config(
                    retries={'max_attempts': 2},
                    read_timeout=30,
                    connect_timeout=5
                )
            )
            logger.info("R2 client initialized")
        return self._client

    def build_key(self, job_id: str, filename: str) -> str:
        base_path = settings.R2_BASE_PATH.rstrip('/')
        return f"{base_path}/{job_id}/{filename}"

    def public_url(self, r2_key: str) -> str:
        if settings.R2_PUBLIC_URL:
            return f"{settings.R2_PUBLIC_URL.rstrip('/')}/{r2_key}"
        return f"https://{self.bucket_name}.r2.cloudflarestorage.com/{r2_key}"

    def upload_file(self, local_path: str, r2_key: str, content_type: str = "application/octet-stream") -> str:
        """Upload a local file and return the public URL, raises StorageFailed"""
        if not os.path.exists(local_path):
            raise StorageFailed(r2_key, f"file not found: {local_path}")

        def _do_upload():
            with open(local_path, 'rb') as file:
                self.client.upload_fileobj(
                    file,
                    self.bucket_name,
                    r2_key,
                    ExtraArgs={'ContentType': content_type}
                )

        self._with_retries(r2_key, _do_upload)
        logger.info(f"Uploaded: {r2_key} ({os.path.getsize(local_path)} bytes)")
        return self.public_url(r2_key)

    def upload_video(self, job_id: str, local_path: str) -> str:
        return self.upload_file(local_path, self.build_key(job_id, f"chain_{job_id}.mp4"), CONTENT_TYPE_MP4)

    def upload_thumbnail(self, job_id: str, local_path: str) -> str:
        return self.upload_file(local_path, self.build_key(job_id, f"chain_{job_id}_thumb.jpg"), CONTENT_TYPE_JPEG)

    def _with_retries(self, r2_key: str, operation) -> None:
        # Simple exponential backoff retry
        last_error = None
        for attempt in range(1, self.max_attempts + 1):
            try:
                operation()
                return
            except Exception as e:
                last_error = e
                if attempt < self.max_attempts:
                    delay = self.base_delay * (2 ** (attempt - 1))
                    logger.warning(f"Upload attempt {attempt} failed for {r2_key}: {e}. Retrying in {delay:.1f}s...")
                    self._sleep(delay)

        logger.error(f"Upload failed after retries: {r2_key} -> {last_error}")
        raise StorageFailed(r2_key, f"gave up after {self.max_attempts} attempts", cause=last_error)

# No global state - each caller creates its own instance
