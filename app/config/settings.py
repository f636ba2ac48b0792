import os
from typing import List

from pydantic_settings import BaseSettings

class Settings(BaseSettings):
    # API Configuration
    API_TITLE: str = "Chain Video API"
    API_VERSION: str = "1.0.0"
    API_DESCRIPTION: str = "Long-form video generation by chaining continuous segments"

    # Server Configuration
    HOST: str = os.getenv("HOST", "0.0.0.0")
    PORT: int = int(os.getenv("PORT", "8000"))
    DEBUG: bool = os.getenv("DEBUG", "false").lower() == "true"
    NODE_ENV: str = os.getenv("NODE_ENV", "development")

    TEMP_DIR: str = os.getenv("TEMP_DIR", "./tmp")
    LOGS_DIR: str = os.getenv("LOGS_DIR", "app/logs")
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    # R2 Bucket Configuration
    R2_ACCESS_KEY_ID: str = os.getenv("R2_ACCESS_KEY_ID", "")
    R2_SECRET_ACCESS_KEY: str = os.getenv("R2_SECRET_ACCESS_KEY", "")
    R2_BUCKET_NAME: str = os.getenv("R2_BUCKET_NAME", "chain-videos")
    R2_ENDPOINT_URL: str = os.getenv("R2_ENDPOINT_URL", "")
    R2_REGION: str = os.getenv("R2_REGION", "auto")
    R2_BASE_PATH: str = os.getenv("R2_BASE_PATH", "chains")
    R2_PUBLIC_URL: str = os.getenv("R2_PUBLIC_URL", "")

    # MongoDB Configuration
    MONGODB_URI: str = os.getenv("MONGODB_URI", "mongodb://127.0.0.1:27017")
    DB_NAME: str = os.getenv("DB_NAME", "chain-video")
    CHAIN_COLLECTION: str = os.getenv("CHAIN_COLLECTION", "chain_jobs")

    # OpenAI Configuration
    OPENAI_API_KEY: str = os.getenv("OPENAI_API_KEY", "")
    PLANNER_MODEL: str = os.getenv("PLANNER_MODEL", "gpt-5")
    PLANNER_MAX_TOKENS: int = int(os.getenv("PLANNER_MAX_TOKENS", "10000"))

    # Chain pipeline
    CHAIN_MAX_CONCURRENT: int = int(os.getenv("CHAIN_MAX_CONCURRENT", "1"))  # segments are sequential, chains may overlap
    CHAIN_TICK_SECONDS: float = float(os.getenv("CHAIN_TICK_SECONDS", "2"))
    CHAIN_POLL_INTERVAL_SECONDS: float = float(os.getenv("CHAIN_POLL_INTERVAL_SECONDS", "15"))
    CHAIN_POLL_BACKOFF: float = float(os.getenv("CHAIN_POLL_BACKOFF", "1.5"))
    CHAIN_POLL_MAX_INTERVAL_SECONDS: float = float(os.getenv("CHAIN_POLL_MAX_INTERVAL_SECONDS", "60"))
    CHAIN_MAX_POLL_ATTEMPTS: int = int(os.getenv("CHAIN_MAX_POLL_ATTEMPTS", "60"))
    CHAIN_MAX_AUTO_RETRIES: int = int(os.getenv("CHAIN_MAX_AUTO_RETRIES", "1"))
    CHAIN_FAILED_DIR_RETENTION_HOURS: int = int(os.getenv("CHAIN_FAILED_DIR_RETENTION_HOURS", "24"))
    CHAIN_CLEANUP_INTERVAL_SECONDS: int = int(os.getenv("CHAIN_CLEANUP_INTERVAL_SECONDS", "3600"))

    # FFmpeg Configuration
    FFMPEG_PATH: str = os.getenv("FFMPEG_PATH", "")
    FFMPEG_TIMEOUT_SECONDS: int = int(os.getenv("FFMPEG_TIMEOUT_SECONDS", "600"))

    # Webhooks (chain completed / failed)
    CHAIN_WEBHOOK_URLS: List[str] = []
    WEBHOOK_TIMEOUT_SECONDS: float = float(os.getenv("WEBHOOK_TIMEOUT_SECONDS", "10"))

    model_config = {"env_file": ".env", "case_sensitive": True, "extra": "ignore"}

    @property
    def chain_temp_root(self) -> str:
        return os.path.join(self.TEMP_DIR, "chains")

# Global settings instance
settings = Settings()
