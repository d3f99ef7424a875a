from functools import lru_cache
from typing import List, Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Server
    PORT: int = 3002
    ENVIRONMENT: str = "production"

    # Internal Authentication (disabled when unset)
    API_KEY: Optional[str] = None

    # Optional JSONL log file
    LOG_FILE: Optional[str] = None

    # Upstream player / browse API
    UPSTREAM_BASE_URL: str = "https://www.youtube.com"
    UPSTREAM_TIMEOUT_SECONDS: float = 15.0
    # Comma separated profile names, restricts and reorders the registry
    CLIENT_PROFILE_ORDER: Optional[str] = None

    # Format selection
    MAX_VIDEO_HEIGHT: int = 1080

    # Listing crawl
    CRAWL_MAX_PAGES: int = 10

    # Range relay
    RELAY_CHUNK_SIZE: int = 4 * 1024 * 1024
    RELAY_CHUNK_TIMEOUT_SECONDS: float = 30.0
    RELAY_MAX_RETRIES: int = 4
    RELAY_BACKOFF_BASE_SECONDS: float = 0.5
    RELAY_BACKOFF_MAX_SECONDS: float = 8.0
    RELAY_ALLOWED_HOSTS: List[str] = [".googlevideo.com", ".youtube.com", ".ytimg.com"]
    RELAY_USER_AGENT: str = (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
    )

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
