from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Response models serialise with camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ResolveResponse(CamelModel):
    """Response model for a stream resolution."""

    media_id: str
    title: str
    filename: str
    stream_type: str  # single, dual
    url: Optional[str] = None
    video_url: Optional[str] = None
    audio_url: Optional[str] = None
    video_container: str
    audio_container: str
    duration_seconds: int
    quality: str
    profile: str = Field(..., description="Client profile that was accepted")


class PlaylistEntryModel(CamelModel):
    """Single entry of a crawled listing."""

    media_id: str
    title: str
    duration_seconds: int
    duration: str
    author: str
    position: int
    thumbnail: str


class CrawlResponse(CamelModel):
    """Response model for a listing crawl."""

    listing_id: str
    title: str
    author: str
    entry_count: int
    total_seconds: int
    average_seconds: int
    total_duration: str
    average_duration: str
    unavailable_count: int = 0
    entries: List[PlaylistEntryModel]


class MediaInfoResponse(CamelModel):
    """Display metadata for one media item."""

    media_id: str
    title: str
    author: str
    channel_id: Optional[str] = None
    duration_seconds: int
    duration: str
    thumbnail: str
    view_count: int
    view_count_display: Optional[str] = None
    description: str
    keywords: List[str]
    is_live: bool = False


class ErrorResponse(BaseModel):
    """Response model for errors."""

    error: str
    error_code: str
    message: str
    retryable: bool


class HealthCheck(BaseModel):
    """Response model for health check."""

    status: str
    timestamp: str
    checks: dict
