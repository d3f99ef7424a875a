"""Stream resolution and media info endpoints."""

from fastapi import APIRouter, Depends, Query

from streamgate.middleware.auth import verify_api_key
from streamgate.models.schemas import ErrorResponse, MediaInfoResponse, ResolveResponse
from streamgate.routes.deps import get_context
from streamgate.services import logger, resolver
from streamgate.services.context import ServiceContext
from streamgate.services.format_selector import KIND_AUDIO, KIND_VIDEO, STREAM_DUAL
from streamgate.utils.exceptions import InvalidRequestError
from streamgate.utils.media_ids import extract_media_id


router = APIRouter(tags=["resolve"])


def _media_id_or_400(value: str) -> str:
    media_id = extract_media_id(value)
    if not media_id:
        raise InvalidRequestError("Invalid media id, expected an id or a video URL")
    return media_id


@router.get(
    "/api/resolve",
    response_model=ResolveResponse,
    responses={
        400: {"model": ErrorResponse, "description": "Invalid parameters"},
        404: {"model": ErrorResponse, "description": "No stream of the requested kind"},
        502: {"model": ErrorResponse, "description": "Every client profile was rejected"},
    },
)
async def resolve_endpoint(
    media_id: str = Query(..., alias="mediaId"),
    kind: str = Query(KIND_VIDEO, pattern=f"^({KIND_VIDEO}|{KIND_AUDIO})$"),
    quality: str = Query("highest"),
    context: ServiceContext = Depends(get_context),
    api_key: str = Depends(verify_api_key),
) -> ResolveResponse:
    """
    Resolve playable stream URLs for one media item.

    Video requests come back as a dual video+audio pair when possible, or a
    single combined stream otherwise. Audio requests are always single.
    """
    media_id = _media_id_or_400(media_id)
    logger.info(f"Resolve request: {media_id} kind={kind} quality={quality}", "api")

    resolved = await resolver.resolve(context, media_id, kind, quality)
    resolution = resolved.resolution
    dual = resolution.kind == STREAM_DUAL

    return ResolveResponse(
        media_id=media_id,
        title=resolved.title,
        filename=resolved.filename,
        stream_type=resolution.kind,
        url=None if dual else resolution.single.url,
        video_url=resolution.video.url if dual else None,
        audio_url=resolution.audio.url if dual else None,
        video_container=resolution.video_container,
        audio_container=resolution.audio_container,
        duration_seconds=resolved.duration_seconds,
        quality=resolved.quality,
        profile=resolved.profile_name,
    )


@router.get("/api/info", response_model=MediaInfoResponse)
async def info_endpoint(
    media_id: str = Query(..., alias="mediaId"),
    context: ServiceContext = Depends(get_context),
    api_key: str = Depends(verify_api_key),
) -> MediaInfoResponse:
    """Display metadata (title, author, duration, thumbnail, views) for one media item."""
    media_id = _media_id_or_400(media_id)
    info = await resolver.fetch_media_info(context, media_id)
    return MediaInfoResponse(**info)
