"""Listing crawl endpoint."""

from typing import Optional

from fastapi import APIRouter, Depends, Query

from streamgate.middleware.auth import verify_api_key
from streamgate.models.schemas import CrawlResponse, ErrorResponse, PlaylistEntryModel
from streamgate.routes.deps import get_context
from streamgate.services import crawler, logger
from streamgate.services.context import ServiceContext
from streamgate.utils.exceptions import InvalidRequestError
from streamgate.utils.media_ids import extract_listing_id, format_duration


router = APIRouter(tags=["crawl"])


@router.get(
    "/api/crawl",
    response_model=CrawlResponse,
    responses={
        400: {"model": ErrorResponse, "description": "Invalid listing id"},
        502: {"model": ErrorResponse, "description": "First listing page unavailable"},
    },
)
async def crawl_endpoint(
    listing_id: str = Query(..., alias="listingId"),
    max_pages: Optional[int] = Query(None, alias="maxPages", ge=1, le=100),
    context: ServiceContext = Depends(get_context),
    api_key: str = Depends(verify_api_key),
) -> CrawlResponse:
    """
    Crawl every page of a listing.

    Failures after the first page return the entries gathered so far.
    """
    parsed_id = extract_listing_id(listing_id)
    if not parsed_id:
        raise InvalidRequestError("Invalid listing id, expected an id or a URL with list=")

    logger.info(f"Crawl request: {parsed_id} max_pages={max_pages}", "api")
    result = await crawler.crawl(context, parsed_id, max_pages)

    return CrawlResponse(
        listing_id=result.listing_id,
        title=result.title,
        author=result.author,
        entry_count=len(result.entries),
        total_seconds=result.total_seconds,
        average_seconds=result.average_seconds,
        total_duration=format_duration(result.total_seconds),
        average_duration=format_duration(result.average_seconds),
        unavailable_count=result.unavailable_count,
        entries=[
            PlaylistEntryModel(
                media_id=e.media_id,
                title=e.title,
                duration_seconds=e.duration_seconds,
                duration=format_duration(e.duration_seconds),
                author=e.author,
                position=e.position,
                thumbnail=e.thumbnail,
            )
            for e in result.entries
        ],
    )
