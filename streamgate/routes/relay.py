"""Byte relay endpoint for resolved CDN URLs."""

from typing import Optional

from fastapi import APIRouter, Depends, Header, Query
from fastapi.responses import StreamingResponse

from streamgate.middleware.auth import verify_api_key
from streamgate.models.schemas import ErrorResponse
from streamgate.routes.deps import get_context
from streamgate.services.context import ServiceContext
from streamgate.services.relay import open_relay


router = APIRouter(tags=["relay"])


@router.get(
    "/api/relay",
    responses={
        206: {"description": "Partial content for a caller range"},
        403: {"model": ErrorResponse, "description": "Host not on the CDN allow-list"},
        416: {"model": ErrorResponse, "description": "Caller range not satisfiable"},
        502: {"model": ErrorResponse, "description": "Upstream failure before the first byte"},
    },
)
async def relay_endpoint(
    url: str = Query(...),
    range_header: Optional[str] = Header(None, alias="Range"),
    context: ServiceContext = Depends(get_context),
    api_key: str = Depends(verify_api_key),
) -> StreamingResponse:
    """
    Relay the bytes of a signed CDN URL.

    The upstream is read in bounded ranged chunks with per-chunk retries.
    A caller `Range` is honoured with a 206 when the size is known.
    """
    stream = await open_relay(context, url, range_header)
    return StreamingResponse(
        stream.body,
        status_code=stream.status_code,
        headers=stream.headers,
    )
