"""Stream resolution through an ordered chain of impersonated clients.

FALLBACK CHAIN
==============
Each ClientProfile is one attempt against the player endpoint. An attempt
either produces Accepted(payload, descriptors) or Rejected(reason):
- transport failure, HTTP error or bad JSON: rejected
- playability status other than OK: rejected with the upstream reason
- no format carries a direct URL (cipher-only): rejected
The first accepted attempt wins. Rejections are identity-specific, so a
rejected profile is never retried within the same resolution; the chain
moves on to the next identity instead.
"""

import time
from dataclasses import dataclass, field
from typing import List, Optional, Tuple, Union

import httpx

from streamgate.services import logger
from streamgate.services.client_profiles import ClientProfile
from streamgate.services.context import ServiceContext
from streamgate.services.format_selector import (
    STREAM_DUAL,
    FormatDescriptor,
    StreamResolution,
    parse_quality,
    select_streams,
)
from streamgate.utils.exceptions import ClientProfileExhaustedError
from streamgate.utils.media_ids import format_duration, format_views, safe_filename

PLAYER_PATH = "/youtubei/v1/player"


@dataclass
class Accepted:
    """A playable player response."""
    profile: ClientProfile
    payload: dict
    descriptors: List[FormatDescriptor]


@dataclass
class Rejected:
    """A profile attempt that did not yield playable streams."""
    profile: ClientProfile
    reason: str


Outcome = Union[Accepted, Rejected]


@dataclass
class ResolvedMedia:
    """Resolution result plus the metadata the caller needs alongside it."""
    media_id: str
    title: str
    duration_seconds: int
    quality: str
    profile_name: str
    resolution: StreamResolution
    rejections: List[Tuple[str, str]] = field(default_factory=list)

    @property
    def filename(self) -> str:
        return safe_filename(self.title, self.media_id)


def _playability_reason(status: dict) -> str:
    reason = status.get("reason")
    if not reason:
        screen = (status.get("errorScreen") or {}).get("playerErrorMessageRenderer") or {}
        subreason = screen.get("subreason") or {}
        runs = subreason.get("runs") or []
        reason = "".join(r.get("text", "") for r in runs) or subreason.get("simpleText")
    return reason or status.get("status") or "unplayable"


def extract_descriptors(payload: dict) -> List[FormatDescriptor]:
    """All formats with a direct URL, progressive formats first."""
    streaming = payload.get("streamingData") or {}
    descriptors = []
    for raw in (streaming.get("formats") or []) + (streaming.get("adaptiveFormats") or []):
        if not isinstance(raw, dict) or not raw.get("url"):
            continue
        descriptor = FormatDescriptor.from_upstream(raw)
        if descriptor is not None:
            descriptors.append(descriptor)
    return descriptors


async def negotiate(context: ServiceContext, profile: ClientProfile, media_id: str) -> Outcome:
    """
    Ask the player endpoint for `media_id` while impersonating `profile`.

    Never raises for upstream problems; every failure is a Rejected outcome.
    """
    url = context.settings.UPSTREAM_BASE_URL.rstrip("/") + PLAYER_PATH
    body = {
        "context": profile.context(),
        "videoId": media_id,
        "contentCheckOk": True,
        "racyCheckOk": True,
    }

    try:
        response = await context.client.post(
            url,
            json=body,
            headers=profile.headers(),
            params={"prettyPrint": "false"},
        )
    except httpx.HTTPError as e:
        return Rejected(profile, f"request failed: {type(e).__name__}: {str(e)[:100]}")

    if response.status_code != 200:
        return Rejected(profile, f"player endpoint returned HTTP {response.status_code}")

    try:
        payload = response.json()
    except ValueError:
        return Rejected(profile, "player endpoint returned invalid JSON")
    if not isinstance(payload, dict):
        return Rejected(profile, "player endpoint returned unexpected JSON")

    status = payload.get("playabilityStatus") or {}
    if status.get("status") != "OK":
        return Rejected(profile, _playability_reason(status))

    details = payload.get("videoDetails") or {}
    if details.get("videoId") and details["videoId"] != media_id:
        return Rejected(profile, f"response was for a different video ({details['videoId']})")

    descriptors = extract_descriptors(payload)
    if not descriptors:
        return Rejected(profile, "no usable stream URLs")

    return Accepted(profile, payload, descriptors)


async def negotiate_any(context: ServiceContext, media_id: str) -> Tuple[Accepted, List[Tuple[str, str]]]:
    """
    Walk the profile chain until one profile is accepted.

    Returns:
        (accepted outcome, list of (profile name, reason) rejections before it)

    Raises:
        ClientProfileExhaustedError: If every profile was rejected
    """
    rejections: List[Tuple[str, str]] = []

    for profile in context.profiles:
        start_time = time.time()
        outcome = await negotiate(context, profile, media_id)
        elapsed_ms = int((time.time() - start_time) * 1000)

        if isinstance(outcome, Accepted):
            logger.info(
                f"Profile {profile.name} accepted for {media_id}",
                "resolver",
                {
                    "media_id": media_id,
                    "profile": profile.name,
                    "formats": len(outcome.descriptors),
                    "elapsed_ms": elapsed_ms,
                    "rejected_before": len(rejections),
                },
            )
            return outcome, rejections

        rejections.append((profile.name, outcome.reason))
        logger.warn(
            f"Profile {profile.name} rejected for {media_id}: {outcome.reason}",
            "resolver",
            {"media_id": media_id, "profile": profile.name, "elapsed_ms": elapsed_ms},
        )

    last_reason = rejections[-1][1] if rejections else "no client profiles configured"
    logger.error(
        f"All {len(rejections)} client profiles rejected for {media_id}",
        "resolver",
        {"media_id": media_id, "rejections": rejections},
    )
    raise ClientProfileExhaustedError(last_reason, rejections)


async def resolve(
    context: ServiceContext,
    media_id: str,
    kind: str,
    quality: Optional[str] = "highest",
) -> ResolvedMedia:
    """
    Resolve playable stream URLs for one media item.

    Args:
        context: Service context
        media_id: Media id
        kind: "video" or "audio"
        quality: Quality label (see format_selector.parse_quality)

    Returns:
        ResolvedMedia

    Raises:
        InvalidRequestError: If `quality` is not understood
        ClientProfileExhaustedError: If every profile was rejected
        NoStreamAvailableError: If the accepted response has nothing suitable
    """
    # Validate before spending any network calls
    max_height = parse_quality(quality, context.settings.MAX_VIDEO_HEIGHT)

    accepted, rejections = await negotiate_any(context, media_id)
    resolution = select_streams(accepted.descriptors, kind, max_height)

    details = accepted.payload.get("videoDetails") or {}
    resolved = ResolvedMedia(
        media_id=media_id,
        title=details.get("title") or "Unknown",
        duration_seconds=_int(details.get("lengthSeconds")),
        quality=quality or "highest",
        profile_name=accepted.profile.name,
        resolution=resolution,
        rejections=rejections,
    )

    if resolution.kind == STREAM_DUAL:
        logger.info(
            f"Resolved {media_id}: video {resolution.video.height_px}p {resolution.video.codec_tag} "
            f"+ audio {resolution.audio.bitrate_bps}bps {resolution.audio.container}",
            "resolver",
            {"media_id": media_id, "video_itag": resolution.video.itag, "audio_itag": resolution.audio.itag},
        )
    else:
        logger.info(
            f"Resolved {media_id}: single {resolution.single.container} itag {resolution.single.itag}",
            "resolver",
            {"media_id": media_id},
        )

    return resolved


async def fetch_media_info(context: ServiceContext, media_id: str) -> dict:
    """
    Display metadata for one media item, taken from the first accepting profile.

    Raises:
        ClientProfileExhaustedError: If every profile was rejected
    """
    accepted, _ = await negotiate_any(context, media_id)
    details = accepted.payload.get("videoDetails") or {}

    thumbs = (details.get("thumbnail") or {}).get("thumbnails") or []
    best_thumb = max(thumbs, key=lambda t: t.get("width") or 0, default={}).get("url")
    duration = _int(details.get("lengthSeconds"))
    views = _int(details.get("viewCount"))

    return {
        "media_id": media_id,
        "title": details.get("title") or "Unknown",
        "author": details.get("author") or "Unknown",
        "channel_id": details.get("channelId"),
        "duration_seconds": duration,
        "duration": format_duration(duration),
        "thumbnail": best_thumb or f"https://i.ytimg.com/vi/{media_id}/maxresdefault.jpg",
        "view_count": views,
        "view_count_display": format_views(views),
        "description": (details.get("shortDescription") or "")[:300],
        "keywords": (details.get("keywords") or [])[:8],
        "is_live": bool(details.get("isLiveContent")),
    }


def _int(value) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0
