"""Format descriptors and best-stream selection.

SELECTION POLICY
================
Downstream players and the external muxer cope best with H.264 video and
AAC audio in an m4a container, so:
- Video: avc1 at the highest height within the ceiling, else any codec
- Audio: m4a at the highest bitrate, else any container
- No video+audio pair: best combined (progressive) format within the ceiling

All functions here are pure. Ties keep declaration order.
"""

import re
from dataclasses import dataclass
from typing import Iterable, List, Optional

from streamgate.utils.exceptions import InvalidRequestError, NoStreamAvailableError


PREFERRED_VIDEO_CODEC = "avc1"
PREFERRED_AUDIO_CONTAINER = "m4a"

QUALITY_HEIGHT_MAP = {
    "1080p": 1080,
    "720p": 720,
    "480p": 480,
    "360p": 360,
    "lowest": 144,
}

KIND_VIDEO = "video"
KIND_AUDIO = "audio"

STREAM_SINGLE = "single"
STREAM_DUAL = "dual"

_AUDIO_CODEC_PREFIXES = ("mp4a", "opus", "vorbis", "ac-3", "ec-3", "flac")
_MIME_RE = re.compile(r'^\s*(?P<type>[\w-]+)/(?P<subtype>[\w.+-]+)\s*(?:;\s*codecs="(?P<codecs>[^"]*)")?')


@dataclass
class FormatDescriptor:
    """One encoding of a media item. `url` is short-lived, never persist it."""
    itag: Optional[int]
    mime_type: str
    container: str
    is_video: bool
    is_audio: bool
    codec_tag: str
    url: str
    height_px: Optional[int] = None
    bitrate_bps: Optional[int] = None
    content_length: Optional[int] = None

    @property
    def is_combined(self) -> bool:
        return self.is_video and self.is_audio

    @classmethod
    def from_upstream(cls, raw: dict) -> Optional["FormatDescriptor"]:
        """
        Build a descriptor from one `streamingData` format entry.

        Returns None for entries without a parseable mime type.
        """
        match = _MIME_RE.match(raw.get("mimeType") or "")
        if not match:
            return None

        top = match.group("type").lower()
        subtype = match.group("subtype").lower()
        codecs = [c.strip() for c in (match.group("codecs") or "").split(",") if c.strip()]

        has_audio_codec = any(c.lower().startswith(_AUDIO_CODEC_PREFIXES) for c in codecs)
        is_video = top == "video"
        is_audio = top == "audio" or (is_video and (has_audio_codec or "audioSampleRate" in raw))

        # Audio in an mp4 box is what players and muxers call m4a
        container = subtype
        if top == "audio" and subtype == "mp4":
            container = "m4a"

        return cls(
            itag=raw.get("itag"),
            mime_type=raw.get("mimeType", ""),
            container=container,
            is_video=is_video,
            is_audio=is_audio,
            codec_tag=codecs[0] if codecs else "",
            url=raw.get("url") or "",
            height_px=_as_int(raw.get("height")),
            bitrate_bps=_as_int(raw.get("averageBitrate") or raw.get("bitrate")),
            content_length=_as_int(raw.get("contentLength")),
        )


@dataclass
class StreamResolution:
    """Either one combined/audio descriptor (single) or a video+audio pair (dual)."""
    kind: str
    single: Optional[FormatDescriptor] = None
    video: Optional[FormatDescriptor] = None
    audio: Optional[FormatDescriptor] = None

    def __post_init__(self):
        if self.kind == STREAM_DUAL:
            if self.video is None or self.audio is None:
                raise ValueError("dual resolution needs both video and audio legs")
        elif self.kind == STREAM_SINGLE:
            if self.single is None:
                raise ValueError("single resolution needs a descriptor")
        else:
            raise ValueError(f"unknown resolution kind: {self.kind}")

    @property
    def video_container(self) -> str:
        if self.kind == STREAM_DUAL:
            return self.video.container
        return self.single.container

    @property
    def audio_container(self) -> str:
        if self.kind == STREAM_DUAL:
            return self.audio.container
        return self.single.container


def _as_int(value) -> Optional[int]:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _height(descriptor: FormatDescriptor) -> int:
    return descriptor.height_px or 0


def _bitrate(descriptor: FormatDescriptor) -> int:
    return descriptor.bitrate_bps or 0


def parse_quality(quality: Optional[str], max_height: int) -> int:
    """
    Convert a quality label to a height ceiling in pixels.

    Accepts `highest`, the labels in QUALITY_HEIGHT_MAP, or a bare height
    with an optional `p` suffix. Ceilings are clamped to `max_height`.
    """
    label = (quality or "").strip().lower()
    if not label or label == "highest":
        return max_height

    if label in QUALITY_HEIGHT_MAP:
        return min(QUALITY_HEIGHT_MAP[label], max_height)

    digits = label[:-1] if label.endswith("p") else label
    if digits.isdigit() and int(digits) > 0:
        return min(int(digits), max_height)

    raise InvalidRequestError(f"Unknown quality: {quality}")


def select_video(descriptors: Iterable[FormatDescriptor], max_height: int) -> Optional[FormatDescriptor]:
    """Best video-only descriptor not taller than `max_height`."""
    candidates = [
        d for d in descriptors
        if d.is_video and not d.is_audio and _height(d) <= max_height
    ]
    preferred = [d for d in candidates if d.codec_tag.startswith(PREFERRED_VIDEO_CODEC)]
    pool = preferred or candidates
    if not pool:
        return None
    # max() keeps the first of equal keys
    return max(pool, key=_height)


def select_audio(descriptors: Iterable[FormatDescriptor]) -> Optional[FormatDescriptor]:
    """Best audio-only descriptor by bitrate, m4a first."""
    candidates = [d for d in descriptors if d.is_audio and not d.is_video]
    preferred = [d for d in candidates if d.container == PREFERRED_AUDIO_CONTAINER]
    pool = preferred or candidates
    if not pool:
        return None
    return max(pool, key=_bitrate)


def select_combined(descriptors: Iterable[FormatDescriptor], max_height: int) -> Optional[FormatDescriptor]:
    """Best combined descriptor not taller than `max_height`."""
    pool = [d for d in descriptors if d.is_combined and _height(d) <= max_height]
    if not pool:
        return None
    return max(pool, key=_height)


def select_streams(descriptors: List[FormatDescriptor], kind: str, max_height: int) -> StreamResolution:
    """
    Choose the streams to hand out for a request.

    Args:
        descriptors: Usable descriptors (with urls) from one player response
        kind: KIND_VIDEO or KIND_AUDIO
        max_height: Video height ceiling in pixels

    Returns:
        StreamResolution

    Raises:
        NoStreamAvailableError: If nothing of the requested kind exists
    """
    if kind == KIND_AUDIO:
        audio = select_audio(descriptors)
        if audio is None:
            raise NoStreamAvailableError("No audio stream found")
        return StreamResolution(kind=STREAM_SINGLE, single=audio)

    video = select_video(descriptors, max_height)
    audio = select_audio(descriptors)
    if video is not None and audio is not None:
        return StreamResolution(kind=STREAM_DUAL, video=video, audio=audio)

    combined = select_combined(descriptors, max_height)
    if combined is not None:
        return StreamResolution(kind=STREAM_SINGLE, single=combined)

    raise NoStreamAvailableError(f"No suitable stream formats found at or below {max_height}p")
