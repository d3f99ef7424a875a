"""Shared fixtures: fake upstream platform and CDN behind httpx.MockTransport."""

import json
import re
from typing import Dict, List, Optional

import httpx
import pytest

from streamgate.config import Settings
from streamgate.services.context import ServiceContext

_RANGE_RE = re.compile(r"bytes=(\d+)-(\d*)")

# No sleeping between retries in tests
FAST_SETTINGS = {
    "RELAY_BACKOFF_BASE_SECONDS": 0.0,
    "RELAY_BACKOFF_MAX_SECONDS": 0.0,
    "API_KEY": None,
}


def build_context(handler, **overrides) -> ServiceContext:
    settings = Settings(**{**FAST_SETTINGS, **overrides})
    return ServiceContext.create(settings, transport=httpx.MockTransport(handler))


@pytest.fixture
def make_context():
    return build_context


# =============================================================================
# FAKE CDN
# =============================================================================

class FakeCDN:
    """
    Serves one byte string with range support.

    Args:
        data: Resource bytes
        max_range: Largest number of bytes served per ranged request
        reject_from: Offsets at or past this answer 416
        total_header: Override the total in Content-Range ("*" for unknown)
        supports_ranges: When False, ignore Range and answer 200 with the body
    """

    def __init__(
        self,
        data: bytes,
        max_range: Optional[int] = None,
        reject_from: Optional[int] = None,
        total_header: Optional[str] = None,
        supports_ranges: bool = True,
        content_type: str = "video/mp4",
    ):
        self.data = data
        self.max_range = max_range
        self.reject_from = reject_from
        self.total_header = total_header
        self.supports_ranges = supports_ranges
        self.content_type = content_type
        self.failures: Dict[int, List] = {}
        self.requests: List[Optional[str]] = []

    def fail_at(self, start: int, *failures):
        """Queue failures (exception instances or status codes) for a chunk start."""
        self.failures.setdefault(start, []).extend(failures)

    def __call__(self, request: httpx.Request) -> httpx.Response:
        range_header = request.headers.get("range")
        self.requests.append(range_header)
        size = len(self.data)

        if not self.supports_ranges or not range_header:
            return httpx.Response(200, content=self.data, headers={"Content-Type": self.content_type})

        match = _RANGE_RE.match(range_header)
        start = int(match.group(1))
        end = int(match.group(2)) if match.group(2) else size - 1

        queued = self.failures.get(start)
        if queued:
            failure = queued.pop(0)
            if isinstance(failure, Exception):
                raise failure
            return httpx.Response(failure)

        if start >= size or (self.reject_from is not None and start >= self.reject_from):
            return httpx.Response(416, headers={"Content-Range": f"bytes */{size}"})

        end = min(end, size - 1)
        if self.max_range is not None:
            end = min(end, start + self.max_range - 1)

        total = self.total_header or str(size)
        return httpx.Response(
            206,
            content=self.data[start:end + 1],
            headers={
                "Content-Type": self.content_type,
                "Content-Range": f"bytes {start}-{end}/{total}",
            },
        )

    @property
    def chunk_requests(self) -> List[str]:
        """Ranged requests other than the 1-byte probe."""
        return [r for r in self.requests if r != "bytes=0-0"]


def sample_bytes(size: int) -> bytes:
    pattern = bytes(range(256))
    return (pattern * (size // 256 + 1))[:size]


CDN_URL = "https://rr1---sn-abc.googlevideo.com/videoplayback?id=1&expire=9"


# =============================================================================
# FAKE PLAYER API
# =============================================================================

def fmt(itag, mime, url="https://rr1---sn-abc.googlevideo.com/videoplayback?itag={itag}", **extra):
    data = {"itag": itag, "mimeType": mime, **extra}
    if url:
        data["url"] = url.format(itag=itag)
    return data


def player_payload(media_id="abc123def45", formats=(), adaptive=(), status="OK", reason=None, title="Sample", length=212):
    payload = {
        "playabilityStatus": {"status": status},
        "videoDetails": {
            "videoId": media_id,
            "title": title,
            "lengthSeconds": str(length),
            "author": "Uploader",
            "channelId": "UC123",
            "viewCount": "1234567",
            "shortDescription": "desc",
            "keywords": ["a", "b"],
            "thumbnail": {"thumbnails": [
                {"url": "https://i.ytimg.com/vi/x/default.jpg", "width": 120},
                {"url": "https://i.ytimg.com/vi/x/hq.jpg", "width": 480},
            ]},
        },
    }
    if reason:
        payload["playabilityStatus"]["reason"] = reason
    if status == "OK":
        payload["streamingData"] = {"formats": list(formats), "adaptiveFormats": list(adaptive)}
    return payload


STANDARD_ADAPTIVE = [
    fmt(137, 'video/mp4; codecs="avc1.640028"', height=1080, bitrate=4000000),
    fmt(248, 'video/webm; codecs="vp9"', height=1080, bitrate=3000000),
    fmt(136, 'video/mp4; codecs="avc1.4d401f"', height=720, bitrate=2000000),
    fmt(140, 'audio/mp4; codecs="mp4a.40.2"', bitrate=130000, audioSampleRate="44100"),
    fmt(251, 'audio/webm; codecs="opus"', bitrate=160000, audioSampleRate="48000"),
]
STANDARD_PROGRESSIVE = [
    fmt(18, 'video/mp4; codecs="avc1.42001E, mp4a.40.2"', height=360, bitrate=500000, audioSampleRate="44100"),
]


class FakePlayer:
    """Answers player requests per client id (X-YouTube-Client-Name)."""

    def __init__(self, responses: Dict[int, object]):
        # client id -> payload dict, status int, or exception
        self.responses = responses
        self.calls: List[int] = []
        self.bodies: List[dict] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        client_id = int(request.headers["X-YouTube-Client-Name"])
        self.calls.append(client_id)
        self.bodies.append(json.loads(request.content))
        answer = self.responses.get(client_id, 403)
        if isinstance(answer, Exception):
            raise answer
        if isinstance(answer, int):
            return httpx.Response(answer)
        return httpx.Response(200, json=answer)


# =============================================================================
# FAKE BROWSE API
# =============================================================================

def entry(media_id, title=None, length_text="3:30", author="Channel", length_seconds=None):
    renderer = {
        "videoId": media_id,
        "title": {"runs": [{"text": title or f"Video {media_id}"}]},
        "shortBylineText": {"runs": [{"text": author}]},
    }
    if length_text is not None:
        renderer["lengthText"] = {"simpleText": length_text}
    if length_seconds is not None:
        renderer["lengthSeconds"] = length_seconds
    return {"playlistVideoRenderer": renderer}


def continuation(token):
    return {"continuationItemRenderer": {"continuationEndpoint": {
        "continuationCommand": {"token": token, "request": "CONTINUATION_REQUEST_TYPE_BROWSE"}
    }}}


def first_page(entries, token=None, title="My List", author="Alice"):
    items = list(entries) + ([continuation(token)] if token else [])
    return {
        "header": {"playlistHeaderRenderer": {
            "title": {"simpleText": title},
            "ownerText": {"runs": [{"text": author}]},
        }},
        "contents": {"twoColumnBrowseResultsRenderer": {"tabs": [{"tabRenderer": {"content": {
            "sectionListRenderer": {"contents": [{"itemSectionRenderer": {"contents": [
                {"playlistVideoListRenderer": {"contents": items}}
            ]}}]}
        }}}]}},
    }


def next_page(entries, token=None, author=None):
    items = list(entries) + ([continuation(token)] if token else [])
    page = {"onResponseReceivedActions": [{"appendContinuationItemsAction": {"continuationItems": items}}]}
    if author:
        # Later pages sometimes repeat a header; it must not override page 1
        page["header"] = {"playlistHeaderRenderer": {
            "title": {"simpleText": "Other"},
            "ownerText": {"runs": [{"text": author}]},
        }}
    return page


class FakeBrowse:
    """Serves a first page and continuation pages keyed by token."""

    def __init__(self, first, pages=None):
        # first / page values: dict payload, int status, or exception
        self.first = first
        self.pages = pages or {}
        self.calls: List[Optional[str]] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        token = body.get("continuation")
        self.calls.append(token)
        answer = self.pages.get(token, 404) if token else self.first
        if isinstance(answer, Exception):
            raise answer
        if isinstance(answer, int):
            return httpx.Response(answer)
        return httpx.Response(200, json=answer)
