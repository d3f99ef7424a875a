"""Identifier extraction and display formatting helpers."""

import re
from typing import Optional
from urllib.parse import parse_qs, urlsplit

MEDIA_ID_RE = re.compile(r"^[A-Za-z0-9_-]{11}$")  # ids embedded in platform URLs
BARE_ID_RE = re.compile(r"^[A-Za-z0-9_-]{1,64}$")
LISTING_ID_RE = re.compile(r"^[A-Za-z0-9_-]{2,64}$")


def extract_media_id(value: str) -> Optional[str]:
    """
    Get a media id from a bare opaque id or a watch / youtu.be / shorts / embed URL.

    Returns None when nothing id-like is found.
    """
    value = (value or "").strip()
    if "://" not in value:
        return value if BARE_ID_RE.match(value) else None

    try:
        parts = urlsplit(value)
    except ValueError:
        return None
    host = (parts.hostname or "").lower()
    if not host:
        return None

    candidate = None
    path_bits = [p for p in parts.path.split("/") if p]
    if host == "youtu.be":
        candidate = path_bits[0] if path_bits else None
    elif path_bits and path_bits[0] in ("shorts", "embed", "live", "v"):
        candidate = path_bits[1] if len(path_bits) > 1 else None
    else:
        candidate = (parse_qs(parts.query).get("v") or [None])[0]

    if candidate and MEDIA_ID_RE.match(candidate):
        return candidate
    return None


def extract_listing_id(value: str) -> Optional[str]:
    """Get a listing id from a bare id or any URL with a `list=` parameter."""
    value = (value or "").strip()
    if "://" not in value:
        return value if LISTING_ID_RE.match(value) else None

    try:
        query = urlsplit(value).query
    except ValueError:
        return None
    candidate = (parse_qs(query).get("list") or [None])[0]
    if candidate and LISTING_ID_RE.match(candidate):
        return candidate
    return None


def parse_duration(value) -> int:
    """
    Seconds from an int, a numeric string, or `H:MM:SS` / `M:SS` text.

    Unparseable input yields 0.
    """
    if value is None or isinstance(value, bool):
        return 0
    if isinstance(value, (int, float)):
        return max(0, int(value))

    text = str(value).strip()
    if text.isdigit():
        return int(text)

    parts = text.split(":")
    if len(parts) not in (2, 3) or not all(p.strip().isdigit() for p in parts):
        return 0
    numbers = [int(p) for p in parts]
    if len(numbers) == 3:
        return numbers[0] * 3600 + numbers[1] * 60 + numbers[2]
    return numbers[0] * 60 + numbers[1]


def format_duration(seconds: int) -> str:
    """`H:MM:SS` for an hour or more, else `M:SS`."""
    seconds = max(0, int(seconds or 0))
    h, rem = divmod(seconds, 3600)
    m, s = divmod(rem, 60)
    if h > 0:
        return f"{h}:{m:02d}:{s:02d}"
    return f"{m}:{s:02d}"


def format_views(count: int) -> Optional[str]:
    """Compact view count, e.g. 1.2M."""
    if not count:
        return None
    if count >= 1_000_000_000:
        return f"{count / 1_000_000_000:.1f}B"
    if count >= 1_000_000:
        return f"{count / 1_000_000:.1f}M"
    if count >= 1_000:
        return f"{round(count / 1_000)}K"
    return str(count)


def safe_filename(title: Optional[str], media_id: str) -> str:
    """Filesystem-friendly name derived from a title."""
    cleaned = re.sub(r"[^\w\s-]", "", title or "").strip()
    cleaned = re.sub(r"\s+", "_", cleaned)[:100]
    return cleaned or f"media_{media_id}"


def thumbnail_url(media_id: str, variant: str = "mqdefault") -> str:
    return f"https://i.ytimg.com/vi/{media_id}/{variant}.jpg"
