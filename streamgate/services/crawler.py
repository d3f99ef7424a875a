"""Multi-page listing crawler driven by continuation tokens.

CRAWL LOOP
==========
1. Fetch page 1 by listing id (failure here fails the whole crawl)
2. Deep-scan the page for entry records and continuation commands
3. Keep new, available entries; drop duplicates by media id
4. Follow the first continuation token, unless it is empty, already used,
   or the page budget is spent
Any failure after page 1 ends the crawl with what has been gathered so far.
"""

from dataclasses import dataclass, field
from typing import Any, List, Optional, Set, Tuple

from streamgate.services import logger
from streamgate.services.client_profiles import BROWSE_PROFILE
from streamgate.services.context import ServiceContext
from streamgate.services.tree_search import collect, find_first, text_of
from streamgate.utils.exceptions import ListingUnavailableError, UpstreamHTTPError
from streamgate.utils.media_ids import parse_duration, thumbnail_url

BROWSE_PATH = "/youtubei/v1/browse"

ENTRY_MARKER = "playlistVideoRenderer"
CONTINUATION_MARKER = "continuationCommand"

# Placeholder titles the upstream keeps in listings for gone items
UNAVAILABLE_TITLES = {
    "[private video]",
    "[deleted video]",
    "[unavailable]",
}

STOP_NO_CONTINUATION = "no_continuation"
STOP_REPEATED_TOKEN = "repeated_token"
STOP_MAX_PAGES = "max_pages"
STOP_FETCH_FAILED = "fetch_failed"


@dataclass
class PlaylistEntry:
    media_id: str
    title: str
    duration_seconds: int
    author: str
    position: int

    @property
    def thumbnail(self) -> str:
        return thumbnail_url(self.media_id)


@dataclass
class CrawlState:
    """Per-request crawl bookkeeping."""
    seen_tokens: Set[str] = field(default_factory=set)
    seen_media_ids: Set[str] = field(default_factory=set)
    entries: List[PlaylistEntry] = field(default_factory=list)
    pages: int = 0
    unavailable: int = 0  # placeholder records dropped


@dataclass
class CrawlResult:
    listing_id: str
    title: str
    author: str
    entries: List[PlaylistEntry]
    pages_fetched: int
    stop_reason: str
    unavailable_count: int = 0

    @property
    def total_seconds(self) -> int:
        return sum(e.duration_seconds for e in self.entries)

    @property
    def average_seconds(self) -> int:
        if not self.entries:
            return 0
        return round(self.total_seconds / len(self.entries))


async def fetch_listing_page(context: ServiceContext, listing_id: str, token: Optional[str] = None) -> Any:
    """
    Fetch one raw listing page as the desktop web client.

    Raises:
        httpx.HTTPError: On transport failure
        UpstreamHTTPError: On a non-200 answer
        ValueError: On an undecodable body
    """
    url = context.settings.UPSTREAM_BASE_URL.rstrip("/") + BROWSE_PATH
    body = {"context": BROWSE_PROFILE.context()}
    if token:
        body["continuation"] = token
    else:
        body["browseId"] = listing_id if listing_id.startswith("VL") else f"VL{listing_id}"

    response = await context.client.post(
        url,
        json=body,
        headers=BROWSE_PROFILE.headers(),
        params={"prettyPrint": "false"},
    )
    if response.status_code != 200:
        raise UpstreamHTTPError(response.status_code, f"Browse endpoint returned HTTP {response.status_code}")
    return response.json()


def listing_metadata(tree: Any) -> Tuple[str, str]:
    """Listing title and author from a first page, with fallbacks across layouts."""
    title = ""
    author = ""

    header = find_first(tree, "playlistHeaderRenderer")
    if isinstance(header, dict):
        title = text_of(header.get("title"))
        author = text_of(header.get("ownerText"))

    if not title:
        for key in ("playlistMetadataRenderer", "playlistSidebarPrimaryInfoRenderer"):
            renderer = find_first(tree, key)
            if isinstance(renderer, dict):
                title = text_of(renderer.get("title"))
                if title:
                    break

    if not title:
        page_header = find_first(tree, "pageHeaderRenderer")
        if isinstance(page_header, dict):
            title = text_of(page_header.get("pageTitle"))

    if not author:
        owner = find_first(tree, "videoOwnerRenderer")
        if isinstance(owner, dict):
            author = text_of(owner.get("title"))

    return title or "Unknown Playlist", author or "Unknown"


def is_unavailable(record: Any) -> bool:
    """True for the placeholder records of private or deleted items."""
    if not isinstance(record, dict):
        return False
    return text_of(record.get("title")).lower().strip() in UNAVAILABLE_TITLES


def parse_entry(record: Any, fallback_author: str) -> Optional[dict]:
    """
    Pull the fields of one entry record.

    Returns None for records without a media id and for unavailable items.
    """
    if not isinstance(record, dict):
        return None
    media_id = record.get("videoId")
    if not media_id or not isinstance(media_id, str):
        return None

    if is_unavailable(record):
        return None
    title = text_of(record.get("title")) or "Unknown"

    if record.get("lengthSeconds") is not None:
        duration = parse_duration(record.get("lengthSeconds"))
    else:
        duration = parse_duration(text_of(record.get("lengthText")))

    return {
        "media_id": media_id,
        "title": title,
        "duration_seconds": duration,
        "author": text_of(record.get("shortBylineText")) or fallback_author,
    }


def scan_page(tree: Any) -> Tuple[List[Any], Optional[str]]:
    """
    Deep-scan one page.

    Returns:
        (entry records in document order, first continuation token or None)
    """
    found = collect(tree, [ENTRY_MARKER, CONTINUATION_MARKER])
    token = None
    if found[CONTINUATION_MARKER]:
        first = found[CONTINUATION_MARKER][0]
        if isinstance(first, dict):
            token = first.get("token") or None
    return found[ENTRY_MARKER], token


def _absorb_page(state: CrawlState, tree: Any, listing_id: str, fallback_author: str) -> Optional[str]:
    """Add a page's new entries to `state` and return its continuation token."""
    state.pages += 1
    records, token = scan_page(tree)

    if not records and tree:
        logger.warn(
            f"Listing {listing_id} page {state.pages} was non-empty but had no entries, "
            "possible upstream layout change",
            "crawler",
            {"listing_id": listing_id, "page": state.pages},
        )

    added = 0
    for record in records:
        if is_unavailable(record):
            # Counted once per id, like kept entries
            media_id = record.get("videoId")
            if media_id and media_id not in state.seen_media_ids:
                state.seen_media_ids.add(media_id)
                state.unavailable += 1
            continue

        fields = parse_entry(record, fallback_author)
        if fields is None or fields["media_id"] in state.seen_media_ids:
            continue
        state.seen_media_ids.add(fields["media_id"])
        state.entries.append(PlaylistEntry(position=len(state.entries) + 1, **fields))
        added += 1

    logger.debug(
        f"Listing {listing_id} page {state.pages}: {added} new of {len(records)} records",
        "crawler",
        {"listing_id": listing_id, "page": state.pages, "has_token": bool(token)},
    )
    return token


async def crawl(context: ServiceContext, listing_id: str, max_pages: Optional[int] = None) -> CrawlResult:
    """
    Crawl a listing across continuation pages.

    Args:
        context: Service context
        listing_id: Listing id
        max_pages: Total page budget (defaults to CRAWL_MAX_PAGES)

    Returns:
        CrawlResult, possibly partial

    Raises:
        ListingUnavailableError: If the first page cannot be fetched
    """
    max_pages = max(1, max_pages or context.settings.CRAWL_MAX_PAGES)

    try:
        tree = await fetch_listing_page(context, listing_id)
    except Exception as e:
        logger.error(
            f"Listing {listing_id} first page failed: {str(e)[:100]}",
            "crawler",
            {"listing_id": listing_id, "error_type": type(e).__name__},
        )
        raise ListingUnavailableError(f"Failed to fetch listing {listing_id}: {e}") from e

    title, author = listing_metadata(tree)
    state = CrawlState()

    while True:
        token = _absorb_page(state, tree, listing_id, author)

        if not token:
            stop_reason = STOP_NO_CONTINUATION
            break
        if token in state.seen_tokens:
            logger.warn(
                f"Listing {listing_id} repeated a continuation token, stopping",
                "crawler",
                {"listing_id": listing_id, "page": state.pages},
            )
            stop_reason = STOP_REPEATED_TOKEN
            break
        if state.pages >= max_pages:
            stop_reason = STOP_MAX_PAGES
            break

        state.seen_tokens.add(token)
        try:
            tree = await fetch_listing_page(context, listing_id, token)
        except Exception as e:
            # Partial results beat no results
            logger.warn(
                f"Listing {listing_id} continuation failed after {state.pages} pages: {str(e)[:100]}",
                "crawler",
                {"listing_id": listing_id, "entries": len(state.entries)},
            )
            stop_reason = STOP_FETCH_FAILED
            break

    logger.success(
        f"Crawled listing {listing_id}: {len(state.entries)} entries in {state.pages} pages ({stop_reason})",
        "crawler",
        {
            "listing_id": listing_id,
            "entries": len(state.entries),
            "unavailable": state.unavailable,
            "pages": state.pages,
            "stop_reason": stop_reason,
        },
    )

    return CrawlResult(
        listing_id=listing_id,
        title=title,
        author=author,
        entries=state.entries,
        pages_fetched=state.pages,
        stop_reason=stop_reason,
        unavailable_count=state.unavailable,
    )
