"""Chunked, range-based byte relay for signed CDN URLs.

WHY CHUNKS
==========
The CDN drops long-lived single-range connections, so one large GET
for a whole media file tends to die half way. Instead the relay:
1. Probes with a 1-byte range to learn total size and content type
2. Fetches fixed-size ranges one after another, each fully read before
   being emitted, each with its own timeout and retry budget
3. Treats a 416 from the CDN as end of stream, not as an error

Caller `Range` headers (media seeking) are honoured when the total size is
known: the response becomes a 206 and chunking starts at the caller offset.
Only allow-listed CDN hosts are relayed, redirect targets included, so the
relay is not an open proxy.
"""

import asyncio
import re
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator, Awaitable, Callable, Iterable, Optional, Tuple
from urllib.parse import urlsplit

import httpx

from streamgate.services import logger
from streamgate.services.context import ServiceContext
from streamgate.services.retry import RetryState, run_with_retry
from streamgate.utils.exceptions import (
    DisallowedHostError,
    RangeNotSatisfiableError,
    TransientNetworkError,
    UpstreamHTTPError,
    UpstreamRangeRejected,
)

DEFAULT_CONTENT_TYPE = "application/octet-stream"
MAX_REDIRECTS = 5

_RANGE_RE = re.compile(r"^\s*bytes\s*=\s*(\d*)\s*-\s*(\d*)\s*$", re.IGNORECASE)
_CONTENT_RANGE_RE = re.compile(r"^\s*bytes\s+(?:(\d+)-(\d+)|\*)/(\d+|\*)\s*$", re.IGNORECASE)


@dataclass
class ProbeResult:
    supports_ranges: bool
    total: Optional[int]
    content_type: str


@dataclass
class RelayStream:
    """Response plan for one relay: status, headers and the byte iterator."""
    status_code: int
    headers: dict
    body: AsyncIterator[bytes]
    start: int = 0
    end: Optional[int] = None  # inclusive
    total: Optional[int] = None


# =============================================================================
# HEADER HELPERS
# =============================================================================

def check_allowed(url: str, allowed_hosts: Iterable[str]) -> str:
    """
    Validate a relay target against the host allow-list.

    Entries starting with a dot match the domain and any subdomain.

    Returns:
        The target hostname

    Raises:
        DisallowedHostError: If the URL is not http(s) or the host is not allowed
    """
    try:
        parts = urlsplit(url or "")
        host = (parts.hostname or "").lower()
    except ValueError:
        raise DisallowedHostError("")

    if parts.scheme not in ("http", "https") or not host:
        raise DisallowedHostError(host)

    for entry in allowed_hosts:
        entry = entry.lower()
        bare = entry.lstrip(".")
        if host == bare or (entry.startswith(".") and host.endswith(entry)):
            return host
    raise DisallowedHostError(host)


def parse_content_range(value: Optional[str]) -> Optional[Tuple[Optional[int], Optional[int], Optional[int]]]:
    """Parse `bytes a-b/N`, `bytes a-b/*` or `bytes */N` into (a, b, N)."""
    if not value:
        return None
    match = _CONTENT_RANGE_RE.match(value)
    if not match:
        return None
    start, end, total = match.groups()
    return (
        int(start) if start is not None else None,
        int(end) if end is not None else None,
        int(total) if total != "*" else None,
    )


def resolve_caller_range(range_header: Optional[str], total: int) -> Optional[Tuple[int, int]]:
    """
    Intersect a caller `Range` header with a resource of `total` bytes.

    Returns:
        Inclusive (start, end), or None to serve the whole resource
        (no header, malformed header, or multiple ranges)

    Raises:
        RangeNotSatisfiableError: If the range does not overlap the resource
    """
    if not range_header:
        return None
    match = _RANGE_RE.match(range_header)
    if not match:
        return None
    first, last = match.groups()
    if not first and not last:
        return None

    if not first:
        # Suffix range: the final N bytes
        suffix = int(last)
        if suffix == 0 or total == 0:
            raise RangeNotSatisfiableError(total, range_header)
        return max(0, total - suffix), total - 1

    start = int(first)
    if start >= total:
        raise RangeNotSatisfiableError(total, range_header)
    end = int(last) if last else total - 1
    if end < start:
        return None
    return start, min(end, total - 1)


def _is_transient(error: BaseException) -> bool:
    return isinstance(error, (TransientNetworkError, httpx.TransportError, asyncio.TimeoutError))


# =============================================================================
# RELAY
# =============================================================================

class RangeRelay:
    """
    Relays one upstream URL. Holds no state across requests beyond the
    shared HTTP client in the service context.

    Usage:
        relay = RangeRelay(context)
        stream = await relay.open(cdn_url, request.headers.get("range"))
        async for chunk in stream.body:
            ...
    """

    def __init__(self, context: ServiceContext, chunk_size: Optional[int] = None):
        self._client = context.client
        self._settings = context.settings
        self._policy = context.retry_policy
        self._chunk_size = max(1, chunk_size or context.settings.RELAY_CHUNK_SIZE)
        self._chunk_timeout = context.settings.RELAY_CHUNK_TIMEOUT_SECONDS
        self._headers = {
            "User-Agent": context.settings.RELAY_USER_AGENT,
            "Accept": "*/*",
            "Accept-Encoding": "identity",
        }

    @asynccontextmanager
    async def _stream(self, url: str, headers: dict) -> AsyncIterator[httpx.Response]:
        """
        GET `url` as a stream, following redirects only onto allow-listed hosts.

        Raises:
            DisallowedHostError: If a redirect points off the allow-list
            UpstreamHTTPError: If the redirect chain is too long
        """
        target = url
        for _ in range(MAX_REDIRECTS + 1):
            async with self._client.stream("GET", target, headers=headers, follow_redirects=False) as response:
                if not response.is_redirect:
                    yield response
                    return
                status = response.status_code
                next_url = str(response.url.join(response.headers["location"]))

            try:
                check_allowed(next_url, self._settings.RELAY_ALLOWED_HOSTS)
            except DisallowedHostError:
                logger.warn(f"Refused {status} redirect to {next_url[:100]}", "relay")
                raise
            target = next_url

        raise UpstreamHTTPError(status, f"More than {MAX_REDIRECTS} redirects")

    async def _with_retry(self, operation: Callable[[], Awaitable], what: str):
        """Run one upstream call under the per-call retry budget."""

        def on_retry(state: RetryState, delay: float) -> None:
            logger.warn(
                f"{what} attempt {state.attempt} failed, retrying in {delay:.1f}s: "
                f"{type(state.last_error).__name__}: {str(state.last_error)[:100]}",
                "relay",
            )

        try:
            return await run_with_retry(
                lambda: asyncio.wait_for(operation(), timeout=self._chunk_timeout),
                self._policy,
                _is_transient,
                on_retry=on_retry,
            )
        except Exception as e:
            if _is_transient(e) and not isinstance(e, TransientNetworkError):
                raise TransientNetworkError(
                    f"{what} failed after {self._policy.max_attempts} attempts: "
                    f"{type(e).__name__}: {str(e)[:100]}"
                ) from e
            raise

    async def _probe_once(self, url: str) -> ProbeResult:
        headers = {**self._headers, "Range": "bytes=0-0"}
        async with self._stream(url, headers) as response:
            content_type = response.headers.get("content-type") or DEFAULT_CONTENT_TYPE
            status = response.status_code

            if status == 206:
                parsed = parse_content_range(response.headers.get("content-range"))
                total = parsed[2] if parsed else None
                return ProbeResult(supports_ranges=True, total=total, content_type=content_type)
            if status == 200:
                # No range support: body is relayed as-is, length unknown
                return ProbeResult(supports_ranges=False, total=None, content_type=content_type)
            if status == 416:
                # Even byte 0 is out of range: empty resource
                return ProbeResult(supports_ranges=True, total=0, content_type=content_type)
            if status >= 500 or status == 429:
                raise TransientNetworkError(f"Probe got upstream status {status}")
            raise UpstreamHTTPError(status)

    async def probe(self, url: str) -> ProbeResult:
        """Learn size, range support and content type with a 1-byte request."""
        return await self._with_retry(lambda: self._probe_once(url), "Probe")

    async def _fetch_chunk_once(self, url: str, start: int, end: int) -> Tuple[bytes, Optional[int]]:
        expected = end - start + 1
        headers = {**self._headers, "Range": f"bytes={start}-{end}"}
        async with self._stream(url, headers) as response:
            status = response.status_code
            if status == 416:
                raise UpstreamRangeRejected(start)
            if status >= 500 or status == 429:
                raise TransientNetworkError(f"Chunk {start}-{end} got upstream status {status}")
            if status != 206:
                raise UpstreamHTTPError(status, f"Chunk {start}-{end} got upstream status {status}")

            buffer = bytearray()
            async for piece in response.aiter_bytes():
                buffer.extend(piece)
                if len(buffer) >= expected:
                    break

            parsed = parse_content_range(response.headers.get("content-range"))
            total = parsed[2] if parsed else None

        return bytes(buffer[:expected]), total

    async def fetch_chunk(self, url: str, start: int, end: int) -> Tuple[bytes, Optional[int]]:
        """
        Fetch bytes `start..end` (inclusive) with timeout and retries.

        Returns:
            (chunk bytes, total size from the chunk's Content-Range or None)

        Raises:
            UpstreamRangeRejected: If the CDN answered 416
            TransientNetworkError: If the retry budget ran out
            UpstreamHTTPError: On a non-retryable status
        """
        return await self._with_retry(
            lambda: self._fetch_chunk_once(url, start, end),
            f"Chunk {start}-{end}",
        )

    async def iter_chunks(self, url: str, start: int = 0, last: Optional[int] = None) -> AsyncIterator[bytes]:
        """
        Yield the resource from `start` to `last` (inclusive, None = until EOF)
        in sequential chunks, strictly in offset order.
        """
        pos = start
        known_last = last
        emitted = 0
        try:
            while known_last is None or pos <= known_last:
                chunk_end = pos + self._chunk_size - 1
                if known_last is not None:
                    chunk_end = min(chunk_end, known_last)
                requested = chunk_end - pos + 1

                try:
                    data, chunk_total = await self.fetch_chunk(url, pos, chunk_end)
                except UpstreamRangeRejected:
                    logger.debug(f"Upstream 416 at offset {pos}, ending stream", "relay")
                    break

                if not data:
                    break
                yield data
                pos += len(data)
                emitted += len(data)

                if known_last is None:
                    if chunk_total is not None:
                        known_last = chunk_total - 1
                    elif len(data) < requested:
                        # Short read with no known size: natural EOF
                        break
        except (asyncio.CancelledError, GeneratorExit):
            logger.info(
                f"Relay cancelled by caller after {emitted} bytes",
                "relay",
                {"offset": pos},
            )
            raise

    async def _iter_opaque(self, url: str) -> AsyncIterator[bytes]:
        async with self._stream(url, self._headers) as response:
            if response.status_code >= 400:
                raise UpstreamHTTPError(response.status_code)
            async for piece in response.aiter_bytes():
                yield piece

    async def open(self, url: str, range_header: Optional[str] = None) -> RelayStream:
        """
        Plan a relay: validate, probe, translate the caller range.

        Network errors before the first byte surface here, so callers can
        still answer with a proper error status.

        Raises:
            DisallowedHostError: If the host is not allow-listed (no network call made)
            RangeNotSatisfiableError: If the caller range misses the resource
            TransientNetworkError / UpstreamHTTPError: If the probe fails
        """
        host = check_allowed(url, self._settings.RELAY_ALLOWED_HOSTS)
        probe = await self.probe(url)

        headers = {
            "Content-Type": probe.content_type,
            "Cache-Control": "no-store",
        }

        if not probe.supports_ranges:
            logger.info(f"Relay {host}: no range support, streaming opaque body", "relay")
            return RelayStream(status_code=200, headers=headers, body=self._iter_opaque(url))

        if probe.total is None:
            # Size unknown: caller ranges cannot be honoured
            logger.info(f"Relay {host}: size unknown, streaming from start", "relay")
            return RelayStream(status_code=200, headers=headers, body=self.iter_chunks(url, 0, None))

        total = probe.total
        headers["Accept-Ranges"] = "bytes"
        window = resolve_caller_range(range_header, total) if total > 0 else None

        if window is None:
            start, end, status = 0, total - 1, 200
            headers["Content-Length"] = str(total)
        else:
            start, end = window
            status = 206
            headers["Content-Range"] = f"bytes {start}-{end}/{total}"
            headers["Content-Length"] = str(end - start + 1)

        logger.info(
            f"Relay {host}: {status} bytes {start}-{end}/{total}",
            "relay",
            {"host": host, "total": total, "start": start, "end": end, "chunk_size": self._chunk_size},
        )
        return RelayStream(
            status_code=status,
            headers=headers,
            body=self.iter_chunks(url, start, end),
            start=start,
            end=end,
            total=total,
        )


async def open_relay(context: ServiceContext, url: str, range_header: Optional[str] = None) -> RelayStream:
    """Plan a relay of `url` for one caller request."""
    return await RangeRelay(context).open(url, range_header)


async def relay_dual(
    context: ServiceContext,
    video_url: str,
    audio_url: str,
    video_sink: Callable[[bytes], Awaitable[None]],
    audio_sink: Callable[[bytes], Awaitable[None]],
) -> Tuple[int, int]:
    """
    Relay both legs of a dual resolution concurrently into two sinks,
    e.g. the inputs of an external muxer. Each leg stays sequential.
    If either leg fails the other is cancelled.

    Returns:
        (video bytes, audio bytes) delivered
    """

    async def pump(url: str, sink: Callable[[bytes], Awaitable[None]]) -> int:
        stream = await open_relay(context, url)
        sent = 0
        async for chunk in stream.body:
            await sink(chunk)
            sent += len(chunk)
        return sent

    tasks = [
        asyncio.ensure_future(pump(video_url, video_sink)),
        asyncio.ensure_future(pump(audio_url, audio_sink)),
    ]
    try:
        video_bytes, audio_bytes = await asyncio.gather(*tasks)
    except BaseException:
        for task in tasks:
            task.cancel()
        raise
    return video_bytes, audio_bytes
