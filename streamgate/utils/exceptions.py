"""streamgate exceptions with caller-friendly metadata."""

from typing import List, Optional, Tuple


class StreamGateError(Exception):
    """Base exception for streamgate errors with response metadata."""

    status_code = 500

    def __init__(
        self,
        message: str,
        error_code: str = "UNKNOWN_ERROR",
        retryable: bool = False,
        user_message: Optional[str] = None,
    ):
        self.message = message
        self.error_code = error_code
        self.retryable = retryable
        # Short message safe to show to end users
        self.user_message = user_message or message
        super().__init__(self.message)

    def to_dict(self) -> dict:
        """Convert exception to dictionary for API responses."""
        return {
            "error": self.user_message,
            "error_code": self.error_code,
            "message": self.message,
            "retryable": self.retryable,
        }


# =============================================================================
# PERMANENT ERRORS - Not retried at this layer, surfaced to the caller
# =============================================================================

class InvalidRequestError(StreamGateError):
    """Raised when request parameters cannot be interpreted."""

    status_code = 400

    def __init__(self, message: str = "Invalid request"):
        super().__init__(
            message=message,
            error_code="INVALID_REQUEST",
            retryable=False,
            user_message=message,
        )


class ClientProfileExhaustedError(StreamGateError):
    """Raised when every client profile was rejected by the player endpoint."""

    status_code = 502

    def __init__(
        self,
        last_reason: str = "no client profiles configured",
        rejections: Optional[List[Tuple[str, str]]] = None,
    ):
        self.last_reason = last_reason
        self.rejections = list(rejections or [])
        super().__init__(
            message=f"All client profiles rejected: {last_reason}",
            error_code="CLIENT_PROFILES_EXHAUSTED",
            retryable=False,
            user_message=f"Could not resolve this video: {last_reason}",
        )

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["rejections"] = [
            {"profile": name, "reason": reason} for name, reason in self.rejections
        ]
        return data


class NoStreamAvailableError(StreamGateError):
    """Raised when an accepted response carries no stream of the requested kind."""

    status_code = 404

    def __init__(self, message: str = "No stream available"):
        super().__init__(
            message=message,
            error_code="NO_STREAM_AVAILABLE",
            retryable=False,
            user_message="No stream available for the requested format.",
        )


class DisallowedHostError(StreamGateError):
    """Raised when a relay target is not on the CDN allow-list."""

    status_code = 403

    def __init__(self, host: str = ""):
        self.host = host
        super().__init__(
            message=f"Host not allowed for relay: {host or '(none)'}",
            error_code="DISALLOWED_HOST",
            retryable=False,
            user_message="URL not allowed, only platform CDN URLs are relayed.",
        )


class RangeNotSatisfiableError(StreamGateError):
    """Raised when a caller range does not intersect the resource."""

    status_code = 416

    def __init__(self, total: int, range_header: str = ""):
        self.total = total
        super().__init__(
            message=f"Range {range_header!r} not satisfiable for {total} bytes",
            error_code="RANGE_NOT_SATISFIABLE",
            retryable=False,
            user_message="Requested range not satisfiable.",
        )


class UpstreamHTTPError(StreamGateError):
    """Raised when the CDN answers with a non-retryable HTTP status."""

    status_code = 502

    def __init__(self, upstream_status: int, message: Optional[str] = None):
        self.upstream_status = upstream_status
        super().__init__(
            message=message or f"Upstream error {upstream_status}",
            error_code="UPSTREAM_HTTP_ERROR",
            retryable=False,
            user_message=f"Upstream error {upstream_status}",
        )


# =============================================================================
# RETRYABLE ERRORS - Temporary issues, caller may retry
# =============================================================================

class TransientNetworkError(StreamGateError):
    """Raised for connection resets, timeouts and 5xx responses."""

    status_code = 502

    def __init__(self, message: str = "Transient network failure"):
        super().__init__(
            message=message,
            error_code="TRANSIENT_NETWORK_ERROR",
            retryable=True,
            user_message="Connection issue. Please try again.",
        )


class ListingUnavailableError(StreamGateError):
    """Raised when the first page of a listing cannot be fetched."""

    status_code = 502

    def __init__(self, message: str = "Listing unavailable"):
        super().__init__(
            message=message,
            error_code="LISTING_UNAVAILABLE",
            retryable=True,
            user_message="Failed to fetch playlist. Please try again.",
        )


# =============================================================================
# SIGNALS - Control flow, never surfaced to callers
# =============================================================================

class UpstreamRangeRejected(StreamGateError):
    """Upstream answered 416 for a chunk; the relay treats this as end of stream."""

    status_code = 416

    def __init__(self, start: int):
        self.start = start
        super().__init__(
            message=f"Upstream rejected range starting at {start}",
            error_code="UPSTREAM_RANGE_REJECTED",
            retryable=False,
        )


# =============================================================================
# ERROR CLASSIFICATION HELPERS
# =============================================================================

PERMANENT_ERRORS = (
    InvalidRequestError,
    ClientProfileExhaustedError,
    NoStreamAvailableError,
    DisallowedHostError,
    RangeNotSatisfiableError,
    UpstreamHTTPError,
)

RETRYABLE_ERRORS = (
    TransientNetworkError,
    ListingUnavailableError,
)


def is_retryable(error: Exception) -> bool:
    """Check if an error is retryable."""
    if isinstance(error, StreamGateError):
        return error.retryable
    # Unknown errors are assumed retryable (might be transient)
    return True


def get_error_response(error: Exception) -> dict:
    """Get a standardized error response dict from any exception."""
    if isinstance(error, StreamGateError):
        return error.to_dict()

    return {
        "error": "An unexpected error occurred. Please try again.",
        "error_code": "INTERNAL_ERROR",
        "message": str(error),
        "retryable": True,
    }
