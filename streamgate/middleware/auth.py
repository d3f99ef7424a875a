"""Authentication dependency for the optional internal API key."""

from typing import Optional

from fastapi import Header, HTTPException, Request


async def verify_api_key(
    request: Request,
    x_api_key: Optional[str] = Header(None, alias="X-API-Key"),
) -> Optional[str]:
    """
    Verify the internal API key when one is configured.

    Args:
        request: Incoming request, carries the service context settings
        x_api_key: API key from request header

    Returns:
        The validated key, or None when authentication is disabled

    Raises:
        HTTPException: If a key is configured and the header does not match
    """
    expected = request.app.state.context.settings.API_KEY
    if not expected:
        return None
    if x_api_key != expected:
        raise HTTPException(
            status_code=401,
            detail="Invalid API key"
        )
    return x_api_key
