"""Health check endpoint."""

from datetime import datetime, timezone

from fastapi import APIRouter, Depends

from streamgate.models.schemas import HealthCheck
from streamgate.routes.deps import get_context
from streamgate.services.context import ServiceContext


router = APIRouter(tags=["health"])


@router.get("/health", response_model=HealthCheck)
async def health_check(context: ServiceContext = Depends(get_context)) -> HealthCheck:
    """
    Health check endpoint.

    Reports the configured client profile chain and relay settings. No
    upstream calls are made, the platform is not pinged on every probe.
    """
    profiles = [p.name for p in context.profiles]
    return HealthCheck(
        status="ok" if profiles else "degraded",
        timestamp=datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ"),
        checks={
            "profiles": profiles,
            "relay_chunk_size": context.settings.RELAY_CHUNK_SIZE,
            "relay_allowed_hosts": list(context.settings.RELAY_ALLOWED_HOSTS),
        },
    )
