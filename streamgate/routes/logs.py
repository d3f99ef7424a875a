"""Log buffer routes."""

from typing import Optional

from fastapi import APIRouter, Depends

from streamgate.middleware.auth import verify_api_key
from streamgate.services import logger


router = APIRouter(tags=["logs"])


@router.get("/api/logs")
async def get_logs(
    limit: int = 100,
    category: Optional[str] = None,
    level: Optional[str] = None,
    since_seq: int = 0,
    api_key: str = Depends(verify_api_key),
):
    """Get recent logs from the in-memory buffer."""
    return {
        "logs": logger.get_logs(limit, category, level, since_seq),
        "latest_seq": logger.get_latest_sequence(),
    }


@router.get("/api/logs/stats")
async def get_logs_stats(api_key: str = Depends(verify_api_key)):
    """Get log counts by level and category."""
    return logger.get_log_stats()


@router.delete("/api/logs")
async def clear_logs(api_key: str = Depends(verify_api_key)):
    """Clear the in-memory log buffer."""
    logger.clear_logs()
    return {"status": "cleared"}
