"""Health check routes."""
from typing import Any

from fastapi import APIRouter, Depends

from ..deps import get_engine
from ...scheduler.service import ScheduleEngine

router = APIRouter()


@router.get("/health")
async def health_check(engine: ScheduleEngine = Depends(get_engine)) -> dict[str, Any]:
    """Health check endpoint.

    Returns:
        Engine status with the number of live triggers and recent failures.
    """
    status = await engine.health_check()
    return {"status": "healthy" if status.running else "stopped", **status.to_dict()}
