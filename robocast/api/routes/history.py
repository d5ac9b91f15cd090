"""Execution history routes."""
from typing import Any

from fastapi import APIRouter, Depends, Query

from ..deps import get_engine, require_token
from ...scheduler.service import ScheduleEngine

router = APIRouter(dependencies=[Depends(require_token)])


@router.get("/history")
async def get_history(
    job_id: str | None = None,
    target: str | None = None,
    limit: int = Query(10, ge=1, le=100),
    engine: ScheduleEngine = Depends(get_engine),
) -> dict[str, Any]:
    """Most recent execution records, newest first."""
    records = await engine.get_history(job_id=job_id, target=target, limit=limit)
    return {"history": [record.to_dict() for record in records]}


@router.get("/history/failed")
async def get_failed(
    hours: float = Query(24, gt=0),
    engine: ScheduleEngine = Depends(get_engine),
) -> dict[str, Any]:
    records = await engine.get_failed(hours=hours)
    return {"hours": hours, "count": len(records), "failed": [r.to_dict() for r in records]}

