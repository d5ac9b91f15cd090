"""Scheduled post routes."""
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query

from ..deps import get_dispatcher, get_engine, require_token
from ..schemas import ScheduleCreateIn, ScheduleUpdateIn
from ...scheduler.errors import NotFoundError
from ...scheduler.models import Job, JobCreate
from ...scheduler.schedule import compute_next_run_at, schedule_to_human
from ...scheduler.service import ScheduleEngine
from ...scheduler.types import format_datetime
from ...services.dispatcher import Dispatcher

router = APIRouter(dependencies=[Depends(require_token)])

MAX_PAGE_SIZE = 100


def _job_view(job: Job, engine: ScheduleEngine) -> dict[str, Any]:
    data = job.to_dict()
    data["description"] = schedule_to_human(job.schedule) if job.schedule else ""
    data["armed"] = job.id in engine.registry
    next_run = compute_next_run_at(job.schedule) if job.active and job.schedule else None
    data["next_run_at"] = format_datetime(next_run)
    return data


@router.post("", status_code=201)
async def create_schedule(
    body: ScheduleCreateIn,
    engine: ScheduleEngine = Depends(get_engine),
    dispatcher: Dispatcher = Depends(get_dispatcher),
) -> dict[str, Any]:
    """Queue a one-time or recurring post for a robot."""
    if not dispatcher.has_target(body.target):
        raise NotFoundError(f"Unknown target: {body.target}", key=body.target)

    job = await engine.add(
        JobCreate(
            target=body.target,
            schedule=body.schedule.to_schedule(),
            payload=body.payload.to_payload(),
            created_by=body.created_by,
        )
    )
    return {"schedule": _job_view(job, engine)}


@router.get("")
async def list_schedules(
    target: str | None = None,
    active: bool | None = True,
    limit: int = Query(50, ge=1),
    offset: int = Query(0, ge=0),
    engine: ScheduleEngine = Depends(get_engine),
) -> dict[str, Any]:
    limit = min(limit, MAX_PAGE_SIZE)
    jobs, total = await engine.list_jobs(
        target=target, active=active, limit=limit, offset=offset
    )
    return {
        "schedules": [_job_view(job, engine) for job in jobs],
        "pagination": {
            "total": total,
            "limit": limit,
            "offset": offset,
            "has_more": offset + limit < total,
        },
    }


@router.get("/active")
async def list_active_triggers(
    engine: ScheduleEngine = Depends(get_engine),
) -> dict[str, Any]:
    """Jobs that currently hold a live trigger."""
    return {
        "count": engine.count_active(),
        "jobs": [entry.to_dict() for entry in engine.list_active()],
    }


@router.get("/{job_id}")
async def get_schedule(
    job_id: str,
    engine: ScheduleEngine = Depends(get_engine),
) -> dict[str, Any]:
    job = await engine.get_job(job_id)
    return {"schedule": _job_view(job, engine)}


@router.put("/{job_id}")
async def update_schedule(
    job_id: str,
    body: ScheduleUpdateIn,
    engine: ScheduleEngine = Depends(get_engine),
) -> dict[str, Any]:
    """Change a post's content, its schedule, or both."""
    if body.payload is None and body.schedule is None:
        raise HTTPException(status_code=400, detail="Nothing to update")

    job = await engine.update_job(
        job_id,
        payload=body.payload.to_payload() if body.payload else None,
        schedule=body.schedule.to_schedule() if body.schedule else None,
    )
    return {"schedule": _job_view(job, engine)}


@router.delete("/{job_id}")
async def cancel_schedule(
    job_id: str,
    engine: ScheduleEngine = Depends(get_engine),
) -> dict[str, Any]:
    """Cancel a post. Cancelling an inactive post reports cancelled=false."""
    cancelled = await engine.cancel(job_id)
    return {"schedule_id": job_id, "cancelled": cancelled}
