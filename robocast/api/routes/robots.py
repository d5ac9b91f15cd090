"""Robot routes: configured robots, their status, and immediate sends."""
from typing import Any

from fastapi import APIRouter, Depends

from ..deps import get_dispatcher, get_engine, require_token
from ..schemas import PayloadIn
from ...scheduler.errors import NotFoundError
from ...scheduler.service import ScheduleEngine
from ...scheduler.types import format_datetime
from ...services.dispatcher import Dispatcher

router = APIRouter(dependencies=[Depends(require_token)])


async def _robot_status(name: str, engine: ScheduleEngine, dispatcher: Dispatcher) -> dict[str, Any]:
    _, active_posts = await engine.list_jobs(target=name, active=True, limit=1)
    return {
        **dispatcher.robots[name].to_dict(),
        "online": dispatcher.is_online(name),
        "active_posts": active_posts,
    }


@router.get("")
async def list_robots(
    dispatcher: Dispatcher = Depends(get_dispatcher),
) -> dict[str, Any]:
    return {"robots": dispatcher.list_targets(), "channels": dispatcher.get_status()}


@router.get("/status")
async def robot_status(
    robot: str | None = None,
    engine: ScheduleEngine = Depends(get_engine),
    dispatcher: Dispatcher = Depends(get_dispatcher),
) -> dict[str, Any]:
    """Status of one robot, or of every robot plus a summary.

    Each entry carries whether the robot's channel is online and how many
    active scheduled posts target it.
    """
    if robot is not None:
        if not dispatcher.has_target(robot):
            raise NotFoundError(f"Unknown robot: {robot}", key=robot)
        return {"robot": await _robot_status(robot, engine, dispatcher)}

    statuses = [await _robot_status(name, engine, dispatcher) for name in dispatcher.robots]
    return {
        "robots": statuses,
        "summary": {
            "total": len(statuses),
            "online": sum(1 for s in statuses if s["online"]),
            "total_active_posts": sum(s["active_posts"] for s in statuses),
        },
    }


@router.post("/{robot}/message")
async def send_message(
    robot: str,
    body: PayloadIn,
    dispatcher: Dispatcher = Depends(get_dispatcher),
) -> dict[str, Any]:
    """Send a message as a robot right away, without scheduling it."""
    if not dispatcher.has_target(robot):
        raise NotFoundError(f"Unknown robot: {robot}", key=robot)

    receipt = await dispatcher.deliver(robot, body.to_payload())
    return {
        "success": True,
        "data": {
            "message_id": receipt.id,
            "robot": robot,
            "channel": receipt.channel,
            "delivered_at": format_datetime(receipt.delivered_at),
        },
    }
