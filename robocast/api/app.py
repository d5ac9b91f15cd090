"""FastAPI application for the robocast control surface."""
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from loguru import logger

from .routes import health, history, robots, schedules
from ..scheduler.errors import (
    DeliveryError,
    InvalidScheduleError,
    NotFoundError,
    PersistenceError,
    RateLimitedError,
)
from ..scheduler.service import ScheduleEngine
from ..services.dispatcher import Dispatcher

logger = logger.bind(module="api.app")


def _error(status_code: int, error: str, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": error, "message": message})


def create_app(
    engine: ScheduleEngine,
    dispatcher: Dispatcher,
    api_token: str | None = None,
) -> FastAPI:
    """Create the FastAPI app.

    The app's lifespan connects the dispatcher's channels and starts the
    engine (which reconciles persisted jobs) before serving requests, and
    stops both on shutdown.

    Args:
        engine: Schedule engine behind the routes
        dispatcher: Dispatcher used for target lookup and channel status
        api_token: Bearer token required on /api routes; None disables auth
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        logger.info("Starting robocast API")
        if not api_token:
            logger.warning("ROBOCAST_API_TOKEN is not set, API authentication is disabled")
        await dispatcher.connect_all()
        await engine.start()

        yield

        logger.info("Shutting down robocast API")
        await engine.stop()
        await dispatcher.disconnect_all()

    app = FastAPI(
        title="robocast",
        description="Scheduled message delivery for robot webhooks",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.state.engine = engine
    app.state.dispatcher = dispatcher
    app.state.api_token = api_token

    @app.exception_handler(InvalidScheduleError)
    async def invalid_schedule_handler(request: Request, exc: InvalidScheduleError):
        return _error(400, "Invalid Schedule", str(exc))

    @app.exception_handler(NotFoundError)
    async def not_found_handler(request: Request, exc: NotFoundError):
        return _error(404, "Not Found", str(exc))

    @app.exception_handler(PersistenceError)
    async def persistence_handler(request: Request, exc: PersistenceError):
        logger.error(f"Persistence error on {request.url.path}: {exc}")
        return _error(503, "Storage Unavailable", "The job store is unavailable.")

    @app.exception_handler(RateLimitedError)
    async def rate_limited_handler(request: Request, exc: RateLimitedError):
        return JSONResponse(
            status_code=429,
            content={
                "error": "Rate Limited",
                "message": "Rate limit reached. Please try again later.",
                "retry_after": exc.retry_after,
            },
        )

    @app.exception_handler(DeliveryError)
    async def delivery_handler(request: Request, exc: DeliveryError):
        logger.error(f"Immediate send failed on {request.url.path}: {exc.reason}")
        return _error(502, "Message Send Failed", exc.reason)

    app.include_router(health.router, tags=["health"])
    app.include_router(schedules.router, prefix="/api/schedules", tags=["schedules"])
    app.include_router(history.router, prefix="/api", tags=["history"])
    app.include_router(robots.router, prefix="/api/robots", tags=["robots"])

    return app
