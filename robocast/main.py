"""robocast console entry point."""
import argparse

import uvicorn
from loguru import logger

from .api import create_app
from .channels import DiscordWebhookChannel, HttpWebhookChannel
from .config import settings
from .log import setup_logging
from .scheduler import APSchedulerTrigger
from .scheduler.service import ExecutionHistory, JobStore, ScheduleEngine
from .services.dispatcher import Dispatcher, load_robots

logger = logger.bind(module="main")


def build_dispatcher(robots_file, timeout: float) -> Dispatcher:
    dispatcher = Dispatcher(load_robots(robots_file))
    dispatcher.register(DiscordWebhookChannel(timeout=timeout))
    dispatcher.register(HttpWebhookChannel(timeout=timeout))
    return dispatcher


def build_engine(dispatcher: Dispatcher) -> ScheduleEngine:
    db_path = settings.db_path
    return ScheduleEngine(
        store=JobStore(db_path),
        history=ExecutionHistory(db_path),
        dispatcher=dispatcher,
        trigger=APSchedulerTrigger(),
        failure_warning_threshold=settings.failure_warning_threshold,
    )


def main():
    parser = argparse.ArgumentParser(description="robocast scheduled message service")
    parser.add_argument("--host", default=settings.host, help="Bind address")
    parser.add_argument("--port", type=int, default=settings.port, help="Bind port")
    parser.add_argument("--robots", default=str(settings.robots_file), help="Path to robots.yaml")
    parser.add_argument("--debug", action="store_true", default=settings.debug, help="Verbose logging")
    args = parser.parse_args()

    setup_logging(debug=args.debug)
    logger.info(f"Data directory: {settings.data_dir}")

    dispatcher = build_dispatcher(args.robots, settings.delivery_timeout)
    engine = build_engine(dispatcher)
    app = create_app(engine, dispatcher, api_token=settings.api_token)

    uvicorn.run(app, host=args.host, port=args.port, log_level="debug" if args.debug else "info")


if __name__ == "__main__":
    main()
