"""API routes."""
from . import health, history, robots, schedules

__all__ = ["health", "history", "robots", "schedules"]
