"""Service modules"""
from .dispatcher import Dispatcher, load_robots

__all__ = [
    "Dispatcher",
    "load_robots",
]
