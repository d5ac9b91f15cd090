"""Scheduler service package.

This package contains the core scheduler service components:
- store.py: SQLite persistence for jobs and execution history
- engine.py: Reconciliation, mutation API and introspection
"""
from .engine import ScheduleEngine
from .store import ExecutionHistory, JobStore

__all__ = ["ScheduleEngine", "JobStore", "ExecutionHistory"]
