"""Scheduling of mailbox sync passes."""

from .daemon import PIDFileManager, ServerStatus, pid_file_for
from .scheduler import SchedulerState, SyncScheduler, SyncTrigger

__all__ = [
    "PIDFileManager",
    "SchedulerState",
    "ServerStatus",
    "SyncScheduler",
    "SyncTrigger",
    "pid_file_for",
]
