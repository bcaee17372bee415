"""
Monitor feature - task folder watching, discovery and broadcast.
"""
from .broadcast import BroadcastHub, Subscription
from .registry import TaskRegistry
from .service import MonitorService
from .watcher import PathWatcher

__all__ = ["BroadcastHub", "Subscription", "TaskRegistry", "MonitorService", "PathWatcher"]
