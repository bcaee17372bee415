"""
Messages exchanged between the watcher, the discovery monitor, the registry
and subscribers.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Final, Literal

from ...shared import ms

# Raw notification kinds (before coalescing)
RawKind = Literal["add", "change", "remove"]

# Coalesced kinds delivered on the watcher channel
WatchKind = Literal["file_upserted", "file_removed", "dir_added", "dir_removed"]

# Subscriber-facing event types
FILE_ADDED: Final[str] = "fileAdded"
FILE_MODIFIED: Final[str] = "fileModified"
FILE_DELETED: Final[str] = "fileDeleted"
DIRECTORY_ADDED: Final[str] = "directoryAdded"
DIRECTORY_REMOVED: Final[str] = "directoryRemoved"
TASK_UPDATED: Final[str] = "taskUpdated"
TASK_REMOVED: Final[str] = "taskRemoved"
SCRIPT_UPDATED: Final[str] = "scriptUpdated"

# Only the server layer sees these; they are never forwarded to external subscribers.
INTERNAL_EVENT_TYPES: Final[frozenset[str]] = frozenset({DIRECTORY_ADDED, DIRECTORY_REMOVED})


@dataclass(frozen=True)
class WatchEvent:
    """A debounced, readiness-checked filesystem event."""

    kind: WatchKind
    path: str


@dataclass(frozen=True)
class DiscoveryEvent:
    """A pending directory whose manifest finally appeared."""

    path: str
    attempts: int


@dataclass(frozen=True)
class MonitorEvent:
    type: str
    data: Any
    timestamp: int = field(default_factory=ms)

    @property
    def internal(self) -> bool:
        return self.type in INTERNAL_EVENT_TYPES

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type, "data": self.data, "timestamp": self.timestamp}
