"""
Deferred task discovery.

A directory that appears under the watch root before its manifest is polled at
a fixed interval. When the manifest shows up a DiscoveryEvent is put on the
channel; when the attempt budget runs out the directory is abandoned until a
fresh directory-added notification restarts its poll.
"""
from __future__ import annotations

import asyncio
import os
from dataclasses import dataclass

from ...path_utils import normalize_path
from ...shared import ErrorCode, get_logger, now
from .events import DiscoveryEvent

logger = get_logger(__name__)

_sleep = asyncio.sleep


def _manifest_present(path: str, manifest_name: str) -> bool:
    return os.path.isfile(os.path.join(path, manifest_name))


@dataclass
class _PendingDirectory:
    path: str
    started_at: float
    task: asyncio.Task | None = None
    attempts: int = 0


class DirectoryDiscoveryMonitor:
    def __init__(
        self,
        channel: "asyncio.Queue[DiscoveryEvent]",
        manifest_name: str = "script.json",
        interval_ms: int = 5000,
        max_attempts: int = 50,
    ):
        self._channel = channel
        self._manifest_name = manifest_name
        self._interval_s = max(0, int(interval_ms)) / 1000.0
        self._max_attempts = max(1, int(max_attempts))
        self._pending: dict[str, _PendingDirectory] = {}

    def track(self, path: str) -> bool:
        """
        Start (or restart) polling `path` for its manifest.

        The first check happens one interval after tracking starts. Returns
        False when the path is not a directory.
        """
        if not path or not os.path.isdir(path):
            return False
        key = normalize_path(path)
        self.cancel(path)
        entry = _PendingDirectory(path=path, started_at=now())
        entry.task = asyncio.get_running_loop().create_task(self._poll(key, entry))
        self._pending[key] = entry
        logger.info("Waiting for %s in %s (every %.1fs, max %d attempts)",
                    self._manifest_name, path, self._interval_s, self._max_attempts)
        return True

    async def _poll(self, key: str, entry: _PendingDirectory) -> None:
        try:
            while entry.attempts < self._max_attempts:
                await _sleep(self._interval_s)
                entry.attempts += 1
                try:
                    found = _manifest_present(entry.path, self._manifest_name)
                except Exception as e:
                    logger.debug("Manifest check failed for %s: %s", entry.path, e)
                    found = False
                if found:
                    logger.info("Manifest found in %s after %d attempt(s)", entry.path, entry.attempts)
                    await self._channel.put(DiscoveryEvent(path=entry.path, attempts=entry.attempts))
                    return
            logger.warning(
                "[%s] No %s in %s after %d attempts, giving up",
                ErrorCode.DISCOVERY_TIMEOUT.value,
                self._manifest_name,
                entry.path,
                entry.attempts,
            )
        finally:
            if self._pending.get(key) is entry:
                self._pending.pop(key, None)

    def cancel(self, path: str) -> bool:
        entry = self._pending.pop(normalize_path(path), None)
        if entry is None:
            return False
        if entry.task is not None:
            entry.task.cancel()
        logger.debug("Discovery cancelled for %s", entry.path)
        return True

    async def cancel_all(self) -> int:
        entries = list(self._pending.values())
        self._pending.clear()
        tasks = [e.task for e in entries if e.task is not None]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        return len(entries)

    def is_pending(self, path: str) -> bool:
        return normalize_path(path) in self._pending

    def pending(self) -> list[str]:
        return [entry.path for entry in self._pending.values()]

    def attempts(self, path: str) -> int:
        entry = self._pending.get(normalize_path(path))
        return entry.attempts if entry else 0
