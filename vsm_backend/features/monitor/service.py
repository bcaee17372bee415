"""
MonitorService: owns the monitoring pipeline and its single consumer loop.

    PathWatcher ----> watch channel ------\
                                           >-- consumer --> TaskRegistry --> BroadcastHub
    DirectoryDiscoveryMonitor --> channel -/

Producers never touch the registry; only the consumer (and the command methods,
which run on the same loop) mutate it.
"""
from __future__ import annotations

import asyncio
import os
from collections.abc import Callable
from typing import Any, Optional

from ...config import MonitorSettings
from ...path_utils import is_same_path
from ...shared import ErrorCode, Result, get_logger, iso_utc, log_success, now
from .broadcast import BroadcastHub, Subscription
from .classifier import build_asset, build_removed_asset, derive_task_id, is_excluded_path, is_excluded_segment
from .discovery import DirectoryDiscoveryMonitor
from .events import DIRECTORY_ADDED, DIRECTORY_REMOVED, DiscoveryEvent, WatchEvent
from .manifest import parse_manifest
from .models import TaskState
from .registry import DEFAULT_SORT_BY, DEFAULT_SORT_ORDER, TaskRegistry
from .watcher import PathWatcher

logger = get_logger(__name__)


class MonitorService:
    def __init__(
        self,
        settings: MonitorSettings,
        hub: Optional[BroadcastHub] = None,
        observer_factory: Optional[Callable[[], Any]] = None,
    ):
        self.settings = settings
        self.hub = hub or BroadcastHub(settings.subscriber_queue_max)
        self._watch_channel: asyncio.Queue[WatchEvent] = asyncio.Queue(maxsize=settings.event_channel_max)
        self._discovery_channel: asyncio.Queue[DiscoveryEvent] = asyncio.Queue(maxsize=settings.event_channel_max)

        watcher_kwargs: dict[str, Any] = {}
        if observer_factory is not None:
            watcher_kwargs["observer_factory"] = observer_factory
        self.watcher = PathWatcher(
            self._watch_channel,
            file_debounce_ms=settings.file_debounce_ms,
            dir_debounce_ms=settings.dir_debounce_ms,
            file_ready_retries=settings.file_ready_retries,
            file_ready_delay_ms=settings.file_ready_delay_ms,
            dir_ready_retries=settings.dir_ready_retries,
            dir_ready_delay_ms=settings.dir_ready_delay_ms,
            task_depth=settings.task_watch_depth,
            discovery_depth=settings.discovery_watch_depth,
            **watcher_kwargs,
        )
        self.discovery = DirectoryDiscoveryMonitor(
            self._discovery_channel,
            manifest_name=settings.manifest_name,
            interval_ms=settings.discovery_interval_ms,
            max_attempts=settings.discovery_max_attempts,
        )
        self.registry = TaskRegistry(
            settings.watch_root,
            self.hub,
            watcher=self.watcher if settings.watcher_enabled else None,
            manifest_name=settings.manifest_name,
        )
        self._consumer: asyncio.Task | None = None
        self._directory_feed: Subscription | None = None
        self._directory_tracker: asyncio.Task | None = None
        self._directory_events = {DIRECTORY_ADDED: 0, DIRECTORY_REMOVED: 0}
        self._started_at: float | None = None

    @property
    def watch_root(self) -> str:
        return self.registry.watch_root

    @property
    def is_running(self) -> bool:
        return self._consumer is not None and not self._consumer.done()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> Result[dict]:
        """Startup scan, then watch the discovery root and run the consumer loop."""
        if self.is_running:
            return Result.Ok({"tasks": len(self.registry)}, already_running=True)

        loop = asyncio.get_running_loop()
        root = self.watch_root
        if self.settings.watcher_enabled:
            self.watcher.start(loop)

        discovered = self.scan()

        if self.settings.watcher_enabled:
            if os.path.isdir(root):
                self.watcher.watch_discovery_root(root)
            else:
                logger.warning("Watch root does not exist: %s (new tasks will not be discovered)", root)

        self._directory_feed = self.hub.subscribe(include_internal=True)
        self._directory_tracker = loop.create_task(self._track_directories(self._directory_feed))
        self._consumer = loop.create_task(self._consume())
        self._started_at = now()
        log_success(logger, f"Monitor started on {root} ({discovered} task(s))")
        return Result.Ok({"tasks": discovered, "watch_root": root})

    async def stop(self) -> None:
        """Cancel polls, timers and probes, then release the OS watches."""
        consumer = self._consumer
        self._consumer = None
        if consumer is not None:
            consumer.cancel()
            await asyncio.gather(consumer, return_exceptions=True)

        if self._directory_feed is not None:
            self._directory_feed.close()
            self._directory_feed = None
        tracker = self._directory_tracker
        self._directory_tracker = None
        if tracker is not None:
            tracker.cancel()
            await asyncio.gather(tracker, return_exceptions=True)

        cancelled = await self.discovery.cancel_all()
        if cancelled:
            logger.info("Cancelled %d pending discovery poll(s)", cancelled)
        await self.watcher.stop()
        self._started_at = None
        logger.info("Monitor stopped")

    def scan(self) -> int:
        """Register every immediate subdirectory of the watch root that has a manifest."""
        root = self.watch_root
        if not os.path.isdir(root):
            logger.info("Watch root does not exist: %s, skipping startup scan", root)
            return 0

        started = 0
        for name in self._candidate_dirs(root):
            task_dir = os.path.join(root, name)
            if not os.path.isfile(os.path.join(task_dir, self.settings.manifest_name)):
                logger.debug("Skipping %s: no %s", name, self.settings.manifest_name)
                continue
            result = self.registry.start_monitoring(name, task_dir)
            if result.ok:
                started += 1
            else:
                logger.warning("Failed to start monitoring %s: %s", name, result.error)
        self.registry.log_summary()
        return started

    @staticmethod
    def _candidate_dirs(root: str) -> list[str]:
        names: list[str] = []
        try:
            with os.scandir(root) as it:
                for entry in it:
                    if is_excluded_segment(entry.name):
                        continue
                    try:
                        if entry.is_dir(follow_symlinks=True):
                            names.append(entry.name)
                    except OSError:
                        continue
        except OSError as e:
            logger.warning("Failed to list %s: %s", root, e)
        return sorted(names)

    # ------------------------------------------------------------------
    # Consumer loop
    # ------------------------------------------------------------------

    async def _consume(self) -> None:
        get_watch = asyncio.ensure_future(self._watch_channel.get())
        get_discovery = asyncio.ensure_future(self._discovery_channel.get())
        try:
            while True:
                done, _ = await asyncio.wait(
                    {get_watch, get_discovery},
                    return_when=asyncio.FIRST_COMPLETED,
                )
                if get_watch in done:
                    self._guard(self.handle_watch_event, get_watch.result())
                    get_watch = asyncio.ensure_future(self._watch_channel.get())
                if get_discovery in done:
                    self._guard(self.handle_discovery_event, get_discovery.result())
                    get_discovery = asyncio.ensure_future(self._discovery_channel.get())
        finally:
            get_watch.cancel()
            get_discovery.cancel()

    async def _track_directories(self, feed: Subscription) -> None:
        """Count directory activity seen on the internal feed."""
        async for event in feed:
            if event.type in self._directory_events:
                self._directory_events[event.type] += 1
                logger.debug("%s: %s", event.type, event.data)

    @staticmethod
    def _guard(handler: Callable[[Any], Any], event: Any) -> None:
        try:
            handler(event)
        except Exception as e:
            logger.warning("Event handler failed for %s: %s", event, e, exc_info=True)

    def handle_watch_event(self, event: WatchEvent) -> None:
        root = self.watch_root
        if event.kind == "file_upserted":
            if self.registry.is_manifest_path(event.path):
                task_id = derive_task_id(event.path, root)
                if task_id and self.registry.has(task_id):
                    self.registry.reload_manifest(task_id)
                return
            asset = build_asset(event.path, root)
            if asset is None:
                logger.debug("Ignoring unclassified file: %s", event.path)
                return
            self.registry.apply_file_upsert(asset)
        elif event.kind == "file_removed":
            if self.registry.is_manifest_path(event.path):
                logger.debug("Manifest removed, task kept as is: %s", event.path)
                return
            asset = build_removed_asset(event.path, root)
            if asset is not None:
                self.registry.apply_file_remove(asset)
        elif event.kind == "dir_added":
            self.hub.publish(DIRECTORY_ADDED, event.path)
            self.handle_directory_added(event.path)
        elif event.kind == "dir_removed":
            self.hub.publish(DIRECTORY_REMOVED, event.path)
            self.handle_directory_removed(event.path)

    def handle_discovery_event(self, event: DiscoveryEvent) -> None:
        if not os.path.isdir(event.path):
            logger.debug("Discovered directory vanished: %s", event.path)
            return
        result = self.registry.start_monitoring(None, event.path)
        if not result.ok:
            logger.warning("Failed to start discovered task %s: %s", event.path, result.error)

    def handle_directory_added(self, path: str) -> None:
        root = self.watch_root
        if is_same_path(path, root) or is_excluded_path(path, root):
            return
        task_id = derive_task_id(path, root)
        if not task_id:
            return
        if os.path.isfile(os.path.join(path, self.settings.manifest_name)):
            if not self.registry.has(task_id):
                logger.info("New task folder discovered: %s", task_id)
                self.registry.start_monitoring(task_id, path)
            return
        logger.info("Folder %s has no %s yet, polling", task_id, self.settings.manifest_name)
        self.discovery.track(path)

    def handle_directory_removed(self, path: str) -> None:
        if is_same_path(path, self.watch_root):
            return
        self.discovery.cancel(path)
        self.registry.on_directory_removed(path)

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def start_monitoring(self, task_id: Optional[str], path: str) -> Result[TaskState]:
        result = self.registry.start_monitoring(task_id, path)
        if result.ok and result.data is not None:
            task_dir = self.registry.path_for(result.data.task_id)
            if task_dir:
                self.discovery.cancel(task_dir)
        return result

    def stop_monitoring(self, task_id: str) -> Result[TaskState]:
        return self.registry.stop_monitoring(task_id)

    def resume_monitoring(self, task_id: str) -> Result[TaskState]:
        return self.registry.resume_monitoring(task_id)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_task(self, task_id: str) -> Result[TaskState]:
        task = self.registry.get(task_id)
        if task is None:
            return Result.Err(ErrorCode.NOT_FOUND, f"Unknown task: {task_id}")
        return Result.Ok(task)

    def list_tasks(self, sort_by: str = DEFAULT_SORT_BY, sort_order: str = DEFAULT_SORT_ORDER) -> list[TaskState]:
        return self.registry.list_tasks(sort_by, sort_order)

    def list_available_tasks(self) -> list[dict[str, str]]:
        """Every immediate subdirectory of the watch root, monitored or not."""
        root = self.watch_root
        if not os.path.isdir(root):
            return []
        available: list[dict[str, str]] = []
        for name in self._candidate_dirs(root):
            task_dir = os.path.join(root, name)
            title = name
            manifest_path = os.path.join(task_dir, self.settings.manifest_name)
            if os.path.isfile(manifest_path):
                parsed = parse_manifest(manifest_path)
                if parsed.ok and parsed.data is not None:
                    title = parsed.data.title
                else:
                    logger.debug("Unreadable manifest in %s: %s", name, parsed.error)
            available.append({"id": name, "path": task_dir, "title": title})
        return available

    def health(self) -> dict[str, Any]:
        return {
            "status": "ok" if self.is_running else "stopped",
            "timestamp": iso_utc(),
            "connectedClients": self.hub.client_count,
            "watchRoot": self.watch_root,
            "tasks": len(self.registry),
            "watcher": {
                "enabled": self.settings.watcher_enabled,
                "running": self.watcher.is_running,
                "directories": self.watcher.watched_directories,
                "pending": self.watcher.get_pending_count(),
                "directoriesAdded": self._directory_events[DIRECTORY_ADDED],
                "directoriesRemoved": self._directory_events[DIRECTORY_REMOVED],
            },
            "discovery": {"pending": self.discovery.pending()},
            "broadcast": self.hub.stats(),
            "startedAt": iso_utc(self._started_at) if self._started_at else None,
        }
