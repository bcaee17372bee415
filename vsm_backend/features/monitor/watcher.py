"""
File system watcher for task folders and the task-discovery root.

Raw watchdog notifications arrive on the observer thread, are filtered there
(hidden/cache paths, depth limit) and marshalled onto the event loop, where a
DebounceCoalescer collapses bursts per path. When a window closes the path is
readiness-probed and a WatchEvent is put on the bounded output channel.
"""
from __future__ import annotations

import asyncio
import os
from collections.abc import Callable
from typing import Any

from watchdog.events import (
    FileSystemEvent,
    FileSystemEventHandler,
    FileSystemMovedEvent,
)
from watchdog.observers import Observer

from ...path_utils import normalize_path, relative_parts
from ...shared import get_logger
from .classifier import is_excluded_segment
from .debounce import CoalescedKind, DebounceCoalescer
from .events import RawKind, WatchEvent
from .readiness import wait_dir_ready, wait_file_ready

logger = get_logger(__name__)

RawSink = Callable[[str, RawKind, bool], None]


class ScopedWatchHandler(FileSystemEventHandler):
    """
    Filters notifications for one watched root on the observer thread.

    - Content roots: file notifications up to `depth` subdirectory levels deep,
      plus removal of subdirectories within that depth
    - Discovery roots (`directories_only`): add/remove of immediate subdirectories
    - Hidden entries and `cache` subtrees are dropped
    """

    def __init__(
        self,
        root: str,
        depth: int,
        loop: asyncio.AbstractEventLoop,
        sink: RawSink,
        directories_only: bool = False,
    ):
        super().__init__()
        self._root = os.path.normpath(root)
        self._depth = max(0, int(depth))
        self._loop = loop
        self._sink = sink
        self._directories_only = directories_only

    def accepts(self, path: str, is_directory: bool, kind: RawKind = "add") -> bool:
        rel = relative_parts(path, self._root)
        if not rel:
            return False
        if any(is_excluded_segment(seg) for seg in rel):
            return False
        if self._directories_only:
            return is_directory and len(rel) == 1
        if is_directory:
            # a subtree moved or deleted out of a task takes its files with it
            return kind == "remove" and len(rel) <= self._depth
        # depth counts subdirectory levels below the root; the file name is one more segment
        return len(rel) <= self._depth + 1

    def on_created(self, event: FileSystemEvent) -> None:
        self._dispatch(str(event.src_path), "add", event.is_directory)

    def on_modified(self, event: FileSystemEvent) -> None:
        # Directory mtime changes carry no information we act on.
        if event.is_directory:
            return
        self._dispatch(str(event.src_path), "change", False)

    def on_deleted(self, event: FileSystemEvent) -> None:
        self._dispatch(str(event.src_path), "remove", event.is_directory)

    def on_moved(self, event: FileSystemEvent) -> None:
        # A move is a remove of the source plus an add of the destination; this is
        # what makes temp-file-then-rename saves land as a single upsert.
        self._dispatch(str(event.src_path), "remove", event.is_directory)
        if isinstance(event, FileSystemMovedEvent):
            self._dispatch(str(event.dest_path), "add", event.is_directory)

    def _dispatch(self, path: str, kind: RawKind, is_directory: bool) -> None:
        if not path or not self.accepts(path, is_directory, kind):
            return
        try:
            self._loop.call_soon_threadsafe(self._sink, path, kind, is_directory)
        except RuntimeError:
            # Loop already closed during shutdown.
            return


class PathWatcher:
    """
    Watches task folders (depth-limited, recursive) and one discovery root
    (immediate subdirectories only) on a single watchdog observer.

    Usage:
        watcher = PathWatcher(channel, file_debounce_ms=300, dir_debounce_ms=500)
        watcher.start(loop)
        watcher.watch("/data/vid_1")
        watcher.watch_discovery_root("/data")
        ...
        await watcher.stop()
    """

    def __init__(
        self,
        channel: "asyncio.Queue[WatchEvent]",
        *,
        file_debounce_ms: int = 300,
        dir_debounce_ms: int = 500,
        file_ready_retries: int = 5,
        file_ready_delay_ms: int = 100,
        dir_ready_retries: int = 10,
        dir_ready_delay_ms: int = 200,
        task_depth: int = 2,
        discovery_depth: int = 1,
        observer_factory: Callable[[], Any] = Observer,
    ):
        self._channel = channel
        self._file_debounce_ms = file_debounce_ms
        self._dir_debounce_ms = dir_debounce_ms
        self._file_ready_retries = file_ready_retries
        self._file_ready_delay_ms = file_ready_delay_ms
        self._dir_ready_retries = dir_ready_retries
        self._dir_ready_delay_ms = dir_ready_delay_ms
        self._task_depth = task_depth
        self._discovery_depth = discovery_depth
        self._observer_factory = observer_factory

        self._loop: asyncio.AbstractEventLoop | None = None
        self._observer: Any | None = None
        self._files: DebounceCoalescer | None = None
        self._dirs: DebounceCoalescer | None = None
        self._watched_paths: dict[str, dict] = {}  # normalized path -> {path, depth, discovery, watch}
        self._inflight: set[asyncio.Task] = set()
        self._running = False

    def start(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        """Create and start the observer. Safe to call twice."""
        if self._running:
            return
        self._loop = loop or asyncio.get_running_loop()
        self._files = DebounceCoalescer(self._loop, self._on_file_settled, self._file_debounce_ms, label="file")
        self._dirs = DebounceCoalescer(self._loop, self._on_dir_settled, self._dir_debounce_ms, label="dir")
        self._observer = self._observer_factory()
        self._observer.start()
        self._running = True
        logger.info("File watcher started")

    async def stop(self) -> None:
        """Cancel debounce timers and in-flight probes, then release the observer."""
        if not self._running:
            return
        self._running = False

        cancelled = 0
        if self._files:
            cancelled += self._files.cancel_all()
        if self._dirs:
            cancelled += self._dirs.cancel_all()

        tasks = list(self._inflight)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._inflight.clear()

        try:
            if self._observer:
                self._observer.stop()
                self._observer.join(timeout=2)
        except Exception as e:
            logger.debug("Watcher stop error: %s", e)
        self._observer = None
        self._watched_paths.clear()
        logger.info("File watcher stopped (%d pending events cancelled)", cancelled)

    # ------------------------------------------------------------------
    # Watch registration
    # ------------------------------------------------------------------

    def watch(self, path: str, depth: int | None = None) -> bool:
        """Watch a task folder. Idempotent per path; returns True when the path is watched."""
        return self._register(path, depth=self._task_depth if depth is None else depth, discovery=False)

    def watch_discovery_root(self, path: str) -> bool:
        """Watch the root whose immediate subdirectories are candidate tasks."""
        return self._register(path, depth=self._discovery_depth, discovery=True)

    def _register(self, path: str, *, depth: int, discovery: bool) -> bool:
        if not self._running or not self._observer or not self._loop or not path:
            return False
        normalized = os.path.normpath(os.path.abspath(path))
        key = normalize_path(normalized)
        existing = self._watched_paths.get(key)
        if existing is not None and existing["discovery"] == discovery:
            return True
        if not os.path.isdir(normalized):
            return False
        handler = ScopedWatchHandler(
            normalized,
            depth,
            self._loop,
            self._on_raw,
            directories_only=discovery,
        )
        try:
            # depth <= 1 on a discovery root only needs direct children
            recursive = not (discovery and depth <= 1)
            watch = self._observer.schedule(handler, normalized, recursive=recursive)
        except Exception as e:
            logger.warning("Failed to watch %s: %s", normalized, e)
            return False
        self._watched_paths[key] = {
            "path": normalized,
            "depth": depth,
            "discovery": discovery,
            "watch": watch,
        }
        logger.info("Watcher %s: %s", "discovery root" if discovery else "added", normalized)
        return True

    def unwatch(self, path: str) -> bool:
        """Release the watch for a single path (e.g. after its task folder was removed)."""
        key = normalize_path(path)
        entry = self._watched_paths.pop(key, None)
        if entry is None:
            return False
        try:
            if self._observer and entry.get("watch") is not None:
                self._observer.unschedule(entry["watch"])
        except Exception as e:
            # The directory may already be gone together with its OS watch.
            logger.debug("Failed to unschedule %s: %s", path, e)
        logger.info("Watcher removed: %s", entry.get("path"))
        return True

    def is_watched(self, path: str) -> bool:
        return normalize_path(path) in self._watched_paths

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def watched_directories(self) -> list[str]:
        return [entry["path"] for entry in self._watched_paths.values()]

    def get_pending_count(self) -> int:
        """Notifications waiting for their debounce window plus probes in flight."""
        count = len(self._inflight)
        if self._files:
            count += self._files.pending_count()
        if self._dirs:
            count += self._dirs.pending_count()
        return count

    # ------------------------------------------------------------------
    # Loop-side pipeline
    # ------------------------------------------------------------------

    def _on_raw(self, path: str, kind: RawKind, is_directory: bool) -> None:
        if not self._running:
            return
        coalescer = self._dirs if is_directory else self._files
        if coalescer is not None:
            coalescer.push(path, kind)

    def _on_file_settled(self, path: str, kind: CoalescedKind, seq: int) -> None:
        self._spawn(self._settle_file(path, kind, seq))

    def _on_dir_settled(self, path: str, kind: CoalescedKind, seq: int) -> None:
        self._spawn(self._settle_dir(path, kind, seq))

    def _spawn(self, coro) -> None:
        if self._loop is None:
            coro.close()
            return
        task = self._loop.create_task(coro)
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)

    async def _settle_file(self, path: str, kind: CoalescedKind, seq: int) -> None:
        files = self._files
        if files is None:
            return
        try:
            if kind == "upsert":
                ready = await wait_file_ready(path, self._file_ready_retries, self._file_ready_delay_ms)
                if not ready.ok:
                    logger.warning("Dropping file event (%s): %s", ready.code, path)
                    return
            if not files.is_current(path, seq):
                logger.debug("Superseded file event dropped: %s", path)
                return
            event_kind = "file_upserted" if kind == "upsert" else "file_removed"
            await self._channel.put(WatchEvent(event_kind, path))
        finally:
            files.release(path, seq)

    async def _settle_dir(self, path: str, kind: CoalescedKind, seq: int) -> None:
        dirs = self._dirs
        if dirs is None:
            return
        try:
            if kind == "upsert":
                ready = await wait_dir_ready(path, self._dir_ready_retries, self._dir_ready_delay_ms)
                if not ready.ok:
                    logger.warning("Dropping directory event (%s): %s", ready.code, path)
                    return
            if not dirs.is_current(path, seq):
                logger.debug("Superseded directory event dropped: %s", path)
                return
            event_kind = "dir_added" if kind == "upsert" else "dir_removed"
            await self._channel.put(WatchEvent(event_kind, path))
        finally:
            dirs.release(path, seq)
