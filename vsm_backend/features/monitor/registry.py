"""
Authoritative in-memory registry of monitored tasks.

Owns `task_id -> TaskState` and `task_id -> task folder`. Every mutation goes
through a method here, runs synchronously on the loop, and publishes its
outcome on the BroadcastHub.
"""
from __future__ import annotations

import logging
import os
from pathlib import PurePath
from typing import Any, Optional, Protocol

from ...path_utils import normalize_path, relative_parts
from ...shared import ErrorCode, Result, get_logger, log_structured, log_success
from .broadcast import BroadcastHub
from .classifier import birth_time, build_asset, derive_task_id
from .events import (
    FILE_ADDED,
    FILE_DELETED,
    FILE_MODIFIED,
    SCRIPT_UPDATED,
    TASK_REMOVED,
    TASK_UPDATED,
)
from .manifest import parse_manifest
from .matcher import bind_asset, bind_shots, list_task_files, unbind_asset
from .models import AssetFile, TaskState

logger = get_logger(__name__)

SORT_FIELDS = ("createdAt", "folderCreatedAt", "title")
DEFAULT_SORT_BY = "folderCreatedAt"
DEFAULT_SORT_ORDER = "desc"


class WatchTarget(Protocol):
    def watch(self, path: str, depth: int | None = None) -> bool: ...

    def unwatch(self, path: str) -> bool: ...


def default_title(task_id: str) -> str:
    return f"Video task {task_id}"


class TaskRegistry:
    def __init__(
        self,
        watch_root: str,
        hub: BroadcastHub,
        watcher: Optional[WatchTarget] = None,
        manifest_name: str = "script.json",
    ):
        self._watch_root = os.path.abspath(watch_root)
        self._hub = hub
        self._watcher = watcher
        self._manifest_name = manifest_name
        self._tasks: dict[str, TaskState] = {}
        self._paths: dict[str, str] = {}

    @property
    def watch_root(self) -> str:
        return self._watch_root

    @property
    def manifest_name(self) -> str:
        return self._manifest_name

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def start_monitoring(self, task_id_hint: Optional[str], path: str) -> Result[TaskState]:
        """
        Begin (or re-begin) monitoring the task folder containing `path`.

        The task id always derives from the path; `task_id_hint` is advisory.
        Existing state is reused so `folderCreatedAt` and known assets survive.
        """
        if not path or not os.path.exists(path):
            return Result.Err(ErrorCode.INVALID_PATH, f"Task path does not exist: {path}")

        task_id = derive_task_id(path, self._watch_root)
        if not task_id:
            return Result.Err(
                ErrorCode.UNRESOLVED_TASK_ID,
                f"Path is not inside the watch root: {path}",
            )
        if task_id_hint and task_id_hint != task_id:
            logger.debug("Task id hint %r differs from derived id %r", task_id_hint, task_id)

        task_dir = os.path.join(self._watch_root, task_id)
        if not os.path.isdir(task_dir):
            return Result.Err(ErrorCode.INVALID_PATH, f"Task folder does not exist: {task_dir}")

        task = self._tasks.get(task_id)
        created = task is None
        if task is None:
            try:
                folder_created_at = birth_time(os.stat(task_dir))
            except OSError as e:
                return Result.Err(ErrorCode.INVALID_PATH, f"Cannot stat task folder: {e}")
            task = TaskState(
                task_id=task_id,
                title=default_title(task_id),
                manifest_path=os.path.join(task_dir, self._manifest_name),
                folder_created_at=folder_created_at,
            )

        self._merge_listing(task, task_dir)
        self._apply_manifest(task, created)

        task.monitoring = True
        task.touch()
        self._tasks[task_id] = task
        self._paths[task_id] = task_dir
        self._watch(task_dir)

        self._hub.publish(TASK_UPDATED, task.to_dict())
        log_structured(
            logger,
            logging.INFO,
            "task_discovered" if created else "task_monitoring_started",
            task_id=task_id,
            path=task_dir,
            assets=len(task.assets),
            shots=len(task.shots),
        )
        return Result.Ok(task, created=created)

    def stop_monitoring(self, task_id: str) -> Result[TaskState]:
        """Pause event application for a task. State and the OS watch are kept."""
        task = self._tasks.get(task_id)
        if task is None:
            return Result.Err(ErrorCode.NOT_FOUND, f"Unknown task: {task_id}")
        task.monitoring = False
        task.touch()
        logger.info("Monitoring paused: %s", task_id)
        return Result.Ok(task)

    def resume_monitoring(self, task_id: str) -> Result[TaskState]:
        task = self._tasks.get(task_id)
        if task is None:
            return Result.Err(ErrorCode.NOT_FOUND, f"Unknown task: {task_id}")
        task_dir = self._paths.get(task_id)
        if not task_dir or not os.path.isdir(task_dir):
            return Result.Err(ErrorCode.INVALID_PATH, f"Task folder no longer exists: {task_dir}")
        task.monitoring = True
        task.touch()
        self._watch(task_dir)
        self._hub.publish(TASK_UPDATED, task.to_dict())
        logger.info("Monitoring resumed: %s", task_id)
        return Result.Ok(task)

    # ------------------------------------------------------------------
    # Event application
    # ------------------------------------------------------------------

    def apply_file_upsert(self, asset: AssetFile) -> Result[str]:
        """
        Insert or replace an asset by file path.

        Returns the broadcast event type, or "" when the event was ignored
        (unknown task or monitoring paused).
        """
        task = self._tasks.get(asset.task_id)
        if task is None or not task.monitoring:
            return Result.Ok("", ignored=True)

        existing = task.assets.get(asset.file_path)
        if existing is not None:
            # file ids stay stable while the path keeps existing
            asset.file_id = existing.file_id
        task.assets[asset.file_path] = asset
        task.touch()
        bind_asset(task.shots, asset)

        event_type = FILE_MODIFIED if existing is not None else FILE_ADDED
        self._hub.publish(event_type, asset.to_dict())
        logger.debug("%s [%s]: %s", event_type, task.task_id, asset.file_path)
        return Result.Ok(event_type)

    def apply_file_remove(self, asset: AssetFile) -> Result[str]:
        task = self._tasks.get(asset.task_id)
        if task is None or not task.monitoring:
            return Result.Ok("", ignored=True)

        existing = task.assets.pop(asset.file_path, None)
        if existing is None:
            return Result.Ok("", ignored=True)
        task.touch()
        unbind_asset(task.shots, asset.file_path)

        self._hub.publish(FILE_DELETED, existing.to_dict())
        logger.debug("%s [%s]: %s", FILE_DELETED, task.task_id, asset.file_path)
        return Result.Ok(FILE_DELETED)

    def on_directory_removed(self, path: str) -> Result[str]:
        """
        Drop the task whose top-level folder was removed.

        A removed subfolder of a task drops only the assets below it.
        """
        rel = relative_parts(path, self._watch_root)
        if not rel:
            return Result.Ok("", ignored=True)
        task_id = rel[0]
        if task_id not in self._tasks:
            return Result.Ok("", ignored=True)
        if len(rel) > 1:
            return self.remove_assets_under(task_id, PurePath(*rel).as_posix())

        self._tasks.pop(task_id, None)
        task_dir = self._paths.pop(task_id, None)
        if task_dir and self._watcher is not None:
            try:
                self._watcher.unwatch(task_dir)
            except Exception as e:
                logger.debug("Unwatch failed for %s: %s", task_dir, e)

        self._hub.publish(TASK_REMOVED, {"taskId": task_id})
        log_structured(logger, logging.INFO, "task_removed", task_id=task_id, path=path)
        return Result.Ok(task_id)

    def remove_assets_under(self, task_id: str, prefix: str) -> Result[str]:
        """Remove every asset whose file path lies under `prefix` (relative to the watch root)."""
        task = self._tasks.get(task_id)
        if task is None or not task.monitoring:
            return Result.Ok("", ignored=True)

        prefix = prefix.rstrip("/") + "/"
        doomed = [fp for fp in task.assets if fp.startswith(prefix)]
        if not doomed:
            return Result.Ok("", ignored=True)
        for file_path in doomed:
            existing = task.assets.pop(file_path)
            unbind_asset(task.shots, file_path)
            self._hub.publish(FILE_DELETED, existing.to_dict())
        task.touch()
        logger.info("Folder %s removed from %s (%d asset(s))", prefix.rstrip("/"), task_id, len(doomed))
        return Result.Ok(FILE_DELETED, removed=len(doomed))

    def reload_manifest(self, task_id: str) -> Result[TaskState]:
        """Re-parse a task's manifest and rebind every shot against the current listing."""
        task = self._tasks.get(task_id)
        if task is None:
            return Result.Err(ErrorCode.NOT_FOUND, f"Unknown task: {task_id}")
        if not task.monitoring:
            return Result.Ok(task, ignored=True)

        parsed = parse_manifest(task.manifest_path)
        if not parsed.ok or parsed.data is None:
            if parsed.is_code(ErrorCode.NOT_FOUND):
                logger.debug("Manifest gone for %s, keeping current shots", task_id)
            else:
                logger.warning("Manifest reload failed for %s: %s", task_id, parsed.error)
            return Result.Err(parsed.code, parsed.error or "Manifest reload failed")

        task_dir = self._paths.get(task_id) or os.path.dirname(task.manifest_path)
        self._merge_listing(task, task_dir)
        manifest = parsed.data
        task.title = manifest.title
        task.shots = bind_shots(manifest.shots, task.assets.values(), task_id)
        task.touch()

        self._hub.publish(SCRIPT_UPDATED, manifest.to_dict())
        self._hub.publish(TASK_UPDATED, task.to_dict())
        logger.info("Manifest reloaded for %s (%d shots)", task_id, len(task.shots))
        return Result.Ok(task)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get(self, task_id: str) -> Optional[TaskState]:
        return self._tasks.get(task_id)

    def has(self, task_id: str) -> bool:
        return task_id in self._tasks

    def path_for(self, task_id: str) -> Optional[str]:
        return self._paths.get(task_id)

    def task_for_path(self, path: str) -> Optional[TaskState]:
        task_id = derive_task_id(path, self._watch_root)
        return self._tasks.get(task_id) if task_id else None

    def is_manifest_path(self, path: str) -> bool:
        """True when `path` is `<watch_root>/<task>/<manifest_name>`."""
        task_id = derive_task_id(path, self._watch_root)
        if not task_id:
            return False
        expected = os.path.join(self._watch_root, task_id, self._manifest_name)
        return normalize_path(path) == normalize_path(expected)

    def list_tasks(self, sort_by: str = DEFAULT_SORT_BY, sort_order: str = DEFAULT_SORT_ORDER) -> list[TaskState]:
        if sort_by not in SORT_FIELDS:
            sort_by = DEFAULT_SORT_BY
        if sort_order not in ("asc", "desc"):
            sort_order = DEFAULT_SORT_ORDER

        def _key(task: TaskState) -> Any:
            if sort_by == "title":
                return task.title.lower()
            if sort_by == "createdAt":
                return task.created_at
            return task.folder_created_at

        return sorted(self._tasks.values(), key=_key, reverse=(sort_order == "desc"))

    def __len__(self) -> int:
        return len(self._tasks)

    def task_ids(self) -> list[str]:
        return list(self._tasks.keys())

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _merge_listing(self, task: TaskState, task_dir: str) -> int:
        """Add classified files from the folder listing; existing entries are kept."""
        added = 0
        for file_path in list_task_files(task_dir):
            asset = build_asset(file_path, self._watch_root)
            if asset is None or asset.task_id != task.task_id:
                continue
            if asset.file_path in task.assets:
                continue
            task.assets[asset.file_path] = asset
            added += 1
        return added

    def _apply_manifest(self, task: TaskState, created: bool) -> None:
        if not os.path.isfile(task.manifest_path):
            if created:
                task.shots = []
            return
        parsed = parse_manifest(task.manifest_path)
        if parsed.ok and parsed.data is not None:
            task.title = parsed.data.title
            task.shots = bind_shots(parsed.data.shots, task.assets.values(), task.task_id)
            return
        logger.warning("[%s] %s: %s", parsed.code, task.task_id, parsed.error)
        task.shots = []
        if created:
            task.title = default_title(task.task_id)

    def _watch(self, task_dir: str) -> None:
        if self._watcher is None:
            return
        try:
            self._watcher.watch(task_dir)
        except Exception as e:
            logger.warning("Failed to watch %s: %s", task_dir, e)

    def log_summary(self) -> None:
        if self._tasks:
            log_success(logger, f"Monitoring {len(self._tasks)} task(s) under {self._watch_root}")
        else:
            logger.info("No tasks found under %s", self._watch_root)
