"""
Pure path classification: file types, task identity, and exclusion rules.
"""
from __future__ import annotations

import os
from pathlib import PurePath
from typing import Optional

from ...path_utils import path_parts, relative_parts
from ...shared import FileType, classify_file, ms, now
from .models import AssetFile

CACHE_DIR_NAME = "cache"


def is_excluded_segment(segment: str) -> bool:
    return segment.startswith(".") or segment.lower() == CACHE_DIR_NAME


def is_excluded_path(path: str, root: Optional[str] = None) -> bool:
    """
    True when the path has a hidden segment or a `cache` segment.

    When `root` is given and the path lies under it, only the segments below the
    root are inspected, so a watch root living inside a dot-directory still works.
    """
    if not path:
        return True
    segments: tuple[str, ...] | None = None
    if root:
        segments = relative_parts(path, root)
    if segments is None:
        segments = path_parts(path)[1:]
    return any(is_excluded_segment(seg) for seg in segments)


def file_type_for(name: str) -> Optional[FileType]:
    return classify_file(name)


def derive_task_id(absolute_path: str, watch_root: str) -> Optional[str]:
    """
    Return the first-level directory name below `watch_root`.

    Both paths are split into segments; the first position where the watch
    root's segments appear in `absolute_path` anchors the match and the segment
    right after it is the task id. None when the root is absent or nothing
    follows it.
    """
    parts = path_parts(absolute_path)
    root = path_parts(watch_root)
    if not parts or not root:
        return None
    width = len(root)
    for idx in range(0, len(parts) - width + 1):
        if parts[idx: idx + width] == root:
            if idx + width < len(parts):
                return parts[idx + width]
            return None
    return None


def relative_asset_path(path: str, watch_root: str) -> str:
    rel = relative_parts(path, watch_root)
    if rel:
        return PurePath(*rel).as_posix()
    return PurePath(path).as_posix()


def birth_time(st: os.stat_result) -> float:
    """Creation time where the platform records one, ctime otherwise."""
    birth = getattr(st, "st_birthtime", None)
    if birth:
        return float(birth)
    return float(st.st_ctime)


def _asset(path: str, watch_root: str, created_at: float, size: int) -> Optional[AssetFile]:
    if is_excluded_path(path, watch_root):
        return None
    name = os.path.basename(path)
    file_type = file_type_for(name)
    if file_type is None:
        return None
    # a task id is a first-level folder; files directly in the root have none
    rel = relative_parts(path, watch_root)
    if rel is None or len(rel) < 2:
        return None
    task_id = rel[0]
    return AssetFile(
        file_id=f"{task_id}_{name}_{ms()}",
        task_id=task_id,
        file_type=file_type,
        file_path=relative_asset_path(path, watch_root),
        file_name=name,
        created_at=created_at,
        file_size=size,
    )


def build_asset(path: str, watch_root: str, st: Optional[os.stat_result] = None) -> Optional[AssetFile]:
    """Build an AssetFile for an existing file; None when unclassified or unreadable."""
    if st is None:
        try:
            st = os.stat(path)
        except OSError:
            return None
    return _asset(path, watch_root, birth_time(st), int(st.st_size))


def build_removed_asset(path: str, watch_root: str) -> Optional[AssetFile]:
    """AssetFile for a path that no longer exists (size 0, created now)."""
    return _asset(path, watch_root, now(), 0)
