"""
Shot <-> asset association by file name.

A file binds to shot `n` only when its name is exactly `shot_<n>.<jpg|mp4>`,
`shot_<nn>.<jpg|mp4>`, `audio_<n>.mp3` or `audio_<nn>.mp3` (nn = n zero-padded
to two digits). Role images (host/guest/cover) never bind.
"""
from __future__ import annotations

import os
import re
from collections.abc import Iterable

from ...shared import get_logger
from .classifier import is_excluded_segment
from .models import AssetFile, ShotDetail, ShotSpec

logger = get_logger(__name__)

ROLE_IMAGES: frozenset[str] = frozenset({"host.jpg", "guest.jpg", "cover.jpg"})

_SHOT_MEDIA_RE = re.compile(r"^shot_(\d+)\.(jpg|mp4)$")
_SHOT_AUDIO_RE = re.compile(r"^audio_(\d+)\.mp3$")


def list_task_files(task_dir: str) -> list[str]:
    """
    Recursive listing of a task folder (absolute file paths).

    Hidden entries and `cache` subtrees are skipped; a directory that cannot be
    read contributes no files.
    """
    files: list[str] = []
    stack: list[str] = [task_dir]
    while stack:
        current = stack.pop()
        try:
            with os.scandir(current) as it:
                entries = sorted(it, key=lambda e: e.name)
        except (OSError, PermissionError):
            logger.debug("Skipping unreadable directory: %s", current)
            continue
        subdirs: list[str] = []
        for entry in entries:
            if is_excluded_segment(entry.name):
                continue
            try:
                if entry.is_dir(follow_symlinks=False):
                    subdirs.append(entry.path)
                elif entry.is_file(follow_symlinks=True):
                    files.append(entry.path)
            except (OSError, PermissionError):
                continue
        # reversed so the stack pops subdirectories in name order
        stack.extend(reversed(subdirs))
    return files


def matches_shot(file_name: str, shot_number: int) -> bool:
    """Strict name equality against `shot_number` (plain or zero-padded to width 2)."""
    if not file_name or file_name in ROLE_IMAGES:
        return False
    match = _SHOT_MEDIA_RE.match(file_name) or _SHOT_AUDIO_RE.match(file_name)
    if match is None:
        return False
    digits = match.group(1)
    return digits in (str(shot_number), f"{shot_number:02d}")


def bind_shots(specs: Iterable[ShotSpec], assets: Iterable[AssetFile], task_id: str) -> list[ShotDetail]:
    """Build ShotDetails for every spec with all matching assets attached (listing order)."""
    asset_list = list(assets)
    details: list[ShotDetail] = []
    for spec in specs:
        detail = ShotDetail(spec=spec, task_id=task_id)
        for asset in asset_list:
            if matches_shot(asset.file_name, spec.shot_number):
                detail.upsert_asset(asset)
        details.append(detail)
    return details


def bind_asset(shots: Iterable[ShotDetail], asset: AssetFile) -> list[int]:
    """Attach (or refresh) one asset on every shot it matches. Returns those shot numbers."""
    bound: list[int] = []
    for detail in shots:
        if matches_shot(asset.file_name, detail.shot_number):
            detail.upsert_asset(asset)
            bound.append(detail.shot_number)
    return bound


def unbind_asset(shots: Iterable[ShotDetail], file_path: str) -> list[int]:
    removed: list[int] = []
    for detail in shots:
        if detail.remove_asset(file_path):
            removed.append(detail.shot_number)
    return removed
