"""
Readiness probes: wait until a freshly notified path is actually usable.

An OS add notification can fire before the writer flushed any content; probing
keeps size-0 or half-copied files out of the registry.
"""
from __future__ import annotations

import asyncio
import os

from ...shared import ErrorCode, Result, get_logger

logger = get_logger(__name__)

_sleep = asyncio.sleep


def _file_size(path: str) -> int:
    try:
        return int(os.stat(path).st_size)
    except OSError:
        return 0


async def wait_file_ready(path: str, max_retries: int = 5, delay_ms: int = 100) -> Result[int]:
    """Succeed with the file size as soon as it is non-zero."""
    attempts = max(1, int(max_retries))
    for attempt in range(attempts):
        size = _file_size(path)
        if size > 0:
            return Result.Ok(size, attempts=attempt + 1)
        if attempt < attempts - 1:
            await _sleep(max(0, delay_ms) / 1000.0)
    return Result.Err(ErrorCode.NOT_READY, f"File not ready: {path}", attempts=attempts)


async def wait_dir_ready(path: str, max_retries: int = 10, delay_ms: int = 200) -> Result[str]:
    """Succeed once the path resolves to a directory."""
    attempts = max(1, int(max_retries))
    for attempt in range(attempts):
        if os.path.isdir(path):
            return Result.Ok(path, attempts=attempt + 1)
        if attempt < attempts - 1:
            await _sleep(max(0, delay_ms) / 1000.0)
    return Result.Err(ErrorCode.NOT_READY, f"Directory not ready: {path}", attempts=attempts)
