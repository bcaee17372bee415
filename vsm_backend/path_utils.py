"""
Shared path normalization helpers.
"""

from __future__ import annotations

import os
from pathlib import Path


def normalize_path(value: str) -> str:
    """Absolute, normalized, case-folded (on Windows) form used as a table key."""
    if not value:
        return ""
    return os.path.normcase(os.path.normpath(os.path.abspath(str(value))))


def path_parts(value: str) -> tuple[str, ...]:
    """Segments of the normalized path, root included (e.g. ('/', 'data', 'x'))."""
    key = normalize_path(value)
    if not key:
        return ()
    return Path(key).parts


def relative_parts(candidate: str, root: str) -> tuple[str, ...] | None:
    """Segments of `candidate` below `root`, or None when it is not under it."""
    cand = path_parts(candidate)
    base = path_parts(root)
    if not base or len(cand) < len(base) or cand[: len(base)] != base:
        return None
    return cand[len(base):]


def is_same_path(a: str, b: str) -> bool:
    return bool(a) and bool(b) and normalize_path(a) == normalize_path(b)


def is_within_root(candidate: str, root: str) -> bool:
    return relative_parts(candidate, root) is not None
