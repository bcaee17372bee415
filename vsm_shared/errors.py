"""
Error text that is safe to hand to WebSocket and HTTP clients.
"""
from __future__ import annotations

import re
from typing import Any

# C:\..., \\server\share\..., and absolute POSIX paths (URLs are left alone)
_PATH_RE = re.compile(r"[A-Za-z]:\\\S+|\\\\\S+|(?<![\w:/?&=#%])/(?!/)[^\s#?]+")
_MAX_DETAIL = 200


def sanitize_error_message(exc: Any, fallback: str) -> str:
    """`fallback: <detail>` with filesystem paths masked; just `fallback` when there is no detail."""
    fallback = fallback or "An error occurred"
    detail = "" if exc is None else " ".join(str(exc).split())
    detail = _PATH_RE.sub("[path]", detail)
    return f"{fallback}: {detail[:_MAX_DETAIL]}" if detail else fallback
