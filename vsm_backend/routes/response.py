"""
JSON envelope for HTTP routes: `{ok, data, error, code, meta}`.
"""
import math
from typing import Any

from aiohttp import web

from vsm_backend.shared import Result


def _finite(value: Any) -> Any:
    """Replace NaN/Infinity (invalid JSON) with None at any depth."""
    if isinstance(value, float) and not math.isfinite(value):
        return None
    if isinstance(value, dict):
        return {key: _finite(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_finite(item) for item in value]
    return value


def _json_response(result: Result, status: int = 200) -> web.Response:
    # Failed Results are still a 200; callers pass a status only for server faults.
    envelope = {
        "ok": result.ok,
        "data": result.data,
        "error": result.error,
        "code": result.code,
        "meta": result.meta,
    }
    return web.json_response(_finite(envelope), status=status)
