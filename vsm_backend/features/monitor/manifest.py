"""
Manifest (script.json) parsing.
"""
from __future__ import annotations

import json
from typing import Any

from ...shared import ErrorCode, Result, get_logger
from .models import DEFAULT_AUDIO_CONFIG, ManifestData, ShotSpec

logger = get_logger(__name__)


def _first(raw: dict, *keys: str, default: Any = None) -> Any:
    for key in keys:
        value = raw.get(key)
        if value not in (None, ""):
            return value
    return default


def _number(value: Any, default: float = 0.0) -> float:
    if value is None:
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def _text(value: Any) -> str:
    return "" if value is None else str(value)


def _parse_shot(raw: Any, index: int) -> ShotSpec:
    if not isinstance(raw, dict):
        raw = {}
    start = _number(_first(raw, "start_sec", "startTime"))
    end = _number(_first(raw, "end_sec", "endTime"))
    return ShotSpec(
        shot_id=_text(_first(raw, "shot_id", "shotId", default=f"shot_{index + 1}")),
        shot_number=index + 1,
        start_time=int(start) if start.is_integer() else start,
        end_time=int(end) if end.is_integer() else end,
        description=_text(raw.get("description")),
        dialogue=_text(raw.get("dialogue")),
        role_id=_text(_first(raw, "role_id", "roleId", default="")),
    )


def _parse_audio_config(raw: Any) -> dict[str, int]:
    config = dict(DEFAULT_AUDIO_CONFIG)
    if not isinstance(raw, dict):
        return config
    for key in config:
        try:
            if raw.get(key) is not None:
                config[key] = int(raw[key])
        except (TypeError, ValueError):
            continue
    return config


def parse_manifest_data(raw: Any) -> Result[ManifestData]:
    """Validate an already-decoded manifest payload."""
    if not isinstance(raw, dict):
        return Result.Err(ErrorCode.PARSE_ERROR, "Manifest must be a JSON object")

    video_id = _first(raw, "videoId", "video_id")
    title = raw.get("title")
    if not video_id or not title:
        return Result.Err(ErrorCode.PARSE_ERROR, "Manifest is missing required fields: videoId, title")

    shots_raw = raw.get("shots")
    if not isinstance(shots_raw, list):
        shots_raw = []

    return Result.Ok(
        ManifestData(
            video_id=str(video_id),
            title=str(title),
            shots=tuple(_parse_shot(item, idx) for idx, item in enumerate(shots_raw)),
            audio_config=_parse_audio_config(raw.get("audioConfig")),
        )
    )


def parse_manifest(path: str) -> Result[ManifestData]:
    """Read and parse a manifest file. Never raises."""
    try:
        with open(path, "r", encoding="utf-8") as f:
            raw = json.load(f)
    except FileNotFoundError:
        return Result.Err(ErrorCode.NOT_FOUND, f"Manifest not found: {path}")
    except (OSError, UnicodeDecodeError) as e:
        return Result.Err(ErrorCode.PARSE_ERROR, f"Failed to read manifest: {e}")
    except json.JSONDecodeError as e:
        return Result.Err(ErrorCode.PARSE_ERROR, f"Invalid manifest JSON: {e}")

    try:
        result = parse_manifest_data(raw)
    except Exception as e:
        logger.warning("Manifest parse failed (%s): %s", path, e)
        return Result.Err(ErrorCode.PARSE_ERROR, f"Invalid manifest: {e}")
    if not result.ok:
        logger.debug("Manifest rejected (%s): %s", path, result.error)
    return result
