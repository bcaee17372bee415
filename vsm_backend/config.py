"""
Configuration for Video Script Monitor.

Every value can be overridden through the environment. `MonitorSettings.from_env()`
takes a fresh snapshot, which lets tests build a service with tiny timings.
"""
import os
import logging
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)

_TRUE = frozenset({"1", "true", "yes", "on", "enabled"})
_FALSE = frozenset({"0", "false", "no", "off", "disabled"})


def parse_bool(value: object, default: bool = False) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return bool(value)
    text = str(value or "").strip().lower()
    if text in _TRUE:
        return True
    if text in _FALSE:
        return False
    return default


def _env_raw(*names: str, default: str | None = None) -> str | None:
    for name in names:
        if not name:
            continue
        val = os.getenv(name)
        if val is not None and str(val).strip() != "":
            return str(val).strip()
    return default


def _env_int(default: int, *names: str, min_value: int | None = None, max_value: int | None = None) -> int:
    raw = _env_raw(*names)
    if raw is None:
        return default
    try:
        value = int(raw)
    except (TypeError, ValueError):
        logger.warning("Invalid integer for %s=%r, using default=%s", names[0] if names else "<unknown>", raw, default)
        return default
    if min_value is not None and value < min_value:
        logger.warning("Value too small for %s=%s, clamped to %s", names[0] if names else "<unknown>", value, min_value)
        value = min_value
    if max_value is not None and value > max_value:
        logger.warning("Value too large for %s=%s, clamped to %s", names[0] if names else "<unknown>", value, max_value)
        value = max_value
    return value


def _env_float(default: float, *names: str, min_value: float | None = None, max_value: float | None = None) -> float:
    raw = _env_raw(*names)
    if raw is None:
        return default
    try:
        value = float(raw)
    except (TypeError, ValueError):
        logger.warning("Invalid float for %s=%r, using default=%s", names[0] if names else "<unknown>", raw, default)
        return default
    if min_value is not None and value < min_value:
        logger.warning("Value too small for %s=%s, clamped to %s", names[0] if names else "<unknown>", value, min_value)
        value = min_value
    if max_value is not None and value > max_value:
        logger.warning("Value too large for %s=%s, clamped to %s", names[0] if names else "<unknown>", value, max_value)
        value = max_value
    return value


def _env_bool(default: bool, *names: str) -> bool:
    raw = _env_raw(*names)
    return default if raw is None else parse_bool(raw, default)


def resolve_watch_root() -> str:
    """
    Resolve the watch root at runtime.

    Priority:
    1) VSM_WATCH_DIRECTORY / WATCH_DIRECTORY
    2) <cwd>/data
    """
    env_path = _env_raw("VSM_WATCH_DIRECTORY", "WATCH_DIRECTORY")
    if env_path:
        try:
            return str(Path(env_path).expanduser().resolve())
        except (OSError, RuntimeError):
            logger.warning("Failed to resolve WATCH_DIRECTORY: %s, using fallback", env_path)
    return str((Path.cwd() / "data").resolve())


# Manifest file expected in every task folder
MANIFEST_NAME = str(_env_raw("VSM_MANIFEST_NAME", default="script.json") or "script.json")

# Debounce windows (quiet period before a path's latest notification is propagated)
FILE_DEBOUNCE_MS = _env_int(300, "VSM_FILE_DEBOUNCE_MS", min_value=0, max_value=60_000)
DIR_DEBOUNCE_MS = _env_int(500, "VSM_DIR_DEBOUNCE_MS", min_value=0, max_value=60_000)

# Readiness probing (avoid reacting to partially-written files)
FILE_READY_RETRIES = _env_int(5, "VSM_FILE_READY_RETRIES", min_value=1, max_value=100)
FILE_READY_DELAY_MS = _env_int(100, "VSM_FILE_READY_DELAY_MS", min_value=0, max_value=10_000)
DIR_READY_RETRIES = _env_int(10, "VSM_DIR_READY_RETRIES", min_value=1, max_value=100)
DIR_READY_DELAY_MS = _env_int(200, "VSM_DIR_READY_DELAY_MS", min_value=0, max_value=10_000)

# Discovery polling for directories created before their manifest
DISCOVERY_INTERVAL_MS = _env_int(5000, "VSM_DISCOVERY_INTERVAL_MS", min_value=10, max_value=600_000)
DISCOVERY_MAX_ATTEMPTS = _env_int(50, "VSM_DISCOVERY_MAX_ATTEMPTS", min_value=1, max_value=10_000)

# Watch depth (levels of subdirectories below a watched root)
TASK_WATCH_DEPTH = 2
DISCOVERY_WATCH_DEPTH = 1

# Bounded channels
EVENT_CHANNEL_MAX = _env_int(1024, "VSM_EVENT_CHANNEL_MAX", min_value=16, max_value=1_000_000)
SUBSCRIBER_QUEUE_MAX = _env_int(256, "VSM_SUBSCRIBER_QUEUE_MAX", min_value=1, max_value=100_000)

# Transport
HOST = str(_env_raw("VSM_HOST", default="0.0.0.0") or "0.0.0.0")
PORT = _env_int(8080, "VSM_PORT", "PORT", min_value=1, max_value=65535)

# Disable with VSM_ENABLE_WATCHER=0 (startup scan still runs)
WATCHER_ENABLED = _env_bool(True, "VSM_ENABLE_WATCHER")


@dataclass(frozen=True)
class MonitorSettings:
    """Snapshot of the timing and sizing knobs used by the monitor core."""

    watch_root: str
    manifest_name: str = "script.json"
    file_debounce_ms: int = 300
    dir_debounce_ms: int = 500
    file_ready_retries: int = 5
    file_ready_delay_ms: int = 100
    dir_ready_retries: int = 10
    dir_ready_delay_ms: int = 200
    discovery_interval_ms: int = 5000
    discovery_max_attempts: int = 50
    task_watch_depth: int = 2
    discovery_watch_depth: int = 1
    event_channel_max: int = 1024
    subscriber_queue_max: int = 256
    watcher_enabled: bool = True

    @classmethod
    def from_env(cls, watch_root: str | None = None) -> "MonitorSettings":
        return cls(
            watch_root=str(Path(watch_root).expanduser().resolve()) if watch_root else resolve_watch_root(),
            manifest_name=MANIFEST_NAME,
            file_debounce_ms=FILE_DEBOUNCE_MS,
            dir_debounce_ms=DIR_DEBOUNCE_MS,
            file_ready_retries=FILE_READY_RETRIES,
            file_ready_delay_ms=FILE_READY_DELAY_MS,
            dir_ready_retries=DIR_READY_RETRIES,
            dir_ready_delay_ms=DIR_READY_DELAY_MS,
            discovery_interval_ms=DISCOVERY_INTERVAL_MS,
            discovery_max_attempts=DISCOVERY_MAX_ATTEMPTS,
            task_watch_depth=TASK_WATCH_DEPTH,
            discovery_watch_depth=DISCOVERY_WATCH_DEPTH,
            event_channel_max=EVENT_CHANNEL_MAX,
            subscriber_queue_max=SUBSCRIBER_QUEUE_MAX,
            watcher_enabled=WATCHER_ENABLED,
        )
