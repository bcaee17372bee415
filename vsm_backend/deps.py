"""
Dependency injection - builds services.
Simple, debug-friendly DI without framework magic.
"""
from collections.abc import Callable
from typing import Any

from .config import MonitorSettings
from .features.monitor import BroadcastHub, MonitorService
from .shared import ErrorCode, Result, get_logger, log_success

logger = get_logger(__name__)


def _resolve_settings(watch_root: str | None, settings: MonitorSettings | None) -> MonitorSettings:
    if settings is not None:
        return settings
    return MonitorSettings.from_env(watch_root)


async def build_services(
    watch_root: str | None = None,
    settings: MonitorSettings | None = None,
    observer_factory: Callable[[], Any] | None = None,
) -> Result[dict]:
    """
    Build all services (DI container).

    Args:
        watch_root: Folder holding the task folders (default: from config)
        settings: Full settings snapshot; takes precedence over `watch_root`
        observer_factory: watchdog observer constructor override

    Returns:
        Result[dict] with "settings", "hub" and "monitor"
    """
    logger.info("Building services...")
    try:
        resolved = _resolve_settings(watch_root, settings)
    except Exception as exc:
        logger.error("Failed to resolve settings: %s", exc)
        return Result.Err(ErrorCode.INVALID_INPUT, f"Failed to resolve settings: {exc}")

    hub = BroadcastHub(queue_max=resolved.subscriber_queue_max)
    monitor = MonitorService(resolved, hub=hub, observer_factory=observer_factory)
    if not resolved.watcher_enabled:
        logger.warning("File watcher disabled - only the startup scan will run")

    services = {
        "settings": resolved,
        "hub": hub,
        "monitor": monitor,
    }
    log_success(logger, "All services initialized")
    return Result.Ok(services)
