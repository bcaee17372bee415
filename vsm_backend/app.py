"""
aiohttp application factory and entry point.
"""
from aiohttp import web

from .config import HOST, PORT, MonitorSettings
from .deps import build_services
from .features.monitor import MonitorService
from .routes import register_routes
from .shared import get_logger

logger = get_logger(__name__)

APP_KEY_SERVICES: web.AppKey[dict] = web.AppKey("vsm_services", dict)


async def create_app(
    watch_root: str | None = None,
    settings: MonitorSettings | None = None,
    observer_factory=None,
) -> web.Application:
    """Build the application; the monitor starts with the app and stops on cleanup."""
    result = await build_services(watch_root=watch_root, settings=settings, observer_factory=observer_factory)
    if not result.ok or result.data is None:
        raise RuntimeError(f"Failed to build services: {result.error}")
    services = result.data
    monitor: MonitorService = services["monitor"]

    app = web.Application()
    app[APP_KEY_SERVICES] = services
    app.add_routes(register_routes(monitor))

    async def _start_monitor(_app: web.Application) -> None:
        started = await monitor.start()
        if not started.ok:
            logger.error("Monitor failed to start: %s", started.error)

    async def _stop_monitor(_app: web.Application) -> None:
        await monitor.stop()
        monitor.hub.close_all()

    app.on_startup.append(_start_monitor)
    app.on_cleanup.append(_stop_monitor)
    return app


def main() -> None:
    logger.info("Starting Video Script Monitor on %s:%s", HOST, PORT)
    web.run_app(create_app(), host=HOST, port=PORT)


if __name__ == "__main__":
    main()
