"""
Health check endpoint.
"""
from aiohttp import web

from vsm_backend.features.monitor.service import MonitorService
from vsm_backend.shared import ErrorCode, Result, get_logger, sanitize_error_message

from .response import _json_response

logger = get_logger(__name__)


def register_health_routes(routes: web.RouteTableDef, monitor: MonitorService) -> None:
    """Register the health route."""

    @routes.get("/health")
    async def health(request):
        """Get monitor status and connected client count."""
        try:
            result = Result.Ok(monitor.health())
        except Exception as exc:
            logger.warning("Health status failed: %s", exc)
            result = Result.Err(
                ErrorCode.SERVICE_UNAVAILABLE,
                sanitize_error_message(exc, "Health status failed"),
            )
        return _json_response(result)
