"""
Route registration. Importing this package is side-effect free.
"""
from aiohttp import web

from vsm_backend.features.monitor.service import MonitorService

from .health import register_health_routes
from .websocket import register_broadcast_routes


def register_routes(monitor: MonitorService) -> web.RouteTableDef:
    """Build the route table for a monitor service."""
    routes = web.RouteTableDef()
    register_broadcast_routes(routes, monitor.hub)
    register_health_routes(routes, monitor)
    return routes


__all__ = ["register_routes", "register_broadcast_routes", "register_health_routes"]
