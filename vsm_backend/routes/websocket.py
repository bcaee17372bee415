"""
WebSocket feed: forwards every BroadcastHub event to connected clients.
"""
import asyncio
import json
import uuid
from typing import Any

from aiohttp import WSMsgType, web

from vsm_backend.features.monitor.broadcast import BroadcastHub, Subscription
from vsm_backend.shared import connection_id_var, get_logger, ms, sanitize_error_message

logger = get_logger(__name__)

WS_PATH = "/ws"
WS_HEARTBEAT_S = 30.0


def _envelope(message_type: str, data: Any) -> dict[str, Any]:
    return {"type": message_type, "data": data, "timestamp": ms()}


def _subscription_target(data: Any) -> str | None:
    if not isinstance(data, dict):
        return None
    value = data.get("taskId") or data.get("videoId")
    return str(value) if value else None


async def _handle_client_message(ws: web.WebSocketResponse, raw: str) -> None:
    try:
        message = json.loads(raw)
    except (TypeError, ValueError) as exc:
        logger.warning("Malformed WebSocket message: %s", sanitize_error_message(exc, "Invalid JSON"))
        return
    if not isinstance(message, dict):
        logger.warning("Ignoring non-object WebSocket message")
        return

    message_type = message.get("type")
    if message_type == "ping":
        await ws.send_json(_envelope("pong", {"timestamp": ms()}))
    elif message_type == "subscribe":
        task_id = _subscription_target(message.get("data"))
        logger.info("Client subscribed to task %s", task_id)
        await ws.send_json(_envelope("subscribed", {"taskId": task_id}))
    elif message_type == "unsubscribe":
        task_id = _subscription_target(message.get("data"))
        logger.info("Client unsubscribed from task %s", task_id)
        await ws.send_json(_envelope("unsubscribed", {"taskId": task_id}))
    else:
        logger.info("Unknown WebSocket message type: %s", message_type)


async def _forward(ws: web.WebSocketResponse, sub: Subscription) -> None:
    async for event in sub:
        if ws.closed:
            break
        try:
            await ws.send_str(json.dumps(event.to_dict(), ensure_ascii=False, default=str))
        except (ConnectionResetError, RuntimeError) as exc:
            logger.debug("WebSocket send failed: %s", exc)
            break


def register_broadcast_routes(routes: web.RouteTableDef, hub: BroadcastHub) -> None:
    """Register the subscriber WebSocket route."""

    @routes.get(WS_PATH)
    async def websocket_feed(request):
        ws = web.WebSocketResponse(heartbeat=WS_HEARTBEAT_S)
        await ws.prepare(request)

        client_id = uuid.uuid4().hex[:12]
        token = connection_id_var.set(client_id)
        sub = hub.subscribe()
        forwarder = asyncio.create_task(_forward(ws, sub))
        logger.info("WebSocket connected (%d client(s))", hub.client_count)
        try:
            await ws.send_json(_envelope("connected", {"clientId": client_id, "message": "Connected"}))
            async for msg in ws:
                if msg.type == WSMsgType.TEXT:
                    await _handle_client_message(ws, msg.data)
                elif msg.type == WSMsgType.ERROR:
                    logger.warning("WebSocket error: %s", ws.exception())
        finally:
            sub.close()
            forwarder.cancel()
            await asyncio.gather(forwarder, return_exceptions=True)
            logger.info("WebSocket closed (%d client(s))", hub.client_count)
            connection_id_var.reset(token)
        return ws
