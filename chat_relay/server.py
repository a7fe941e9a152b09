"""HTTP and WebSocket surface (FastAPI).

``GET /`` serves the chat page and issues the identity cookie,
``GET /health`` reports the live session count, ``WS /ws`` is the chat channel.
"""

import logging
import os
from uuid import uuid4

logger = logging.getLogger(__name__)

INDEX_PATH = "/"
HEALTH_PATH = "/health"
WS_PATH = "/ws"


def get_static_path() -> str:
    """Return absolute path to the static assets directory."""
    return os.path.join(os.path.dirname(os.path.abspath(__file__)), 'static')


def build_router(coordinator, cookie_name: str = "userId"):
    """Build the FastAPI APIRouter bound to one LifecycleCoordinator.

    :param coordinator: The LifecycleCoordinator that owns all live sessions.
    :param cookie_name: Name of the identity cookie.
    """
    from fastapi import APIRouter, Request
    from fastapi.responses import FileResponse
    from starlette.websockets import WebSocket

    from chat_relay.connection import WebSocketConnection

    router = APIRouter()
    index_file = os.path.join(get_static_path(), "index.html")

    @router.get(INDEX_PATH)
    async def index(request: Request):
        response = FileResponse(index_file, media_type="text/html")
        if not request.cookies.get(cookie_name):
            user_id = str(uuid4())
            response.set_cookie(cookie_name, user_id)
            logger.info(f"[WS] Issued identity cookie {cookie_name}={user_id}")
        return response

    @router.get(HEALTH_PATH)
    async def health():
        return {
            "status": "ok",
            "active_sessions": coordinator.active_count,
            "accepting": coordinator.accepting,
        }

    @router.websocket(WS_PATH)
    async def chat_socket(ws: WebSocket):
        await ws.accept()
        connection = WebSocketConnection(ws)
        user_id = connection.cookies.get(cookie_name)
        logger.info(f"[WS] Client connected (connection {connection.connection_id}, "
                    f"userId: {user_id or 'none'})")
        await coordinator.serve(connection, user_id)
        logger.info(f"[WS] Client gone (connection {connection.connection_id})")

    return router
