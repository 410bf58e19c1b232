"""Socket.IO server: presence broadcast for the chat client.

Client convention:
- URL base: http://<host>:<PORT> (the API host without `/api`)
- Socket.IO path: default `/socket.io/`
- Identity: `query.userId`

Every connect/disconnect re-broadcasts the full online list as `getOnlineUsers`.
"""

from __future__ import annotations

import logging
from typing import Any
from urllib.parse import parse_qs

import socketio

from serverlib.config import config
from serverlib.realtime.presence import presence

logger = logging.getLogger(__name__)

ONLINE_USERS_EVENT = "getOnlineUsers"

sio = socketio.AsyncServer(
    async_mode="asgi",
    cors_allowed_origins=config.cors_origins,
    logger=False,
    engineio_logger=False,
)


def _extract_user_id(environ: dict[str, Any], auth: Any | None) -> str | None:
    """Extract userId from the Socket.IO environ query string, or `auth: { userId }`.

    Handles python-socketio environ shapes across ASGI/WSGI servers.
    """

    scope: Any = environ
    if isinstance(environ, dict) and "asgi.scope" in environ:
        inner = environ.get("asgi.scope")
        if isinstance(inner, dict):
            scope = inner

    query_string: str | bytes = ""
    if isinstance(scope, dict) and "query_string" in scope:
        query_string = scope.get("query_string", b"")
    elif isinstance(scope, dict) and "QUERY_STRING" in scope:
        query_string = scope.get("QUERY_STRING", "")

    if isinstance(query_string, (bytes, bytearray)):
        query_string = query_string.decode(errors="ignore")

    user_id = parse_qs(str(query_string)).get("userId", [None])[0]
    if isinstance(user_id, str) and user_id:
        return user_id

    if isinstance(auth, dict):
        auth_user_id = auth.get("userId")
        if isinstance(auth_user_id, str) and auth_user_id:
            return auth_user_id

    return None


async def broadcast_online_users() -> None:
    await sio.emit(ONLINE_USERS_EVENT, presence.online_user_ids())


@sio.event
async def connect(sid: str, environ: dict[str, Any], auth: Any | None = None):
    user_id = _extract_user_id(environ, auth)
    if user_id:
        await sio.save_session(sid, {"user_id": user_id})
        if presence.add_connection(user_id=user_id, sid=sid):
            logger.info("User online: %s", user_id)
    else:
        # Anonymous sockets still receive presence updates
        logger.debug("Socket %s connected without userId", sid)

    await broadcast_online_users()


@sio.event
async def disconnect(sid: str, reason: Any = None):
    user_id = presence.remove_connection(sid=sid)
    if user_id:
        logger.info("User offline: %s (reason=%s)", user_id, reason)
    await broadcast_online_users()
