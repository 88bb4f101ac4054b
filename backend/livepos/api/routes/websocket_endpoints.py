"""
WebSocket endpoint for live state sync.

Auth (checked in order):
  1. Cookie auth: ``access_token`` cookie sent during the WS handshake.
  2. Query-string auth: token passed as ``?token=...``.
  3. First-message auth: client sends ``{"event":"auth","token":"..."}`` as
     the first message after connecting.

After auth the client receives one full ``state:snapshot`` and then every
snapshot broadcast. Commands are sent as ``{"event", "data", "ref"}`` and
answered with an ``event: "reply"`` message carrying the same ``ref``.
"""
from fastapi import APIRouter, WebSocket, WebSocketDisconnect, Query
from typing import Optional
import asyncio
import json
import logging

from livepos.core.rbac import Caller, caller_from_claims
from livepos.core.security import COOKIE_ACCESS_NAME, decode_access_token
from livepos.services.dispatcher import SNAPSHOT_EVENT
from livepos.services.websocket_service import WebSocketMessage

logger = logging.getLogger(__name__)

router = APIRouter()

AUTH_FAILED_CODE = 4001
REPLY_EVENT = "reply"


def validate_ws_token(token: Optional[str]) -> Optional[Caller]:
    """Validate a WebSocket JWT and return the caller it identifies."""
    if not token:
        return None
    return caller_from_claims(decode_access_token(token))


async def _reject(websocket: WebSocket, reason: str) -> None:
    try:
        await websocket.close(code=AUTH_FAILED_CODE, reason=reason)
    except Exception as e:
        logger.debug(f"WebSocket close failed: {e}")


async def _accept_caller(websocket: WebSocket, caller: Caller) -> Caller:
    await websocket.send_json({
        "event": "auth_success",
        "data": {"role": caller.role.value, "id": caller.subject, "username": caller.username},
    })
    return caller


async def authenticate_ws(
    websocket: WebSocket,
    query_token: Optional[str] = None,
    timeout: float = 5.0,
) -> Optional[Caller]:
    """Accept the WebSocket and authenticate it.

    Returns the Caller on success, or None after closing the connection
    with code 4001.
    """
    await websocket.accept()

    cookie_token = websocket.cookies.get(COOKIE_ACCESS_NAME)
    if cookie_token:
        caller = validate_ws_token(cookie_token)
        if caller:
            return await _accept_caller(websocket, caller)
        # Cookie present but invalid: fall through to other methods

    if query_token:
        caller = validate_ws_token(query_token)
        if caller:
            return await _accept_caller(websocket, caller)
        await _reject(websocket, "Invalid token")
        return None

    if cookie_token:
        await _reject(websocket, "Invalid cookie token")
        return None

    try:
        raw = await asyncio.wait_for(websocket.receive_text(), timeout=timeout)
        message = json.loads(raw)
    except asyncio.TimeoutError:
        await _reject(websocket, "Authentication timeout")
        return None
    except (json.JSONDecodeError, WebSocketDisconnect):
        await _reject(websocket, "Invalid auth message")
        return None

    if not isinstance(message, dict) or message.get("event") != "auth" or not message.get("token"):
        await _reject(websocket, "First message must be {\"event\":\"auth\",\"token\":\"...\"}")
        return None

    caller = validate_ws_token(message["token"])
    if not caller:
        await _reject(websocket, "Invalid token")
        return None
    return await _accept_caller(websocket, caller)


@router.websocket("/ws")
async def live_state_websocket(
    websocket: WebSocket,
    token: Optional[str] = Query(None, description="Auth token (prefer cookie or first-message auth)"),
):
    """Main WebSocket endpoint: snapshot push plus command channel."""
    app_state = websocket.app.state
    manager = app_state.connections
    dispatcher = app_state.dispatcher

    caller = await authenticate_ws(websocket, query_token=token, timeout=app_state.settings.ws_auth_timeout)
    if not caller:
        return

    manager.register(websocket, caller)
    manager.send_personal(websocket, WebSocketMessage(event=SNAPSHOT_EVENT, data=dispatcher.snapshot()))

    try:
        while True:
            raw = await websocket.receive_text()

            try:
                message = json.loads(raw)
            except json.JSONDecodeError:
                manager.send_personal(websocket, WebSocketMessage(
                    event="error",
                    data={"ok": False, "error": "Invalid JSON"},
                ))
                continue

            if not isinstance(message, dict):
                manager.send_personal(websocket, WebSocketMessage(
                    event="error",
                    data={"ok": False, "error": "Message must be an object"},
                ))
                continue

            event = message.get("event")
            ref = message.get("ref")

            if event == "ping":
                manager.send_personal(websocket, WebSocketMessage(
                    event="pong",
                    data={"timestamp": message.get("timestamp")},
                    ref=ref,
                ))
                continue

            if not isinstance(event, str) or not event:
                reply = {"ok": False, "error": "event is required"}
            else:
                reply = dispatcher.dispatch(event, message.get("data"), caller)
            manager.send_personal(websocket, WebSocketMessage(event=REPLY_EVENT, data=reply, ref=ref))

    except WebSocketDisconnect:
        pass
    except Exception as e:
        logger.error(f"WebSocket error for {caller.display_name}: {e}")
    finally:
        await manager.unregister(websocket)
