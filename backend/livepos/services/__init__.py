# Services module

from livepos.services.state_store import StateStore
from livepos.services.dispatcher import Dispatcher
from livepos.services.websocket_service import ConnectionManager, WebSocketMessage

__all__ = [
    "StateStore",
    "Dispatcher",
    "ConnectionManager",
    "WebSocketMessage",
]
