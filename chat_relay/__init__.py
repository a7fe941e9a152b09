"""chat-relay — real-time chat broadcast relay."""

from chat_relay.errors import (
    RelayError, DuplicateSessionError, SendFailure, LedgerFailure, TransportTeardownFailure,
)
from chat_relay.connection import Connection, ConnectionState, WebSocketConnection
from chat_relay.registry import SessionEntry, SessionRegistry, SessionState
from chat_relay.broadcast import BroadcastEngine
from chat_relay.lifecycle import LifecycleCoordinator
from chat_relay.events import ClientMessage, ServerMessage, ErrorMessage
from chat_relay.config import RelayConfig

__all__ = [
    "RelayError",
    "DuplicateSessionError",
    "SendFailure",
    "LedgerFailure",
    "TransportTeardownFailure",
    "Connection",
    "ConnectionState",
    "WebSocketConnection",
    "SessionEntry",
    "SessionRegistry",
    "SessionState",
    "BroadcastEngine",
    "LifecycleCoordinator",
    "ClientMessage",
    "ServerMessage",
    "ErrorMessage",
    "RelayConfig",
    "create_app",
]


def __getattr__(name: str):
    if name == "create_app":
        from chat_relay.standalone import create_app
        return create_app
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
