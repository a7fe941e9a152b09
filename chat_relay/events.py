"""Wire events exchanged over the chat socket.

ClientMessage — ``{"type": "client-message", "payload": str}`` sent by a peer
ServerMessage — ``{"type": "server-message", "payload": str}`` broadcast to all peers
ErrorMessage — protocol error answered to the offending peer only
"""

from typing import Any, Literal

from pydantic import BaseModel, ValidationError

CLIENT_MESSAGE = "client-message"
SERVER_MESSAGE = "server-message"


class ClientMessage(BaseModel):
    """A chat line sent by a connected peer."""
    type: Literal["client-message"] = CLIENT_MESSAGE
    payload: str


class ServerMessage(BaseModel):
    """A chat line delivered to every live connection."""
    type: Literal["server-message"] = SERVER_MESSAGE
    payload: str


class ErrorMessage(BaseModel):
    type: Literal["error"] = "error"
    error_type: str
    message: str


class InvalidEvent(ValueError):
    """Raised when an inbound frame is not a usable client event."""
    def __init__(self, error_type: str, message: str):
        self.error_type = error_type
        super().__init__(message)

    def to_error_message(self) -> ErrorMessage:
        return ErrorMessage(error_type=self.error_type, message=str(self))


def parse_client_event(data: Any) -> ClientMessage:
    """Validate a decoded JSON frame as a ``client-message`` event.

    :param data: The decoded frame.
    :return: The parsed event. The payload is kept verbatim.
    :raises InvalidEvent: If the frame has an unknown type or a malformed payload.
    """
    if not isinstance(data, dict):
        raise InvalidEvent("InvalidEvent", "Event must be a JSON object")
    event_type = data.get("type", "")
    if event_type != CLIENT_MESSAGE:
        raise InvalidEvent("UnknownEvent", f"Unknown event type: {event_type!r}")
    try:
        return ClientMessage.model_validate(data)
    except ValidationError as e:
        raise InvalidEvent("InvalidEvent", f"Malformed {CLIENT_MESSAGE}: {e.error_count()} error(s)")
