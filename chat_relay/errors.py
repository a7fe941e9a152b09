"""Error taxonomy for the relay core.

All of these are recovered locally by the component that observes them;
none of them is allowed to take down the broadcast path.
"""

from typing import Optional


class RelayError(Exception):
    """Base class for relay errors."""


class DuplicateSessionError(RelayError):
    """Raised when a session id is registered twice."""
    def __init__(self, session_id: str):
        self.session_id = session_id
        super().__init__(f"Session {session_id} is already registered")


class SendFailure(RelayError):
    """Raised when a frame could not be delivered to one connection."""
    def __init__(self, connection_id: str, cause: Optional[BaseException] = None):
        self.connection_id = connection_id
        self.cause = cause
        detail = f"{type(cause).__name__}: {cause}" if cause else "connection closed"
        super().__init__(f"Send to connection {connection_id} failed ({detail})")


class LedgerFailure(RelayError):
    """Raised by a visitor ledger backend when a read or write fails."""
    def __init__(self, operation: str, message: str, session_id: Optional[str] = None):
        self.operation = operation
        self.session_id = session_id
        super().__init__(f"Ledger {operation} failed: {message}")


class TransportTeardownFailure(RelayError):
    """Raised when closing a connection or listener fails."""
    def __init__(self, resource: str, cause: Optional[BaseException] = None):
        self.resource = resource
        self.cause = cause
        super().__init__(f"Failed to close {resource}: {cause}")
