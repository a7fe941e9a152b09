"""Broadcast engine: fans one message out to a snapshot of live connections."""

import logging
from typing import Optional

from chat_relay.errors import SendFailure
from chat_relay.events import ServerMessage
from chat_relay.registry import SessionRegistry

logger = logging.getLogger(__name__)


class BroadcastEngine:
    """Delivers server-message events to every registered connection, sender included.

    A broadcast only queues the frame on each connection in the snapshot and
    never waits for a peer. Each connection writes its queue in order, so
    messages from one session reach every peer in the order they were sent.
    """

    def __init__(self, registry: SessionRegistry):
        self.registry = registry

    def broadcast(self, message: str, origin_session_id: Optional[str] = None) -> int:
        """Queue ``message`` for all live connections.

        :param message: The chat payload, forwarded verbatim.
        :param origin_session_id: Session the message came from; used for logging only.
        :return: Number of connections the message was queued for.
        """
        targets = self.registry.snapshot()
        if not targets:
            return 0
        frame = ServerMessage(payload=message).model_dump()
        queued = 0
        for session_id, connection in targets:
            try:
                connection.enqueue_json(frame)
                queued += 1
            except SendFailure as e:
                logger.warning(f"[BROADCAST] Skipping session {session_id}: {e}")
        logger.debug(f"[BROADCAST] Message from {origin_session_id or 'server'} "
                     f"queued for {queued}/{len(targets)} connections")
        return queued
