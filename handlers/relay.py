"""
Socket.IO relay for FlashPoint.

Delivers server events to participants by participant id. The session
directory, the synchronizers and the channel coordinator only ever see
``send``; this adapter resolves the participant's current socket.
"""

import logging
from typing import Any, Dict

logger = logging.getLogger(__name__)

NAMESPACE = '/'


class SocketIORelay:
    """Relay over Flask-SocketIO, addressing sockets tracked by a ConnectionManager."""

    def __init__(self, socketio, connection_manager):
        self.socketio = socketio
        self.connections = connection_manager

    def send(self, participant_id: str, event: str, payload: Dict[str, Any]) -> bool:
        """
        Emit an event to one participant.

        Returns:
            False if the participant has no live socket
        """
        sid = self.connections.get_sid(participant_id)
        if sid is None:
            logger.debug(f"Dropping {event} for disconnected participant {participant_id}")
            return False
        self.socketio.emit(event, payload, to=sid, namespace=NAMESPACE)
        return True
