"""
Connection Manager for FlashPoint.

Maps Socket.IO connections to participant ids so the relay can reach a
participant and a disconnect can be traced back to one.
Contains no lobby or game logic - purely connection tracking.
"""

import logging
import threading
from typing import Dict, Optional, Tuple

logger = logging.getLogger(__name__)


class ConnectionManager:
    """
    Tracks which socket belongs to which participant.

    A participant reconnecting from a new socket replaces its old mapping;
    the stale socket's later disconnect is then ignored.
    """

    def __init__(self):
        self.sid_to_participant: Dict[str, str] = {}  # socket_id -> participant_id
        self.participant_to_sid: Dict[str, str] = {}  # participant_id -> socket_id
        self._lock = threading.Lock()
        logger.debug("Connection manager initialized")

    def register_connection(self, socket_id: str, participant_id: str) -> Tuple[bool, str]:
        """
        Associate a socket with a participant.

        Args:
            socket_id: Unique socket connection ID
            participant_id: Participant (wallet address) using the socket

        Returns:
            Tuple of (success, message)
        """
        with self._lock:
            current = self.sid_to_participant.get(socket_id)
            if current and current != participant_id:
                return False, f"Socket already registered as {current}"

            previous_sid = self.participant_to_sid.get(participant_id)
            if previous_sid and previous_sid != socket_id:
                self.sid_to_participant.pop(previous_sid, None)
                logger.info(f"Participant {participant_id} moved from {previous_sid} to {socket_id}")

            self.sid_to_participant[socket_id] = participant_id
            self.participant_to_sid[participant_id] = socket_id

        logger.debug(f"Registered connection: {participant_id} ({socket_id})")
        return True, f"Connected as {participant_id}"

    def unregister_connection(self, socket_id: str) -> Optional[str]:
        """
        Forget a socket.

        Returns:
            The participant id if this socket was still their active one
        """
        with self._lock:
            participant_id = self.sid_to_participant.pop(socket_id, None)
            if participant_id is None:
                return None
            if self.participant_to_sid.get(participant_id) != socket_id:
                return None
            del self.participant_to_sid[participant_id]

        logger.info(f"Unregistered connection: {participant_id} ({socket_id})")
        return participant_id

    def get_sid(self, participant_id: str) -> Optional[str]:
        return self.participant_to_sid.get(participant_id)

    def get_participant(self, socket_id: str) -> Optional[str]:
        return self.sid_to_participant.get(socket_id)

    def get_connection_count(self) -> int:
        return len(self.participant_to_sid)
