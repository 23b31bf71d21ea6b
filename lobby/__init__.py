"""
Lobby Module for FlashPoint.

Contains the lobby queues, the session directory and connection tracking.
"""

from .models import LobbyEntry, LobbyQueue
from .manager import SessionDirectory
from .connection_manager import ConnectionManager

__all__ = [
    # Data models
    'LobbyEntry',
    'LobbyQueue',

    # Managers
    'SessionDirectory',
    'ConnectionManager'
]
