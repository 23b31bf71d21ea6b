"""
Player Client Module for FlashPoint.

Socket.IO client that plays one participant's side of a session.
"""

from .client import PlayerClient
from .physics import PhysicsAdapter, RecordingPhysics

__all__ = [
    'PlayerClient',
    'PhysicsAdapter',
    'RecordingPhysics'
]
