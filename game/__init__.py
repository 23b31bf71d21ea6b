"""
Game Module for FlashPoint.

Contains session models and the turn synchronizer that governs play
once a session's channel is resolved.
"""

from .models import (
    SessionStatus, TurnPhase, ObjectPose, SharedState, Participant, Session
)
from .turn_manager import TurnSynchronizer

__all__ = [
    # Data models
    'SessionStatus',
    'TurnPhase',
    'ObjectPose',
    'SharedState',
    'Participant',
    'Session',

    # Managers
    'TurnSynchronizer'
]
