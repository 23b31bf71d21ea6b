"""
Utilities module for FlashPoint.

This module contains constants, helper functions and the error
taxonomy used throughout the application.
"""

from .constants import CHANNEL_MODES, EVENTS
from .helpers import (
    generate_session_id, generate_placeholder_channel_id,
    is_placeholder_channel_id, validate_identifier
)
from .errors import (
    FlashPointError, ProtocolViolation, PeerUnavailable,
    ExternalServiceFailure, ArithmeticInvariantViolation
)

__all__ = [
    'CHANNEL_MODES',
    'EVENTS',
    'generate_session_id',
    'generate_placeholder_channel_id',
    'is_placeholder_channel_id',
    'validate_identifier',
    'FlashPointError',
    'ProtocolViolation',
    'PeerUnavailable',
    'ExternalServiceFailure',
    'ArithmeticInvariantViolation'
]
