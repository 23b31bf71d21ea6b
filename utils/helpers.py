"""
Helper utilities for FlashPoint.

Identifier generation and small validation helpers used by the
directory, the synchronizer and the channel negotiator.
"""

import math
import secrets
import uuid
from typing import Any, Optional

from .constants import PLACEHOLDER_PREFIX


def generate_session_id() -> str:
    """Generate a unique session identifier."""
    return uuid.uuid4().hex


def generate_placeholder_channel_id(session_id: Optional[str] = None) -> str:
    """
    Fabricate a locally unique channel identifier for simulated mode.

    Args:
        session_id: Session the placeholder backs, embedded for traceability

    Returns:
        Identifier starting with the placeholder prefix
    """
    suffix = secrets.token_hex(8)
    if session_id:
        return f"{PLACEHOLDER_PREFIX}{session_id[:12]}_{suffix}"
    return f"{PLACEHOLDER_PREFIX}{suffix}"


def is_placeholder_channel_id(channel_id: Optional[str]) -> bool:
    """Check whether a channel identifier is a simulated-mode placeholder."""
    return bool(channel_id) and channel_id.startswith(PLACEHOLDER_PREFIX)


def validate_identifier(value: Any, max_length: int = 128) -> bool:
    """
    Validate an identifier received from a client.

    Args:
        value: Value to check
        max_length: Maximum accepted length

    Returns:
        True if the value is a non-empty string of acceptable length
    """
    if not isinstance(value, str):
        return False
    value = value.strip()
    return 0 < len(value) <= max_length


def is_number(value: Any) -> bool:
    """Check for a finite int or float, rejecting booleans."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return math.isfinite(value)
