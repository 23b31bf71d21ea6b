"""
Settlement Module for FlashPoint.

Pure, stateless payout calculation for finished sessions.
"""

from .models import SettlementResult
from .calculator import settle, select_tier

__all__ = [
    'SettlementResult',
    'settle',
    'select_tier'
]
