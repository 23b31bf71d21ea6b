"""
Channel Module for FlashPoint.

Two-party channel negotiation: proposal models, the client-side
negotiator, the server-side coordinator and the signer and ledger
adapters they talk through.
"""

from .models import (
    NegotiationState, Resolution, ChannelDefinition, Allocation,
    ChannelProposal, NegotiationOutcome
)
from .signer import Signer, LocalAccountSigner
from .ledger_client import LedgerClient
from .negotiator import ChannelNegotiator
from .coordinator import ChannelCoordinator

__all__ = [
    # Data models
    'NegotiationState',
    'Resolution',
    'ChannelDefinition',
    'Allocation',
    'ChannelProposal',
    'NegotiationOutcome',

    # Adapters
    'Signer',
    'LocalAccountSigner',
    'LedgerClient',

    # Managers
    'ChannelNegotiator',
    'ChannelCoordinator'
]
