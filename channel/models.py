"""
Data models for channel negotiation.

A ChannelProposal carries the channel terms both participants co-sign.
Terms are frozen at creation; only the signature list grows, so every
signer is guaranteed to sign byte-identical terms.
"""

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from config.settings import CHANNEL_ASSET
from utils.constants import (
    CHANNEL_PROTOCOL, CHANNEL_APPLICATION, CHANNEL_WEIGHTS,
    CHANNEL_QUORUM, CHANNEL_CHALLENGE, CHANNEL_MODES
)
from utils.errors import ProtocolViolation
from utils.helpers import validate_identifier


class NegotiationState(Enum):
    """Handshake progress."""
    IDLE = "idle"
    PROPOSAL_SENT = "proposal_sent"
    AWAITING_LEDGER = "awaiting_ledger"
    RESOLVED = "resolved"


class Resolution(Enum):
    """How a negotiation ended."""
    REAL = "real"
    FALLBACK = "fallback"


@dataclass(frozen=True)
class ChannelDefinition:
    """Channel parameters: signatories, voting weights, quorum, freshness nonce."""
    participants: Tuple[str, ...]
    nonce: int
    protocol: str = CHANNEL_PROTOCOL
    application: str = CHANNEL_APPLICATION
    weights: Tuple[int, ...] = CHANNEL_WEIGHTS
    quorum: int = CHANNEL_QUORUM
    challenge: int = CHANNEL_CHALLENGE

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            'protocol': self.protocol,
            'application': self.application,
            'participants': list(self.participants),
            'weights': list(self.weights),
            'quorum': self.quorum,
            'challenge': self.challenge,
            'nonce': self.nonce
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ChannelDefinition':
        try:
            definition = cls(
                participants=tuple(data['participants']),
                nonce=int(data['nonce']),
                protocol=str(data['protocol']),
                application=str(data.get('application', CHANNEL_APPLICATION)),
                weights=tuple(int(w) for w in data['weights']),
                quorum=int(data['quorum']),
                challenge=int(data.get('challenge', CHANNEL_CHALLENGE))
            )
        except (KeyError, TypeError, ValueError) as e:
            raise ProtocolViolation(f"Malformed channel definition: {e}") from e
        if len(definition.participants) != len(definition.weights):
            raise ProtocolViolation("Channel definition weights don't match participants")
        if not all(validate_identifier(p) for p in definition.participants):
            raise ProtocolViolation("Channel definition has an invalid participant")
        return definition


@dataclass(frozen=True)
class Allocation:
    """Amount of one asset locked by one participant."""
    participant: str
    asset: str
    amount: int

    def to_dict(self) -> Dict[str, Any]:
        # Amounts travel as strings so large values survive JSON clients
        return {
            'participant': self.participant,
            'asset': self.asset,
            'amount': str(self.amount)
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Allocation':
        try:
            amount = int(str(data['amount']))
            allocation = cls(participant=str(data['participant']), asset=str(data['asset']), amount=amount)
        except (KeyError, TypeError, ValueError) as e:
            raise ProtocolViolation(f"Malformed allocation: {e}") from e
        if allocation.amount < 0:
            raise ProtocolViolation("Allocation amount must not be negative")
        return allocation


@dataclass
class ChannelProposal:
    """Channel terms plus the signatures collected so far."""
    proposer_id: str
    counterparty_id: str
    definition: ChannelDefinition
    allocations: Tuple[Allocation, ...]
    signatures: List[str] = field(default_factory=list)

    @classmethod
    def build(cls, proposer_id: str, counterparty_id: str, stake: int, nonce: int,
              asset: str = CHANNEL_ASSET) -> 'ChannelProposal':
        """
        Create the standard two-party proposal.

        Both participants are equal-weight signatories, quorum requires
        both, and each locks the same stake.
        """
        return cls(
            proposer_id=proposer_id,
            counterparty_id=counterparty_id,
            definition=ChannelDefinition(participants=(proposer_id, counterparty_id), nonce=nonce),
            allocations=(
                Allocation(proposer_id, asset, stake),
                Allocation(counterparty_id, asset, stake)
            )
        )

    def canonical_payload(self) -> bytes:
        """The exact bytes every participant signs."""
        terms = {
            'definition': self.definition.to_dict(),
            'allocations': [a.to_dict() for a in self.allocations]
        }
        return json.dumps(terms, sort_keys=True, separators=(',', ':')).encode('utf-8')

    def add_signature(self, signature: str) -> None:
        if not signature or not isinstance(signature, str):
            raise ProtocolViolation("Signature must be a non-empty string")
        if self.has_quorum:
            raise ProtocolViolation("Proposal already has quorum")
        self.signatures.append(signature)

    @property
    def signed_weight(self) -> int:
        """Voting weight of the signatures collected, in participant order."""
        return sum(self.definition.weights[:len(self.signatures)])

    @property
    def has_quorum(self) -> bool:
        return self.signed_weight >= self.definition.quorum

    def allocation_for(self, participant_id: str) -> Optional[Allocation]:
        for allocation in self.allocations:
            if allocation.participant == participant_id:
                return allocation
        return None

    def to_wire(self) -> Dict[str, Any]:
        """Serialize for the relay and the ledger service."""
        return {
            'definition': self.definition.to_dict(),
            'allocations': [a.to_dict() for a in self.allocations],
            'signatures': list(self.signatures)
        }

    @classmethod
    def from_wire(cls, data: Dict[str, Any]) -> 'ChannelProposal':
        """
        Parse a proposal received from the proposer.

        Raises:
            ProtocolViolation: If the payload is malformed
        """
        if not isinstance(data, dict):
            raise ProtocolViolation("Proposal must be an object")
        definition = ChannelDefinition.from_dict(data.get('definition') or {})
        if len(definition.participants) != 2:
            raise ProtocolViolation("Proposal must name exactly two participants")
        allocations = data.get('allocations')
        if not isinstance(allocations, list) or not allocations:
            raise ProtocolViolation("Proposal has no allocations")
        signatures = data.get('signatures') or []
        if not isinstance(signatures, list) or not all(isinstance(s, str) for s in signatures):
            raise ProtocolViolation("Proposal signatures must be strings")
        return cls(
            proposer_id=definition.participants[0],
            counterparty_id=definition.participants[1],
            definition=definition,
            allocations=tuple(Allocation.from_dict(a) for a in allocations),
            signatures=list(signatures)
        )


@dataclass(frozen=True)
class NegotiationOutcome:
    """Identifier both participants proceed under."""
    channel_id: str
    resolution: Resolution
    reason: Optional[str] = None

    @property
    def channel_mode(self) -> str:
        return CHANNEL_MODES['REAL'] if self.resolution == Resolution.REAL else CHANNEL_MODES['SIMULATED']

    def to_dict(self) -> Dict[str, Any]:
        return {
            'channel_id': self.channel_id,
            'resolution': self.resolution.value,
            'channel_mode': self.channel_mode,
            'reason': self.reason
        }
