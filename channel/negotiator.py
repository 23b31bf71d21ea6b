"""
Channel Negotiator for FlashPoint.

Client-side state machine that opens the two-party channel backing a
session's stake:

    IDLE -> PROPOSAL_SENT -> AWAITING_LEDGER -> RESOLVED (REAL | FALLBACK)

Player 1 proposes and submits; player 2 only countersigns. Every failure
path (peer silent, ledger down, signer error) resolves to a placeholder
identifier that the proposer broadcasts, so both participants always end
in the same mode.
"""

import logging
import threading
import time
from typing import Any, Callable, Dict, Optional

from config.settings import CHANNEL_ASSET, SIGNATURE_TIMEOUT_SECONDS
from utils.constants import EVENTS
from utils.errors import ExternalServiceFailure, ProtocolViolation
from utils.helpers import generate_placeholder_channel_id, is_placeholder_channel_id, validate_identifier
from .models import ChannelProposal, NegotiationOutcome, NegotiationState, Resolution

logger = logging.getLogger(__name__)


class ChannelNegotiator:
    """
    One participant's side of the channel handshake.

    Messages leave through ``send(event, payload)``; the server relays
    them to the peer. The clock is injected so timeouts can be driven
    deterministically.
    """

    def __init__(self, session_id: str, participant_id: str, peer_id: str,
                 is_proposer: bool, stake: int, signer, ledger,
                 send: Callable[[str, Dict[str, Any]], None],
                 signature_timeout: float = SIGNATURE_TIMEOUT_SECONDS,
                 asset: str = CHANNEL_ASSET,
                 clock: Callable[[], float] = time.time):
        """
        Initialize the negotiator.

        Args:
            session_id: Session the channel backs
            participant_id: This participant's id
            peer_id: Counterparty id
            is_proposer: True for player 1
            stake: Amount each participant locks
            signer: Signer adapter (see channel.signer)
            ledger: Ledger client (see channel.ledger_client); unused by the responder
            send: Outbound message callable
            signature_timeout: Seconds the proposer waits for the countersignature
            asset: Asset the stake is denominated in
            clock: Time source
        """
        self.session_id = session_id
        self.participant_id = participant_id
        self.peer_id = peer_id
        self.is_proposer = is_proposer
        self.stake = stake
        self.signer = signer
        self.ledger = ledger
        self.send = send
        self.signature_timeout = signature_timeout
        self.asset = asset
        self.clock = clock

        self.state = NegotiationState.IDLE
        self.proposal: Optional[ChannelProposal] = None
        self.outcome: Optional[NegotiationOutcome] = None
        self.proposal_sent_at: Optional[float] = None
        self._lock = threading.Lock()

    @property
    def is_resolved(self) -> bool:
        return self.state == NegotiationState.RESOLVED

    @property
    def channel_id(self) -> Optional[str]:
        return self.outcome.channel_id if self.outcome else None

    @property
    def channel_mode(self) -> Optional[str]:
        return self.outcome.channel_mode if self.outcome else None

    # ---- Proposer ----

    def start(self) -> Optional[NegotiationOutcome]:
        """
        Propose the channel (player 1 only).

        Returns:
            The outcome if negotiation resolved immediately to a fallback,
            otherwise None while waiting for the countersignature
        """
        if not self.is_proposer:
            raise ProtocolViolation("Only the proposer starts negotiation")

        with self._lock:
            if self.state != NegotiationState.IDLE:
                return self.outcome

            if not self.signer.is_available() or not self.ledger.is_available():
                logger.warning(f"Channel services unavailable for session {self.session_id}, simulating")
                outcome = self._fallback("channel services unavailable")
            else:
                proposal = ChannelProposal.build(
                    self.participant_id, self.peer_id, self.stake,
                    nonce=int(self.clock() * 1000), asset=self.asset
                )
                try:
                    proposal.add_signature(self.signer.sign(proposal.canonical_payload()))
                except ExternalServiceFailure as e:
                    logger.warning(f"Could not sign proposal for session {self.session_id}: {e}")
                    outcome = self._fallback("signer error")
                else:
                    self.proposal = proposal
                    self.state = NegotiationState.PROPOSAL_SENT
                    self.proposal_sent_at = self.clock()
                    outcome = None

        if outcome is not None:
            self._announce(outcome)
            return outcome

        logger.info(f"Proposing channel for session {self.session_id}")
        self.send(EVENTS['CHANNEL_PROPOSAL'], {
            'session_id': self.session_id,
            'proposal': self.proposal.to_wire(),
            'signer_address': self.signer.address
        })
        return None

    def on_peer_signature(self, signature: str, signer_address: Optional[str] = None) -> Optional[NegotiationOutcome]:
        """
        Take the responder's countersignature and open the channel.

        A signature arriving after the negotiation resolved is ignored.
        """
        with self._lock:
            if self.state != NegotiationState.PROPOSAL_SENT:
                logger.info(f"Ignoring signature for session {self.session_id} in state {self.state.value}")
                return None

            payload = self.proposal.canonical_payload()
            if not signer_address or not self.signer.verify(payload, signature, signer_address):
                logger.warning(f"Countersignature for session {self.session_id} failed verification")
                outcome = self._fallback("invalid countersignature")
            else:
                try:
                    self.proposal.add_signature(signature)
                except ProtocolViolation as e:
                    logger.warning(f"Rejected countersignature: {e}")
                    outcome = self._fallback("invalid countersignature")
                else:
                    self.state = NegotiationState.AWAITING_LEDGER
                    outcome = None

        if outcome is None:
            # The ledger call happens outside the lock; only this path leaves AWAITING_LEDGER
            try:
                channel_id = self.ledger.submit_channel(self.proposal)
            except ExternalServiceFailure as e:
                logger.warning(f"Ledger submission failed for session {self.session_id}: {e}")
                with self._lock:
                    outcome = self._fallback("ledger failure")
            else:
                with self._lock:
                    outcome = self._resolve(channel_id, Resolution.REAL)
                logger.info(f"Channel {channel_id} opened for session {self.session_id}")

        self._announce(outcome)
        return outcome

    def check_timeout(self) -> Optional[NegotiationOutcome]:
        """Fall back if the countersignature hasn't arrived in time."""
        with self._lock:
            if self.state != NegotiationState.PROPOSAL_SENT:
                return None
            if self.clock() - self.proposal_sent_at < self.signature_timeout:
                return None
            logger.warning(f"No countersignature for session {self.session_id} "
                           f"after {self.signature_timeout}s, simulating")
            outcome = self._fallback("signature timeout")

        self._announce(outcome)
        return outcome

    def _fallback(self, reason: str) -> NegotiationOutcome:
        """Resolve to a placeholder. Caller holds the lock."""
        return self._resolve(generate_placeholder_channel_id(self.session_id), Resolution.FALLBACK, reason)

    def _resolve(self, channel_id: str, resolution: Resolution,
                 reason: Optional[str] = None) -> NegotiationOutcome:
        self.state = NegotiationState.RESOLVED
        self.outcome = NegotiationOutcome(channel_id, resolution, reason)
        return self.outcome

    def _announce(self, outcome: NegotiationOutcome) -> None:
        self.send(EVENTS['CHANNEL_RESOLVED'], {
            'session_id': self.session_id,
            'channel_id': outcome.channel_id,
            'channel_mode': outcome.channel_mode,
            'reason': outcome.reason
        })

    # ---- Responder ----

    def on_proposal(self, payload: Dict[str, Any]) -> Optional[str]:
        """
        Countersign the proposer's terms (player 2 only).

        Signs the canonical payload of exactly the terms received and sends
        back only the signature. If signing isn't possible nothing is sent
        and the proposer's fallback applies.

        Returns:
            The signature sent, or None
        """
        if self.is_proposer:
            raise ProtocolViolation("Proposer received a channel proposal")

        proposal = ChannelProposal.from_wire(payload.get('proposal') if isinstance(payload, dict) else None)
        if proposal.proposer_id != self.peer_id or proposal.counterparty_id != self.participant_id:
            raise ProtocolViolation("Proposal names the wrong participants")
        if proposal.allocation_for(self.participant_id) is None:
            raise ProtocolViolation("Proposal has no allocation for this participant")

        with self._lock:
            if self.state != NegotiationState.IDLE:
                logger.info(f"Ignoring repeated proposal for session {self.session_id}")
                return None
            if not self.signer.is_available():
                logger.warning(f"Signer unavailable, not countersigning session {self.session_id}")
                return None
            try:
                signature = self.signer.sign(proposal.canonical_payload())
            except ExternalServiceFailure as e:
                logger.warning(f"Could not countersign session {self.session_id}: {e}")
                return None
            self.proposal = proposal
            self.state = NegotiationState.AWAITING_LEDGER

        self.send(EVENTS['CHANNEL_SIGNATURE'], {
            'session_id': self.session_id,
            'signature': signature,
            'signer_address': self.signer.address
        })
        return signature

    # ---- Both ----

    def on_resolved(self, channel_id: str) -> NegotiationOutcome:
        """
        Adopt the identifier the server relayed.

        The server's announcement is authoritative, even over a local
        resolution, since it has already been recorded for the session.
        """
        if not validate_identifier(channel_id):
            raise ProtocolViolation("Resolved channel id is missing")

        with self._lock:
            if self.outcome and self.outcome.channel_id == channel_id:
                return self.outcome
            if self.outcome:
                logger.warning(f"Session {self.session_id} channel overridden: "
                               f"{self.outcome.channel_id} -> {channel_id}")
            if is_placeholder_channel_id(channel_id):
                outcome = self._resolve(channel_id, Resolution.FALLBACK, "resolved by peer")
            else:
                outcome = self._resolve(channel_id, Resolution.REAL)

        logger.info(f"Session {self.session_id} proceeding in {outcome.channel_mode} mode ({channel_id})")
        return outcome
