"""
Channel Coordinator for FlashPoint.

Server side of the channel handshake. The server never signs anything:
it checks who may send which message, relays proposal and signature to
the right peer, records the resolved identifier and, when a proposer goes
quiet, issues a placeholder itself so neither participant waits forever.
"""

import logging
import time
from typing import Any, Callable, Dict, List, Optional

from config.settings import NEGOTIATION_DEADLINE_SECONDS
from game.models import Session, SessionStatus
from utils.constants import EVENTS
from utils.errors import PeerUnavailable, ProtocolViolation
from utils.helpers import generate_placeholder_channel_id, validate_identifier
from .models import ChannelProposal

logger = logging.getLogger(__name__)

NEGOTIABLE_STATUSES = (SessionStatus.STARTING, SessionStatus.NEGOTIATING)


class ChannelCoordinator:
    """Validates and relays negotiation messages between the two participants."""

    def __init__(self, directory, relay,
                 negotiation_deadline: float = NEGOTIATION_DEADLINE_SECONDS,
                 clock: Callable[[], float] = time.time):
        """
        Args:
            directory: SessionDirectory holding the sessions
            relay: Object with ``send(participant_id, event, payload)``
            negotiation_deadline: Seconds after pairing before the server
                resolves the channel with a placeholder
            clock: Time source
        """
        self.directory = directory
        self.relay = relay
        self.negotiation_deadline = negotiation_deadline
        self.clock = clock

    def _negotiating_session(self, participant_id: str, session_id: Optional[str]) -> Session:
        session = self.directory.session_for(participant_id)
        if session is None or (session_id and session.session_id != session_id):
            raise ProtocolViolation("Session not found")
        if session.status not in NEGOTIABLE_STATUSES:
            raise ProtocolViolation(f"Session is {session.status.value}, not negotiating")
        return session

    def forward_proposal(self, participant_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
        """
        Relay the proposer's signed terms to the counterparty.

        Raises:
            ProtocolViolation: If the sender isn't the proposer or the
            terms don't name this session's participants
        """
        session = self._negotiating_session(participant_id, data.get('session_id'))
        if participant_id != session.proposer_id:
            raise ProtocolViolation("Only player 1 proposes the channel")

        proposal = ChannelProposal.from_wire(data.get('proposal'))
        if (proposal.proposer_id, proposal.counterparty_id) != session.participant_ids:
            raise ProtocolViolation("Proposal participants don't match the session")
        if not proposal.signatures:
            raise ProtocolViolation("Proposal is not signed by the proposer")

        self.directory.mark_negotiating(session.session_id)

        payload = {
            'session_id': session.session_id,
            'proposal': proposal.to_wire(),
            'signer_address': data.get('signer_address'),
            'from_player': 1
        }
        if not self.relay.send(session.other(participant_id).participant_id, EVENTS['CHANNEL_PROPOSAL'], payload):
            raise PeerUnavailable("Partner is not connected")
        logger.info(f"Relayed channel proposal for session {session.session_id}")
        return payload

    def forward_signature(self, participant_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
        """Relay the counterparty's signature back to the proposer."""
        session = self._negotiating_session(participant_id, data.get('session_id'))
        if participant_id == session.proposer_id:
            raise ProtocolViolation("Only player 2 countersigns")
        signature = data.get('signature')
        if not validate_identifier(signature, max_length=1024):
            raise ProtocolViolation("signature is required")

        payload = {
            'session_id': session.session_id,
            'signature': signature,
            'signer_address': data.get('signer_address'),
            'from_player': 2
        }
        if not self.relay.send(session.proposer_id, EVENTS['CHANNEL_SIGNATURE'], payload):
            raise PeerUnavailable("Partner is not connected")
        logger.info(f"Relayed channel signature for session {session.session_id}")
        return payload

    def resolve(self, participant_id: str, data: Dict[str, Any]) -> bool:
        """
        Record the proposer's resolved identifier and announce it to both.

        If the session already has a channel (the server resolved it first),
        the recorded identifier is sent back to the proposer instead so both
        sides converge.

        Returns:
            True if this identifier was recorded
        """
        session = self.directory.session_for(participant_id)
        if session is None or (data.get('session_id') and session.session_id != data.get('session_id')):
            raise ProtocolViolation("Session not found")
        if participant_id != session.proposer_id:
            raise ProtocolViolation("Only player 1 resolves the channel")

        recorded, message, session = self.directory.record_channel(
            session.session_id, participant_id, data.get('channel_id')
        )
        if recorded:
            self._announce(session, data.get('reason'))
            return True

        if session is not None and session.channel_id:
            logger.warning(f"Session {session.session_id}: {message}, re-sending {session.channel_id}")
            self.relay.send(participant_id, EVENTS['CHANNEL_RESOLVED'], self._resolved_payload(session))
            return False
        raise ProtocolViolation(message)

    def expire_negotiations(self) -> List[str]:
        """
        Resolve every session stuck in negotiation past the deadline.

        Returns:
            Ids of the sessions resolved with a server-issued placeholder
        """
        now = self.clock()
        with self.directory.lock:
            overdue = [
                s for s in self.directory.sessions.values()
                if s.status in NEGOTIABLE_STATUSES and s.channel_id is None
                and now - s.created_at >= self.negotiation_deadline
            ]

        expired = []
        for session in overdue:
            recorded, _, session = self.directory.record_channel(
                session.session_id, None, generate_placeholder_channel_id(session.session_id)
            )
            if recorded:
                logger.warning(f"Negotiation deadline passed for session {session.session_id}, "
                               f"issued {session.channel_id}")
                self._announce(session, 'negotiation deadline')
                expired.append(session.session_id)
        return expired

    def _resolved_payload(self, session: Session, reason: Optional[str] = None) -> Dict[str, Any]:
        return {
            'session_id': session.session_id,
            'channel_id': session.channel_id,
            'channel_mode': session.channel_mode,
            'base_stake': session.base_stake,
            'reason': reason
        }

    def _announce(self, session: Session, reason: Optional[str] = None) -> None:
        payload = self._resolved_payload(session, reason)
        for participant_id in session.participant_ids:
            self.relay.send(participant_id, EVENTS['CHANNEL_RESOLVED'], payload)
