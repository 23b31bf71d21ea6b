"""
Session Directory for FlashPoint.

Maintains per-mode waiting queues, pairs waiting participants into
sessions and owns session lifecycle and cleanup. All state is
process-local; sessions are short-lived and never persisted.
"""

import logging
import threading
import time
from typing import Any, Callable, Dict, Optional, Tuple

from config.rules import RuleBook
from config.settings import LOBBY_STALE_SECONDS, SESSION_RETENTION_SECONDS
from game.models import Participant, Session, SessionStatus
from game.turn_manager import TurnSynchronizer
from utils.constants import CHANNEL_MODES, EVENTS, ESTIMATED_WAIT
from utils.helpers import generate_session_id, is_placeholder_channel_id, validate_identifier
from .models import LobbyEntry, LobbyQueue

logger = logging.getLogger(__name__)


class SessionDirectory:
    """
    Lobby queues and session registry.

    Pairing is a single locked step: the waiting participant is dequeued
    and the session is created before any other join can observe the
    queue, so nobody is matched twice or left queued beside a peer.
    Directory operations never raise; they return (success, message, data).
    """

    def __init__(self, relay, rule_book: RuleBook,
                 stale_after: float = LOBBY_STALE_SECONDS,
                 session_retention: float = SESSION_RETENTION_SECONDS,
                 metric_tolerance: float = 1.0,
                 clock: Callable[[], float] = time.time):
        """
        Initialize the directory.

        Args:
            relay: Object with ``send(participant_id, event, payload)``
            rule_book: Mode rules used for stakes and settlement
            stale_after: Seconds before a queued entry is dropped by the sweep
            session_retention: Seconds an ended session stays in memory
            metric_tolerance: Passed to each session's synchronizer
            clock: Time source
        """
        self.relay = relay
        self.rule_book = rule_book
        self.stale_after = stale_after
        self.session_retention = session_retention
        self.metric_tolerance = metric_tolerance
        self.clock = clock

        self.lobbies: Dict[str, LobbyQueue] = {}  # mode_id -> queue
        self.sessions: Dict[str, Session] = {}  # session_id -> session
        self.synchronizers: Dict[str, TurnSynchronizer] = {}  # session_id -> synchronizer
        self.participant_lobby: Dict[str, str] = {}  # participant_id -> mode_id
        self.participant_session: Dict[str, str] = {}  # participant_id -> session_id
        # Guards lobbies, sessions and both participant indexes
        self.lock = threading.RLock()

    # ---- Lobby operations ----

    def join_lobby(self, mode_id: str, participant_id: str,
                   stake_commitment: Any = None) -> Tuple[bool, str, Optional[Dict[str, Any]]]:
        """
        Queue a participant or pair them with the one already waiting.

        Args:
            mode_id: Game mode to play
            participant_id: Joining participant (wallet address)
            stake_commitment: Opaque proof of stake supplied by the client

        Returns:
            tuple: (success, message, data) where data is the waiting
            acknowledgement or the created session's details
        """
        if not validate_identifier(mode_id) or not validate_identifier(participant_id):
            return False, "Missing mode or participant id", None

        with self.lock:
            if self._live_session_for(participant_id):
                return False, "Already in an active session", None

            # A participant waits in at most one lobby
            current_mode = self.participant_lobby.get(participant_id)
            if current_mode and current_mode != mode_id:
                self._remove_from_lobby(current_mode, participant_id)

            lobby = self.lobbies.get(mode_id)
            if lobby is None:
                lobby = LobbyQueue(mode_id=mode_id, created_at=self.clock())
                self.lobbies[mode_id] = lobby

            position = lobby.position_of(participant_id)
            if position is None:
                opponent = lobby.pop_first()
                if opponent is not None:
                    self.participant_lobby.pop(opponent.participant_id, None)
                    if lobby.is_empty:
                        del self.lobbies[mode_id]
                    session = self._create_session(mode_id, opponent, LobbyEntry(
                        participant_id=participant_id,
                        joined_at=self.clock(),
                        stake_commitment=stake_commitment
                    ))
                    matched = True
                else:
                    position = lobby.append(LobbyEntry(
                        participant_id=participant_id,
                        joined_at=self.clock(),
                        stake_commitment=stake_commitment
                    ))
                    self.participant_lobby[participant_id] = mode_id
                    matched = False
            else:
                matched = False

        if matched:
            self._announce_match(session)
            return True, "Match found", {'matched': True, 'session_id': session.session_id}

        waiting = {
            'matched': False,
            'mode_id': mode_id,
            'position': position,
            'estimated_wait': ESTIMATED_WAIT
        }
        logger.info(f"Participant {participant_id} waiting in lobby {mode_id}. Position: {position}")
        self.relay.send(participant_id, EVENTS['WAITING'], waiting)
        return True, "Waiting for opponent", waiting

    def leave_lobby(self, mode_id: str, participant_id: str) -> Tuple[bool, str, None]:
        """
        Remove a participant from a mode's queue. Idempotent.
        """
        with self.lock:
            removed = self._remove_from_lobby(mode_id, participant_id)

        if removed:
            logger.info(f"Participant {participant_id} left lobby {mode_id}")
        self.relay.send(participant_id, EVENTS['LEFT_LOBBY'], {'mode_id': mode_id})
        return True, "Left lobby", None

    def _remove_from_lobby(self, mode_id: str, participant_id: str) -> bool:
        lobby = self.lobbies.get(mode_id)
        removed = bool(lobby) and lobby.remove(participant_id)
        if lobby is not None and lobby.is_empty:
            del self.lobbies[mode_id]
        if self.participant_lobby.get(participant_id) == mode_id:
            del self.participant_lobby[participant_id]
        return removed

    # ---- Session lifecycle ----

    def _create_session(self, mode_id: str, first: LobbyEntry, second: LobbyEntry) -> Session:
        """Create a STARTING session. Caller holds the lock."""
        rules = self.rule_book.get(mode_id)
        session = Session(
            session_id=generate_session_id(),
            mode_id=mode_id,
            participants=(
                Participant(first.participant_id, first.stake_commitment),
                Participant(second.participant_id, second.stake_commitment)
            ),
            created_at=self.clock(),
            base_stake=rules.base_stake
        )
        self.sessions[session.session_id] = session
        self.synchronizers[session.session_id] = TurnSynchronizer(
            session, self.relay, rules,
            metric_tolerance=self.metric_tolerance,
            clock=self.clock
        )
        for participant_id in session.participant_ids:
            self.participant_session[participant_id] = session.session_id

        logger.info(f"Match found! Session {session.session_id} starting in mode {mode_id}")
        return session

    def _announce_match(self, session: Session) -> None:
        rules = self.rule_book.get(session.mode_id)
        players = [{'participant_id': pid} for pid in session.participant_ids]

        for number, participant_id in enumerate(session.participant_ids, start=1):
            opponent_id = session.other(participant_id).participant_id
            self.relay.send(participant_id, EVENTS['MATCH_FOUND'], {
                'session_id': session.session_id,
                'mode_id': session.mode_id,
                'players': players,
                'base_stake': session.base_stake
            })
            self.relay.send(participant_id, EVENTS['GAME_START'], {
                'session_id': session.session_id,
                'mode_id': session.mode_id,
                'opponent': {'participant_id': opponent_id},
                'base_stake': session.base_stake,
                'player_number': number,
                'is_proposer': number == 1,
                'is_your_turn': number == 1,
                'session_duration': rules.session_duration,
                'game_state': {
                    'objects': session.shared_state.to_list(),
                    'current_turn': 1,
                    'turn_count': session.turn_count
                }
            })

    def _live_session_for(self, participant_id: str) -> Optional[Session]:
        session_id = self.participant_session.get(participant_id)
        session = self.sessions.get(session_id) if session_id else None
        if session and session.is_live:
            return session
        return None

    def get_session(self, session_id: str) -> Optional[Session]:
        return self.sessions.get(session_id)

    def get_synchronizer(self, session_id: str) -> Optional[TurnSynchronizer]:
        return self.synchronizers.get(session_id)

    def session_for(self, participant_id: str) -> Optional[Session]:
        """Most recent session a participant belongs to, if still held."""
        session_id = self.participant_session.get(participant_id)
        return self.sessions.get(session_id) if session_id else None

    def mark_negotiating(self, session_id: str) -> bool:
        """Move a STARTING session to NEGOTIATING when its first proposal is relayed."""
        with self.lock:
            session = self.sessions.get(session_id)
            if session is None or session.status != SessionStatus.STARTING:
                return False
            session.status = SessionStatus.NEGOTIATING
            session.negotiation_started_at = self.clock()
        logger.info(f"Session {session_id} negotiating channel")
        return True

    def record_channel(self, session_id: str, participant_id: Optional[str],
                       channel_id: str) -> Tuple[bool, str, Optional[Session]]:
        """
        Record the resolved channel identifier and open play.

        The first identifier recorded wins; later ones are refused so both
        participants converge on the same channel.

        Args:
            session_id: Session being resolved
            participant_id: Proposer announcing the channel, or None when the
                server issues a placeholder itself
            channel_id: Ledger channel id or placeholder id

        Returns:
            tuple: (success, message, session)
        """
        if not validate_identifier(channel_id):
            return False, "Missing channel id", None

        with self.lock:
            session = self.sessions.get(session_id)
            if session is None or not session.is_live:
                return False, "Session not found", None
            if participant_id is not None and participant_id != session.proposer_id:
                return False, "Only the proposer can resolve the channel", session
            if session.channel_id is not None:
                return False, "Channel already resolved", session

            session.channel_id = channel_id
            session.channel_mode = CHANNEL_MODES['SIMULATED'] if is_placeholder_channel_id(channel_id) \
                else CHANNEL_MODES['REAL']
            synchronizer = self.synchronizers[session_id]
            synchronizer.activate()

        logger.info(f"Session {session_id} channel resolved ({session.channel_mode}): {channel_id}")
        return True, "Channel recorded", session

    def abandon_session(self, participant_id: str) -> Tuple[bool, str, Optional[Session]]:
        """
        Abandon the participant's live session.

        The remaining participant is told they get a full refund; the
        session is evicted immediately and never settled.
        """
        with self.lock:
            session = self._live_session_for(participant_id)
            if session is None:
                return False, "No active session", None
            session.status = SessionStatus.ABANDONED
            session.ended_at = self.clock()
            remaining = session.other(participant_id).participant_id
            self._evict(session.session_id)

        logger.info(f"Session {session.session_id} abandoned by {participant_id}")
        self.relay.send(remaining, EVENTS['OPPONENT_DISCONNECTED'], {
            'session_id': session.session_id,
            'outcome': 'refund',
            'refund': session.base_stake,
            'channel_id': session.channel_id,
            'channel_mode': session.channel_mode,
            'message': 'Your partner disconnected. Your entry fee will be refunded.'
        })
        return True, "Session abandoned", session

    def on_disconnect(self, participant_id: str) -> Tuple[bool, str, Optional[str]]:
        """
        Handle a participant disconnecting.

        Removes them from any queue and abandons their live session.

        Returns:
            tuple: (success, message, abandoned_session_id)
        """
        if not validate_identifier(participant_id):
            return False, "Unknown participant", None

        with self.lock:
            mode_id = self.participant_lobby.get(participant_id)
            if mode_id:
                self._remove_from_lobby(mode_id, participant_id)

        abandoned, message, session = self.abandon_session(participant_id)
        if abandoned:
            return True, message, session.session_id
        return True, "Participant removed", None

    def _evict(self, session_id: str) -> None:
        """Drop a session from memory. Caller holds the lock."""
        session = self.sessions.pop(session_id, None)
        self.synchronizers.pop(session_id, None)
        if session is None:
            return
        for participant_id in session.participant_ids:
            if self.participant_session.get(participant_id) == session_id:
                del self.participant_session[participant_id]

    def sweep(self) -> Dict[str, int]:
        """
        Periodic cleanup.

        Drops queue entries older than the staleness threshold, deletes
        empty lobbies and evicts ended sessions past their retention delay.

        Returns:
            Counts of dropped entries, deleted lobbies and evicted sessions
        """
        now = self.clock()
        dropped = deleted = evicted = 0

        with self.lock:
            cutoff = now - self.stale_after
            for mode_id in list(self.lobbies.keys()):
                lobby = self.lobbies[mode_id]
                for entry in lobby.drop_stale(cutoff):
                    self.participant_lobby.pop(entry.participant_id, None)
                    dropped += 1
                if lobby.is_empty:
                    del self.lobbies[mode_id]
                    deleted += 1

            for session_id, session in list(self.sessions.items()):
                if session.is_finished and session.ended_at is not None \
                        and now - session.ended_at >= self.session_retention:
                    self._evict(session_id)
                    evicted += 1

        if dropped or deleted or evicted:
            logger.info(f"Sweep dropped {dropped} stale entries, deleted {deleted} lobbies, "
                        f"evicted {evicted} sessions")
        return {'dropped_entries': dropped, 'deleted_lobbies': deleted, 'evicted_sessions': evicted}

    def get_stats(self) -> Dict[str, Any]:
        """Get current directory statistics."""
        with self.lock:
            return {
                'lobbies': len(self.lobbies),
                'waiting': sum(len(lobby) for lobby in self.lobbies.values()),
                'sessions': len(self.sessions),
                'active_sessions': sum(1 for s in self.sessions.values() if s.is_live)
            }
