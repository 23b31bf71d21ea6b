"""
Turn Synchronizer for FlashPoint sessions.

Owns turn alternation and shared-state reconciliation for one session.
Only the current turn holder may mutate the shared state. At the end of
each turn the holder's full snapshot replaces the shared state wholesale
and write authority flips to the other participant; clients never merge
deltas, they adopt the latest snapshot.

Client obligation: on receiving ``turn_changed`` with ``is_your_turn``
false, a client must freeze every object it doesn't own (zero velocities,
disable interaction) until the next snapshot arrives, so the two local
physics simulations cannot drift apart between checkpoints.
"""

import logging
import threading
import time
from typing import Any, Callable, Dict, Optional

from config.rules import ModeRules
from settlement import settle, SettlementResult
from utils.constants import EVENTS
from utils.errors import ProtocolViolation
from utils.helpers import is_number, validate_identifier
from .models import ObjectPose, Session, SessionStatus, SharedState, TurnPhase

logger = logging.getLogger(__name__)


class TurnSynchronizer:
    """
    Turn state machine for one session.

    States: P1_TURN, P2_TURN, ENDED. Initial: P1_TURN.
    Every turn-gated operation checks the caller against the current holder
    before touching any state and raises ProtocolViolation otherwise.
    """

    def __init__(self, session: Session, relay, rules: ModeRules,
                 metric_tolerance: float = 1.0,
                 clock: Callable[[], float] = time.time):
        """
        Initialize the synchronizer.

        Args:
            session: Session whose shared state this synchronizer owns
            relay: Object with ``send(participant_id, event, payload)``
            rules: Settlement rules for the session's mode
            metric_tolerance: Allowed gap between the two final metrics
            clock: Time source
        """
        self.session = session
        self.relay = relay
        self.rules = rules
        self.metric_tolerance = metric_tolerance
        self.clock = clock
        self._lock = threading.RLock()

    @property
    def phase(self) -> TurnPhase:
        if self.session.status in (SessionStatus.ENDED, SessionStatus.SETTLED, SessionStatus.ABANDONED):
            return TurnPhase.ENDED
        if self.session.current_turn_holder == self.session.participant_ids[0]:
            return TurnPhase.P1_TURN
        return TurnPhase.P2_TURN

    def _require_active(self) -> None:
        if self.session.status != SessionStatus.ACTIVE:
            raise ProtocolViolation(
                f"Session {self.session.session_id} is {self.session.status.value}, not active"
            )

    def _require_holder(self, holder_id: str) -> None:
        self._require_active()
        if not self.session.has_participant(holder_id):
            raise ProtocolViolation(f"{holder_id} is not part of this session")
        if holder_id != self.session.current_turn_holder:
            raise ProtocolViolation("Not your turn!")

    def _send_both(self, event: str, payload: Dict[str, Any]) -> None:
        for participant_id in self.session.participant_ids:
            self.relay.send(participant_id, event, payload)

    def activate(self) -> None:
        """Open play once the channel is resolved. Player 1 holds the first turn."""
        with self._lock:
            if self.session.status not in (SessionStatus.STARTING, SessionStatus.NEGOTIATING):
                return
            self.session.status = SessionStatus.ACTIVE
            self.session.current_turn_holder = self.session.participant_ids[0]
            logger.info(f"Session {self.session.session_id} active, player 1 to move")

    def spawn_object(self, holder_id: str, descriptor: Dict[str, Any]) -> Dict[str, Any]:
        """
        Add a new object to the shared state with a server-assigned id.

        Only the new entry is broadcast, not the whole snapshot. Both sides
        receive it so the holder can bind its local body to the stable id
        and the peer instantiates an identical object.

        Args:
            holder_id: Participant spawning the object
            descriptor: Pose fields and type label of the new object

        Returns:
            The broadcast payload
        """
        with self._lock:
            self._require_holder(holder_id)
            pose = ObjectPose.from_dict(descriptor)

            session = self.session
            object_id = f"obj-{session.spawned_count + 1}"
            session.shared_state.add(object_id, pose)
            session.spawned_count += 1

            payload = {
                'session_id': session.session_id,
                'object': {'id': object_id, **pose.to_dict()},
                'client_ref': descriptor.get('client_ref'),
                'spawned_by': session.player_number(holder_id),
                'total_objects': session.spawned_count
            }
            logger.info(f"Player {payload['spawned_by']} spawned {object_id} in session {session.session_id}")

        self._send_both(EVENTS['OBJECT_SPAWNED'], payload)
        return payload

    def apply_snapshot(self, snapshot: Any) -> SharedState:
        """
        Replace the shared state with a snapshot.

        Applying the same snapshot twice leaves the same state.
        """
        state = SharedState.from_list(snapshot)
        self.session.shared_state = state
        return state

    def end_turn(self, holder_id: str, snapshot: Any) -> Dict[str, Any]:
        """
        Finish the holder's turn.

        The holder's full snapshot becomes the authoritative shared state,
        write authority flips to the other participant and the turn counter
        increases. Each participant is told whether it now holds the turn.

        Returns:
            The snapshot payload sent to both participants
        """
        with self._lock:
            self._require_holder(holder_id)
            state = SharedState.from_list(snapshot)

            session = self.session
            session.shared_state = state
            session.current_turn_holder = session.other(holder_id).participant_id
            session.turn_count += 1

            current_turn = session.player_number(session.current_turn_holder)
            snapshot_out = state.to_list()
            turn_count = session.turn_count
            holder = session.current_turn_holder

        logger.info(f"Turn ended in session {session.session_id}. Now player {current_turn}'s turn")

        for participant_id in session.participant_ids:
            self.relay.send(participant_id, EVENTS['TURN_CHANGED'], {
                'session_id': session.session_id,
                'current_turn': current_turn,
                'is_your_turn': participant_id == holder,
                'object_states': snapshot_out,
                'turn_count': turn_count
            })

        return {
            'current_turn': current_turn,
            'current_turn_holder': holder,
            'object_states': snapshot_out,
            'turn_count': turn_count
        }

    def sync_in_flight_position(self, holder_id: str, object_id: str, pose: Dict[str, Any]) -> Dict[str, Any]:
        """
        Forward a partial pose of the object being dragged to the peer.

        Advisory only: the shared state is not modified; the authoritative
        update happens at end_turn.
        """
        with self._lock:
            self._require_holder(holder_id)
            if not validate_identifier(object_id):
                raise ProtocolViolation("object_id is required")
            known = self.session.shared_state.get(object_id)
            if known is not None:
                parsed = ObjectPose.from_dict(pose, partial_of=known)
            else:
                # The holder may be dragging an object spawned this turn
                parsed = ObjectPose.from_dict(pose, partial_of=ObjectPose(x=0, y=0))
            peer_id = self.session.other(holder_id).participant_id

        payload = {
            'session_id': self.session.session_id,
            'object_id': object_id,
            'x': parsed.x,
            'y': parsed.y,
            'angle': parsed.angle
        }
        self.relay.send(peer_id, EVENTS['OBJECT_POSITION_UPDATE'], payload)
        return payload

    def checkpoint(self, holder_id: str, snapshot: Any) -> Dict[str, Any]:
        """
        Replace the shared state mid-turn without passing the turn.

        Lets the holder publish a settled state (e.g. after objects come to
        rest) so the peer's mirror doesn't wait for the end of the turn.
        """
        with self._lock:
            self._require_holder(holder_id)
            state = self.apply_snapshot(snapshot)
            peer_id = self.session.other(holder_id).participant_id
            payload = {
                'session_id': self.session.session_id,
                'object_states': state.to_list(),
                'from_player': self.session.player_number(holder_id)
            }

        self.relay.send(peer_id, EVENTS['GAME_STATE_SYNC'], payload)
        return payload

    def report_progress(self, participant_id: str, metric: Any) -> Dict[str, Any]:
        """Record a participant's running achievement metric and tell the peer."""
        with self._lock:
            self._require_active()
            if not is_number(metric):
                raise ProtocolViolation("metric must be a number")
            participant = self.session.get_participant(participant_id)
            participant.achievement_metric = metric
            peer_id = self.session.other(participant_id).participant_id

        payload = {'session_id': self.session.session_id, 'metric': metric}
        self.relay.send(peer_id, EVENTS['PARTNER_PROGRESS'], payload)
        return payload

    def end_session(self, participant_id: str, final_metric: Any) -> Optional[SettlementResult]:
        """
        Submit a participant's final achievement metric.

        Each participant submits once. When both have submitted the session
        ends and is settled on the lower of the two metrics; metrics further
        apart than the tolerance flag the session as disputed.

        Returns:
            SettlementResult once both have submitted, otherwise None
        """
        with self._lock:
            self._require_active()
            if not is_number(final_metric):
                raise ProtocolViolation("final_metric must be a number")
            participant = self.session.get_participant(participant_id)
            if participant.finished:
                raise ProtocolViolation("End of session already submitted")

            participant.finished = True
            participant.final_metric = final_metric
            participant.achievement_metric = final_metric
            logger.info(f"Player {self.session.player_number(participant_id)} finished "
                        f"session {self.session.session_id} with metric {final_metric}")

            if not all(p.finished for p in self.session.participants):
                return None

            session = self.session
            metrics = [p.final_metric for p in session.participants]
            agreed_metric = min(metrics)
            session.metric_disputed = abs(metrics[0] - metrics[1]) > self.metric_tolerance
            if session.metric_disputed:
                logger.warning(f"Session {session.session_id} metrics disagree: {metrics}, "
                               f"settling on {agreed_metric}")

            session.status = SessionStatus.ENDED
            session.ended_at = self.clock()
            ended_payload = {
                'session_id': session.session_id,
                'final_metric': agreed_metric,
                'submitted_metrics': metrics,
                'metric_disputed': session.metric_disputed,
                'turn_count': session.turn_count
            }

            result = settle(agreed_metric, session.base_stake, self.rules,
                            session_id=session.session_id,
                            participants=session.participant_ids)
            session.settlement = result
            session.status = SessionStatus.SETTLED

        logger.info(f"Session {session.session_id} settled: tier {result.tier}, "
                    f"payouts {result.payouts}, fee {result.protocol_fee}")

        self._send_both(EVENTS['SESSION_ENDED'], ended_payload)
        self._send_both(EVENTS['SETTLEMENT_RESULT'], {
            **result.to_dict(),
            'channel_id': session.channel_id,
            'channel_mode': session.channel_mode
        })
        return result

    def get_state(self) -> Dict[str, Any]:
        """Current turn state for reconnecting clients and the HTTP API."""
        with self._lock:
            return {
                'phase': self.phase.value,
                'current_turn_holder': self.session.current_turn_holder,
                'current_turn': self.session.player_number(self.session.current_turn_holder),
                'turn_count': self.session.turn_count,
                'object_states': self.session.shared_state.to_list()
            }
