"""
Data models for game sessions.

A session pairs two participants, holds the shared object state both
clients must converge on, and records who currently owns the turn.
"""

from dataclasses import dataclass, field
from typing import List, Optional, Dict, Any, Tuple
from enum import Enum

from utils.errors import ProtocolViolation
from utils.helpers import is_number, validate_identifier


class SessionStatus(Enum):
    """Session lifecycle enumeration."""
    STARTING = "starting"
    NEGOTIATING = "negotiating"
    ACTIVE = "active"
    ENDED = "ended"
    ABANDONED = "abandoned"
    SETTLED = "settled"


class TurnPhase(Enum):
    """Turn state machine phases."""
    P1_TURN = "p1_turn"
    P2_TURN = "p2_turn"
    ENDED = "ended"


LIVE_STATUSES = (SessionStatus.STARTING, SessionStatus.NEGOTIATING, SessionStatus.ACTIVE)
FINISHED_STATUSES = (SessionStatus.ENDED, SessionStatus.SETTLED)


def _pose_number(data: Dict[str, Any], *keys: str, default: Optional[float] = None) -> float:
    for key in keys:
        if key in data:
            value = data[key]
            if not is_number(value):
                raise ProtocolViolation(f"Pose field {key} must be a number")
            return value
    if default is None:
        raise ProtocolViolation(f"Pose field {keys[0]} is required")
    return default


@dataclass(frozen=True)
class ObjectPose:
    """Position, orientation and velocity of one shared object."""
    x: float
    y: float
    angle: float = 0.0
    velocity_x: float = 0.0
    velocity_y: float = 0.0
    label: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            'x': self.x,
            'y': self.y,
            'angle': self.angle,
            'velocity_x': self.velocity_x,
            'velocity_y': self.velocity_y,
            'label': self.label
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any], partial_of: Optional['ObjectPose'] = None) -> 'ObjectPose':
        """
        Build a pose from client data.

        Accepts both ``velocity_x`` and the browser client's ``velocityX``.

        Args:
            data: Pose fields
            partial_of: Existing pose supplying defaults for missing fields

        Raises:
            ProtocolViolation: If a field is missing or not numeric
        """
        if not isinstance(data, dict):
            raise ProtocolViolation("Pose must be an object")
        base = partial_of
        label = data.get('label', base.label if base else None)
        if label is not None and not isinstance(label, str):
            raise ProtocolViolation("Pose label must be a string")
        return cls(
            x=_pose_number(data, 'x', default=base.x if base else None),
            y=_pose_number(data, 'y', default=base.y if base else None),
            angle=_pose_number(data, 'angle', default=base.angle if base else 0.0),
            velocity_x=_pose_number(data, 'velocity_x', 'velocityX',
                                    default=base.velocity_x if base else 0.0),
            velocity_y=_pose_number(data, 'velocity_y', 'velocityY',
                                    default=base.velocity_y if base else 0.0),
            label=label
        )


@dataclass
class SharedState:
    """
    Ordered mapping of stable object ids to poses.

    The authoritative copy is always the one left by the last turn holder;
    clients replace their local state with it rather than merging.
    """
    objects: Dict[str, ObjectPose] = field(default_factory=dict)

    def __len__(self) -> int:
        return len(self.objects)

    def __contains__(self, object_id: str) -> bool:
        return object_id in self.objects

    def get(self, object_id: str) -> Optional[ObjectPose]:
        return self.objects.get(object_id)

    def add(self, object_id: str, pose: ObjectPose) -> None:
        if object_id in self.objects:
            raise ProtocolViolation(f"Object {object_id} already exists")
        self.objects[object_id] = pose

    def to_list(self) -> List[Dict[str, Any]]:
        """Serialize as the wire snapshot format: a list of poses with ids."""
        return [{'id': object_id, **pose.to_dict()} for object_id, pose in self.objects.items()]

    @classmethod
    def from_list(cls, items: Any) -> 'SharedState':
        """
        Parse a snapshot received from a client.

        Raises:
            ProtocolViolation: If the snapshot is not a list of poses with
                unique string ids
        """
        if not isinstance(items, list):
            raise ProtocolViolation("Snapshot must be a list of objects")
        state = cls()
        for item in items:
            if not isinstance(item, dict):
                raise ProtocolViolation("Snapshot entries must be objects")
            object_id = item.get('id')
            if isinstance(object_id, int) and not isinstance(object_id, bool):
                object_id = str(object_id)
            if not validate_identifier(object_id):
                raise ProtocolViolation("Snapshot entry is missing an id")
            state.add(object_id, ObjectPose.from_dict(item))
        return state


@dataclass
class Participant:
    """One of the two players in a session."""
    participant_id: str
    stake_commitment: Any = None
    sid: Optional[str] = None
    achievement_metric: float = 0
    finished: bool = False
    final_metric: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            'participant_id': self.participant_id,
            'achievement_metric': self.achievement_metric,
            'finished': self.finished,
            'final_metric': self.final_metric
        }


@dataclass
class Session:
    """A paired, time-bounded collaborative match between two participants."""
    session_id: str
    mode_id: str
    participants: Tuple[Participant, Participant]
    created_at: float
    base_stake: int
    status: SessionStatus = SessionStatus.STARTING
    shared_state: SharedState = field(default_factory=SharedState)
    current_turn_holder: Optional[str] = None
    turn_count: int = 0
    spawned_count: int = 0
    channel_id: Optional[str] = None
    channel_mode: Optional[str] = None
    negotiation_started_at: Optional[float] = None
    ended_at: Optional[float] = None
    metric_disputed: bool = False
    settlement: Optional[Any] = None

    def __post_init__(self):
        if self.current_turn_holder is None:
            # Player 1 starts
            self.current_turn_holder = self.participants[0].participant_id

    @property
    def participant_ids(self) -> Tuple[str, str]:
        return (self.participants[0].participant_id, self.participants[1].participant_id)

    @property
    def proposer_id(self) -> str:
        """The first-matched participant drives the channel handshake."""
        return self.participants[0].participant_id

    @property
    def is_live(self) -> bool:
        return self.status in LIVE_STATUSES

    @property
    def is_finished(self) -> bool:
        return self.status in FINISHED_STATUSES

    def has_participant(self, participant_id: str) -> bool:
        return participant_id in self.participant_ids

    def get_participant(self, participant_id: str) -> Participant:
        for participant in self.participants:
            if participant.participant_id == participant_id:
                return participant
        raise ProtocolViolation(f"{participant_id} is not part of session {self.session_id}")

    def player_number(self, participant_id: str) -> int:
        """1 for the first-matched participant, 2 for the other."""
        return self.participant_ids.index(self.get_participant(participant_id).participant_id) + 1

    def other(self, participant_id: str) -> Participant:
        """Get the counterparty of a participant."""
        self.get_participant(participant_id)
        if self.participants[0].participant_id == participant_id:
            return self.participants[1]
        return self.participants[0]

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            'session_id': self.session_id,
            'mode_id': self.mode_id,
            'status': self.status.value,
            'participants': [p.to_dict() for p in self.participants],
            'current_turn_holder': self.current_turn_holder,
            'current_turn': self.player_number(self.current_turn_holder),
            'turn_count': self.turn_count,
            'object_count': len(self.shared_state),
            'base_stake': self.base_stake,
            'channel_id': self.channel_id,
            'channel_mode': self.channel_mode,
            'metric_disputed': self.metric_disputed,
            'settlement': self.settlement.to_dict() if self.settlement else None
        }
