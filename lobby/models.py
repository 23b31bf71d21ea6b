"""
Data models for lobby management.

These are pure data structures used to pass information between
the session directory, the handlers and the relay.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional, Dict, Any


def _iso(timestamp: float) -> str:
    return datetime.fromtimestamp(timestamp, tz=timezone.utc).isoformat()


@dataclass
class LobbyEntry:
    """A participant waiting for a partner."""
    participant_id: str
    joined_at: float
    stake_commitment: Any = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            'participant_id': self.participant_id,
            'joined_at': _iso(self.joined_at)
        }


@dataclass
class LobbyQueue:
    """Ordered queue of participants waiting in one game mode."""
    mode_id: str
    created_at: float
    entries: List[LobbyEntry] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.entries)

    @property
    def is_empty(self) -> bool:
        return not self.entries

    def position_of(self, participant_id: str) -> Optional[int]:
        """1-based queue position, or None if not queued."""
        for index, entry in enumerate(self.entries):
            if entry.participant_id == participant_id:
                return index + 1
        return None

    def append(self, entry: LobbyEntry) -> int:
        self.entries.append(entry)
        return len(self.entries)

    def pop_first(self) -> Optional[LobbyEntry]:
        """Dequeue the longest-waiting participant."""
        if not self.entries:
            return None
        return self.entries.pop(0)

    def remove(self, participant_id: str) -> bool:
        """Remove a participant; returns False if they weren't queued."""
        before = len(self.entries)
        self.entries = [e for e in self.entries if e.participant_id != participant_id]
        return len(self.entries) != before

    def drop_stale(self, cutoff: float) -> List[LobbyEntry]:
        """Drop entries that joined before ``cutoff``; returns the dropped entries."""
        stale = [e for e in self.entries if e.joined_at < cutoff]
        if stale:
            self.entries = [e for e in self.entries if e.joined_at >= cutoff]
        return stale

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            'mode_id': self.mode_id,
            'created_at': _iso(self.created_at),
            'waiting': len(self.entries),
            'entries': [e.to_dict() for e in self.entries]
        }
