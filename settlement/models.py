"""
Data models for settlement results.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional


@dataclass(frozen=True)
class SettlementResult:
    """Payout split for one finished session."""
    session_id: Optional[str]
    tier: str
    tier_threshold: int
    multiplier_bps: int
    metric: float
    total_stake: int
    total_rewards: int
    protocol_fee: int
    payouts: Dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            'session_id': self.session_id,
            'tier': self.tier,
            'tier_threshold': self.tier_threshold,
            'multiplier_bps': self.multiplier_bps,
            'metric': self.metric,
            'total_stake': self.total_stake,
            'total_rewards': self.total_rewards,
            'protocol_fee': self.protocol_fee,
            'payouts': dict(self.payouts)
        }
