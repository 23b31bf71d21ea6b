"""
Game mode rule loader for FlashPoint.

Reads tier thresholds, multipliers, fee rate and stake per mode from a
JSON file. Multipliers and fee rates are converted to integer basis
points here so the settlement calculator never touches floating point.
"""

import json
import logging
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional

from utils.constants import DEFAULT_BASE_STAKE

logger = logging.getLogger(__name__)


class RulesError(ValueError):
    """Raised when the rule configuration is malformed."""
    pass


def to_basis(value: Any, scale: int) -> int:
    """
    Convert a decimal value to an integer scaled by ``scale``.

    Args:
        value: Number or numeric string, e.g. "1.5" or 0.05
        scale: 100 for multipliers, 10_000 for fee rates, 1 for whole thresholds

    Returns:
        Exact scaled integer

    Raises:
        RulesError: If the value is not numeric or not exactly representable
    """
    if isinstance(value, bool):
        raise RulesError(f"Invalid numeric value: {value!r}")
    try:
        # str() first so 1.2 becomes Decimal('1.2') rather than its binary expansion
        scaled = Decimal(str(value)) * scale
    except (InvalidOperation, ValueError) as e:
        raise RulesError(f"Invalid numeric value: {value!r}") from e
    if scaled != scaled.to_integral_value():
        raise RulesError(f"Value {value!r} has more precision than 1/{scale}")
    return int(scaled)


@dataclass(frozen=True)
class RewardTier:
    """A reward band: achieving ``threshold`` earns ``multiplier_bps`` / 100."""
    label: str
    threshold: int
    multiplier_bps: int

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            'label': self.label,
            'threshold': self.threshold,
            'multiplier_bps': self.multiplier_bps
        }


DEFAULT_TIERS = (
    RewardTier('Legendary', 300, 200),
    RewardTier('Epic', 200, 150),
    RewardTier('Great', 100, 120),
    RewardTier('Complete', 0, 100),
)


@dataclass
class ModeRules:
    """Settlement parameters for one game mode."""
    mode_id: str
    name: str
    base_stake: int = DEFAULT_BASE_STAKE
    fee_bps: int = 500
    session_duration: Optional[int] = None
    tiers: List[RewardTier] = field(default_factory=lambda: list(DEFAULT_TIERS))

    def __post_init__(self):
        if not self.tiers:
            raise RulesError(f"Mode {self.mode_id} has no tiers")
        # Highest threshold first; the lowest tier must start at zero
        self.tiers = sorted(self.tiers, key=lambda t: t.threshold, reverse=True)
        if self.tiers[-1].threshold != 0:
            self.tiers.append(RewardTier('Complete', 0, 100))
        if not 0 <= self.fee_bps <= 10_000:
            raise RulesError(f"Mode {self.mode_id} fee rate out of range")
        if self.base_stake < 0:
            raise RulesError(f"Mode {self.mode_id} has a negative stake")

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            'id': self.mode_id,
            'name': self.name,
            'base_stake': self.base_stake,
            'fee_bps': self.fee_bps,
            'session_duration': self.session_duration,
            'tiers': [t.to_dict() for t in self.tiers]
        }


def parse_mode(data: Dict[str, Any]) -> ModeRules:
    """Build ModeRules from one ``game_modes`` entry."""
    if not isinstance(data, dict) or not data.get('id'):
        raise RulesError("Game mode entry requires an id")

    tiers = []
    for tier in data.get('tiers') or []:
        try:
            tiers.append(RewardTier(
                label=str(tier.get('label', 'Tier')),
                threshold=to_basis(tier.get('min_metric', 0), 1),
                multiplier_bps=to_basis(tier.get('multiplier', 1), 100)
            ))
        except (AttributeError, TypeError, ValueError) as e:
            raise RulesError(f"Invalid tier in mode {data['id']}: {e}") from e

    base_stake = data.get('base_stake', DEFAULT_BASE_STAKE)
    if isinstance(base_stake, bool) or not isinstance(base_stake, int):
        raise RulesError(f"Mode {data['id']} base_stake must be an integer")

    duration = data.get('session_duration')
    return ModeRules(
        mode_id=str(data['id']),
        name=str(data.get('name', data['id'])),
        base_stake=base_stake,
        fee_bps=to_basis(data.get('fee_rate', '0.05'), 10_000),
        session_duration=int(duration) if duration is not None else None,
        tiers=tiers or list(DEFAULT_TIERS)
    )


class RuleBook:
    """
    All configured game modes.

    Unknown mode ids resolve to the active default mode so a client
    asking for a mode this server doesn't know still gets valid rules.
    """

    def __init__(self, modes: List[ModeRules], active_mode: Optional[str] = None):
        if not modes:
            modes = [ModeRules(mode_id='default', name='Default')]
        self.modes: Dict[str, ModeRules] = {m.mode_id: m for m in modes}
        self.active_mode = active_mode if active_mode in self.modes else modes[0].mode_id

    def get(self, mode_id: Optional[str]) -> ModeRules:
        """Get rules for a mode, falling back to the active mode."""
        if mode_id in self.modes:
            return self.modes[mode_id]
        logger.debug(f"Unknown mode {mode_id}, using {self.active_mode}")
        return self.modes[self.active_mode]

    def to_dict(self) -> Dict[str, Any]:
        return {
            'active_game_mode': self.active_mode,
            'game_modes': [m.to_dict() for m in self.modes.values()]
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'RuleBook':
        if not isinstance(data, dict):
            raise RulesError("Rule configuration must be a mapping")
        modes = [parse_mode(entry) for entry in data.get('game_modes') or []]
        return cls(modes, data.get('active_game_mode'))


def load_rules(path: Optional[str] = None) -> RuleBook:
    """
    Load the rule book from a JSON file.

    Args:
        path: File to read (defaults to the configured RULES_PATH)

    Returns:
        RuleBook; built-in defaults if the file is missing
    """
    if path is None:
        from config.settings import RULES_PATH
        path = RULES_PATH

    try:
        with open(path, 'r', encoding='utf-8') as f:
            data = json.load(f, parse_float=Decimal) or {}
    except FileNotFoundError:
        logger.warning(f"Rules file {path} not found, using default tiers")
        return RuleBook([])
    except json.JSONDecodeError as e:
        raise RulesError(f"Rules file {path} is not valid JSON: {e}") from e

    rule_book = RuleBook.from_dict(data)
    logger.info(f"Loaded {len(rule_book.modes)} game modes from {path}")
    return rule_book
