"""
Settlement calculator for FlashPoint sessions.

Maps the shared achievement metric and the per-participant stake to a
tiered payout. Collaborative mode: both participants built the same
artifact, so the distributable pot is split evenly.

Arithmetic:
- total_stake   = 2 * base_stake
- total_rewards = total_stake * multiplier_bps // 100
- protocol_fee  = bonus * fee_bps // 10_000, only when bonus > 0
- payouts       = (total_rewards - protocol_fee) split in two halves,
                  the odd unit going to the first participant slot

Everything is integer arithmetic so results are identical on every
platform.
"""

import logging
from typing import Optional, Sequence

from config.rules import ModeRules, RewardTier, DEFAULT_TIERS
from utils.errors import ArithmeticInvariantViolation
from utils.helpers import is_number
from .models import SettlementResult

logger = logging.getLogger(__name__)

DEFAULT_PARTICIPANTS = ('player1', 'player2')


def select_tier(metric: float, tiers: Sequence[RewardTier] = DEFAULT_TIERS) -> RewardTier:
    """
    Select the highest tier whose threshold is at or below the metric.

    Zero, negative or non-numeric metrics resolve to the lowest tier.
    """
    ordered = sorted(tiers, key=lambda t: t.threshold, reverse=True)
    if is_number(metric):
        for tier in ordered:
            if metric >= tier.threshold:
                return tier
    return ordered[-1]


def settle(metric: float, base_stake: int, rules: Optional[ModeRules] = None,
           session_id: Optional[str] = None,
           participants: Sequence[str] = DEFAULT_PARTICIPANTS) -> SettlementResult:
    """
    Compute the payout split for a finished session.

    Args:
        metric: Shared achievement metric (e.g. tower height)
        base_stake: Stake committed by each participant, smallest currency unit
        rules: Mode rules providing tiers and fee rate (defaults if omitted)
        session_id: Session being settled
        participants: Two participant ids; slot 0 receives any odd unit

    Returns:
        SettlementResult

    Raises:
        ValueError: If the stake is not a non-negative integer or there
            aren't exactly two participants
        ArithmeticInvariantViolation: If the amounts don't reconcile
    """
    if isinstance(base_stake, bool) or not isinstance(base_stake, int) or base_stake < 0:
        raise ValueError(f"base_stake must be a non-negative integer, got {base_stake!r}")
    if len(participants) != 2 or participants[0] == participants[1]:
        raise ValueError("Settlement requires two distinct participants")

    rules = rules or ModeRules(mode_id='default', name='Default')
    tier = select_tier(metric, rules.tiers)

    total_stake = 2 * base_stake
    total_rewards = total_stake * tier.multiplier_bps // 100

    # Fee applies to the bonus only, never to returned principal
    bonus = total_rewards - total_stake
    protocol_fee = bonus * rules.fee_bps // 10_000 if bonus > 0 else 0

    distributable = total_rewards - protocol_fee
    half, leftover = divmod(distributable, 2)
    payouts = {
        participants[0]: half + leftover,
        participants[1]: half
    }

    if sum(payouts.values()) + protocol_fee != total_rewards:
        logger.error(f"Settlement for {session_id} does not reconcile: {payouts}, fee {protocol_fee}")
        raise ArithmeticInvariantViolation(
            f"payouts {sum(payouts.values())} + fee {protocol_fee} != rewards {total_rewards}"
        )

    return SettlementResult(
        session_id=session_id,
        tier=tier.label,
        tier_threshold=tier.threshold,
        multiplier_bps=tier.multiplier_bps,
        metric=max(metric, 0) if is_number(metric) else 0,
        total_stake=total_stake,
        total_rewards=total_rewards,
        protocol_fee=protocol_fee,
        payouts=payouts
    )
