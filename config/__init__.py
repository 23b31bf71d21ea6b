"""
Configuration module for FlashPoint.

Environment settings live in ``config.settings``; per-mode settlement
rules are loaded from JSON by ``config.rules``.
"""

from .rules import RewardTier, ModeRules, RuleBook, RulesError, load_rules

__all__ = [
    'RewardTier',
    'ModeRules',
    'RuleBook',
    'RulesError',
    'load_rules'
]
