import json
import os

import pytest

from config.rules import RuleBook, RulesError, load_rules, to_basis

BUNDLED_RULES = os.path.join(os.path.dirname(__file__), '..', 'config', 'modes.json')


def test_bundled_rules_load():
    rule_book = load_rules(BUNDLED_RULES)
    assert rule_book.active_mode == 'tower_collab'
    collab = rule_book.get('tower_collab')
    assert collab.base_stake == 1_000_000
    assert collab.fee_bps == 500
    assert [t.multiplier_bps for t in collab.tiers] == [200, 150, 120, 100]
    assert rule_book.get('tower_sprint').base_stake == 500_000


def test_unknown_mode_falls_back_to_active(tmp_path):
    rule_book = load_rules(BUNDLED_RULES)
    assert rule_book.get('no_such_mode').mode_id == 'tower_collab'


def test_missing_file_uses_defaults(tmp_path):
    rule_book = load_rules(str(tmp_path / 'missing.json'))
    rules = rule_book.get('anything')
    assert rules.fee_bps == 500
    assert rules.tiers[0].label == 'Legendary'


def test_lowest_tier_added_when_missing(tmp_path):
    path = tmp_path / 'modes.json'
    path.write_text(json.dumps({
        'game_modes': [{
            'id': 'solo',
            'base_stake': 10,
            'tiers': [{'label': 'Good', 'min_metric': 50, 'multiplier': 1.1}]
        }]
    }))
    rules = load_rules(str(path)).get('solo')
    assert rules.tiers[0].multiplier_bps == 110
    assert rules.tiers[-1].threshold == 0
    assert rules.tiers[-1].multiplier_bps == 100


def test_malformed_file_raises(tmp_path):
    path = tmp_path / 'modes.json'
    path.write_text('{"game_modes": [')
    with pytest.raises(RulesError):
        load_rules(str(path))


def test_to_basis_is_exact():
    assert to_basis('1.2', 100) == 120
    assert to_basis(1.5, 100) == 150
    assert to_basis('0.05', 10_000) == 500
    with pytest.raises(RulesError):
        to_basis('1.234', 100)
    with pytest.raises(RulesError):
        to_basis('abc', 100)


def test_rejects_non_integer_stake():
    with pytest.raises(RulesError):
        RuleBook.from_dict({'game_modes': [{'id': 'x', 'base_stake': 1.5}]})


def test_rejects_fractional_threshold(tmp_path):
    path = tmp_path / 'modes.json'
    path.write_text(json.dumps({
        'game_modes': [{'id': 'solo', 'tiers': [{'label': 'Epic', 'min_metric': 150.5, 'multiplier': '1.5'}]}]
    }))
    with pytest.raises(RulesError):
        load_rules(str(path))
