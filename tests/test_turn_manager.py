import pytest

from conftest import P1, P2

from game.models import SessionStatus, TurnPhase
from utils.errors import ProtocolViolation

BLOCK = {'x': 100, 'y': 200, 'angle': 0, 'label': 'block'}


@pytest.fixture()
def sync(directory, active):
    return directory.get_synchronizer(active.session_id)


def snapshot(*poses):
    return [{'id': object_id, 'x': x, 'y': y, 'angle': 0} for object_id, x, y in poses]


def test_player_one_holds_first_turn(sync):
    assert sync.phase == TurnPhase.P1_TURN
    assert sync.get_state()['current_turn'] == 1


def test_spawn_assigns_stable_ids_and_broadcasts(sync, relay, active):
    payload = sync.spawn_object(P1, {**BLOCK, 'client_ref': 'local-7'})
    assert payload['object']['id'] == 'obj-1'
    assert payload['client_ref'] == 'local-7'
    assert payload['spawned_by'] == 1
    assert sync.spawn_object(P1, BLOCK)['object']['id'] == 'obj-2'

    assert relay.events_for(P1, 'object_spawned')[0] == relay.events_for(P2, 'object_spawned')[0]
    assert len(active.shared_state) == 2


def test_spawn_out_of_turn_rejected_without_change(sync, relay, active):
    with pytest.raises(ProtocolViolation):
        sync.spawn_object(P2, BLOCK)
    assert len(active.shared_state) == 0
    assert active.spawned_count == 0
    assert relay.sent == []


def test_end_turn_replaces_state_and_flips_authority(sync, relay, active):
    sync.spawn_object(P1, BLOCK)
    result = sync.end_turn(P1, snapshot(('obj-1', 110, 190)))

    assert result['current_turn'] == 2
    assert active.current_turn_holder == P2
    assert active.turn_count == 1
    assert active.shared_state.get('obj-1').x == 110

    to_p1 = relay.last(P1, 'turn_changed')
    to_p2 = relay.last(P2, 'turn_changed')
    assert not to_p1['is_your_turn'] and to_p2['is_your_turn']
    assert to_p1['object_states'] == to_p2['object_states']
    assert to_p2['object_states'][0]['id'] == 'obj-1'


def test_snapshot_replaces_wholesale(sync, active):
    sync.spawn_object(P1, BLOCK)
    sync.spawn_object(P1, BLOCK)
    sync.end_turn(P1, snapshot(('obj-2', 5, 5)))
    assert list(active.shared_state.objects) == ['obj-2']


def test_turns_alternate(sync, active):
    sync.end_turn(P1, [])
    with pytest.raises(ProtocolViolation):
        sync.end_turn(P1, [])
    sync.end_turn(P2, [])
    assert active.current_turn_holder == P1
    assert active.turn_count == 2


def test_malformed_snapshot_rejected(sync, active):
    with pytest.raises(ProtocolViolation):
        sync.end_turn(P1, [{'id': 'obj-1', 'x': 'left', 'y': 0}])
    with pytest.raises(ProtocolViolation):
        sync.end_turn(P1, snapshot(('a', 0, 0), ('a', 1, 1)))
    assert active.current_turn_holder == P1
    assert active.turn_count == 0


def test_in_flight_position_goes_to_peer_only(sync, relay, active):
    sync.spawn_object(P1, BLOCK)
    relay.clear()
    sync.sync_in_flight_position(P1, 'obj-1', {'x': 150})

    update = relay.last(P2, 'object_position_update')
    assert update == {'session_id': active.session_id, 'object_id': 'obj-1', 'x': 150, 'y': 200, 'angle': 0}
    assert relay.events_for(P1) == []
    assert active.shared_state.get('obj-1').x == 100


def test_in_flight_position_from_peer_rejected(sync):
    with pytest.raises(ProtocolViolation):
        sync.sync_in_flight_position(P2, 'obj-1', {'x': 1, 'y': 1})


def test_checkpoint_keeps_turn(sync, relay, active):
    sync.checkpoint(P1, snapshot(('obj-1', 1, 2)))
    assert active.current_turn_holder == P1
    assert relay.last(P2, 'game_state_sync')['object_states'][0]['id'] == 'obj-1'


def test_report_progress_relayed(sync, relay, active):
    sync.report_progress(P2, 42.5)
    assert active.get_participant(P2).achievement_metric == 42.5
    assert relay.last(P1, 'partner_progress')['metric'] == 42.5
    with pytest.raises(ProtocolViolation):
        sync.report_progress(P1, 'tall')


def test_operations_rejected_before_activation(directory, paired):
    sync = directory.get_synchronizer(paired.session_id)
    with pytest.raises(ProtocolViolation):
        sync.spawn_object(P1, BLOCK)
    with pytest.raises(ProtocolViolation):
        sync.end_session(P1, 10)


def test_end_session_settles_when_both_submit(sync, relay, active):
    assert sync.end_session(P1, 250) is None
    assert active.status == SessionStatus.ACTIVE

    result = sync.end_session(P2, 250)
    assert result.tier == 'Epic'
    assert result.payouts == {P1: 1_475_000, P2: 1_475_000}
    assert active.status == SessionStatus.SETTLED
    assert sync.phase == TurnPhase.ENDED

    for participant_id in (P1, P2):
        settlement = relay.last(participant_id, 'settlement_result')
        assert settlement['protocol_fee'] == 50_000
        assert settlement['channel_mode'] == 'simulated'
        assert relay.last(participant_id, 'session_ended')['final_metric'] == 250


def test_end_session_uses_lower_metric_and_flags_dispute(sync, relay, active):
    sync.end_session(P1, 310)
    result = sync.end_session(P2, 190)
    assert result.tier == 'Great'
    assert active.metric_disputed
    assert relay.last(P1, 'session_ended')['metric_disputed'] is True


def test_small_metric_gap_not_disputed(sync, active):
    sync.end_session(P1, 200.4)
    sync.end_session(P2, 200)
    assert not active.metric_disputed


def test_double_submission_rejected(sync):
    sync.end_session(P1, 100)
    with pytest.raises(ProtocolViolation):
        sync.end_session(P1, 300)


def test_no_turns_after_settlement(sync):
    sync.end_session(P1, 0)
    sync.end_session(P2, 0)
    with pytest.raises(ProtocolViolation):
        sync.end_turn(P1, [])


def test_applying_same_snapshot_twice_is_idempotent(sync, active):
    states = snapshot(('obj-1', 10, 20), ('obj-2', 30, 40.5))
    sync.apply_snapshot(states)
    first = active.shared_state.to_list()

    sync.apply_snapshot(states)
    assert active.shared_state.to_list() == first
    assert [obj['id'] for obj in first] == ['obj-1', 'obj-2']
