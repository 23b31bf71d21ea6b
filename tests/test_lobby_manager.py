import random

from conftest import MODE, P1, P2

from game.models import SessionStatus

P3 = '0xCCC0000000000000000000000000000000000003'


def test_first_join_waits(directory, relay):
    success, message, data = directory.join_lobby(MODE, P1)
    assert success
    assert data == {'matched': False, 'mode_id': MODE, 'position': 1, 'estimated_wait': '~30 seconds'}
    assert relay.last(P1, 'waiting_for_opponent')['position'] == 1
    assert directory.get_stats()['waiting'] == 1


def test_second_join_pairs_atomically(directory, relay):
    directory.join_lobby(MODE, P1)
    success, message, data = directory.join_lobby(MODE, P2)

    assert success and data['matched']
    session = directory.get_session(data['session_id'])
    assert session.participant_ids == (P1, P2)
    assert session.status == SessionStatus.STARTING
    assert session.current_turn_holder == P1
    assert MODE not in directory.lobbies
    assert directory.participant_lobby == {}

    start_p1 = relay.last(P1, 'game_start')
    start_p2 = relay.last(P2, 'game_start')
    assert start_p1['player_number'] == 1 and start_p1['is_proposer'] and start_p1['is_your_turn']
    assert start_p2['player_number'] == 2 and not start_p2['is_proposer'] and not start_p2['is_your_turn']
    assert start_p1['opponent']['participant_id'] == P2
    assert start_p1['base_stake'] == 1_000_000
    assert start_p1['game_state']['objects'] == []
    assert relay.last(P2, 'match_found')['session_id'] == session.session_id


def test_rejoin_same_lobby_does_not_self_match(directory):
    directory.join_lobby(MODE, P1)
    success, _, data = directory.join_lobby(MODE, P1)
    assert success and not data['matched']
    assert data['position'] == 1
    assert len(directory.lobbies[MODE]) == 1


def test_joining_other_mode_moves_participant(directory):
    directory.join_lobby(MODE, P1)
    directory.join_lobby('tower_sprint', P1)
    assert MODE not in directory.lobbies
    assert directory.participant_lobby[P1] == 'tower_sprint'


def test_third_participant_waits_for_next_match(directory):
    directory.join_lobby(MODE, P1)
    directory.join_lobby(MODE, P2)
    _, _, data = directory.join_lobby(MODE, P3)
    assert not data['matched']
    assert data['position'] == 1


def test_participant_in_live_session_rejected(directory, paired):
    success, message, data = directory.join_lobby(MODE, P1)
    assert not success
    assert message == "Already in an active session"


def test_malformed_join_rejected(directory, relay):
    assert directory.join_lobby('', P1) == (False, "Missing mode or participant id", None)
    assert directory.join_lobby(MODE, None)[0] is False
    assert relay.sent == []


def test_leave_lobby_is_idempotent(directory, relay):
    directory.join_lobby(MODE, P1)
    assert directory.leave_lobby(MODE, P1)[0]
    assert directory.leave_lobby(MODE, P1)[0]
    assert MODE not in directory.lobbies
    assert len(relay.events_for(P1, 'left_lobby')) == 2


def test_mode_stake_comes_from_rules(directory):
    directory.join_lobby('tower_sprint', P1)
    _, _, data = directory.join_lobby('tower_sprint', P2)
    assert directory.get_session(data['session_id']).base_stake == 500_000


def test_disconnect_while_waiting_removes_entry(directory):
    directory.join_lobby(MODE, P1)
    success, _, abandoned = directory.on_disconnect(P1)
    assert success and abandoned is None
    assert MODE not in directory.lobbies


def test_disconnect_abandons_live_session(directory, active, relay):
    success, _, abandoned = directory.on_disconnect(P2)

    assert abandoned == active.session_id
    assert active.status == SessionStatus.ABANDONED
    assert active.settlement is None
    assert directory.get_session(active.session_id) is None
    assert directory.session_for(P1) is None

    notice = relay.last(P1, 'opponent_disconnected')
    assert notice['outcome'] == 'refund'
    assert notice['refund'] == 1_000_000
    assert relay.events_for(P2) == []


def test_disconnect_after_settlement_leaves_session(directory, active):
    synchronizer = directory.get_synchronizer(active.session_id)
    synchronizer.end_session(P1, 120)
    synchronizer.end_session(P2, 120)

    directory.on_disconnect(P1)
    assert active.status == SessionStatus.SETTLED
    assert directory.get_session(active.session_id) is active


def test_abandoned_participants_can_rejoin(directory, active):
    directory.on_disconnect(P1)
    success, _, data = directory.join_lobby(MODE, P2)
    assert success and not data['matched']


def test_sweep_drops_stale_entries(directory, clock):
    directory.join_lobby(MODE, P1)
    clock.advance(301)
    directory.join_lobby('tower_sprint', P2)

    counts = directory.sweep()
    assert counts['dropped_entries'] == 1
    assert counts['deleted_lobbies'] == 1
    assert MODE not in directory.lobbies
    assert P1 not in directory.participant_lobby
    assert 'tower_sprint' in directory.lobbies


def test_sweep_evicts_settled_sessions_after_retention(directory, active, clock):
    synchronizer = directory.get_synchronizer(active.session_id)
    synchronizer.end_session(P1, 50)
    synchronizer.end_session(P2, 50)

    clock.advance(30)
    assert directory.sweep()['evicted_sessions'] == 0
    clock.advance(31)
    assert directory.sweep()['evicted_sessions'] == 1
    assert directory.get_session(active.session_id) is None


def test_sweep_keeps_live_sessions(directory, active, clock):
    clock.advance(10_000)
    directory.sweep()
    assert directory.get_session(active.session_id) is active


def test_record_channel_first_wins(directory, paired):
    success, _, session = directory.record_channel(paired.session_id, P1, '0xreal')
    assert success
    assert session.status == SessionStatus.ACTIVE
    assert session.channel_mode == 'real'

    success, message, _ = directory.record_channel(paired.session_id, None, 'sim_late')
    assert not success
    assert paired.channel_id == '0xreal'


def test_record_channel_only_from_proposer(directory, paired):
    success, message, _ = directory.record_channel(paired.session_id, P2, '0xreal')
    assert not success
    assert paired.channel_id is None


def test_placeholder_channel_is_simulated(directory, paired):
    directory.record_channel(paired.session_id, P1, 'sim_abc_123')
    assert paired.channel_mode == 'simulated'


def test_stats(directory, paired):
    directory.join_lobby(MODE, P3)
    assert directory.get_stats() == {'lobbies': 1, 'waiting': 1, 'sessions': 1, 'active_sessions': 1}


def test_disconnect_while_negotiating_abandons(directory, paired, relay):
    directory.mark_negotiating(paired.session_id)
    assert paired.status == SessionStatus.NEGOTIATING

    success, _, abandoned = directory.on_disconnect(P1)
    assert abandoned == paired.session_id
    assert paired.status == SessionStatus.ABANDONED
    assert relay.last(P2, 'opponent_disconnected')['outcome'] == 'refund'
    assert directory.get_session(paired.session_id) is None


def test_random_join_leave_disconnect_never_double_matches(directory):
    rng = random.Random(20240611)
    participants = [f'0x{n:040x}' for n in range(1, 7)]
    modes = [MODE, 'tower_sprint']

    for _ in range(2000):
        participant_id = rng.choice(participants)
        action = rng.random()
        if action < 0.6:
            directory.join_lobby(rng.choice(modes), participant_id)
        elif action < 0.8:
            directory.leave_lobby(directory.participant_lobby.get(participant_id, rng.choice(modes)), participant_id)
        else:
            directory.on_disconnect(participant_id)

        in_sessions = [pid for s in directory.sessions.values() if s.is_live for pid in s.participant_ids]
        assert len(in_sessions) == len(set(in_sessions))

        queued = [entry.participant_id for lobby in directory.lobbies.values() for entry in lobby.entries]
        assert len(queued) == len(set(queued))
        assert all(len(lobby.entries) <= 1 for lobby in directory.lobbies.values())
        assert not set(queued) & set(in_sessions)
