from conftest import P1, P2, FakeLedger, FakeSigner

from player_client import PlayerClient, RecordingPhysics


class StubSocket:
    """Stands in for socketio.Client: records emits, runs background tasks inline."""

    def __init__(self):
        self.handlers = {}
        self.emitted = []

    def on(self, event, handler):
        self.handlers[event] = handler

    def emit(self, event, payload):
        self.emitted.append((event, payload))

    def start_background_task(self, target, *args):
        self.task = target

    def sleep(self, seconds):
        pass

    def deliver(self, event, payload):
        self.handlers[event](payload)

    def last(self, event):
        matching = [p for e, p in self.emitted if e == event]
        return matching[-1] if matching else None


def game_start(number, opponent):
    return {
        'session_id': 'feedbeef00112233',
        'player_number': number,
        'opponent': {'participant_id': opponent},
        'is_proposer': number == 1,
        'is_your_turn': number == 1,
        'base_stake': 1_000_000,
        'game_state': {'objects': []}
    }


def make_client(participant_id, ledger=None):
    sio = StubSocket()
    client = PlayerClient(participant_id, 'tower_collab',
                          signer=FakeSigner('0xkey-' + participant_id[-1]),
                          ledger=ledger or FakeLedger(),
                          physics=RecordingPhysics(), sio=sio)
    return client, sio


def test_join_emits_lobby_request():
    client, sio = make_client(P1)
    client.join()
    assert sio.last('join_lobby') == {'mode_id': 'tower_collab', 'participant_id': P1, 'stake_commitment': None}


def test_two_clients_negotiate_through_relayed_messages():
    proposer, proposer_sio = make_client(P1, FakeLedger(channel_id='0xchan'))
    responder, responder_sio = make_client(P2)

    proposer_sio.deliver('game_start', game_start(1, P2))
    responder_sio.deliver('game_start', game_start(2, P1))
    proposer.negotiator.start()

    responder_sio.deliver('channel_proposal', proposer_sio.last('channel_proposal'))
    proposer_sio.deliver('channel_signature', responder_sio.last('channel_signature'))

    resolved = proposer_sio.last('channel_resolved')
    assert resolved['channel_id'] == '0xchan'
    for sio in (proposer_sio, responder_sio):
        sio.deliver('channel_resolved', resolved)
    assert proposer.channel_mode == responder.channel_mode == 'real'
    assert responder.channel_ready.is_set()


def test_turn_change_freezes_every_object():
    client, sio = make_client(P1)
    sio.deliver('game_start', game_start(1, P2))
    sio.deliver('object_spawned', {'object': {'id': 'obj-1', 'x': 0, 'y': 0}, 'spawned_by': 1})
    sio.deliver('object_spawned', {'object': {'id': 'obj-2', 'x': 5, 'y': 0}, 'spawned_by': 2})

    sio.deliver('turn_changed', {
        'is_your_turn': False,
        'current_turn': 2,
        'object_states': [{'id': 'obj-1', 'x': 0, 'y': 1, 'velocity_x': 3, 'velocity_y': 0},
                          {'id': 'obj-2', 'x': 5, 'y': 1, 'velocity_x': 2, 'velocity_y': 1}]
    })

    assert not client.is_my_turn
    assert client.physics.frozen == {'obj-1', 'obj-2'}
    assert client.physics.objects['obj-1']['velocity_x'] == 0
    assert client.physics.objects['obj-2']['velocity_y'] == 0


def test_regaining_turn_releases_objects():
    client, sio = make_client(P1)
    sio.deliver('game_start', game_start(1, P2))
    states = [{'id': 'obj-1', 'x': 0, 'y': 1, 'velocity_x': 3, 'velocity_y': 0}]
    sio.deliver('turn_changed', {'is_your_turn': False, 'current_turn': 2, 'object_states': states})
    sio.deliver('turn_changed', {'is_your_turn': True, 'current_turn': 1, 'object_states': states})

    assert client.is_my_turn
    assert client.physics.frozen == set()
    assert client.physics.objects['obj-1']['velocity_x'] == 3


def test_settlement_finishes_client():
    client, sio = make_client(P1)
    sio.deliver('settlement_result', {'tier': 'Epic', 'payouts': {P1: 1_475_000}, 'channel_mode': 'real'})
    assert client.finished.is_set()
    assert client.settlement['tier'] == 'Epic'


def test_error_recorded():
    client, sio = make_client(P1)
    sio.deliver('error', {'message': 'Not your turn!', 'action': 'end_turn'})
    assert client.last_error == 'Not your turn!'
