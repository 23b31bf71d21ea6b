import hashlib
import os
import sys

import pytest

# Ensure the project root (containing the packages and app.py) is on sys.path
CURRENT_DIR = os.path.dirname(__file__)
PROJECT_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, '..'))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

from config.rules import ModeRules, RuleBook
from lobby.manager import SessionDirectory
from utils.errors import ExternalServiceFailure

P1 = '0xAAA0000000000000000000000000000000000001'
P2 = '0xBBB0000000000000000000000000000000000002'
MODE = 'tower_collab'


class RecordingRelay:
    """Captures everything the server would emit."""

    def __init__(self):
        self.sent = []

    def send(self, participant_id, event, payload):
        self.sent.append((participant_id, event, payload))
        return True

    def events_for(self, participant_id, event=None):
        return [p for pid, e, p in self.sent
                if pid == participant_id and (event is None or e == event)]

    def last(self, participant_id, event):
        events = self.events_for(participant_id, event)
        return events[-1] if events else None

    def names_for(self, participant_id):
        return [e for pid, e, _ in self.sent if pid == participant_id]

    def clear(self):
        self.sent = []


class FakeClock:
    def __init__(self, now=1_700_000_000.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


class FakeSigner:
    """Deterministic signer: the signature is a digest of address and payload."""

    def __init__(self, address, available=True, fail=False):
        self.address = address
        self.available = available
        self.fail = fail
        self.signed = []

    def is_available(self):
        return self.available

    def _digest(self, payload, address):
        return 'sig:' + hashlib.sha256(address.encode() + payload).hexdigest()

    def sign(self, payload):
        if self.fail:
            raise ExternalServiceFailure("signer offline")
        self.signed.append(payload)
        return self._digest(payload, self.address)

    def verify(self, payload, signature, address):
        return signature == self._digest(payload, address)


class FakeLedger:
    def __init__(self, available=True, fail=False, channel_id='0xchannel01'):
        self.available = available
        self.fail = fail
        self.channel_id = channel_id
        self.submitted = []

    def is_available(self):
        return self.available

    def submit_channel(self, proposal):
        self.submitted.append(proposal)
        if self.fail:
            raise ExternalServiceFailure("ledger rejected")
        return self.channel_id


@pytest.fixture()
def relay():
    return RecordingRelay()


@pytest.fixture()
def clock():
    return FakeClock()


@pytest.fixture()
def rule_book():
    return RuleBook([
        ModeRules(mode_id=MODE, name='Tower Builders', session_duration=120),
        ModeRules(mode_id='tower_sprint', name='Tower Sprint', base_stake=500_000, session_duration=60)
    ], MODE)


@pytest.fixture()
def directory(relay, rule_book, clock):
    return SessionDirectory(relay, rule_book, stale_after=300, session_retention=60,
                            metric_tolerance=1.0, clock=clock)


@pytest.fixture()
def paired(directory, relay):
    """A STARTING session between P1 (proposer) and P2."""
    directory.join_lobby(MODE, P1)
    directory.join_lobby(MODE, P2)
    session = directory.session_for(P1)
    relay.clear()
    return session


@pytest.fixture()
def active(directory, paired, relay):
    """An ACTIVE session in simulated mode."""
    directory.record_channel(paired.session_id, P1, 'sim_test_channel')
    relay.clear()
    return paired


@pytest.fixture()
def flask_app(rule_book, clock):
    from app import create_app
    application, sio = create_app(rule_book=rule_book, async_mode='threading', clock=clock)
    application.config['TESTING'] = True
    application.extensions['test_socketio'] = sio
    return application


@pytest.fixture()
def sio_server(flask_app):
    return flask_app.extensions['test_socketio']


@pytest.fixture()
def client(flask_app):
    return flask_app.test_client()


@pytest.fixture()
def sio_clients(flask_app, sio_server):
    clients = []

    def make():
        test_client = sio_server.test_client(flask_app, flask_test_client=flask_app.test_client())
        clients.append(test_client)
        return test_client

    yield make
    for test_client in clients:
        if test_client.is_connected():
            test_client.disconnect()
