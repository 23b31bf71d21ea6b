"""
Player client for FlashPoint.

Drives one participant over Socket.IO: joins a lobby, runs its side of
the channel handshake and exposes the turn operations to the game.
"""

import logging
import threading
import time
from typing import Any, Callable, Dict, List, Optional

import socketio

from channel import ChannelNegotiator, LedgerClient, LocalAccountSigner
from config.settings import CHANNEL_ASSET, SIGNATURE_TIMEOUT_SECONDS
from utils.constants import EVENTS
from utils.errors import ProtocolViolation
from .physics import PhysicsAdapter

logger = logging.getLogger(__name__)


class PlayerClient:
    """
    One participant's connection to the matchmaking server.

    On every ``turn_changed`` the authoritative snapshot is applied to the
    physics engine; when the turn passes to the peer, every object is
    frozen until the next snapshot so the two simulations cannot drift.
    """

    def __init__(self, participant_id: str, mode_id: str,
                 signer=None, ledger=None,
                 physics: Optional[PhysicsAdapter] = None,
                 sio: Optional[socketio.Client] = None,
                 signature_timeout: float = SIGNATURE_TIMEOUT_SECONDS,
                 asset: str = CHANNEL_ASSET,
                 clock: Callable[[], float] = time.time):
        """
        Initialize the client.

        Args:
            participant_id: Wallet address identifying this player
            mode_id: Game mode to queue for
            signer: Signer adapter; a fresh session key when omitted
            ledger: Ledger client; an unconfigured one (always simulated) when omitted
            physics: Engine adapter
            sio: Socket.IO client to use
            signature_timeout: Seconds the proposer waits for the countersignature
            asset: Asset the stake is locked in
            clock: Time source for negotiation timeouts
        """
        self.participant_id = participant_id
        self.mode_id = mode_id
        self.signer = signer or LocalAccountSigner()
        self.ledger = ledger or LedgerClient(None)
        self.physics = physics or PhysicsAdapter()
        self.sio = sio or socketio.Client()
        self.signature_timeout = signature_timeout
        self.asset = asset
        self.clock = clock

        self.session_id: Optional[str] = None
        self.player_number: Optional[int] = None
        self.opponent_id: Optional[str] = None
        self.is_my_turn = False
        self.objects: List[Dict[str, Any]] = []
        self.partner_metric = 0
        self.settlement: Optional[Dict[str, Any]] = None
        self.last_error: Optional[str] = None
        self.negotiator: Optional[ChannelNegotiator] = None
        self.channel_ready = threading.Event()
        self.finished = threading.Event()

        self._register_handlers()

    def _register_handlers(self):
        self.sio.on(EVENTS['GAME_START'], self.on_game_start)
        self.sio.on(EVENTS['CHANNEL_PROPOSAL'], self.on_channel_proposal)
        self.sio.on(EVENTS['CHANNEL_SIGNATURE'], self.on_channel_signature)
        self.sio.on(EVENTS['CHANNEL_RESOLVED'], self.on_channel_resolved)
        self.sio.on(EVENTS['OBJECT_SPAWNED'], self.on_object_spawned)
        self.sio.on(EVENTS['OBJECT_POSITION_UPDATE'], self.on_object_position_update)
        self.sio.on(EVENTS['GAME_STATE_SYNC'], self.on_game_state_sync)
        self.sio.on(EVENTS['TURN_CHANGED'], self.on_turn_changed)
        self.sio.on(EVENTS['PARTNER_PROGRESS'], self.on_partner_progress)
        self.sio.on(EVENTS['SETTLEMENT_RESULT'], self.on_settlement_result)
        self.sio.on(EVENTS['OPPONENT_DISCONNECTED'], self.on_opponent_disconnected)
        self.sio.on(EVENTS['ERROR'], self.on_error)

    def emit(self, event: str, payload: Dict[str, Any]) -> None:
        self.sio.emit(event, payload)

    # ---- Connection ----

    def connect(self, url: str) -> None:
        logger.info(f"Connecting {self.participant_id} to {url}")
        self.sio.connect(url)

    def join(self, stake_commitment: Any = None) -> None:
        self.emit('join_lobby', {
            'mode_id': self.mode_id,
            'participant_id': self.participant_id,
            'stake_commitment': stake_commitment
        })

    def leave(self) -> None:
        if self.session_id:
            self.emit('leave_session', {'session_id': self.session_id})
        else:
            self.emit('leave_lobby', {'mode_id': self.mode_id})

    # ---- Negotiation ----

    def on_game_start(self, data):
        self.session_id = data['session_id']
        self.player_number = data['player_number']
        self.opponent_id = data['opponent']['participant_id']
        self.is_my_turn = data['is_your_turn']
        self.objects = data.get('game_state', {}).get('objects', [])
        logger.info(f"Session {self.session_id} started as player {self.player_number}")

        self.negotiator = ChannelNegotiator(
            session_id=self.session_id,
            participant_id=self.participant_id,
            peer_id=self.opponent_id,
            is_proposer=data['is_proposer'],
            stake=data['base_stake'],
            signer=self.signer,
            ledger=self.ledger,
            send=self.emit,
            signature_timeout=self.signature_timeout,
            asset=self.asset,
            clock=self.clock
        )
        if self.negotiator.is_proposer:
            self.sio.start_background_task(self._negotiate)

    def _negotiate(self):
        """Propose, then poll the signature timeout until resolved."""
        self.negotiator.start()
        while not self.negotiator.is_resolved:
            self.sio.sleep(0.5)
            self.negotiator.check_timeout()

    def on_channel_proposal(self, data):
        if self.negotiator is None:
            return
        try:
            self.negotiator.on_proposal(data)
        except ProtocolViolation as e:
            logger.warning(f"Refusing to countersign: {e}")

    def on_channel_signature(self, data):
        if self.negotiator is None:
            return
        self.negotiator.on_peer_signature(data.get('signature'), data.get('signer_address'))

    def on_channel_resolved(self, data):
        if self.negotiator is None:
            return
        self.negotiator.on_resolved(data['channel_id'])
        self.channel_ready.set()

    @property
    def channel_mode(self) -> Optional[str]:
        return self.negotiator.channel_mode if self.negotiator else None

    # ---- Turns ----

    def spawn(self, descriptor: Dict[str, Any], client_ref: Optional[str] = None) -> None:
        self.emit('spawn_object', {
            'session_id': self.session_id,
            'object': {**descriptor, 'client_ref': client_ref}
        })

    def drag(self, object_id: str, x: float, y: float, angle: float = 0) -> None:
        self.emit('sync_object_position', {
            'session_id': self.session_id, 'object_id': object_id, 'x': x, 'y': y, 'angle': angle
        })

    def checkpoint(self, objects: List[Dict[str, Any]]) -> None:
        self.emit('sync_game_state', {'session_id': self.session_id, 'object_states': objects})

    def end_turn(self, objects: List[Dict[str, Any]]) -> None:
        self.emit('end_turn', {'session_id': self.session_id, 'object_states': objects})

    def report_progress(self, metric: float) -> None:
        self.emit('report_progress', {'session_id': self.session_id, 'metric': metric})

    def finish(self, final_metric: float) -> None:
        self.emit('end_session', {'session_id': self.session_id, 'final_metric': final_metric})

    def on_object_spawned(self, data):
        obj = data['object']
        self.objects.append(obj)
        self.physics.add_object(obj)

    def on_object_position_update(self, data):
        self.physics.move_object(data['object_id'], data['x'], data['y'], data.get('angle', 0))

    def on_game_state_sync(self, data):
        self.objects = data['object_states']
        self.physics.apply_snapshot(self.objects)

    def on_turn_changed(self, data):
        self.objects = data['object_states']
        self.is_my_turn = data['is_your_turn']
        self.physics.apply_snapshot(self.objects)
        # No write authority during the peer's turn, including over our own spawns
        if not self.is_my_turn:
            self.physics.freeze([obj['id'] for obj in self.objects])

    def on_partner_progress(self, data):
        self.partner_metric = data['metric']

    def on_settlement_result(self, data):
        self.settlement = data
        logger.info(f"Settled in {data.get('channel_mode')} mode: tier {data['tier']}, "
                    f"payout {data['payouts'].get(self.participant_id)}")
        self.finished.set()

    def on_opponent_disconnected(self, data):
        logger.info(f"Opponent left session {data.get('session_id')}: {data.get('message')}")
        self.session_id = None
        self.finished.set()

    def on_error(self, data):
        self.last_error = data.get('message')
        logger.warning(f"Server rejected {data.get('action')}: {self.last_error}")
