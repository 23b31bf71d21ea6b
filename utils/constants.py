"""
Constants for the FlashPoint matchmaking server.

Channel modes, relay event names, channel protocol values
and lobby defaults shared across modules.
"""

# Channel modes reported to players
CHANNEL_MODES = {
    'REAL': 'real',
    'SIMULATED': 'simulated'
}

# Events sent to clients through the relay
EVENTS = {
    'WAITING': 'waiting_for_opponent',
    'LEFT_LOBBY': 'left_lobby',
    'MATCH_FOUND': 'match_found',
    'GAME_START': 'game_start',
    'CHANNEL_PROPOSAL': 'channel_proposal',
    'CHANNEL_SIGNATURE': 'channel_signature',
    'CHANNEL_RESOLVED': 'channel_resolved',
    'OBJECT_SPAWNED': 'object_spawned',
    'OBJECT_POSITION_UPDATE': 'object_position_update',
    'GAME_STATE_SYNC': 'game_state_sync',
    'TURN_CHANGED': 'turn_changed',
    'PARTNER_PROGRESS': 'partner_progress',
    'SESSION_ENDED': 'session_ended',
    'SETTLEMENT_RESULT': 'settlement_result',
    'OPPONENT_DISCONNECTED': 'opponent_disconnected',
    'ERROR': 'error'
}

# Channel definition values
CHANNEL_PROTOCOL = 'NitroRPC/0.4'
CHANNEL_APPLICATION = 'FlashPoint'
CHANNEL_WEIGHTS = (50, 50)
CHANNEL_QUORUM = 100
CHANNEL_CHALLENGE = 0

# Prefix marking a locally fabricated channel identifier
PLACEHOLDER_PREFIX = 'sim_'

# 1 unit = 1,000,000 with 6 decimals
DEFAULT_BASE_STAKE = 1_000_000

ESTIMATED_WAIT = '~30 seconds'
