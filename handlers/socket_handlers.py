"""
Socket.IO Event Handlers for FlashPoint.

Pure routing layer that delegates to the session directory, the turn
synchronizers and the channel coordinator. Contains no business logic -
only event routing and error reporting. A rejected action produces an
``error`` event to the caller only and never changes session state.
"""

import logging
from flask import request
from flask_socketio import emit

from utils.constants import EVENTS
from utils.errors import PeerUnavailable, ProtocolViolation

logger = logging.getLogger(__name__)


def register_socket_handlers(socketio, directory, coordinator, connection_manager):
    """
    Register all Socket.IO event handlers.

    Args:
        socketio: SocketIO instance
        directory: SessionDirectory instance
        coordinator: ChannelCoordinator instance
        connection_manager: ConnectionManager instance
    """

    def current_participant():
        participant_id = connection_manager.get_participant(request.sid)
        if participant_id is None:
            raise ProtocolViolation("Join a lobby first")
        return participant_id

    def synchronizer_for(participant_id, data):
        session = directory.session_for(participant_id)
        session_id = data.get('session_id') if isinstance(data, dict) else None
        if session is None or (session_id and session_id != session.session_id):
            raise ProtocolViolation("Session not found")
        synchronizer = directory.get_synchronizer(session.session_id)
        if synchronizer is None:
            raise ProtocolViolation("Session not found")
        return synchronizer

    def payload_of(data):
        if not isinstance(data, dict):
            raise ProtocolViolation("Payload must be an object")
        return data

    def reject(action, error):
        logger.warning(f"Rejected {action} from {request.sid}: {error}")
        emit(EVENTS['ERROR'], {'message': str(error), 'action': action})

    def fail(action, error):
        logger.error(f"Error handling {action}: {error}")
        emit(EVENTS['ERROR'], {'message': f'Failed to {action.replace("_", " ")}', 'action': action})

    @socketio.on('connect')
    def handle_connect():
        """Handle client connection."""
        logger.info(f"Client connected: {request.sid}")
        emit('connected', {'message': 'Connected to server successfully'})

    @socketio.on('disconnect')
    def handle_disconnect(*args):
        """Handle client disconnection."""
        logger.info(f"Client disconnected: {request.sid}")

        try:
            participant_id = connection_manager.unregister_connection(request.sid)
            if participant_id:
                directory.on_disconnect(participant_id)
        except Exception as e:
            logger.error(f"Error handling disconnect: {e}")

    @socketio.on('join_lobby')
    def handle_join_lobby(data):
        """Handle a participant joining a mode's lobby."""
        try:
            data = payload_of(data)
            mode_id = data.get('mode_id')
            participant_id = data.get('participant_id')

            success, message = connection_manager.register_connection(request.sid, participant_id) \
                if participant_id else (False, 'Missing mode or participant id')
            if not success:
                emit(EVENTS['ERROR'], {'message': message, 'action': 'join_lobby'})
                return

            success, message, _ = directory.join_lobby(
                mode_id=mode_id,
                participant_id=participant_id,
                stake_commitment=data.get('stake_commitment')
            )

            if not success:
                emit(EVENTS['ERROR'], {'message': message, 'action': 'join_lobby'})

        except ProtocolViolation as e:
            reject('join_lobby', e)
        except Exception as e:
            fail('join_lobby', e)

    @socketio.on('leave_lobby')
    def handle_leave_lobby(data=None):
        """Handle a participant leaving the lobby."""
        try:
            participant_id = current_participant()
            mode_id = (data or {}).get('mode_id') or directory.participant_lobby.get(participant_id)
            directory.leave_lobby(mode_id, participant_id)
        except ProtocolViolation as e:
            reject('leave_lobby', e)
        except Exception as e:
            fail('leave_lobby', e)

    @socketio.on('leave_session')
    def handle_leave_session(data=None):
        """Handle a participant walking out of a live session."""
        try:
            participant_id = current_participant()
            success, message, _ = directory.abandon_session(participant_id)
            if not success:
                raise ProtocolViolation(message)
        except ProtocolViolation as e:
            reject('leave_session', e)
        except Exception as e:
            fail('leave_session', e)

    # ---- Channel negotiation ----

    @socketio.on('channel_proposal')
    def handle_channel_proposal(data):
        """Relay player 1's proposal to player 2."""
        try:
            coordinator.forward_proposal(current_participant(), payload_of(data))
        except (ProtocolViolation, PeerUnavailable) as e:
            reject('channel_proposal', e)
        except Exception as e:
            fail('channel_proposal', e)

    @socketio.on('channel_signature')
    def handle_channel_signature(data):
        """Relay player 2's signature to player 1."""
        try:
            coordinator.forward_signature(current_participant(), payload_of(data))
        except (ProtocolViolation, PeerUnavailable) as e:
            reject('channel_signature', e)
        except Exception as e:
            fail('channel_signature', e)

    @socketio.on('channel_resolved')
    def handle_channel_resolved(data):
        """Record the channel player 1 resolved and open play."""
        try:
            coordinator.resolve(current_participant(), payload_of(data))
        except ProtocolViolation as e:
            reject('channel_resolved', e)
        except Exception as e:
            fail('channel_resolved', e)

    # ---- Turns ----

    @socketio.on('spawn_object')
    def handle_spawn_object(data):
        """Add an object to the shared state."""
        try:
            participant_id = current_participant()
            data = payload_of(data)
            descriptor = data.get('object', data)
            synchronizer_for(participant_id, data).spawn_object(participant_id, payload_of(descriptor))
        except ProtocolViolation as e:
            reject('spawn_object', e)
        except Exception as e:
            fail('spawn_object', e)

    @socketio.on('end_turn')
    def handle_end_turn(data):
        """Pass the turn with the holder's snapshot."""
        try:
            participant_id = current_participant()
            data = payload_of(data)
            synchronizer_for(participant_id, data).end_turn(participant_id, data.get('object_states'))
        except ProtocolViolation as e:
            reject('end_turn', e)
        except Exception as e:
            fail('end_turn', e)

    @socketio.on('sync_object_position')
    def handle_sync_object_position(data):
        """Forward an in-flight pose to the peer."""
        try:
            participant_id = current_participant()
            data = payload_of(data)
            synchronizer_for(participant_id, data).sync_in_flight_position(
                participant_id, data.get('object_id'), data
            )
        except ProtocolViolation as e:
            reject('sync_object_position', e)
        except Exception as e:
            fail('sync_object_position', e)

    @socketio.on('sync_game_state')
    def handle_sync_game_state(data):
        """Publish a mid-turn checkpoint."""
        try:
            participant_id = current_participant()
            data = payload_of(data)
            synchronizer_for(participant_id, data).checkpoint(participant_id, data.get('object_states'))
        except ProtocolViolation as e:
            reject('sync_game_state', e)
        except Exception as e:
            fail('sync_game_state', e)

    @socketio.on('report_progress')
    def handle_report_progress(data):
        """Share the running achievement metric with the peer."""
        try:
            participant_id = current_participant()
            data = payload_of(data)
            synchronizer_for(participant_id, data).report_progress(participant_id, data.get('metric'))
        except ProtocolViolation as e:
            reject('report_progress', e)
        except Exception as e:
            fail('report_progress', e)

    @socketio.on('end_session')
    def handle_end_session(data):
        """Submit the final metric; settles once both have submitted."""
        try:
            participant_id = current_participant()
            data = payload_of(data)
            synchronizer_for(participant_id, data).end_session(participant_id, data.get('final_metric'))
        except ProtocolViolation as e:
            reject('end_session', e)
        except Exception as e:
            fail('end_session', e)
