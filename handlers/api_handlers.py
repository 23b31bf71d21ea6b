"""
API Route Handlers for FlashPoint.

Pure routing layer that delegates to the session directory and the
rule book. Contains no business logic - only request/response handling.
"""

import logging
from flask import jsonify

logger = logging.getLogger(__name__)


def register_api_handlers(app, directory, rule_book, connection_manager):
    """
    Register all API route handlers.

    Args:
        app: Flask application instance
        directory: SessionDirectory instance
        rule_book: RuleBook with the configured modes
        connection_manager: ConnectionManager tracking live sockets
    """

    @app.route('/api/health')
    def health_check():
        """Health check endpoint."""
        try:
            stats = directory.get_stats()
            return jsonify({
                'status': 'healthy',
                'message': 'FlashPoint matchmaking server is running',
                'version': '1.0.0',
                **stats,
                'connections': connection_manager.get_connection_count()
            })

        except Exception as e:
            logger.error(f"Error getting directory stats: {e}")
            return jsonify({'error': 'Failed to get server status'}), 500

    @app.route('/api/modes')
    def get_modes():
        """Configured game modes and their reward tiers."""
        return jsonify(rule_book.to_dict())

    @app.route('/api/sessions/<session_id>')
    def get_session(session_id):
        """State of a session still held in memory."""
        session = directory.get_session(session_id)
        if session is None:
            return jsonify({'error': 'Session not found'}), 404

        try:
            synchronizer = directory.get_synchronizer(session_id)
            data = session.to_dict()
            if synchronizer is not None:
                data['phase'] = synchronizer.phase.value
            return jsonify(data)

        except Exception as e:
            logger.error(f"Error getting session {session_id}: {e}")
            return jsonify({'error': 'Failed to get session'}), 500

    # Error handlers
    @app.errorhandler(404)
    def not_found(error):
        """Handle 404 errors."""
        return jsonify({'error': 'Not found'}), 404

    @app.errorhandler(500)
    def internal_error(error):
        """Handle 500 errors."""
        return jsonify({'error': 'Internal server error'}), 500

    logger.info("API handlers registered successfully")
