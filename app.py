"""
FlashPoint - Matchmaking and Session Server

Flask-SocketIO backend that pairs two players into a collaborative
session, relays the channel handshake, keeps the shared state in step
turn by turn and settles the stake when the session ends.
App.py is purely server setup and handler registration.
"""

import logging
import time
from flask import Flask
from flask_socketio import SocketIO
from flask_cors import CORS
from werkzeug.middleware.proxy_fix import ProxyFix

from config import settings, load_rules
from lobby import SessionDirectory, ConnectionManager
from channel import ChannelCoordinator
from handlers import SocketIORelay, register_socket_handlers, register_api_handlers

# Configure logging
logging.basicConfig(
    level=settings.LOG_LEVEL,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def create_app(rule_book=None, async_mode=None, clock=time.time):
    """
    Application factory that creates and configures the Flask app.

    Args:
        rule_book: Mode rules; loaded from RULES_PATH when omitted
        async_mode: Socket.IO async mode; defaults to SOCKETIO_ASYNC_MODE
        clock: Time source shared by the directory and the coordinator

    Returns:
        Configured Flask app with SocketIO
    """

    # Flask configuration
    app = Flask(__name__)
    app.config['SECRET_KEY'] = settings.SECRET_KEY

    # CORS configuration for browser clients
    CORS(app, origins=settings.CORS_ORIGINS.split(','))

    # ProxyFix for deployment behind reverse proxy
    app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1)

    # SocketIO configuration
    socketio = SocketIO(
        app,
        cors_allowed_origins=settings.CORS_ORIGINS.split(','),
        async_mode=async_mode or settings.ASYNC_MODE,
        ping_timeout=60,
        ping_interval=25
    )

    logger.info("Initializing session components...")
    rule_book = rule_book or load_rules(settings.RULES_PATH)

    connection_manager = ConnectionManager()
    relay = SocketIORelay(socketio, connection_manager)
    directory = SessionDirectory(
        relay, rule_book,
        stale_after=settings.LOBBY_STALE_SECONDS,
        session_retention=settings.SESSION_RETENTION_SECONDS,
        metric_tolerance=settings.METRIC_TOLERANCE,
        clock=clock
    )
    coordinator = ChannelCoordinator(
        directory, relay,
        negotiation_deadline=settings.NEGOTIATION_DEADLINE_SECONDS,
        clock=clock
    )

    # Register handlers (pure routing layer)
    logger.info("Registering handlers...")
    register_socket_handlers(socketio, directory, coordinator, connection_manager)
    register_api_handlers(app, directory, rule_book, connection_manager)

    app.extensions['flashpoint'] = {
        'directory': directory,
        'coordinator': coordinator,
        'connections': connection_manager,
        'relay': relay,
        'rule_book': rule_book
    }

    logger.info("Application initialization complete")

    return app, socketio


def start_maintenance(socketio, directory, coordinator, interval=settings.SWEEP_INTERVAL_SECONDS):
    """Run maintenance on a fixed interval as a Socket.IO background task."""
    def maintenance_loop():
        while True:
            socketio.sleep(interval)
            try:
                directory.sweep()
            except Exception as e:
                logger.error(f"Sweep failed: {e}")

    # The negotiation deadline is finer than the sweep interval
    def negotiation_loop():
        while True:
            socketio.sleep(1)
            try:
                coordinator.expire_negotiations()
            except Exception as e:
                logger.error(f"Negotiation expiry failed: {e}")

    socketio.start_background_task(maintenance_loop)
    socketio.start_background_task(negotiation_loop)


def main():
    """Main entry point for development server."""

    # Create the application
    app, socketio = create_app()
    components = app.extensions['flashpoint']
    start_maintenance(socketio, components['directory'], components['coordinator'])

    logger.info(f"Starting FlashPoint server on port {settings.PORT}")
    logger.info(f"Debug mode: {settings.DEBUG}")
    logger.info(f"CORS origins: {settings.CORS_ORIGINS}")

    # Run the server
    socketio.run(app, debug=settings.DEBUG, port=settings.PORT, host='0.0.0.0')


if __name__ == '__main__':
    main()
