"""
Handlers Module for FlashPoint.

Contains all web layer handlers (Socket.IO, API and the relay) with no
business logic. Handlers coordinate between the web layer and the
lobby, game and channel modules.
"""

from .relay import SocketIORelay
from .socket_handlers import register_socket_handlers
from .api_handlers import register_api_handlers

__all__ = [
    'SocketIORelay',
    'register_socket_handlers',
    'register_api_handlers'
]
