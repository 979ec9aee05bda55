"""
ACR122U NFC Bridge - API Module

This module exposes the bridge to web clients: a Socket.IO message channel
carrying tag events and commands, and a small REST mirror of it.
"""

from .api_server import create_app, initialize, start, stop, is_running, get_server_url, get_api_status

__all__ = [
    'create_app',
    'initialize',
    'start',
    'stop',
    'is_running',
    'get_server_url',
    'get_api_status'
]
