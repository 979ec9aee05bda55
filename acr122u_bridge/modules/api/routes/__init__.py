"""
ACR122U NFC Bridge - API Routes

This package contains all route handlers for the API server.
"""

from flask import current_app

from ..exceptions import ServiceUnavailableError


def get_bridge():
    """
    Return the NFC bridge attached to the current application.

    Raises:
        ServiceUnavailableError: If the application has no bridge
    """
    bridge = current_app.extensions.get('acr122u_bridge')
    if bridge is None:
        raise ServiceUnavailableError("NFC bridge not running")
    return bridge


from . import system, nfc_writer

__all__ = ['system', 'nfc_writer', 'get_bridge']
