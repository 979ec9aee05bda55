"""
ACR122U NFC Bridge - NFC Routes

REST mirror of the message channel. Commands are queued on the reader
session like socket commands; the request waits for the result.
"""

from concurrent.futures import TimeoutError as FuturesTimeoutError

from flask import jsonify, request

from ....config import CONFIG
from ....utils.event_bus import EventNames
from ....utils.logger import get_logger
from ..exceptions import InvalidRequestError, ResourceNotFoundError, ServiceUnavailableError
from ..messages import COMMAND_AUTHENTICATE, COMMAND_WRITE, build_message, parse_command
from . import get_bridge

logger = get_logger(__name__)

RESULT_EVENTS = {
    COMMAND_AUTHENTICATE: EventNames.AUTH_RESULT,
    COMMAND_WRITE: EventNames.WRITE_RESULT,
}


def _run_command(command_type):
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise InvalidRequestError("Missing request body")

    command = parse_command(dict(data, type=command_type))
    bridge = get_bridge()
    future = bridge.handle_command(command)

    timeout = float(CONFIG['api'].get('result_timeout', 10.0))
    try:
        result = future.result(timeout=timeout)
    except FuturesTimeoutError:
        logger.error(f"{command_type} command did not finish within {timeout}s")
        raise ServiceUnavailableError("Timed out waiting for the reader")

    return jsonify({
        'success': bool(result.get('success')),
        'data': build_message(RESULT_EVENTS[command_type], **result)
    })


def register_routes(app):
    """
    Register NFC routes with the Flask application.

    Args:
        app: Flask application instance
    """

    @app.route('/api/nfc/status', methods=['GET'])
    def get_nfc_status():
        """Readers and current tags."""
        return jsonify({
            'success': True,
            'data': get_bridge().get_status()
        })

    @app.route('/api/nfc/readers/<path:reader_name>', methods=['GET'])
    def get_reader_status(reader_name):
        """Status of one reader."""
        for reader in get_bridge().get_status()['readers']:
            if reader['name'] == reader_name:
                return jsonify({'success': True, 'data': reader})
        raise ResourceNotFoundError(f"Reader not found: {reader_name}")

    @app.route('/api/nfc/authenticate', methods=['POST'])
    def authenticate_tag():
        """Authenticate with the current tag.

        Request body:
        {
            "password": "FFFFFFFF",
            "reader": "ACS ACR122U PICC Interface 00 00"   (optional)
        }
        """
        return _run_command(COMMAND_AUTHENTICATE)

    @app.route('/api/nfc/write', methods=['POST'])
    def write_tag():
        """Write a URL or text record to the current tag.

        Request body should include exactly one of url or text:
        {
            "url": "https://example.com",
            "password": "secret"   (optional, protects the tag after writing)
        }
        """
        return _run_command(COMMAND_WRITE)

    logger.info("NFC routes registered")
