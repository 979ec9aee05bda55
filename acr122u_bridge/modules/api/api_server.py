"""
ACR122U NFC Bridge - API Server

This module serves the message channel and the REST mirror. The channel is
offered both as Socket.IO 'message' events and as a plain WebSocket at '/'
carrying bare JSON text frames. Bridge events from the event bus are
forwarded to every connected client; inbound commands are handed to the NFC
bridge.
"""

import functools
import os
import threading
import time

from flask import Flask, jsonify, request
from flask_cors import CORS
from flask_sock import Sock
from flask_socketio import SocketIO, emit

from ...config import CONFIG
from ...utils.event_bus import EventNames, event_bus as default_event_bus
from ...utils.logger import get_logger
from ..nfc import nfc_controller
from .channel import WebSocketClients, dispatch_command, serve_websocket
from .messages import WELCOME_MESSAGE, build_message

# Import routes
from .routes import nfc_writer, system

# Import middleware
from .middleware import error_handler

logger = get_logger(__name__)

__version__ = '0.1.0'

BRIDGE_EXTENSION = 'acr122u_bridge'
WEBSOCKET_EXTENSION = 'acr122u_bridge.websocket_clients'

# Flask application and Socket.IO server, created by initialize()
app = None
socketio = None
api_thread = None
server_running = False
start_time = None
_event_bus = None
_forwarders = []


def create_app(bridge=None, bus=None, cors_origins=None):
    """
    Create the Flask application and its Socket.IO server.

    Args:
        bridge (NFCBridge, optional): Bridge that executes commands
        bus (EventBus, optional): Event bus whose events are forwarded
        cors_origins (str or list, optional): Allowed origins

    Returns:
        tuple: (Flask app, SocketIO)
    """
    cors_origins = cors_origins or CONFIG['api']['cors_origins']

    flask_app = Flask(__name__)
    flask_app.config.update(
        SECRET_KEY=os.urandom(24),
        MAX_CONTENT_LENGTH=64 * 1024,
    )
    flask_app.json.sort_keys = False
    flask_app.extensions[BRIDGE_EXTENSION] = bridge
    clients = flask_app.extensions[WEBSOCKET_EXTENSION] = WebSocketClients()

    # Initialize CORS
    CORS(flask_app, resources={r"/api/*": {"origins": cors_origins}})

    server = SocketIO(flask_app, cors_allowed_origins=cors_origins, async_mode='threading')

    # Initialize error handlers
    error_handler.init_error_handlers(flask_app)

    # Register route blueprints
    system.register_routes(flask_app)
    nfc_writer.register_routes(flask_app)

    # Health check endpoint
    @flask_app.route('/api/health')
    def health_check():
        """Health check endpoint."""
        return jsonify({
            'status': 'healthy',
            'uptime': get_uptime(),
            'version': __version__
        })

    _register_socket_handlers(server, bridge)

    sock = Sock(flask_app)

    @sock.route('/')
    def websocket_channel(ws):
        serve_websocket(ws, bridge, clients)

    return flask_app, server


def _register_socket_handlers(server, bridge):

    @server.on('connect')
    def handle_connect():
        logger.info(f"Client connected ({request.sid})")
        emit('message', build_message(EventNames.STATUS, message=WELCOME_MESSAGE))

    @server.on('disconnect')
    def handle_disconnect(*args):
        logger.info(f"Client disconnected ({request.sid})")

    @server.on('message')
    def handle_message(data):
        dispatch_command(data, bridge, lambda message: emit('message', message), request.sid)


def _forward(server, clients, event_name, **data):
    message = build_message(event_name, **data)
    server.emit('message', message)
    clients.broadcast(message)


def _subscribe(server, clients, bus):
    global _forwarders

    for event_name in EventNames.ALL:
        handler = functools.partial(_forward, server, clients, event_name)
        bus.on(event_name, handler)
        _forwarders.append((event_name, handler))


def _unsubscribe(bus):
    global _forwarders

    for event_name, handler in _forwarders:
        bus.off(event_name, handler)
    _forwarders = []


def initialize(bridge=None, bus=None):
    """
    Initialize the API server.

    Args:
        bridge (NFCBridge, optional): Defaults to the process-wide bridge
        bus (EventBus, optional): Defaults to the global event bus

    Returns:
        bool: True if initialization successful
    """
    global app, socketio, _event_bus

    logger.info("Initializing API server")

    if _event_bus is not None:
        _unsubscribe(_event_bus)

    bridge = bridge or nfc_controller.get_bridge()
    _event_bus = bus or default_event_bus
    app, socketio = create_app(bridge, _event_bus)
    _subscribe(socketio, app.extensions[WEBSOCKET_EXTENSION], _event_bus)

    logger.info("API server initialized")
    return True


def start():
    """
    Start the API server in a separate thread.

    Returns:
        bool: True if server started successfully
    """
    global api_thread, server_running, start_time

    if server_running:
        logger.warning("API server already running")
        return True

    if app is None:
        initialize()

    logger.info("Starting API server")

    # Create a thread to run the server
    api_thread = threading.Thread(target=_run_server, daemon=True)
    api_thread.start()

    # Set server state
    server_running = True
    start_time = time.time()
    logger.info(f"API server started at {get_server_url()}")

    return True


def _run_server():
    """Run the Socket.IO server (Werkzeug in threading mode)."""
    global server_running

    host = CONFIG['api']['host']
    port = CONFIG['api']['port']

    logger.info(f"Starting API server on {host}:{port}")

    try:
        socketio.run(app, host=host, port=port, use_reloader=False, log_output=False,
                     allow_unsafe_werkzeug=True)
    except Exception as e:
        logger.error(f"Error running API server: {e}")
        server_running = False


def stop():
    """
    Stop the API server.

    Returns:
        bool: True if server stopped successfully
    """
    global api_thread, server_running

    if not server_running:
        logger.warning("API server not running")
        return True

    logger.info("Stopping API server")

    # Set server state
    server_running = False
    if _event_bus is not None:
        _unsubscribe(_event_bus)

    # The thread will end when the process exits as it's a daemon thread
    api_thread = None
    logger.info("API server stopped")

    return True


def is_running():
    """
    Check if the API server is running.

    Returns:
        bool: True if server is running
    """
    return server_running


def get_server_url():
    """
    Get the URL where the server is running.

    Returns:
        str: Server URL (e.g., http://localhost:9876)
    """
    if not server_running:
        return None

    host = CONFIG['api']['host']
    port = CONFIG['api']['port']

    # Use 'localhost' for user display if server bound to all interfaces
    display_host = 'localhost' if host == '0.0.0.0' else host

    return f"http://{display_host}:{port}"


def get_uptime():
    """
    Get the uptime of the API server in seconds.

    Returns:
        float: Uptime in seconds or None if server not running
    """
    if not server_running or start_time is None:
        return None
    return time.time() - start_time


def get_api_status():
    """
    Get the status of the API server.

    Returns:
        dict: Status information including uptime and URL
    """
    if not server_running:
        return {
            'running': False
        }

    return {
        'running': True,
        'uptime': get_uptime(),
        'uptime_formatted': _format_uptime(get_uptime()),
        'url': get_server_url(),
    }


def _format_uptime(seconds):
    """Format uptime in human-readable format."""
    if seconds is None:
        return "Not running"

    minutes, seconds = divmod(int(seconds), 60)
    hours, minutes = divmod(minutes, 60)
    days, hours = divmod(hours, 24)

    parts = []
    if days > 0:
        parts.append(f"{days}d")
    if hours > 0:
        parts.append(f"{hours}h")
    if minutes > 0:
        parts.append(f"{minutes}m")
    parts.append(f"{seconds}s")

    return " ".join(parts)
