"""
ACR122U NFC Bridge - Message Channel

Inbound command dispatch shared by the Socket.IO 'message' event and the plain
WebSocket endpoint at '/'. Plain WebSocket clients exchange bare JSON text
frames, one message per frame, using the same message shapes.
"""

import threading

from simple_websocket import ConnectionClosed

from ...utils.event_bus import EventNames
from ...utils.exceptions import ValidationError
from ...utils.logger import get_logger
from .messages import WELCOME_MESSAGE, build_message, encode_message, parse_command

logger = get_logger(__name__)


def dispatch_command(data, bridge, reply, peer):
    """
    Validate an inbound message and hand it to the bridge.

    Args:
        data: Raw message (JSON text, bytes or decoded object)
        bridge (NFCBridge): Bridge that executes the command, may be None
        reply (callable): Sends a message dict back to the sender only
        peer (str): Sender description for the log
    """
    try:
        command = parse_command(data)
    except ValidationError as e:
        logger.warning(f"Invalid message from {peer}: {e.message}")
        reply(build_message(EventNames.ERROR, message=e.message))
        return

    logger.info(f"Received {command['type']} command from {peer}")
    if bridge is None:
        reply(build_message(EventNames.ERROR, message="NFC bridge not running"))
        return
    # The result reaches every client through the event bus
    bridge.handle_command(command)


class WebSocketClients:
    """Connected plain WebSocket clients."""

    def __init__(self):
        self._clients = set()
        # Guards the set and keeps frames from interleaving on a connection
        self._lock = threading.Lock()

    def __len__(self):
        with self._lock:
            return len(self._clients)

    def add(self, ws):
        with self._lock:
            self._clients.add(ws)

    def discard(self, ws):
        with self._lock:
            self._clients.discard(ws)

    def send(self, ws, message):
        text = encode_message(message)
        with self._lock:
            ws.send(text)

    def broadcast(self, message):
        """Send a message to every client, dropping connections that have closed."""
        text = encode_message(message)
        with self._lock:
            closed = []
            for ws in self._clients:
                try:
                    ws.send(text)
                except ConnectionClosed:
                    closed.append(ws)
            self._clients.difference_update(closed)


def serve_websocket(ws, bridge, clients):
    """
    Run one plain WebSocket connection until the client goes away.

    Args:
        ws: simple_websocket connection (send/receive)
        bridge (NFCBridge): Bridge that executes commands
        clients (WebSocketClients): Registry the connection joins for broadcasts
    """
    def reply(message):
        clients.send(ws, message)

    clients.add(ws)
    logger.info("WebSocket client connected")
    try:
        reply(build_message(EventNames.STATUS, message=WELCOME_MESSAGE))
        while True:
            data = ws.receive()
            if data is not None:
                dispatch_command(data, bridge, reply, "WebSocket client")
    except ConnectionClosed:
        pass
    finally:
        clients.discard(ws)
        logger.info("WebSocket client disconnected")
