"""
event_bus.py - Event bus for cross-module communication.

The NFC bridge publishes reader and tag events here; the API server
subscribes and forwards them to connected clients.
"""

import threading
from typing import Any, Callable, Dict, List, Optional, Set

from .logger import get_logger

logger = get_logger("event_bus")


class EventBus:
    """
    Thread-safe event bus for cross-module communication.

    Handlers run on the emitting thread. A failing handler is logged and does
    not affect the emitter or the other handlers.

    Usage:
        # In a module that triggers events:
        from acr122u_bridge.utils.event_bus import event_bus, EventNames
        event_bus.emit(EventNames.TAG_REMOVED, reader='ACS ACR122U')

        # In a module that listens for events:
        def on_tag_removed(reader):
            print(f"Tag removed from {reader}")

        event_bus.on(EventNames.TAG_REMOVED, on_tag_removed)
    """

    def __init__(self):
        """Initialize the event bus."""
        self._events: Dict[str, List[Callable]] = {}
        self._once_events: Dict[str, List[Callable]] = {}
        self._registered_events: Set[str] = set()
        self._lock = threading.RLock()
        self.logger = logger

    def on(self, event_name: str, callback: Callable) -> None:
        """
        Register an event handler.

        Args:
            event_name (str): Event name
            callback (callable): Function to call when event is emitted
        """
        with self._lock:
            handlers = self._events.setdefault(event_name, [])
            self._registered_events.add(event_name)

            if callback in handlers:
                self.logger.warning(f"Handler already registered for event: {event_name}")
                return
            handlers.append(callback)
        self.logger.debug(f"Registered handler for event: {event_name}")

    def off(self, event_name: str, callback: Optional[Callable] = None) -> None:
        """
        Remove an event handler.

        Args:
            event_name (str): Event name
            callback (callable, optional): Function to remove,
                                           or None to remove all handlers
        """
        with self._lock:
            if callback is None:
                self._events.pop(event_name, None)
                self._once_events.pop(event_name, None)
                self.logger.debug(f"Removed all handlers for event: {event_name}")
                return

            if callback in self._events.get(event_name, []):
                self._events[event_name].remove(callback)
                self.logger.debug(f"Removed handler for event: {event_name}")

            if callback in self._once_events.get(event_name, []):
                self._once_events[event_name].remove(callback)
                self.logger.debug(f"Removed one-time handler for event: {event_name}")

    def emit(self, event_name: str, **kwargs: Any) -> None:
        """
        Emit an event.

        Args:
            event_name (str): Event name
            **kwargs: Event data
        """
        self.logger.debug(f"Emitting event: {event_name}")

        with self._lock:
            handlers = list(self._events.get(event_name, []))
            # Taken out before calling so a handler that re-emits does not run twice
            once_handlers = self._once_events.pop(event_name, [])

        for callback in handlers:
            try:
                callback(**kwargs)
            except Exception as e:
                self.logger.error(f"Error in event handler for {event_name}: {str(e)}")

        for callback in once_handlers:
            try:
                callback(**kwargs)
            except Exception as e:
                self.logger.error(f"Error in one-time event handler for {event_name}: {str(e)}")

    def once(self, event_name: str, callback: Callable) -> None:
        """
        Register an event handler that will be called only once.

        Args:
            event_name (str): Event name
            callback (callable): Function to call when event is emitted
        """
        with self._lock:
            handlers = self._once_events.setdefault(event_name, [])
            self._registered_events.add(event_name)

            if callback in handlers:
                self.logger.warning(f"One-time handler already registered for event: {event_name}")
                return
            handlers.append(callback)
        self.logger.debug(f"Registered one-time handler for event: {event_name}")

    def list_events(self) -> Set[str]:
        """
        List all registered event names.

        Returns:
            Set[str]: Set of event names
        """
        with self._lock:
            return set(self._registered_events)

    def has_listeners(self, event_name: str) -> bool:
        """
        Check if an event has any listeners.

        Args:
            event_name (str): Event name

        Returns:
            bool: True if event has listeners
        """
        with self._lock:
            return bool(self._events.get(event_name)) or bool(self._once_events.get(event_name))


# Global event bus instance
event_bus = EventBus()


# Standard event names:
class EventNames:
    """Standard event names used in the application."""
    READER_CONNECTED = "reader_connected"        # Parameters: reader (str)
    READER_DISCONNECTED = "reader_disconnected"  # Parameters: reader (str)
    TAG_DETECTED = "tag_detected"                # Parameters: reader, uid, atr, standard, tagType, memorySize, usablePages, protection, ndef
    TAG_REMOVED = "tag_removed"                  # Parameters: reader (str)
    AUTH_RESULT = "auth_result"                  # Parameters: success, error, passwordBytes, format, transport, confirmed, uid
    WRITE_RESULT = "write_result"                # Parameters: success, error, passwordSet, ndefWritten, pagesWritten, uid
    ERROR = "error"                              # Parameters: message (str)
    STATUS = "status"                            # Parameters: message (str)

    ALL = (READER_CONNECTED, READER_DISCONNECTED, TAG_DETECTED, TAG_REMOVED,
           AUTH_RESULT, WRITE_RESULT, ERROR, STATUS)
