"""
nfc_controller.py - Session bridge between PC/SC readers and the rest of the application.

The bridge keeps one ReaderSession per attached reader. Card events and
incoming commands are turned into jobs that run one at a time, in arrival
order, on the session's worker thread. Outcomes are published on the event bus.
"""

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor

from ...utils.event_bus import EventNames, event_bus as default_event_bus
from .authentication import AuthenticationEngine
from .commands import IOCTL_ACR122U_ESCAPE, IOCTL_CCID_ESCAPE, to_hex
from .exceptions import (
    NFCCapacityError, NFCError, NFCNoReaderError, NFCNoTagError, NFCPageWriteError,
    NFCTagRemovedError
)
from .hardware_interface import NFCReader
from .layouts import get_layout, resolve_layout
from .protection import DEFAULT_ACCESS, DEFAULT_AUTH0, DEFAULT_PACK, check_protection, enable_protection
from .tag_processor import create_ndef_data, format_uid, parse_ndef_data, read_ndef_area, split_pages

# Configure logger
logger = logging.getLogger(__name__)

STANDARD_ISO_14443_3 = 'TAG_ISO_14443_3'
STANDARD_ISO_14443_4 = 'TAG_ISO_14443_4'

# ATR fragments for tags that predate GET_VERSION
ATR_HINTS = (
    ('00440300', ('MIFARE Ultralight', 64, 16)),
    ('00440301', ('NTAG203', 168, 42)),
)

DEFAULT_SETTINGS = {
    'apdu_timeout': 0.05,
    'write_timeout': 0.08,
    'connect_timeout': 1.0,
    'auth_attempt_timeout': 0.04,
    'ioctl_ccid_escape': IOCTL_CCID_ESCAPE,
    'ioctl_acr122u': IOCTL_ACR122U_ESCAPE,
    'default_auth0': DEFAULT_AUTH0,
    'default_access': DEFAULT_ACCESS,
    'default_pack': DEFAULT_PACK,
    'fallback_layout': 'NTAG215',
    'ndef_language': 'en',
}

TAG_REMOVED_MESSAGE = "Tag removed during operation"


def standard_from_atr(atr):
    """ISO 14443-3 tags (Ultralight/NTAG) carry 0x4F at ATR byte 5."""
    if atr and len(atr) > 5 and atr[5] == 0x4F:
        return STANDARD_ISO_14443_3
    return STANDARD_ISO_14443_4


def describe_memory(resolution, atr):
    """
    Work out tag type, memory size and page count for the tag_detected event.

    A detected layout wins; otherwise the ATR is checked for older tag types.

    Returns:
        tuple: (tag_type, memory_size, usable_pages)
    """
    if resolution is not None and resolution.detected:
        layout = resolution.layout
        return layout.family_name, layout.memory_size, layout.total_pages

    atr_hex = to_hex(atr) or ''
    for pattern, info in ATR_HINTS:
        if pattern in atr_hex:
            return info
    return 'Unknown', 0, 0


def auth_result(success, error=None, password_bytes=None, password_format=None, transport=None,
                confirmed=False, uid=None):
    return {
        'success': success,
        'error': error,
        'passwordBytes': to_hex(password_bytes),
        'format': password_format,
        'transport': transport,
        'confirmed': confirmed,
        'uid': uid,
    }


def write_result(success, error=None, password_set=False, ndef_written=False, pages_written=0,
                 uid=None):
    return {
        'success': success,
        'error': error,
        'passwordSet': password_set,
        'ndefWritten': ndef_written,
        'pagesWritten': pages_written,
        'uid': uid,
    }


def _completed(result):
    future = Future()
    future.set_result(result)
    return future


class TagIdentity:
    """
    One presence of a physical tag on a reader.

    The object itself is the presence token: removing and re-inserting the same
    tag creates a new TagIdentity, so results for the old one can be told apart.
    """

    def __init__(self, reader_name, atr=b''):
        self.reader_name = reader_name
        self.atr = bytes(atr or b'')
        self.uid = None
        self.resolution = None
        self.protection = None

    @property
    def uid_hex(self):
        return format_uid(self.uid)

    @property
    def standard(self):
        return standard_from_atr(self.atr)

    @property
    def layout(self):
        return self.resolution.layout if self.resolution is not None else None

    def __repr__(self):
        return f"TagIdentity({self.uid_hex or '?'} on {self.reader_name})"


class ReaderSession:
    """
    State of one attached reader: the current tag and its connection.

    Jobs (tag scans and commands) run on a single worker thread, so the
    connection only ever sees one operation at a time.
    """

    def __init__(self, name):
        self.name = name
        self.tag = None
        self.reader = None
        self._lock = threading.Lock()
        self._jobs = ThreadPoolExecutor(max_workers=1, thread_name_prefix='nfc-session')

    def submit(self, func, *args):
        return self._jobs.submit(func, *args)

    def is_current(self, identity):
        with self._lock:
            return identity is not None and self.tag is identity

    def current(self):
        """Return (tag, reader) as one consistent pair."""
        with self._lock:
            return self.tag, self.reader

    def replace_tag(self, identity, reader):
        """Install a new tag presence; returns the previous connection, if any."""
        with self._lock:
            previous = self.reader
            self.tag = identity
            self.reader = reader
        return previous

    def clear_tag(self):
        return self.replace_tag(None, None)

    def release(self, reader):
        """Disconnect a connection once the jobs already queued have run."""
        if reader is None:
            return
        try:
            self._jobs.submit(reader.disconnect)
        except RuntimeError:
            reader.close()

    def close(self):
        """Disconnect the current tag after the queued jobs, then stop the worker."""
        self.release(self.clear_tag())
        self._jobs.shutdown(wait=False)


class NFCBridge:
    """
    Tracks readers and tags and executes tag commands.

    Reader and card callbacks come from the PC/SC monitor (or the simulator);
    commands come from the API layer. Every outcome is emitted on the event bus
    using the EventNames constants.
    """

    def __init__(self, event_bus=None, settings=None):
        self.event_bus = event_bus or default_event_bus
        self.settings = dict(DEFAULT_SETTINGS)
        self.settings.update(settings or {})
        self.fallback_layout = get_layout(self.settings['fallback_layout'])
        self._sessions = {}
        self._lock = threading.Lock()

    # Reader and card callbacks

    def reader_attached(self, name):
        with self._lock:
            if name in self._sessions:
                return
            self._sessions[name] = ReaderSession(name)
        logger.info(f"NFC reader connected: {name}")
        self.event_bus.emit(EventNames.READER_CONNECTED, reader=name)

    def reader_detached(self, name):
        with self._lock:
            session = self._sessions.pop(name, None)
        if session is None:
            return
        session.close()
        logger.info(f"NFC reader disconnected: {name}")
        self.event_bus.emit(EventNames.READER_DISCONNECTED, reader=name)

    def reader_error(self, name, error):
        logger.error(f"Reader error on {name}: {error}")
        self.event_bus.emit(EventNames.ERROR, message=f"Reader error: {error}")

    def card_inserted(self, name, card):
        """
        Start a new tag presence and queue its scan.

        Args:
            name (str): Reader name
            card: pyscard Card (or lookalike) with atr and createConnection()

        Returns:
            Future: Resolves to the tag_detected payload, or None
        """
        session = self._session(name)
        if session is None:
            self.reader_attached(name)
            session = self._session(name)

        reader = NFCReader(
            card.createConnection(),
            name=name,
            apdu_timeout=self.settings['apdu_timeout'],
            write_timeout=self.settings['write_timeout'],
            connect_timeout=self.settings['connect_timeout'],
        )
        identity = TagIdentity(name, bytes(getattr(card, 'atr', None) or b''))
        session.release(session.replace_tag(identity, reader))
        logger.info(f"Tag detected on {name}")
        return session.submit(self._scan, session, identity, reader)

    def card_removed(self, name):
        session = self._session(name)
        if session is None:
            return
        tag, _ = session.current()
        session.release(session.clear_tag())
        logger.info(f"Tag removed from {name}" + (f" ({tag.uid_hex})" if tag and tag.uid else ""))
        self.event_bus.emit(EventNames.TAG_REMOVED, reader=name)

    # Commands

    def handle_command(self, command):
        """
        Dispatch a parsed inbound command.

        Args:
            command (dict): {'type': 'authenticate' | 'write', ...}

        Returns:
            Future: Resolves to the result payload
        """
        kind = command.get('type')
        if kind == 'authenticate':
            return self.authenticate(command.get('password'), reader=command.get('reader'))
        if kind == 'write':
            return self.write(
                url=command.get('url'),
                text=command.get('text'),
                password=command.get('password'),
                language=command.get('language'),
                reader=command.get('reader'),
            )
        raise ValueError(f"Unknown command type: {kind}")

    def authenticate(self, password, reader=None):
        """
        Queue password authentication against the current tag.

        Returns:
            Future: Resolves to the auth_result payload
        """
        try:
            session, identity = self._require_tag(reader)
        except NFCError as e:
            return self._publish(EventNames.AUTH_RESULT, auth_result(False, error=str(e)))

        return session.submit(self._run_command, session, identity, EventNames.AUTH_RESULT,
                              auth_result, self._authenticate_job, password)

    def write(self, url=None, text=None, password=None, language=None, reader=None):
        """
        Queue an NDEF write (and optional password protection) to the current tag.

        Returns:
            Future: Resolves to the write_result payload
        """
        try:
            session, identity = self._require_tag(reader)
        except NFCError as e:
            return self._publish(EventNames.WRITE_RESULT, write_result(False, error=str(e)))

        if bool(url) == bool(text):
            return self._publish(EventNames.WRITE_RESULT, write_result(
                False, error="Exactly one of url or text must be provided", uid=identity.uid_hex))

        language = language or self.settings['ndef_language']
        return session.submit(self._run_command, session, identity, EventNames.WRITE_RESULT,
                              write_result, self._write_job, url, text, password, language)

    def get_status(self):
        """Snapshot of readers and tags for the status endpoint."""
        with self._lock:
            sessions = list(self._sessions.values())
        readers = []
        for session in sessions:
            tag, _ = session.current()
            readers.append({
                'name': session.name,
                'tagPresent': tag is not None,
                'uid': tag.uid_hex if tag else None,
                'tagType': tag.layout.family_name if tag and tag.layout else None,
            })
        return {
            'readerConnected': bool(readers),
            'defaultReader': sessions[-1].name if sessions else None,
            'readers': readers,
        }

    def shutdown(self):
        with self._lock:
            sessions = list(self._sessions.values())
            self._sessions.clear()
        for session in sessions:
            session.close()
        logger.info("NFC bridge shut down")

    # Internals

    def _session(self, name):
        with self._lock:
            return self._sessions.get(name)

    def _require_tag(self, reader_name=None):
        with self._lock:
            if reader_name:
                session = self._sessions.get(reader_name)
            else:
                session = list(self._sessions.values())[-1] if self._sessions else None
        if session is None:
            raise NFCNoReaderError()
        identity, _ = session.current()
        if identity is None:
            raise NFCNoTagError()
        return session, identity

    def _publish(self, event_name, payload):
        self.event_bus.emit(event_name, **payload)
        return _completed(payload)

    def _run_command(self, session, identity, event_name, make_result, job, *args):
        tag, reader = session.current()
        try:
            if tag is not identity:
                raise NFCTagRemovedError()
            result = job(session, identity, reader, *args)
        except NFCError as e:
            result = make_result(False, error=str(e))
        except Exception as e:
            logger.exception(f"Unexpected error in {event_name} job")
            result = make_result(False, error=str(e))

        if not session.is_current(identity):
            logger.warning(f"{identity} removed during {event_name}, discarding result")
            result = make_result(False, error=TAG_REMOVED_MESSAGE)

        result['uid'] = identity.uid_hex
        self.event_bus.emit(event_name, **result)
        return result

    def _scan(self, session, identity, reader):
        try:
            atr = reader.connect()
            if atr:
                identity.atr = atr
            identity.uid = reader.get_uid()
            identity.resolution = resolve_layout(reader, fallback=self.fallback_layout)
            identity.protection = check_protection(reader, identity.resolution)
            ndef = parse_ndef_data(read_ndef_area(reader, identity.resolution.layout))
        except NFCError as e:
            if session.is_current(identity):
                logger.error(f"Error reading tag on {session.name}: {e}")
                self.event_bus.emit(EventNames.ERROR, message=f"Error reading tag: {e}")
            return None

        if not session.is_current(identity):
            logger.info(f"Discarding scan of {identity}: tag no longer present")
            return None

        tag_type, memory_size, usable_pages = describe_memory(identity.resolution, identity.atr)
        payload = {
            'reader': session.name,
            'uid': identity.uid_hex,
            'atr': to_hex(identity.atr),
            'standard': identity.standard,
            'tagType': tag_type,
            'memorySize': memory_size,
            'usablePages': usable_pages,
            'protection': identity.protection.to_dict(),
            'ndef': ndef,
        }
        logger.info(f"Tag {payload['uid']}: {tag_type}, {memory_size} bytes, "
                    f"{len(ndef['records'])} NDEF record(s)")
        self.event_bus.emit(EventNames.TAG_DETECTED, **payload)
        return payload

    def _authenticate_job(self, session, identity, reader, password):
        engine = AuthenticationEngine(
            reader,
            attempt_timeout=self.settings['auth_attempt_timeout'],
            ioctl_codes=(self.settings['ioctl_ccid_escape'], self.settings['ioctl_acr122u']),
        )
        result = engine.authenticate(password)
        return auth_result(True, password_bytes=result.password_bytes, password_format=result.format,
                           transport=result.transport, confirmed=result.confirmed)

    def _write_job(self, session, identity, reader, url, text, password, language):
        layout = identity.layout or self.fallback_layout
        data = create_ndef_data(url=url, text=text, language=language)
        if len(data) > layout.user_capacity:
            raise NFCCapacityError(
                f"NDEF message needs {len(data)} bytes but {layout.family_name} holds {layout.user_capacity}")

        written = 0
        for offset, chunk in enumerate(split_pages(data)):
            page = layout.user_data_start_page + offset
            if not session.is_current(identity):
                raise NFCTagRemovedError()
            try:
                reader.write_page(page, chunk)
            except NFCPageWriteError as e:
                return write_result(False, error=str(e), pages_written=written)
            except NFCError as e:
                return write_result(False, error=f"Failed to write page {page}: {e}", pages_written=written)
            written += 1
        logger.info(f"NDEF written to {identity} ({written} pages)")

        if not password:
            return write_result(True, ndef_written=True, pages_written=written)

        if not session.is_current(identity):
            raise NFCTagRemovedError()
        try:
            protection = enable_protection(
                reader, password, layout,
                auth0=self.settings['default_auth0'],
                access=self.settings['default_access'],
                pack=self.settings['default_pack'],
            )
        except NFCError as e:
            return write_result(False, error=f"NDEF written but password setting failed: {e}",
                                ndef_written=True, pages_written=written)

        if not protection.password_set:
            return write_result(True, error=f"NDEF written but password setting failed: {protection.error}",
                                ndef_written=True, pages_written=written)
        return write_result(True, password_set=True, ndef_written=True, pages_written=written)


# Global bridge instance (singleton pattern)
_bridge = None
_bridge_lock = threading.Lock()


def initialize(event_bus=None, settings=None):
    """
    Create the process-wide bridge.

    Returns:
        NFCBridge: The bridge (existing one if already initialized)
    """
    global _bridge

    with _bridge_lock:
        if _bridge is not None:
            logger.debug("NFC bridge already initialized")
            return _bridge
        _bridge = NFCBridge(event_bus=event_bus, settings=settings)
        logger.info("NFC bridge initialized")
        return _bridge


def shutdown():
    """
    Shut down the process-wide bridge.

    Returns:
        bool: True if shutdown successful, False if errors occurred
    """
    global _bridge

    with _bridge_lock:
        if _bridge is None:
            return True
        try:
            _bridge.shutdown()
            return True
        except Exception as e:
            logger.error(f"Error during NFC shutdown: {e}")
            return False
        finally:
            _bridge = None


def get_bridge():
    """Return the process-wide bridge, or None before initialize()."""
    return _bridge
