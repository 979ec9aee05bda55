"""
simulated_tag.py - In-memory NTAG21x tag behind a simulated ACR122U.

Used by the --simulate mode of the application and by the tests. The
connection object mimics the parts of a pyscard CardConnection the bridge
uses: connect, getATR, transmit, control and disconnect.
"""

import logging
import threading
import time

from .commands import (
    GET_UID, GET_VERSION, NTAG_PRODUCT_TYPE, NTAG_PWD_AUTH, NTAG_STORAGE_SIZES, PAGE_SIZE,
    PN532_IN_COMMUNICATE_THRU, PN532_IN_COMMUNICATE_THRU_RESPONSE, to_hex
)
from .layouts import NTAG215, get_layout

logger = logging.getLogger(__name__)

# ATR reported by the ACR122U for an NTAG / Ultralight (ISO 14443-3) tag
NTAG_ATR = bytes([0x3B, 0x8F, 0x80, 0x01, 0x80, 0x4F, 0x0C, 0xA0, 0x00, 0x00, 0x03, 0x06,
                  0x03, 0x00, 0x03, 0x00, 0x00, 0x00, 0x00, 0x68])

DEFAULT_UID = bytes([0x04, 0xA1, 0xB2, 0xC3, 0xD4, 0xE5, 0xF6])
FACTORY_PASSWORD = b'\xFF\xFF\xFF\xFF'

SW_OK = (0x90, 0x00)
SW_ERROR = (0x63, 0x00)

_STORAGE_BY_FAMILY = {family: storage for storage, family in NTAG_STORAGE_SIZES.items()}


class SimulatedReaderError(Exception):
    """Raised by the simulated connection where pyscard would raise."""
    pass


class SimulatedTag:
    """
    NTAG21x memory image with password protection.

    Attributes:
        layout (TagLayout): Memory layout of the simulated family
        uid (bytes): 7-byte UID
        memory (bytearray): Page memory; PWD and PACK read back as zeros
        password (bytes): Current 4-byte password
        pack (bytes): 4-byte PACK page content
        authenticated (bool): PWD_AUTH succeeded during this presence
        fail_pages (set): Pages whose WRITE is rejected
        latency (float): Seconds each exchange takes
        apdu_log (list): Every APDU received, in order
    """

    def __init__(self, family='NTAG215', uid=None, password=None, auth0=0xFF, prot=False,
                 static_lock=False, pack=b'\x00\x00\x00\x00', ioctl_supported=True, latency=0.0,
                 respond_to_version=True):
        self.layout = get_layout(family) if isinstance(family, str) else family
        self.uid = bytes(uid) if uid else DEFAULT_UID
        self.password = bytes(password) if password else FACTORY_PASSWORD
        self.pack = bytes(pack)
        self.ioctl_supported = ioctl_supported
        self.respond_to_version = respond_to_version
        self.latency = latency
        self.authenticated = False
        self.fail_pages = set()
        self.apdu_log = []
        self.max_in_flight = 0
        self._in_flight = 0
        self._lock = threading.Lock()

        self.memory = bytearray(self.layout.total_pages * PAGE_SIZE)
        self._format(auth0, prot, static_lock)
        self.activate()

    def _format(self, auth0, prot, static_lock):
        uid = self.uid.ljust(7, b'\x00')
        bcc0 = 0x88 ^ uid[0] ^ uid[1] ^ uid[2]
        bcc1 = uid[3] ^ uid[4] ^ uid[5] ^ uid[6]
        self._set_page(0, bytes([uid[0], uid[1], uid[2], bcc0]))
        self._set_page(1, uid[3:7])
        lock = b'\xFF\xFF' if static_lock else b'\x00\x00'
        self._set_page(2, bytes([bcc1, 0x48]) + lock)
        # Capability container: NDEF magic, version 1.0, data area size / 8, read/write access
        self._set_page(3, bytes([0xE1, 0x10, self.layout.user_capacity // 8, 0x00]))
        self._set_page(4, bytes([0x03, 0x00, 0xFE, 0x00]))
        self._set_page(self.layout.config_page - 1, bytes([0x00, 0x00, 0x00, 0xBD]))
        self._set_page(self.layout.config_page, bytes([0x04, 0x00, 0x00, auth0]))
        self._set_page(self.layout.config_page + 1, bytes([0x80 if prot else 0x00, 0x05, 0x00, 0x00]))

    def _set_page(self, page, data):
        offset = page * PAGE_SIZE
        self.memory[offset:offset + PAGE_SIZE] = data

    def page(self, page):
        offset = page * PAGE_SIZE
        return bytes(self.memory[offset:offset + PAGE_SIZE])

    @property
    def auth0(self):
        return self.page(self.layout.config_page)[3]

    @property
    def access(self):
        return self.page(self.layout.config_page + 1)[0]

    @property
    def static_lock_set(self):
        lock = self.page(2)
        return lock[2] != 0x00 or lock[3] != 0x00

    def user_data(self):
        start = self.layout.user_data_start_page * PAGE_SIZE
        end = self.layout.user_data_end_page * PAGE_SIZE
        return bytes(self.memory[start:end])

    def write_pages(self):
        """Pages written by WRITE APDUs, in order."""
        return [apdu[3] for apdu in self.apdu_log if apdu[:3] == b'\xFF\xD6\x00']

    def activate(self):
        """New presence: config pages take effect and authentication is cleared."""
        self.authenticated = False
        self._active_auth0 = self.auth0
        self._active_access = self.access

    def _read_protected(self, page):
        return (bool(self._active_access & 0x80) and page >= self._active_auth0
                and not self.authenticated)

    def read(self, page, length):
        if page > self.layout.max_page:
            return None
        data = bytearray()
        for i in range(-(-length // PAGE_SIZE)):
            current = (page + i) % self.layout.total_pages
            if self._read_protected(current):
                return None
            if current in (self.layout.password_page, self.layout.pack_page):
                data += bytes(PAGE_SIZE)
            else:
                data += self.page(current)
        return bytes(data[:length])

    def write(self, page, data):
        if page < 2 or page > self.layout.max_page or page in self.fail_pages:
            return False
        if page >= self._active_auth0 and not self.authenticated:
            return False
        if self.static_lock_set and 3 <= page <= 15:
            return False
        if page == 2:
            current = self.page(2)
            data = current[:2] + bytes([current[2] | data[2], current[3] | data[3]])
        if page == self.layout.password_page:
            self.password = bytes(data)
        elif page == self.layout.pack_page:
            self.pack = bytes(data)
        self._set_page(page, data)
        return True

    def pwd_auth(self, password):
        if bytes(password) == self.password:
            self.authenticated = True
            return PN532_IN_COMMUNICATE_THRU_RESPONSE + b'\x00' + self.pack[:2]
        self.authenticated = False
        return PN532_IN_COMMUNICATE_THRU_RESPONSE + b'\x01'

    def version(self):
        storage = _STORAGE_BY_FAMILY.get(self.layout.family_name, 0x11)
        return bytes([0x00, NTAG_PRODUCT_TYPE, 0x04, 0x02, 0x01, 0x00, storage, 0x03])

    def enter(self):
        with self._lock:
            self._in_flight += 1
            self.max_in_flight = max(self.max_in_flight, self._in_flight)
        if self.latency:
            time.sleep(self.latency)

    def leave(self):
        with self._lock:
            self._in_flight -= 1


class SimulatedConnection:
    """pyscard CardConnection lookalike for a SimulatedTag."""

    def __init__(self, tag):
        self.tag = tag
        self.connected = False
        self.present = True

    def connect(self, *args, **kwargs):
        if not self.present:
            raise SimulatedReaderError("Card is unpowered")
        self.tag.activate()
        self.connected = True

    def disconnect(self):
        self.connected = False

    def getATR(self):
        return list(NTAG_ATR)

    def _check(self):
        if not self.connected or not self.present:
            raise SimulatedReaderError("Card is not connected")

    def transmit(self, apdu):
        self._check()
        apdu = bytes(apdu)
        self.tag.apdu_log.append(apdu)
        self.tag.enter()
        try:
            data, sw = self._dispatch(apdu)
        finally:
            self.tag.leave()
        logger.debug(f"Simulated APDU {to_hex(apdu)} -> {to_hex(bytes(data))} {sw[0]:02X}{sw[1]:02X}")
        return list(data), sw[0], sw[1]

    def _dispatch(self, apdu):
        if apdu == GET_UID:
            return self.tag.uid, SW_OK
        if apdu == GET_VERSION:
            if not self.tag.respond_to_version:
                return b'', SW_ERROR
            return self.tag.version(), SW_OK
        if apdu[:3] == b'\xFF\xB0\x00' and len(apdu) == 5:
            data = self.tag.read(apdu[3], apdu[4])
            return (data, SW_OK) if data is not None else (b'', SW_ERROR)
        if apdu[:3] == b'\xFF\xD6\x00' and len(apdu) == 9:
            return b'', SW_OK if self.tag.write(apdu[3], apdu[5:9]) else SW_ERROR
        if apdu[:4] == b'\xFF\x00\x00\x00' and len(apdu) > 5:
            response = self._pn532(apdu[5:5 + apdu[4]])
            return (response, SW_OK) if response is not None else (b'', SW_ERROR)
        return b'', SW_ERROR

    def _pn532(self, frame):
        if frame[:2] == PN532_IN_COMMUNICATE_THRU and len(frame) == 7 and frame[2] == NTAG_PWD_AUTH:
            return self.tag.pwd_auth(frame[3:7])
        return None

    def control(self, control_code, data):
        self._check()
        if not self.tag.ioctl_supported:
            raise SimulatedReaderError(f"Control code 0x{control_code:08X} not supported")
        self.tag.apdu_log.append(bytes(data))
        self.tag.enter()
        try:
            response = self._pn532(bytes(data))
        finally:
            self.tag.leave()
        if response is None:
            raise SimulatedReaderError("Unsupported control payload")
        return list(response)


class SimulatedCard:
    """pyscard Card lookalike: reader name, ATR and createConnection()."""

    def __init__(self, reader, tag=None):
        self.reader = reader
        self.tag = tag or SimulatedTag(NTAG215)
        self.atr = list(NTAG_ATR)
        self.connection = None

    def createConnection(self):
        self.connection = SimulatedConnection(self.tag)
        return self.connection

    def remove(self):
        """Pull the tag off the reader; later exchanges fail."""
        if self.connection is not None:
            self.connection.present = False
