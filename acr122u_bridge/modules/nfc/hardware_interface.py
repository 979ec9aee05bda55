"""
hardware_interface.py - Low-level NFC reader interface over a PC/SC card connection.
"""

import logging
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FuturesTimeoutError

from .commands import (
    GET_UID, GET_VERSION, build_read, build_write, classify_version,
    is_success, parse_read_response, split_response, to_hex
)
from .exceptions import (
    NFCError, NFCPageWriteError, NFCReadError, NFCTransportError, NFCTransportTimeoutError
)

# Create logger
logger = logging.getLogger(__name__)


class NFCReader:
    """
    Serialized, time-bounded access to one PC/SC card connection.

    Every transmit/control call runs on a single I/O thread owned by this
    object, so at most one exchange is in flight on the connection. The caller
    waits for at most the given timeout; an exchange that overruns raises
    NFCTransportTimeoutError and any later exchange queues behind it.

    Attributes:
        name (str): Reader name, for logging
        apdu_timeout (float): Default per-APDU timeout in seconds
        write_timeout (float): Timeout for page WRITE APDUs in seconds
        connect_timeout (float): Timeout for establishing the connection
    """

    def __init__(self, connection, name=None, apdu_timeout=0.05, write_timeout=0.08,
                 connect_timeout=1.0):
        """
        Initialize the reader interface.

        Args:
            connection: pyscard CardConnection (or an object with the same
                connect/transmit/control/getATR/disconnect methods)
            name (str): Reader name
            apdu_timeout (float): Default per-APDU timeout in seconds
            write_timeout (float): Per-page WRITE timeout in seconds
            connect_timeout (float): Connection setup timeout in seconds
        """
        self.name = name or 'reader'
        self.apdu_timeout = apdu_timeout
        self.write_timeout = write_timeout
        self.connect_timeout = connect_timeout
        self._connection = connection
        self._io = ThreadPoolExecutor(max_workers=1, thread_name_prefix='pcsc-io')
        self._closed = False

    def _call(self, func, timeout):
        if self._closed:
            raise NFCTransportError("reader connection closed")
        try:
            future = self._io.submit(func)
        except RuntimeError as e:
            raise NFCTransportError(str(e))

        try:
            return future.result(timeout=timeout)
        except FuturesTimeoutError:
            logger.warning(f"[{self.name}] Reader exchange timed out after {timeout:.3f}s")
            raise NFCTransportTimeoutError(timeout)
        except NFCError:
            raise
        except Exception as e:
            raise NFCTransportError(str(e))

    def connect(self):
        """Establish the card connection and return the ATR."""
        def _connect():
            self._connection.connect()
            return bytes(self._connection.getATR() or [])

        atr = self._call(_connect, self.connect_timeout)
        logger.info(f"[{self.name}] Connected to card, ATR {to_hex(atr)}")
        return atr

    def disconnect(self):
        """Release the card connection and stop the I/O thread."""
        if self._closed:
            return
        try:
            self._call(self._connection.disconnect, self.connect_timeout)
        except NFCError as e:
            logger.debug(f"[{self.name}] Error disconnecting from card: {e}")
        finally:
            self.close()

    def close(self):
        """Stop accepting exchanges; an exchange already running is not interrupted."""
        self._closed = True
        self._io.shutdown(wait=False)

    @property
    def closed(self):
        return self._closed

    def transmit(self, apdu, timeout=None):
        """
        Send an APDU and return the raw response.

        Args:
            apdu (bytes): Command APDU
            timeout (float, optional): Overrides the default APDU timeout

        Returns:
            bytes: Response body followed by SW1 SW2

        Raises:
            NFCTransportTimeoutError: If no response arrives in time
            NFCTransportError: If the PC/SC call fails
        """
        def _exchange():
            data, sw1, sw2 = self._connection.transmit(list(apdu))
            return bytes(data) + bytes([sw1, sw2])

        response = self._call(_exchange, timeout or self.apdu_timeout)
        logger.debug(f"[{self.name}] APDU {to_hex(apdu)} -> {to_hex(response)}")
        return response

    def control(self, control_code, payload, timeout=None):
        """
        Send a reader control (IOCTL) command.

        Returns:
            bytes: Raw control response
        """
        def _control():
            return bytes(self._connection.control(control_code, list(payload)) or [])

        response = self._call(_control, timeout or self.apdu_timeout)
        logger.debug(f"[{self.name}] IOCTL 0x{control_code:08X} {to_hex(payload)} -> {to_hex(response)}")
        return response

    def get_uid(self):
        """
        Read the UID of the present tag.

        Returns:
            bytes: UID (4 to 10 bytes)

        Raises:
            NFCReadError: If the reader does not return a valid UID
        """
        response = self.transmit(GET_UID)
        body, _ = split_response(response)
        if not is_success(response) or not 4 <= len(body) <= 10:
            raise NFCReadError(f"Invalid UID response: {to_hex(response)}")
        return body

    def get_version(self):
        """
        Send GET_VERSION and classify the reply.

        Returns:
            str or None: Tag family name, or None if unsupported/unknown
        """
        try:
            response = self.transmit(GET_VERSION)
        except NFCError as e:
            logger.debug(f"[{self.name}] GET_VERSION not supported: {e}")
            return None
        return classify_version(response)

    def read_pages(self, page, length=16):
        """
        Read `length` bytes starting at `page`.

        Raises:
            NFCReadError: If the status word is not 90 00 or the length is wrong
        """
        response = self.transmit(build_read(page, length))
        body = parse_read_response(response, length)
        if body is None:
            raise NFCReadError(f"Read failed at page {page}: {to_hex(response)}")
        return body

    def write_page(self, page, data):
        """
        Write one 4-byte page.

        Raises:
            NFCInvalidPageLengthError: If data is not 4 bytes (nothing is sent)
            NFCPageWriteError: If the reader rejects the write
        """
        apdu = build_write(page, data)
        response = self.transmit(apdu, timeout=self.write_timeout)
        if not is_success(response):
            raise NFCPageWriteError(page, response)
        logger.debug(f"[{self.name}] Page {page} written: {to_hex(data)}")
        return True
