"""
protection.py - NTAG21x write-protection detection and setup.

CFG0 (config page):     MIRROR | RFUI | MIRROR_PAGE | AUTH0
CFG1 (config page + 1): ACCESS | RFUI | RFUI | RFUI

AUTH0 is the first page protected by the password (0xFF disables protection).
Bit 7 of ACCESS (PROT) extends the protection from writes to reads.
"""

import logging
from collections import namedtuple

from .authentication import primary_password_candidate
from .commands import PAGE_SIZE, to_hex
from .exceptions import NFCConfigReadError, NFCError, NFCWriteError

# Create logger
logger = logging.getLogger(__name__)

AUTH0_DISABLED = 0xFF
ACCESS_PROT = 0x80
STATIC_LOCK_PAGE = 2

DEFAULT_AUTH0 = 0x04
DEFAULT_ACCESS = 0x00
DEFAULT_PACK = b'\x00\x00\x00\x00'

ProtectionResult = namedtuple('ProtectionResult', ['password_set', 'password_bytes', 'format', 'error'])


class ProtectionStatus:
    """
    Protection state of the tag currently on the reader.

    An undetected status (layout or config unreadable) reports the tag as
    unprotected.
    """

    def __init__(self, password_protected=False, write_protected=False, auth0_page=AUTH0_DISABLED,
                 access_byte=0x00, static_lock_set=False, config_page=None, tag_type=None,
                 detected=False):
        self.password_protected = password_protected
        self.write_protected = write_protected
        self.auth0_page = auth0_page
        self.access_byte = access_byte
        self.static_lock_set = static_lock_set
        self.config_page = config_page
        self.tag_type = tag_type
        self.detected = detected

    @property
    def is_writable(self):
        return not self.write_protected and not self.password_protected

    def to_dict(self):
        return {
            'passwordProtected': self.password_protected,
            'writeProtected': self.write_protected,
            'auth0Page': self.auth0_page,
            'accessByte': self.access_byte,
            'staticLockSet': self.static_lock_set,
            'configPage': self.config_page,
            'detected': self.detected,
            'isWritable': self.is_writable,
        }

    def __repr__(self):
        return (f"ProtectionStatus(password_protected={self.password_protected}, "
                f"write_protected={self.write_protected}, auth0=0x{self.auth0_page:02X})")


def read_static_lock(reader):
    """
    Check the static lock bytes (page 2, bytes 2 and 3).

    Returns:
        bool: True if any static lock bit is set, False if unset or unreadable
    """
    try:
        page = reader.read_pages(STATIC_LOCK_PAGE, PAGE_SIZE)
    except NFCError as e:
        logger.debug(f"Static lock bytes not readable: {e}")
        return False
    locked = page[2] != 0x00 or page[3] != 0x00
    logger.debug(f"Static lock bytes: {page[2]:02X} {page[3]:02X} (locked: {locked})")
    return locked


def check_protection(reader, resolution):
    """
    Determine the protection state of the tag.

    Args:
        reader: NFCReader for the current tag
        resolution (LayoutResolution): Result of resolve_layout for this tag

    Returns:
        ProtectionStatus: Never raises for transport failures
    """
    layout = resolution.layout
    window = resolution.config_window
    if not resolution.detected or window is None:
        logger.info("Could not find config pages - assuming no protection")
        return ProtectionStatus(
            config_page=layout.config_page if resolution.detected else None,
            tag_type=layout.family_name if resolution.detected else None,
        )

    auth0 = window[3]
    access = window[4]
    password_protected = auth0 < AUTH0_DISABLED
    static_lock = read_static_lock(reader)
    write_protected = static_lock or (password_protected and bool(access & ACCESS_PROT))

    logger.info(f"{layout.family_name}: AUTH0=0x{auth0:02X} ACCESS=0x{access:02X} "
                f"password protected={password_protected} write protected={write_protected}")

    return ProtectionStatus(
        password_protected=password_protected,
        write_protected=write_protected,
        auth0_page=auth0,
        access_byte=access,
        static_lock_set=static_lock,
        config_page=layout.config_page,
        tag_type=layout.family_name,
        detected=True,
    )


def _read_config(reader, layout):
    try:
        window = reader.read_pages(layout.config_page, 2 * PAGE_SIZE)
    except NFCError as e:
        logger.warning(f"Config read at page {layout.config_page} failed: {e}")
        raise NFCConfigReadError()
    return bytearray(window[:PAGE_SIZE]), bytearray(window[PAGE_SIZE:])


def enable_protection(reader, password, layout, auth0=DEFAULT_AUTH0, access=DEFAULT_ACCESS,
                      pack=DEFAULT_PACK):
    """
    Set a password on the tag and enable write protection.

    The password bytes come from the same conversion the authentication
    engine tries first, so the password set here authenticates later.

    Args:
        reader: NFCReader for the current tag
        password (str): Password as typed by the operator
        layout (TagLayout): Layout of the tag
        auth0 (int): First protected page
        access (int): ACCESS byte (bit 7 PROT, bits 2-0 AUTHLIM)
        pack (bytes): 4-byte PACK page content

    Returns:
        ProtectionResult: password_set is False with an error message when a
        step after the password write failed

    Raises:
        NFCWriteError: If the password itself could not be written
    """
    candidate = primary_password_candidate(password)

    logger.info(f"Writing password to page {layout.password_page}...")
    try:
        reader.write_page(layout.password_page, candidate.password_bytes)
    except NFCError as e:
        raise NFCWriteError(f"Failed to write password: {e}")

    try:
        reader.write_page(layout.pack_page, pack)
    except NFCError as e:
        logger.warning(f"PACK write at page {layout.pack_page} failed: {e}")

    try:
        cfg0, cfg1 = _read_config(reader, layout)
        logger.debug(f"Current CFG0: {to_hex(cfg0)} CFG1: {to_hex(cfg1)}")

        cfg0[3] = auth0
        cfg1[0] = access

        try:
            reader.write_page(layout.config_page, bytes(cfg0))
        except NFCError as e:
            raise NFCWriteError(f"Failed to write configuration: {e}")
        try:
            reader.write_page(layout.config_page + 1, bytes(cfg1))
        except NFCError as e:
            raise NFCWriteError(f"Failed to write access config: {e}")
    except NFCError as e:
        logger.error(f"Password written but protection setup failed: {e}")
        return ProtectionResult(False, candidate.password_bytes, candidate.format, str(e))

    logger.info(f"Password protection enabled from page {auth0} ({to_hex(candidate.password_bytes)})")
    return ProtectionResult(True, candidate.password_bytes, candidate.format, None)
