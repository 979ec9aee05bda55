"""
NFC Module - ACR122U reader access, NDEF encoding and NTAG21x protection.

This module talks to the reader over PC/SC, reads and writes NDEF content on
NTAG21x tags, authenticates with tag passwords and manages write protection.
The PC/SC monitor lives in pcsc_monitor and is imported on demand, since it
needs the pyscard native library.
"""

# Import public interface from controller
from .nfc_controller import (
    NFCBridge,
    ReaderSession,
    TagIdentity,
    initialize,
    shutdown,
    get_bridge
)

from .authentication import AuthenticationEngine, derive_password_candidates
from .layouts import TagLayout, resolve_layout
from .protection import ProtectionStatus, check_protection, enable_protection
from .tag_processor import NdefRecord, create_ndef_data, parse_ndef_data

# Import exceptions for external use
from .exceptions import (
    NFCError,
    NFCHardwareError,
    NFCNoReaderError,
    NFCNoTagError,
    NFCTagRemovedError,
    NFCReadError,
    NFCWriteError,
    NFCAuthenticationError,
    NFCAuthenticationExhaustedError,
    NFCTransportError,
    NFCTransportTimeoutError
)

__all__ = [
    # Session bridge
    'NFCBridge',
    'ReaderSession',
    'TagIdentity',
    'initialize',
    'shutdown',
    'get_bridge',

    # Tag operations
    'AuthenticationEngine',
    'derive_password_candidates',
    'TagLayout',
    'resolve_layout',
    'ProtectionStatus',
    'check_protection',
    'enable_protection',
    'NdefRecord',
    'create_ndef_data',
    'parse_ndef_data',

    # Exceptions
    'NFCError',
    'NFCHardwareError',
    'NFCNoReaderError',
    'NFCNoTagError',
    'NFCTagRemovedError',
    'NFCReadError',
    'NFCWriteError',
    'NFCAuthenticationError',
    'NFCAuthenticationExhaustedError',
    'NFCTransportError',
    'NFCTransportTimeoutError'
]
