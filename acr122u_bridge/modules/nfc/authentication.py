"""
authentication.py - NTAG21x password authentication (PWD_AUTH) through the ACR122U.

A user-supplied password string is turned into an ordered list of 4-byte
candidates. Each candidate is tried over three PN532 transports in turn until
the tag acknowledges one of them.
"""

import hashlib
import logging
import re
from collections import namedtuple

from .commands import (
    IOCTL_ACR122U_ESCAPE, IOCTL_CCID_ESCAPE, PN532_IN_COMMUNICATE_THRU_RESPONSE,
    SW_SUCCESS, build_escape_apdu, build_pn532_command, build_pwd_auth, to_hex
)
from .exceptions import NFCAuthenticationError, NFCAuthenticationExhaustedError, NFCError

logger = logging.getLogger(__name__)

FORMAT_HEX = 'hex'
FORMAT_ASCII_PADDED = 'ascii-padded'
FORMAT_FIRST_4_ASCII = 'first-4-ascii'
FORMAT_MD5_HASH = 'md5-hash'
FORMAT_FACTORY_DEFAULT = 'factory-default'

FACTORY_DEFAULT_PASSWORD = b'\xFF\xFF\xFF\xFF'

TRANSPORT_IOCTL_CCID = 'ioctl-ccid-escape'
TRANSPORT_IOCTL_ACR122U = 'ioctl-acr122u'
TRANSPORT_ESCAPE_APDU = 'escape-apdu'
TRANSPORTS = (TRANSPORT_IOCTL_CCID, TRANSPORT_IOCTL_ACR122U, TRANSPORT_ESCAPE_APDU)

AUTH_CONFIRMED = 'confirmed'
AUTH_UNCONFIRMED = 'unconfirmed'
AUTH_NAK = 'nak'

_HEX_PASSWORD = re.compile(r'^[0-9A-Fa-f]{8}$')

PasswordCandidate = namedtuple('PasswordCandidate', ['password_bytes', 'format'])

AuthResult = namedtuple('AuthResult', ['password_bytes', 'format', 'transport', 'confirmed', 'attempts'])


def is_hex_password(password):
    """True if the password is exactly 8 hex characters."""
    return bool(_HEX_PASSWORD.match(password or ''))


def _ascii(text):
    return text.encode('ascii', errors='replace')


def _hex_candidate(password):
    return PasswordCandidate(bytes.fromhex(password), FORMAT_HEX)


def _padded_candidate(password):
    return PasswordCandidate(_ascii(password)[:4].ljust(4, b'\x00'), FORMAT_ASCII_PADDED)


def _first_4_candidate(password):
    return PasswordCandidate(_ascii(password[:4]), FORMAT_FIRST_4_ASCII)


def _md5_candidate(password):
    digest = hashlib.md5(password.encode('utf-8')).digest()
    return PasswordCandidate(digest[:4], FORMAT_MD5_HASH)


def primary_password_candidate(password):
    """
    Convert a password string to the 4 bytes written to the tag.

    Both setting a password and authenticating use this conversion, so a
    password set by this bridge is always the first candidate tried.

    Args:
        password (str): Password as typed by the operator

    Returns:
        PasswordCandidate: hex if 8 hex characters, zero-padded ASCII if at
        most 4 characters, otherwise the first 4 ASCII characters
    """
    if not password:
        raise NFCAuthenticationError("Password is required")
    if is_hex_password(password):
        return _hex_candidate(password)
    if len(password) <= 4:
        return _padded_candidate(password)
    return _first_4_candidate(password)


def derive_password_candidates(password):
    """
    Derive the ordered list of 4-byte password candidates.

    The primary conversion comes first, followed by the alternative formats
    other NFC apps use, and finally the factory default FF FF FF FF.

    Args:
        password (str): Password as typed by the operator

    Returns:
        list: PasswordCandidate objects (2 to 5 entries)
    """
    primary = primary_password_candidate(password)
    candidates = [primary]

    def _add(candidate):
        if candidate.format != primary.format:
            candidates.append(candidate)

    if is_hex_password(password):
        _add(_hex_candidate(password))
    if len(password) >= 4:
        _add(_first_4_candidate(password))
    if len(password) <= 4:
        _add(_padded_candidate(password))
    if len(password) > 4:
        _add(_md5_candidate(password))

    candidates.append(PasswordCandidate(FACTORY_DEFAULT_PASSWORD, FORMAT_FACTORY_DEFAULT))
    return candidates


def classify_auth_response(response):
    """
    Classify the reply to a PWD_AUTH attempt.

    Returns:
        str: AUTH_CONFIRMED for an InCommunicateThru reply with status 00,
        AUTH_UNCONFIRMED for a bare 90 00 (the reader hid the inner reply),
        AUTH_NAK for anything else
    """
    response = bytes(response or b'')
    if response == bytes(SW_SUCCESS):
        return AUTH_UNCONFIRMED

    body = response
    if len(response) > 2 and tuple(response[-2:]) == SW_SUCCESS:
        body = response[:-2]

    if body.startswith(PN532_IN_COMMUNICATE_THRU_RESPONSE + b'\x00'):
        return AUTH_CONFIRMED
    return AUTH_NAK


class AuthenticationEngine:
    """
    Runs PWD_AUTH against the current tag until a candidate is accepted.

    The plan is the ordered list of (candidate, transport) pairs: every
    transport for the first candidate, then every transport for the next one.
    A confirmed reply ends the run. A bare 90 00 is remembered as an
    unconfirmed success; the remaining transports of that candidate are still
    tried for a confirmation before it is returned.

    Attributes:
        reader: NFCReader for the current tag
        attempt_timeout (float): Timeout for a single attempt in seconds
        ioctl_codes (tuple): Control codes for the two IOCTL transports
    """

    def __init__(self, reader, attempt_timeout=0.04,
                 ioctl_codes=(IOCTL_CCID_ESCAPE, IOCTL_ACR122U_ESCAPE)):
        self.reader = reader
        self.attempt_timeout = attempt_timeout
        self.ioctl_codes = tuple(ioctl_codes)

    def build_plan(self, candidates):
        return [(candidate, transport) for candidate in candidates for transport in TRANSPORTS]

    def _attempt(self, candidate, transport):
        frame = build_pn532_command(build_pwd_auth(candidate.password_bytes))
        if transport == TRANSPORT_IOCTL_CCID:
            return self.reader.control(self.ioctl_codes[0], frame, timeout=self.attempt_timeout)
        if transport == TRANSPORT_IOCTL_ACR122U:
            return self.reader.control(self.ioctl_codes[1], frame, timeout=self.attempt_timeout)
        return self.reader.transmit(build_escape_apdu(frame), timeout=self.attempt_timeout)

    def authenticate(self, password):
        """
        Authenticate with the tag.

        Args:
            password (str): Password as typed by the operator

        Returns:
            AuthResult: The accepted candidate and how it was accepted

        Raises:
            NFCAuthenticationError: If the password is empty
            NFCAuthenticationExhaustedError: If every candidate was rejected
        """
        candidates = derive_password_candidates(password)
        plan = self.build_plan(candidates)
        logger.info(f"Attempting authentication with {len(candidates)} password formats")

        tentative = None
        attempts = 0
        for candidate, transport in plan:
            if tentative is not None and tentative[0] is not candidate:
                break

            attempts += 1
            try:
                response = self._attempt(candidate, transport)
            except NFCError as e:
                logger.debug(f"  {candidate.format} via {transport}: {e}")
                continue

            outcome = classify_auth_response(response)
            logger.debug(f"  {candidate.format} via {transport}: {to_hex(response)} ({outcome})")

            if outcome == AUTH_CONFIRMED:
                logger.info(f"Authentication successful with {candidate.format} via {transport}")
                return AuthResult(candidate.password_bytes, candidate.format, transport, True, attempts)
            if outcome == AUTH_UNCONFIRMED and tentative is None:
                tentative = (candidate, transport)

        if tentative is not None:
            candidate, transport = tentative
            logger.warning(f"Authentication possibly successful (9000 only) with {candidate.format}")
            return AuthResult(candidate.password_bytes, candidate.format, transport, False, attempts)

        formats = [candidate.format for candidate in candidates]
        logger.warning(f"Authentication failed with all password formats: {', '.join(formats)}")
        raise NFCAuthenticationExhaustedError(formats)
