"""
test_authentication.py - Tests for password derivation and the authentication engine.
"""

import hashlib
import unittest
from unittest.mock import MagicMock

from .authentication import (
    AUTH_CONFIRMED, AUTH_NAK, AUTH_UNCONFIRMED, FORMAT_ASCII_PADDED, FORMAT_FACTORY_DEFAULT,
    FORMAT_FIRST_4_ASCII, FORMAT_HEX, FORMAT_MD5_HASH, TRANSPORT_ESCAPE_APDU,
    TRANSPORT_IOCTL_ACR122U, TRANSPORT_IOCTL_CCID, AuthenticationEngine, classify_auth_response,
    derive_password_candidates, is_hex_password, primary_password_candidate
)
from .exceptions import (
    NFCAuthenticationError, NFCAuthenticationExhaustedError, NFCTransportError,
    NFCTransportTimeoutError
)
from .hardware_interface import NFCReader
from .simulated_tag import SimulatedCard, SimulatedTag

ACK = bytes([0xD5, 0x43, 0x00, 0x00, 0x00])
NAK = bytes([0xD5, 0x43, 0x01])


class TestPasswordCandidates(unittest.TestCase):
    """Test cases for deriving 4-byte password candidates."""

    def test_hex_password(self):
        candidates = derive_password_candidates('FFFFFFFF')
        self.assertEqual(candidates[0].password_bytes, b'\xFF\xFF\xFF\xFF')
        self.assertEqual([c.format for c in candidates],
                         [FORMAT_HEX, FORMAT_FIRST_4_ASCII, FORMAT_MD5_HASH, FORMAT_FACTORY_DEFAULT])
        self.assertEqual(candidates[1].password_bytes, b'FFFF')

    def test_short_password(self):
        candidates = derive_password_candidates('abc')
        self.assertEqual([c.format for c in candidates], [FORMAT_ASCII_PADDED, FORMAT_FACTORY_DEFAULT])
        self.assertEqual(candidates[0].password_bytes, b'abc\x00')

    def test_four_character_password(self):
        candidates = derive_password_candidates('abcd')
        self.assertEqual([c.format for c in candidates],
                         [FORMAT_ASCII_PADDED, FORMAT_FIRST_4_ASCII, FORMAT_FACTORY_DEFAULT])

    def test_long_password(self):
        candidates = derive_password_candidates('secret1')
        self.assertEqual([c.format for c in candidates],
                         [FORMAT_FIRST_4_ASCII, FORMAT_MD5_HASH, FORMAT_FACTORY_DEFAULT])
        self.assertEqual(candidates[0].password_bytes, b'secr')
        self.assertEqual(candidates[1].password_bytes, hashlib.md5(b'secret1').digest()[:4])

    def test_every_candidate_is_four_bytes(self):
        for password in ('a', 'abcd', '12345678', 'a longer passphrase', 'ÄÖÜ'):
            for candidate in derive_password_candidates(password):
                self.assertEqual(len(candidate.password_bytes), 4, (password, candidate))

    def test_primary_candidate_matches_first_candidate(self):
        for password in ('1234abcd', 'pw', 'hunter22'):
            self.assertEqual(primary_password_candidate(password),
                             derive_password_candidates(password)[0])

    def test_empty_password(self):
        with self.assertRaises(NFCAuthenticationError):
            derive_password_candidates('')

    def test_is_hex_password(self):
        self.assertTrue(is_hex_password('deadBEEF'))
        self.assertFalse(is_hex_password('deadBEE'))
        self.assertFalse(is_hex_password('deadBEEG'))
        self.assertFalse(is_hex_password(None))


class TestClassifyAuthResponse(unittest.TestCase):
    """Test cases for interpreting PWD_AUTH replies."""

    def test_confirmed(self):
        self.assertEqual(classify_auth_response(ACK), AUTH_CONFIRMED)
        self.assertEqual(classify_auth_response(ACK + b'\x90\x00'), AUTH_CONFIRMED)

    def test_bare_success_is_unconfirmed(self):
        self.assertEqual(classify_auth_response(b'\x90\x00'), AUTH_UNCONFIRMED)

    def test_nak(self):
        self.assertEqual(classify_auth_response(NAK), AUTH_NAK)
        self.assertEqual(classify_auth_response(NAK + b'\x90\x00'), AUTH_NAK)
        self.assertEqual(classify_auth_response(b'\x63\x00'), AUTH_NAK)
        self.assertEqual(classify_auth_response(b''), AUTH_NAK)


class TestAuthenticationEngine(unittest.TestCase):
    """Test cases for the authentication engine against a simulated tag."""

    def setUp(self):
        self.reader = None

    def tearDown(self):
        if self.reader is not None:
            self.reader.close()

    def _engine(self, tag):
        self.reader = NFCReader(SimulatedCard('Test Reader', tag).createConnection(),
                                apdu_timeout=1.0, write_timeout=1.0)
        self.reader.connect()
        return AuthenticationEngine(self.reader, attempt_timeout=1.0)

    def test_primary_format_confirmed(self):
        tag = SimulatedTag(password=b'secr', auth0=0x04)
        result = self._engine(tag).authenticate('secret1')
        self.assertTrue(result.confirmed)
        self.assertEqual(result.format, FORMAT_FIRST_4_ASCII)
        self.assertEqual(result.transport, TRANSPORT_IOCTL_CCID)
        self.assertEqual(result.attempts, 1)
        self.assertTrue(tag.authenticated)

    def test_alternative_format(self):
        tag = SimulatedTag(password=hashlib.md5(b'secret1').digest()[:4], auth0=0x04)
        result = self._engine(tag).authenticate('secret1')
        self.assertEqual(result.format, FORMAT_MD5_HASH)
        self.assertEqual(result.attempts, 4)

    def test_escape_apdu_when_ioctl_unsupported(self):
        tag = SimulatedTag(password=b'pw\x00\x00', auth0=0x04, ioctl_supported=False)
        result = self._engine(tag).authenticate('pw')
        self.assertTrue(result.confirmed)
        self.assertEqual(result.transport, TRANSPORT_ESCAPE_APDU)
        self.assertEqual(result.attempts, 3)

    def test_exhausted(self):
        tag = SimulatedTag(password=b'secr', auth0=0x04)
        with self.assertRaises(NFCAuthenticationExhaustedError) as ctx:
            self._engine(tag).authenticate('no')
        self.assertEqual(ctx.exception.formats_tried, [FORMAT_ASCII_PADDED, FORMAT_FACTORY_DEFAULT])
        self.assertIn("Tried formats: ascii-padded, factory-default", str(ctx.exception))
        self.assertFalse(tag.authenticated)

    def test_factory_default_against_unprotected_tag(self):
        tag = SimulatedTag()
        result = self._engine(tag).authenticate('FFFFFFFF')
        # The tag acknowledged the frame; a NAK would have raised
        self.assertTrue(result.confirmed)
        self.assertEqual(result.password_bytes, b'\xFF\xFF\xFF\xFF')
        self.assertTrue(tag.authenticated)


class TestAuthenticationEngineTransports(unittest.TestCase):
    """Test cases for transport fallbacks with a mocked reader."""

    def test_nak_is_never_reported_as_success(self):
        reader = MagicMock()
        reader.control.return_value = NAK
        reader.transmit.return_value = NAK + b'\x90\x00'
        with self.assertRaises(NFCAuthenticationExhaustedError):
            AuthenticationEngine(reader).authenticate('FFFFFFFF')
        # 4 candidates x 3 transports
        self.assertEqual(reader.control.call_count + reader.transmit.call_count, 12)

    def test_bare_success_is_unconfirmed(self):
        reader = MagicMock()
        reader.control.side_effect = NFCTransportError("control not supported")
        reader.transmit.return_value = b'\x90\x00'
        result = AuthenticationEngine(reader).authenticate('abcd')
        self.assertFalse(result.confirmed)
        self.assertEqual(result.format, FORMAT_ASCII_PADDED)
        self.assertEqual(result.transport, TRANSPORT_ESCAPE_APDU)
        self.assertEqual(result.attempts, 3)

    def test_bare_success_upgraded_by_later_transport(self):
        reader = MagicMock()
        reader.control.side_effect = [b'\x90\x00', ACK]
        result = AuthenticationEngine(reader).authenticate('abcd')
        self.assertTrue(result.confirmed)
        self.assertEqual(result.transport, TRANSPORT_IOCTL_ACR122U)
        reader.transmit.assert_not_called()

    def test_timeouts_move_to_next_transport(self):
        reader = MagicMock()
        reader.control.side_effect = NFCTransportTimeoutError(0.04)
        reader.transmit.return_value = ACK + b'\x90\x00'
        result = AuthenticationEngine(reader).authenticate('abcd')
        self.assertTrue(result.confirmed)
        self.assertEqual(result.transport, TRANSPORT_ESCAPE_APDU)

    def test_ioctl_codes_are_configurable(self):
        reader = MagicMock()
        reader.control.return_value = ACK
        AuthenticationEngine(reader, ioctl_codes=(0x1111, 0x2222)).authenticate('abcd')
        self.assertEqual(reader.control.call_args.args[0], 0x1111)


if __name__ == '__main__':
    unittest.main()
