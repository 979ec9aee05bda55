"""
test_commands.py - Tests for the APDU and PN532 command builders.
"""

import unittest

from .commands import (
    GET_VERSION, IOCTL_ACR122U_ESCAPE, IOCTL_CCID_ESCAPE, build_escape_apdu, build_pn532_command,
    build_pwd_auth, build_read, build_write, classify_version, is_success, parse_read_response,
    split_response, status_word, to_hex
)
from .exceptions import NFCInvalidPageLengthError


class TestCommandBuilders(unittest.TestCase):
    """Test cases for building APDUs."""

    def test_read_apdu(self):
        self.assertEqual(build_read(4), bytes.fromhex('FFB0000410'))
        self.assertEqual(build_read(2, 4), bytes.fromhex('FFB0000204'))

    def test_write_apdu(self):
        self.assertEqual(build_write(4, b'\x03\x00\xFE\x00'), bytes.fromhex('FFD600040403' '00FE00'))

    def test_write_rejects_wrong_length(self):
        for data in (b'', b'\x01\x02\x03', b'\x01\x02\x03\x04\x05'):
            with self.assertRaises(NFCInvalidPageLengthError):
                build_write(4, data)

    def test_page_out_of_range(self):
        with self.assertRaises(ValueError):
            build_read(256)

    def test_get_version_is_seven_bytes(self):
        self.assertEqual(len(GET_VERSION), 7)
        self.assertEqual(to_hex(GET_VERSION), 'FF00000002' '6000')

    def test_pwd_auth_frames(self):
        frame = build_pn532_command(build_pwd_auth(b'\x12\x34\x56\x78'))
        self.assertEqual(to_hex(frame), 'D4421B12345678')
        self.assertEqual(to_hex(build_escape_apdu(frame)), 'FF00000007D4421B12345678')

    def test_pwd_auth_needs_four_bytes(self):
        with self.assertRaises(ValueError):
            build_pwd_auth(b'\x01\x02')

    def test_ioctl_codes(self):
        self.assertEqual(IOCTL_CCID_ESCAPE, 0x42000DAC)
        self.assertEqual(IOCTL_ACR122U_ESCAPE, 0x003136B0)


class TestResponses(unittest.TestCase):
    """Test cases for interpreting reader responses."""

    def test_split_response(self):
        self.assertEqual(split_response(b'\x01\x02\x90\x00'), (b'\x01\x02', (0x90, 0x00)))
        self.assertEqual(split_response(b'\x90'), (b'\x90', None))
        self.assertEqual(status_word(b'\x63\x00'), '6300')
        self.assertIsNone(status_word(b''))

    def test_is_success(self):
        self.assertTrue(is_success(b'\x90\x00'))
        self.assertTrue(is_success(b'\xAA\x90\x00'))
        self.assertFalse(is_success(b'\x63\x00'))
        self.assertFalse(is_success(None))

    def test_parse_read_response(self):
        body = bytes(range(16))
        self.assertEqual(parse_read_response(body + b'\x90\x00', 16), body)
        self.assertIsNone(parse_read_response(body[:8] + b'\x90\x00', 16))
        self.assertIsNone(parse_read_response(body + b'\x63\x00', 16))

    def test_classify_version(self):
        reply = bytes([0x00, 0x04, 0x04, 0x02, 0x01, 0x00, 0x11, 0x03])
        self.assertEqual(classify_version(reply), 'NTAG215')
        self.assertEqual(classify_version(reply[:6] + b'\x0F\x03'), 'NTAG213')
        self.assertEqual(classify_version(reply[:6] + b'\x13\x03' + b'\x90\x00'), 'NTAG216')

    def test_classify_version_unknown(self):
        self.assertIsNone(classify_version(b''))
        self.assertIsNone(classify_version(b'\x63\x00'))
        # MIFARE Ultralight EV1 product type
        self.assertIsNone(classify_version(bytes([0x00, 0x04, 0x03, 0x01, 0x01, 0x00, 0x0B, 0x03])))
        # Unknown storage size
        self.assertIsNone(classify_version(bytes([0x00, 0x04, 0x04, 0x02, 0x01, 0x00, 0x42, 0x03])))


if __name__ == '__main__':
    unittest.main()
