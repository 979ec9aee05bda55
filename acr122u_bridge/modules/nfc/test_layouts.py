"""
test_layouts.py - Tests for NTAG layouts and layout detection.
"""

import unittest
from unittest.mock import MagicMock

from .exceptions import NFCLayoutUnresolvedError, NFCReadError, NFCUnsupportedTagFamilyError
from .hardware_interface import NFCReader
from .layouts import NTAG213, NTAG215, NTAG216, NTAG210_212, get_layout, resolve_layout
from .protection import check_protection
from .simulated_tag import SimulatedCard, SimulatedTag


def connect(tag):
    reader = NFCReader(SimulatedCard('Test Reader', tag).createConnection(), name='Test Reader',
                       apdu_timeout=1.0, write_timeout=1.0)
    reader.connect()
    return reader


class TestTagLayout(unittest.TestCase):
    """Test cases for layout geometry."""

    def test_user_capacity(self):
        self.assertEqual(NTAG213.user_capacity, 144)
        self.assertEqual(NTAG215.user_capacity, 504)
        self.assertEqual(NTAG216.user_capacity, 888)

    def test_memory_size(self):
        self.assertEqual(NTAG213.memory_size, 180)
        self.assertEqual(NTAG215.memory_size, 540)
        self.assertEqual(NTAG216.memory_size, 924)
        self.assertEqual(NTAG210_212.memory_size, 164)

    def test_get_layout(self):
        self.assertIs(get_layout('NTAG216'), NTAG216)
        with self.assertRaises(NFCUnsupportedTagFamilyError):
            get_layout('MIFARE Classic')


class TestResolveLayout(unittest.TestCase):
    """Test cases for layout detection against a simulated tag."""

    def setUp(self):
        self.readers = []

    def tearDown(self):
        for reader in self.readers:
            reader.close()

    def _resolve(self, tag):
        reader = connect(tag)
        self.readers.append(reader)
        return resolve_layout(reader)

    def test_get_version_takes_precedence(self):
        resolution = self._resolve(SimulatedTag('NTAG216'))
        self.assertTrue(resolution.detected)
        self.assertEqual(resolution.source, 'version')
        self.assertIs(resolution.layout, NTAG216)
        self.assertEqual(resolution.config_window[3], 0xFF)

    def test_probe_when_get_version_unsupported(self):
        resolution = self._resolve(SimulatedTag('NTAG216', respond_to_version=False))
        self.assertTrue(resolution.detected)
        self.assertEqual(resolution.source, 'probe')
        self.assertIs(resolution.layout, NTAG216)

    def test_probe_finds_first_candidate(self):
        resolution = self._resolve(SimulatedTag('NTAG213', respond_to_version=False))
        self.assertIs(resolution.require(), NTAG213)


class TestResolveLayoutProbing(unittest.TestCase):
    """Test cases for the config page probe heuristics."""

    def _reader(self, windows):
        reader = MagicMock()
        reader.get_version.return_value = None

        def read_pages(page, length=16):
            window = windows.get(page)
            if window is None:
                raise NFCReadError(f"Read failed at page {page}")
            return window

        reader.read_pages.side_effect = read_pages
        return reader

    def test_all_zero_window_is_rejected(self):
        reader = self._reader({41: bytes(16), 131: bytes([0x04, 0, 0, 0xFF]) + bytes(12)})
        resolution = resolve_layout(reader)
        self.assertIs(resolution.layout, NTAG215)
        pages = [call.args[0] for call in reader.read_pages.call_args_list]
        self.assertEqual(pages, [41, 131])

    def test_nothing_detected_falls_back(self):
        reader = self._reader({41: bytes(16), 131: bytes(16), 227: bytes(16)})
        resolution = resolve_layout(reader)
        self.assertFalse(resolution.detected)
        self.assertIs(resolution.layout, NTAG215)
        self.assertIsNone(resolution.config_window)
        with self.assertRaises(NFCLayoutUnresolvedError):
            resolution.require()

    def test_version_family_kept_without_config_window(self):
        reader = self._reader({})
        reader.get_version.return_value = 'NTAG213'

        resolution = resolve_layout(reader)

        self.assertTrue(resolution.detected)
        self.assertIs(resolution.layout, NTAG213)
        self.assertIsNone(resolution.config_window)
        pages = [call.args[0] for call in reader.read_pages.call_args_list]
        self.assertEqual(pages, [41])

        status = check_protection(reader, resolution)
        self.assertFalse(status.detected)
        self.assertFalse(status.password_protected)
        self.assertEqual(status.config_page, 41)

    def test_read_failures_are_swallowed(self):
        resolution = resolve_layout(self._reader({}), fallback=NTAG213)
        self.assertFalse(resolution.detected)
        self.assertIs(resolution.layout, NTAG213)


if __name__ == '__main__':
    unittest.main()
