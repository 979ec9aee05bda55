"""
test_tag_processor.py - Tests for NDEF encoding/decoding and TLV handling.
"""

import unittest
from unittest.mock import MagicMock

from .exceptions import NFCReadError
from .layouts import NTAG213
from .tag_processor import (
    NdefRecord, create_ndef_data, encode_text_record, encode_uri_record, extract_ndef_message,
    format_uid, parse_ndef_data, parse_ndef_message, read_ndef_area, scan_tlv, split_pages,
    wrap_tlv
)


class TestEncoding(unittest.TestCase):
    """Test cases for NDEF record and TLV encoding."""

    def test_uri_record_uses_prefix_code(self):
        message = encode_uri_record('https://example.com/x')
        # MB|ME|SR|TNF=1, type length 1, payload length, 'U', prefix 0x04
        self.assertEqual(message[:5], bytes([0xD1, 0x01, 14, 0x55, 0x04]))
        self.assertEqual(message[5:], b'example.com/x')

    def test_uri_record_prefers_longest_prefix(self):
        message = encode_uri_record('https://www.example.com')
        self.assertEqual(message[4], 0x02)
        self.assertEqual(message[5:], b'example.com')

    def test_uri_record_without_known_prefix(self):
        message = encode_uri_record('spotify:track:1234')
        self.assertEqual(message[4], 0x00)
        self.assertEqual(message[5:], b'spotify:track:1234')

    def test_text_record(self):
        message = encode_text_record('hello', 'en')
        self.assertEqual(message, bytes([0xD1, 0x01, 0x08, 0x54, 0x02]) + b'enhello')

    def test_short_tlv(self):
        tlv = wrap_tlv(b'\xAA' * 10)
        self.assertEqual(tlv[:2], b'\x03\x0A')
        self.assertEqual(tlv[-1], 0xFE)
        self.assertEqual(len(tlv), 10 + 3)

    def test_long_tlv(self):
        tlv = wrap_tlv(b'\xAA' * 300)
        self.assertEqual(tlv[:4], b'\x03\xFF\x01\x2C')
        self.assertEqual(tlv[-1], 0xFE)
        self.assertEqual(len(tlv), 300 + 5)

    def test_tlv_length_boundary(self):
        self.assertEqual(wrap_tlv(b'\x00' * 254)[1], 254)
        self.assertEqual(wrap_tlv(b'\x00' * 255)[1:4], b'\xFF\x00\xFF')

    def test_create_ndef_data_is_page_aligned(self):
        data = create_ndef_data(url='https://t.example/TAG-001')
        # 4 header bytes + prefix code + 17 characters, 3 TLV bytes, 3 padding bytes
        self.assertEqual(len(data), 28)
        self.assertEqual(data[:2], bytes([0x03, 22]))
        self.assertEqual(data[24], 0xFE)
        self.assertEqual(data[25:], b'\x00\x00\x00')
        self.assertEqual(len(split_pages(data)), 7)

    def test_create_ndef_data_requires_exactly_one_payload(self):
        with self.assertRaises(ValueError):
            create_ndef_data()
        with self.assertRaises(ValueError):
            create_ndef_data(url='https://a.example', text='hi')

    def test_long_uri_uses_normal_record(self):
        url = 'https://example.com/' + 'a' * 300
        message = encode_uri_record(url)
        self.assertEqual(message[0] & 0x10, 0)
        records = parse_ndef_message(message)
        self.assertEqual(records[0].url, url)


class TestDecoding(unittest.TestCase):
    """Test cases for NDEF and TLV decoding."""

    def test_uri_round_trip(self):
        result = parse_ndef_data(create_ndef_data(url='https://example.com/x'))
        self.assertTrue(result['hasData'])
        self.assertEqual(len(result['records']), 1)
        record = result['records'][0]
        self.assertEqual(record['recordType'], 'uri')
        self.assertEqual(record['url'], 'https://example.com/x')
        self.assertEqual(record['payload'], '04' + b'example.com/x'.hex().upper())

    def test_text_round_trip(self):
        result = parse_ndef_data(create_ndef_data(text='Bonjour', language='fr'))
        record = result['records'][0]
        self.assertEqual(record['recordType'], 'text')
        self.assertEqual(record['payloadText'], 'Bonjour')
        self.assertEqual(record['language'], 'fr')
        self.assertEqual(record['encoding'], 'UTF-8')

    def test_record_equality_survives_round_trip(self):
        message = encode_text_record('hi')
        original = NdefRecord(0x01, b'T', message[4:])
        self.assertEqual(parse_ndef_message(message)[0], original)

    def test_utf16_text(self):
        payload = bytes([0x82]) + b'en' + 'hi'.encode('utf-16-be')
        message = bytes([0xD1, 0x01, len(payload), 0x54]) + payload
        record = parse_ndef_message(message)[0]
        self.assertEqual(record.text, 'hi')
        self.assertEqual(record.encoding, 'UTF-16')

    def test_unknown_uri_prefix_code(self):
        payload = b'\x40abc'
        message = bytes([0xD1, 0x01, len(payload), 0x55]) + payload
        self.assertEqual(parse_ndef_message(message)[0].url, 'abc')

    def test_mime_text_record(self):
        message = bytes([0xD2, 10, 5]) + b'text/plain' + b'hello'
        record = parse_ndef_message(message)[0]
        self.assertEqual(record.record_type, 'mime')
        self.assertEqual(record.mime_type, 'text/plain')
        self.assertEqual(record.text, 'hello')

    def test_mime_binary_record_keeps_raw_payload(self):
        message = bytes([0xD2, 9, 2]) + b'image/png' + b'\x89P'
        record = parse_ndef_message(message)[0].to_dict()
        self.assertIsNone(record['payloadText'])
        self.assertEqual(record['payload'], '8950')

    def test_external_record(self):
        message = bytes([0xD4, 15, 1]) + b'android.com:pkg' + b'\x01'
        self.assertEqual(parse_ndef_message(message)[0].record_type, 'external')

    def test_record_with_id(self):
        message = bytes([0xD9, 0x01, 0x02, 0x01, 0x55]) + b'\x07' + b'\x04x'
        record = parse_ndef_message(message)[0]
        self.assertEqual(record.id, b'\x07')
        self.assertEqual(record.url, 'https://x')

    def test_stops_after_message_end(self):
        first = encode_text_record('one')
        second = encode_text_record('two')
        records = parse_ndef_message(first + second)
        self.assertEqual([r.text for r in records], ['one'])

    def test_multiple_records(self):
        first = bytearray(encode_text_record('one'))
        first[0] &= ~0x40  # clear ME
        second = bytearray(encode_text_record('two'))
        second[0] &= ~0x80  # clear MB
        records = parse_ndef_message(bytes(first + second))
        self.assertEqual([r.text for r in records], ['one', 'two'])

    def test_truncated_record_keeps_complete_ones(self):
        first = bytearray(encode_text_record('one'))
        first[0] &= ~0x40
        second = encode_text_record('a much longer second record')
        records = parse_ndef_message(bytes(first) + second[:10])
        self.assertEqual(len(records), 1)
        self.assertEqual(records[0].text, 'one')

    def test_garbage_does_not_raise(self):
        for data in (b'', b'\xD1', b'\xD1\x01', b'\xC1\x01\x00\x00', b'\xFF' * 7):
            self.assertIsInstance(parse_ndef_message(data), list)

    def test_empty_area(self):
        for area in (b'', b'\x00' * 16, b'\x03\x00\xFE\x00', b'\xFE\x00\x00\x00'):
            result = parse_ndef_data(area)
            self.assertFalse(result['hasData'])
            self.assertEqual(result['records'], [])
            self.assertIsNone(result['rawHex'])

    def test_skips_lock_control_tlv(self):
        message = encode_uri_record('https://a.example')
        area = bytes([0x01, 0x03, 0xA0, 0x0C, 0x34]) + wrap_tlv(message)
        self.assertEqual(scan_tlv(area), ('ndef', 7, len(message)))
        self.assertEqual(extract_ndef_message(area), message)

    def test_scan_incomplete(self):
        self.assertEqual(scan_tlv(b'\x03')[0], 'incomplete')
        self.assertEqual(scan_tlv(b'\x03\xFF\x01')[0], 'incomplete')
        self.assertEqual(scan_tlv(b'\x01\x03\xA0')[0], 'incomplete')

    def test_format_uid(self):
        self.assertEqual(format_uid(b'\x04\xa1\xb2'), '04A1B2')
        self.assertIsNone(format_uid(b''))
        self.assertIsNone(format_uid(None))


class TestReadNdefArea(unittest.TestCase):
    """Test cases for reading the NDEF area page by page."""

    def _reader(self, area, fail_from=None):
        memory = bytes(16) + area + bytes(NTAG213.user_capacity)
        reader = MagicMock()

        def read_pages(page, length=16):
            if fail_from is not None and page >= fail_from:
                raise NFCReadError(f"Read failed at page {page}")
            offset = page * 4
            return memory[offset:offset + length]

        reader.read_pages.side_effect = read_pages
        return reader

    def test_stops_when_tlv_complete(self):
        reader = self._reader(create_ndef_data(text='short'))
        area = read_ndef_area(reader, NTAG213)
        self.assertEqual(reader.read_pages.call_count, 1)
        self.assertEqual(parse_ndef_data(area)['records'][0]['payloadText'], 'short')

    def test_reads_until_message_complete(self):
        text = 'x' * 40
        reader = self._reader(create_ndef_data(text=text))
        area = read_ndef_area(reader, NTAG213)
        self.assertEqual(reader.read_pages.call_count, 4)
        self.assertEqual(parse_ndef_data(area)['records'][0]['payloadText'], text)

    def test_stops_at_end_of_user_area(self):
        reader = self._reader(b'\x01\x01\x00' + b'\x05' * 200)
        read_ndef_area(reader, NTAG213)
        pages = [call.args[0] for call in reader.read_pages.call_args_list]
        self.assertEqual(pages[0], 4)
        self.assertLess(pages[-1], NTAG213.user_data_end_page)

    def test_read_failure_returns_partial_area(self):
        reader = self._reader(create_ndef_data(text='y' * 40), fail_from=8)
        area = read_ndef_area(reader, NTAG213)
        self.assertEqual(len(area), 16)
        result = parse_ndef_data(area)
        self.assertTrue(result['hasData'])
        self.assertEqual(result['records'], [])


if __name__ == '__main__':
    unittest.main()
