"""
tag_processor.py - NDEF record encoding/decoding and Type 2 tag TLV handling.
"""

import logging
import struct

from .commands import PAGE_SIZE, to_hex
from .exceptions import NFCError

# Create logger
logger = logging.getLogger(__name__)

# NDEF Type Name Formats
NDEF_TNF_EMPTY = 0x00
NDEF_TNF_WELL_KNOWN = 0x01
NDEF_TNF_MIME_MEDIA = 0x02
NDEF_TNF_ABSOLUTE_URI = 0x03
NDEF_TNF_EXTERNAL = 0x04
NDEF_TNF_UNKNOWN = 0x05
NDEF_TNF_UNCHANGED = 0x06

# NDEF header flags
NDEF_FLAG_MB = 0x80
NDEF_FLAG_ME = 0x40
NDEF_FLAG_CF = 0x20
NDEF_FLAG_SR = 0x10
NDEF_FLAG_IL = 0x08

# Well Known Type definitions
NDEF_RTD_TEXT = b'T'
NDEF_RTD_URI = b'U'
NDEF_RTD_SMART_POSTER = b'Sp'

# Type 2 tag TLV blocks
TLV_NULL = 0x00
TLV_LOCK_CONTROL = 0x01
TLV_MEMORY_CONTROL = 0x02
TLV_NDEF = 0x03
TLV_PROPRIETARY = 0xFD
TLV_TERMINATOR = 0xFE

# URI Record Type prefixes
URI_PREFIXES = [
    '',                            # 0x00
    'http://www.',                # 0x01
    'https://www.',               # 0x02
    'http://',                    # 0x03
    'https://',                   # 0x04
    'tel:',                       # 0x05
    'mailto:',                    # 0x06
    'ftp://anonymous:anonymous@', # 0x07
    'ftp://ftp.',                 # 0x08
    'ftps://',                    # 0x09
    'sftp://',                    # 0x0A
    'smb://',                     # 0x0B
    'nfs://',                     # 0x0C
    'ftp://',                     # 0x0D
    'dav://',                     # 0x0E
    'news:',                      # 0x0F
    'telnet://',                  # 0x10
    'imap:',                      # 0x11
    'rtsp://',                    # 0x12
    'urn:',                       # 0x13
    'pop:',                       # 0x14
    'sip:',                       # 0x15
    'sips:',                      # 0x16
    'tftp:',                      # 0x17
    'btspp://',                   # 0x18
    'btl2cap://',                 # 0x19
    'btgoep://',                  # 0x1A
    'tcpobex://',                 # 0x1B
    'irdaobex://',                # 0x1C
    'file://',                    # 0x1D
    'urn:epc:id:',                # 0x1E
    'urn:epc:tag:',               # 0x1F
    'urn:epc:pat:',               # 0x20
    'urn:epc:raw:',               # 0x21
    'urn:epc:',                   # 0x22
    'urn:nfc:',                   # 0x23
]

# Abbreviations used when writing stop at file:// (0x1D)
URI_ENCODE_PREFIXES = URI_PREFIXES[:0x1E]


def format_uid(raw_uid):
    """
    Format raw UID bytes to the wire format (uppercase hex, no separators).

    Args:
        raw_uid (bytes): Raw UID from the reader

    Returns:
        str: Formatted UID string, or None when no UID is known
    """
    if not raw_uid:
        return None
    return to_hex(raw_uid)


class NdefRecord:
    """
    A single decoded NDEF record.

    The raw type, id and payload bytes are always kept; the decoded fields are
    filled in only for the record shapes this bridge understands.
    """

    def __init__(self, tnf, type_bytes=b'', payload=b'', record_id=b''):
        self.tnf = tnf
        self.type = bytes(type_bytes)
        self.payload = bytes(payload)
        self.id = bytes(record_id)
        self.record_type = 'unknown'
        self.text = None
        self.url = None
        self.language = None
        self.encoding = None
        self.mime_type = None

    def to_dict(self):
        """Convert the record to its wire representation."""
        return {
            'tnf': self.tnf,
            'type': self.type.decode('utf-8', errors='replace'),
            'typeHex': to_hex(self.type),
            'id': to_hex(self.id) if self.id else None,
            'payload': to_hex(self.payload),
            'recordType': self.record_type,
            'payloadText': self.text,
            'url': self.url,
            'language': self.language,
            'encoding': self.encoding,
            'mimeType': self.mime_type,
        }

    def __eq__(self, other):
        if not isinstance(other, NdefRecord):
            return NotImplemented
        return (self.tnf, self.type, self.id, self.payload) == \
            (other.tnf, other.type, other.id, other.payload)

    def __repr__(self):
        return (f"NdefRecord(tnf={self.tnf}, type={self.type!r}, "
                f"record_type={self.record_type!r}, payload={to_hex(self.payload)})")


def _encode_record(tnf, type_field, payload):
    """Encode a single-record message (MB and ME both set)."""
    header = NDEF_FLAG_MB | NDEF_FLAG_ME | tnf
    if len(payload) < 256:
        header |= NDEF_FLAG_SR
        length_field = bytes([len(payload)])
    else:
        length_field = struct.pack('>I', len(payload))
    return bytes([header, len(type_field)]) + length_field + type_field + payload


def encode_uri_record(uri):
    """
    Create an NDEF URI record.

    The longest matching abbreviation is stripped and replaced by its prefix
    code; an unmatched URI is stored whole with code 0x00.

    Args:
        uri (str): URI to encode

    Returns:
        bytes: Encoded NDEF message holding one URI record
    """
    prefix_code = 0
    for code, prefix in enumerate(URI_ENCODE_PREFIXES):
        if prefix and uri.startswith(prefix) and len(prefix) > len(URI_ENCODE_PREFIXES[prefix_code]):
            prefix_code = code

    remainder = uri[len(URI_ENCODE_PREFIXES[prefix_code]):]
    payload = bytes([prefix_code]) + remainder.encode('utf-8')
    logger.debug(f"URI record: prefix code 0x{prefix_code:02X}, {len(payload)} payload bytes")
    return _encode_record(NDEF_TNF_WELL_KNOWN, NDEF_RTD_URI, payload)


def encode_text_record(text, language='en'):
    """
    Create an NDEF Text record (UTF-8).

    Args:
        text (str): Text to encode
        language (str): IANA language code

    Returns:
        bytes: Encoded NDEF message holding one Text record
    """
    language_code = language.encode('ascii')
    if len(language_code) > 0x3F:
        raise ValueError(f"Language code too long: {language}")

    # bit 7 clear = UTF-8, low 6 bits = language code length
    status_byte = len(language_code) & 0x3F
    payload = bytes([status_byte]) + language_code + text.encode('utf-8')
    return _encode_record(NDEF_TNF_WELL_KNOWN, NDEF_RTD_TEXT, payload)


def wrap_tlv(message):
    """
    Wrap an NDEF message in an NDEF TLV followed by a terminator TLV.

    Args:
        message (bytes): Encoded NDEF message

    Returns:
        bytes: TLV bytes (not padded)
    """
    message = bytes(message)
    if len(message) < 0xFF:
        length_field = bytes([len(message)])
    elif len(message) <= 0xFFFE:
        length_field = bytes([0xFF]) + len(message).to_bytes(2, byteorder='big')
    else:
        raise NFCError(f"NDEF message too long for a TLV: {len(message)} bytes")
    return bytes([TLV_NDEF]) + length_field + message + bytes([TLV_TERMINATOR])


def pad_to_pages(data, page_size=PAGE_SIZE):
    """Zero-pad data to a whole number of pages."""
    remainder = len(data) % page_size
    if remainder:
        data = bytes(data) + b'\x00' * (page_size - remainder)
    return bytes(data)


def split_pages(data, page_size=PAGE_SIZE):
    """Split page-aligned data into a list of page-sized chunks."""
    data = pad_to_pages(data, page_size)
    return [data[i:i + page_size] for i in range(0, len(data), page_size)]


def create_ndef_data(url=None, text=None, language='en'):
    """
    Create the padded TLV area for writing a URI or Text record.

    Args:
        url (str, optional): URL to encode
        text (str, optional): Text to encode
        language (str): Language code for Text records

    Returns:
        bytes: TLV data, a whole number of pages long

    Raises:
        ValueError: Unless exactly one of url and text is given
    """
    if bool(url) == bool(text):
        raise ValueError("Exactly one of url or text must be provided")

    if url:
        message = encode_uri_record(url)
    else:
        message = encode_text_record(text, language)

    return pad_to_pages(wrap_tlv(message))


def _read_tlv_length(area, position):
    """Return (length, size of the length field) or (None, 0) when truncated."""
    if position >= len(area):
        return None, 0
    if area[position] == 0xFF:
        if position + 3 > len(area):
            return None, 0
        return int.from_bytes(area[position + 1:position + 3], byteorder='big'), 3
    return area[position], 1


def scan_tlv(area):
    """
    Walk the TLV blocks of a Type 2 tag data area.

    Returns:
        tuple: (status, offset, length) where status is 'ndef' (offset/length
        locate the NDEF message), 'end' (NULL or terminator TLV reached before
        any NDEF TLV) or 'incomplete' (more data is needed)
    """
    offset = 0
    while offset < len(area):
        tag = area[offset]
        if tag in (TLV_NULL, TLV_TERMINATOR):
            return 'end', offset, 0

        length, length_size = _read_tlv_length(area, offset + 1)
        if length is None:
            return 'incomplete', offset, 0

        value_start = offset + 1 + length_size
        if tag == TLV_NDEF:
            return 'ndef', value_start, length

        # Lock control, memory control and proprietary TLVs are skipped
        offset = value_start + length

    return 'incomplete', offset, 0


def extract_ndef_message(area):
    """
    Extract the NDEF message from a Type 2 tag data area.

    Returns:
        bytes or None: The message bytes (possibly truncated if the area is
        shorter than the TLV claims), or None if there is no NDEF TLV
    """
    status, start, length = scan_tlv(bytes(area or b''))
    if status != 'ndef':
        return None
    return bytes(area[start:start + length])


def _decode_text(data, utf16):
    if not utf16:
        return data.decode('utf-8', errors='replace')
    if data[:2] in (b'\xff\xfe', b'\xfe\xff'):
        return data.decode('utf-16', errors='replace')
    return data.decode('utf-16-be', errors='replace')


def _decode_record(record):
    """Fill in the decoded fields of a record based on TNF and type."""
    payload = record.payload

    if record.tnf == NDEF_TNF_WELL_KNOWN:
        if record.type == NDEF_RTD_TEXT and payload:
            status_byte = payload[0]
            language_length = status_byte & 0x3F
            utf16 = bool(status_byte & 0x80)
            record.record_type = 'text'
            record.encoding = 'UTF-16' if utf16 else 'UTF-8'
            record.language = payload[1:1 + language_length].decode('ascii', errors='replace')
            record.text = _decode_text(payload[1 + language_length:], utf16)
        elif record.type == NDEF_RTD_URI and payload:
            prefix_code = payload[0]
            prefix = URI_PREFIXES[prefix_code] if prefix_code < len(URI_PREFIXES) else ''
            record.record_type = 'uri'
            record.url = prefix + payload[1:].decode('utf-8', errors='replace')
        elif record.type == NDEF_RTD_SMART_POSTER:
            record.record_type = 'smartposter'

    elif record.tnf == NDEF_TNF_MIME_MEDIA:
        record.record_type = 'mime'
        record.mime_type = record.type.decode('ascii', errors='replace')
        if record.mime_type.startswith('text/'):
            record.text = payload.decode('utf-8', errors='replace')

    elif record.tnf == NDEF_TNF_EXTERNAL:
        record.record_type = 'external'

    return record


def parse_ndef_message(data):
    """
    Parse the records of an NDEF message.

    Parsing stops after the record carrying the Message End flag, or as soon as
    the data runs out. A truncated record is dropped; the complete records
    before it are returned.

    Args:
        data (bytes): NDEF message bytes (without the TLV header)

    Returns:
        list: NdefRecord objects
    """
    data = bytes(data or b'')
    records = []
    offset = 0

    while offset < len(data):
        header = data[offset]
        me = (header & NDEF_FLAG_ME) != 0  # Message End
        sr = (header & NDEF_FLAG_SR) != 0  # Short Record
        il = (header & NDEF_FLAG_IL) != 0  # ID Length present
        tnf = header & 0x07
        offset += 1

        if offset >= len(data):
            break
        type_length = data[offset]
        offset += 1

        # Payload length - short record (1 byte) or normal (4 bytes)
        if sr:
            if offset >= len(data):
                break
            payload_length = data[offset]
            offset += 1
        else:
            if offset + 4 > len(data):
                break
            payload_length = struct.unpack('>I', data[offset:offset + 4])[0]
            offset += 4

        id_length = 0
        if il:
            if offset >= len(data):
                break
            id_length = data[offset]
            offset += 1

        end = offset + type_length + id_length + payload_length
        if end > len(data):
            logger.debug(f"Truncated NDEF record at offset {offset}: needs {end - len(data)} more bytes")
            break

        type_value = data[offset:offset + type_length]
        offset += type_length
        id_value = data[offset:offset + id_length]
        offset += id_length
        payload = data[offset:end]
        offset = end

        records.append(_decode_record(NdefRecord(tnf, type_value, payload, id_value)))

        if me:
            break

    return records


def parse_ndef_data(area):
    """
    Decode the NDEF content of a Type 2 tag data area.

    Args:
        area (bytes): Raw bytes read from the user data pages

    Returns:
        dict: {'hasData', 'records', 'rawHex'} in wire form
    """
    message = extract_ndef_message(area)
    if not message:
        return {'hasData': False, 'records': [], 'rawHex': None}

    records = parse_ndef_message(message)
    return {
        'hasData': True,
        'records': [record.to_dict() for record in records],
        'rawHex': to_hex(message),
    }


def read_ndef_area(reader, layout):
    """
    Read the tag's user area until the NDEF TLV is complete.

    Pages are read 16 bytes at a time from the first user data page. Reading
    stops once a complete NDEF TLV or a terminator has been seen, at the end of
    the user area, or on the first failed read.

    Args:
        reader: NFCReader for the current tag
        layout (TagLayout): Memory layout of the tag

    Returns:
        bytes: Raw area bytes read so far
    """
    area = bytearray()
    page = layout.user_data_start_page

    while page < layout.user_data_end_page:
        try:
            area.extend(reader.read_pages(page, 16))
        except NFCError as e:
            logger.debug(f"Stopped reading NDEF area at page {page}: {e}")
            break
        page += 4

        status, start, length = scan_tlv(area)
        if status == 'end' or (status == 'ndef' and start + length <= len(area)):
            break

    return bytes(area)
