"""
commands.py - APDU and PN532 command builders for the ACR122U.

All Type 2 tag memory (MIFARE Ultralight / NTAG21x) is addressed in 4-byte
pages. Reads and writes go through the ACR122U pseudo-APDUs; password
authentication goes through a PN532 InCommunicateThru frame, either inside a
PC/SC escape IOCTL or inside the FF 00 00 00 direct-transmit APDU.
"""

from .exceptions import NFCInvalidPageLengthError

PAGE_SIZE = 4

SW_SUCCESS = (0x90, 0x00)

# ACR122U pseudo-APDU class bytes
READ_BINARY = (0xFF, 0xB0, 0x00)
UPDATE_BINARY = (0xFF, 0xD6, 0x00)
DIRECT_TRANSMIT = (0xFF, 0x00, 0x00, 0x00)

GET_UID = bytes([0xFF, 0xCA, 0x00, 0x00, 0x00])
GET_VERSION = bytes([0xFF, 0x00, 0x00, 0x00, 0x02, 0x60, 0x00])

# PN532 opcodes
PN532_IN_COMMUNICATE_THRU = bytes([0xD4, 0x42])
PN532_IN_COMMUNICATE_THRU_RESPONSE = bytes([0xD5, 0x43])

# NTAG21x tag commands
NTAG_PWD_AUTH = 0x1B

# SCARD_CTL_CODE(3500) as defined by pcsc-lite and by WinSCard
IOCTL_CCID_ESCAPE = 0x42000000 + 3500
IOCTL_ACR122U_ESCAPE = 0x00310000 | (3500 << 2)

# GET_VERSION storage-size byte -> tag family
NTAG_PRODUCT_TYPE = 0x04
NTAG_STORAGE_SIZES = {
    0x0E: 'NTAG210/212',
    0x0F: 'NTAG213',
    0x11: 'NTAG215',
    0x13: 'NTAG216',
}


def to_hex(data):
    """Render a byte sequence as uppercase hex with no separators."""
    if data is None:
        return None
    return bytes(data).hex().upper()


def build_read(page, length=16):
    """
    Build a READ BINARY APDU.

    Args:
        page (int): First page to read
        length (int): Number of bytes to read (4 or 16 for Type 2 tags)

    Returns:
        bytes: APDU
    """
    _check_page(page)
    return bytes(READ_BINARY) + bytes([page, length])


def build_write(page, data):
    """
    Build an UPDATE BINARY APDU writing exactly one page.

    Raises:
        NFCInvalidPageLengthError: If data is not exactly 4 bytes
    """
    data = bytes(data)
    if len(data) != PAGE_SIZE:
        raise NFCInvalidPageLengthError(len(data))
    _check_page(page)
    return bytes(UPDATE_BINARY) + bytes([page, PAGE_SIZE]) + data


def build_pwd_auth(password_bytes):
    """Inner NTAG PWD_AUTH frame: 1B + 4 password bytes."""
    password_bytes = bytes(password_bytes)
    if len(password_bytes) != 4:
        raise ValueError("PWD_AUTH needs exactly 4 password bytes")
    return bytes([NTAG_PWD_AUTH]) + password_bytes


def build_pn532_command(inner):
    """Wrap an inner tag command in a PN532 InCommunicateThru frame."""
    return PN532_IN_COMMUNICATE_THRU + bytes(inner)


def build_escape_apdu(payload):
    """Wrap a PN532 frame in the ACR122U direct-transmit APDU (FF 00 00 00 Lc)."""
    payload = bytes(payload)
    if len(payload) > 0xFF:
        raise ValueError("Direct transmit payload too long")
    return bytes(DIRECT_TRANSMIT) + bytes([len(payload)]) + payload


def split_response(response):
    """
    Split a raw reader response into body and status word.

    Returns:
        tuple: (body bytes, (sw1, sw2)) or (response, None) when too short
    """
    response = bytes(response or b'')
    if len(response) < 2:
        return response, None
    return response[:-2], (response[-2], response[-1])


def status_word(response):
    """Return the trailing status word as an uppercase hex string, or None."""
    _, sw = split_response(response)
    if sw is None:
        return None
    return f"{sw[0]:02X}{sw[1]:02X}"


def is_success(response):
    """True if the response ends with 90 00."""
    _, sw = split_response(response)
    return sw == SW_SUCCESS


def parse_read_response(response, length):
    """
    Extract the body of a READ response.

    Returns:
        bytes or None: Body when the status word is 90 00 and the body has the
        requested length, None otherwise
    """
    body, sw = split_response(response)
    if sw != SW_SUCCESS or len(body) != length:
        return None
    return body


def classify_version(response):
    """
    Classify a GET_VERSION reply.

    Product type, subtype and storage size sit at indices 2, 3 and 6 of the
    reply. Only NTAG21x storage sizes are recognized.

    Args:
        response (bytes): Raw reply (status word may be present)

    Returns:
        str or None: Tag family name, or None if unknown/unsupported
    """
    response = bytes(response or b'')
    if len(response) < 8:
        return None
    product_type = response[2]
    storage_size = response[6]
    if product_type != NTAG_PRODUCT_TYPE:
        return None
    return NTAG_STORAGE_SIZES.get(storage_size)


def _check_page(page):
    if not 0 <= page <= 0xFF:
        raise ValueError(f"Page number out of range: {page}")
