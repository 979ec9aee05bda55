"""
ACR122U NFC Bridge - Message Codec

Every message on the channel is a JSON object with a 'type' field and an
ISO-8601 'timestamp'. Byte sequences travel as uppercase hex strings.
"""

import datetime
import json

from ...utils.event_bus import EventNames
from ...utils.exceptions import ValidationError
from ...utils.validators import is_valid_language_code, validate_length

COMMAND_AUTHENTICATE = 'authenticate'
COMMAND_WRITE = 'write'
COMMAND_TYPES = (COMMAND_AUTHENTICATE, COMMAND_WRITE)

# Fields each outbound message type carries besides type and timestamp
OUTBOUND_FIELDS = {
    EventNames.READER_CONNECTED: ('reader',),
    EventNames.READER_DISCONNECTED: ('reader',),
    EventNames.TAG_DETECTED: ('reader', 'uid', 'atr', 'standard', 'tagType', 'memorySize',
                              'usablePages', 'protection', 'ndef'),
    EventNames.TAG_REMOVED: ('reader',),
    EventNames.AUTH_RESULT: ('success', 'error', 'passwordBytes', 'format', 'transport',
                             'confirmed', 'uid'),
    EventNames.WRITE_RESULT: ('success', 'error', 'passwordSet', 'ndefWritten', 'pagesWritten', 'uid'),
    EventNames.ERROR: ('message',),
    EventNames.STATUS: ('message',),
}

WELCOME_MESSAGE = "Connected to ACR122U helper service"

# Bounds for inbound text fields; the largest NTAG216 user area is 888 bytes
MAX_URL_LENGTH = 880
MAX_TEXT_LENGTH = 860
MAX_PASSWORD_LENGTH = 64


def timestamp():
    """Current UTC time as ISO-8601 with milliseconds and a Z suffix."""
    now = datetime.datetime.now(datetime.timezone.utc)
    return now.isoformat(timespec='milliseconds').replace('+00:00', 'Z')


def build_message(message_type, **fields):
    """
    Build an outbound message.

    Known message types are restricted to their documented fields; fields
    missing from the call are sent as null.

    Args:
        message_type (str): One of the EventNames values
        **fields: Message fields

    Returns:
        dict: Message ready to be JSON encoded
    """
    message = {'type': message_type}
    names = OUTBOUND_FIELDS.get(message_type)
    if names is None:
        message.update(fields)
    else:
        for name in names:
            message[name] = fields.get(name)
    message['timestamp'] = fields.get('timestamp') or timestamp()
    return message


def encode_message(message):
    """Serialize a message to JSON text."""
    return json.dumps(message, ensure_ascii=False)


def decode_message(raw):
    """
    Decode an inbound message.

    Args:
        raw (str, bytes or dict): JSON text or an already decoded object

    Returns:
        dict: Message with a string 'type'

    Raises:
        ValidationError: If the message is not a JSON object with a type
    """
    if isinstance(raw, (bytes, bytearray)):
        raw = raw.decode('utf-8', errors='replace')
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except ValueError as e:
            raise ValidationError(f"Invalid message: {e}")
    if not isinstance(raw, dict):
        raise ValidationError("Invalid message: expected a JSON object")
    if not isinstance(raw.get('type'), str) or not raw['type']:
        raise ValidationError("Invalid message: missing type")
    return raw


def _optional_string(data, field, max_length):
    value = data.get(field)
    if value is None or value == '':
        return None
    return validate_length(value, field, max_length=max_length)


def parse_command(raw):
    """
    Decode and validate an inbound command.

    Args:
        raw: Message as accepted by decode_message

    Returns:
        dict: Command with only the fields the bridge uses

    Raises:
        ValidationError: If the command is unknown or its fields are invalid
    """
    data = decode_message(raw)
    command_type = data['type']
    if command_type not in COMMAND_TYPES:
        raise ValidationError(f"Unknown message type: {command_type}")

    reader = _optional_string(data, 'reader', 256)

    if command_type == COMMAND_AUTHENTICATE:
        return {
            'type': command_type,
            'password': _optional_string(data, 'password', MAX_PASSWORD_LENGTH),
            'reader': reader,
        }

    url = _optional_string(data, 'url', MAX_URL_LENGTH)
    text = _optional_string(data, 'text', MAX_TEXT_LENGTH)
    if bool(url) == bool(text):
        raise ValidationError("Exactly one of url or text must be provided")

    language = _optional_string(data, 'language', 63)
    if language is not None and not is_valid_language_code(language):
        raise ValidationError(f"Invalid language code: {language}")

    return {
        'type': command_type,
        'url': url,
        'text': text,
        'password': _optional_string(data, 'password', MAX_PASSWORD_LENGTH),
        'language': language,
        'reader': reader,
    }
