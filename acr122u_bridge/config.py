"""
ACR122U NFC Bridge - Configuration

This module contains all the configuration settings for the application.
"""

import copy
import json
import os

from .modules.nfc.layouts import LAYOUTS_BY_NAME
from .utils.exceptions import ConfigurationError

# Default configuration
DEFAULT_CONFIG = {
    # Application settings
    "app": {
        "name": "ACR122U NFC Bridge",
        "debug_mode": False,
    },

    # Logging settings
    "logging": {
        "level": "INFO",
        "file": "",  # Empty: console only
        "max_bytes": 10 * 1024 * 1024,
        "backup_count": 5,
    },

    # NFC settings
    "nfc": {
        "reader_filter": "",  # Substring of the PC/SC reader name; empty accepts all readers
        "apdu_timeout": 0.05,  # seconds
        "write_timeout": 0.08,  # seconds, per page WRITE
        "connect_timeout": 1.0,  # seconds
        "auth_attempt_timeout": 0.04,  # seconds, per PWD_AUTH attempt
        "ioctl_ccid_escape": 0x42000000 + 3500,  # pcsc-lite SCARD_CTL_CODE(3500)
        "ioctl_acr122u": 0x00310000 | (3500 << 2),  # WinSCard SCARD_CTL_CODE(3500)
        "default_auth0": 0x04,  # First password-protected page
        "default_access": 0x00,  # PROT=0 (write protection only), no AUTHLIM
        "default_pack": "00000000",
        "fallback_layout": "NTAG215",
        "ndef_language": "en",
    },

    # API settings
    "api": {
        "host": "127.0.0.1",
        "port": 9876,
        "cors_origins": "*",
        "result_timeout": 10.0,  # seconds a REST command waits for its result
    },
}

# Path to user configuration file
CONFIG_PATH = os.environ.get(
    "ACR122U_BRIDGE_CONFIG", os.path.expanduser("~/.acr122u_bridge/config.json"))

# Global CONFIG object
CONFIG = {}


def load_config(path=None):
    """Load configuration from file or create default if not exists."""
    global CONFIG

    path = path or CONFIG_PATH

    # Start with default config
    CONFIG = copy.deepcopy(DEFAULT_CONFIG)

    if os.path.exists(path):
        try:
            with open(path, 'r') as f:
                user_config = json.load(f)

            # Merge user config with defaults (shallow update for each section)
            for section, values in user_config.items():
                if section in CONFIG and isinstance(CONFIG[section], dict) and isinstance(values, dict):
                    CONFIG[section].update(values)
                else:
                    CONFIG[section] = values

        except (OSError, ValueError) as e:
            print(f"Error loading config: {e}")
            # Continue with default config
    else:
        # Save default config
        save_config(path)

    return CONFIG


def save_config(path=None):
    """Save current configuration to file."""
    path = path or CONFIG_PATH
    try:
        os.makedirs(os.path.dirname(path), exist_ok=True)
        with open(path, 'w') as f:
            json.dump(CONFIG, f, indent=4)
    except OSError as e:
        print(f"Error saving config: {e}")


def _number(section, key, minimum=0.0):
    try:
        value = float(section[key])
    except (KeyError, TypeError, ValueError):
        raise ConfigurationError(f"nfc.{key} must be a number", {'key': key})
    if value <= minimum:
        raise ConfigurationError(f"nfc.{key} must be greater than {minimum}", {'key': key})
    return value


def _byte(section, key):
    value = section.get(key)
    if isinstance(value, str):
        try:
            value = int(value, 0)
        except ValueError:
            raise ConfigurationError(f"nfc.{key} must be a byte value", {'key': key})
    if not isinstance(value, int) or not 0 <= value <= 0xFF:
        raise ConfigurationError(f"nfc.{key} must be a byte value", {'key': key})
    return value


def nfc_settings(config=None):
    """
    Convert the nfc section into the typed settings used by the NFC bridge.

    Args:
        config (dict, optional): Full configuration, CONFIG by default

    Returns:
        dict: Settings with numbers, byte values and the PACK as bytes

    Raises:
        ConfigurationError: If a value is missing or out of range
    """
    section = (config or CONFIG).get("nfc", {})

    try:
        pack = bytes.fromhex(str(section.get("default_pack", "")))
    except ValueError:
        raise ConfigurationError("nfc.default_pack must be hex", {'key': 'default_pack'})
    if len(pack) != 4:
        raise ConfigurationError("nfc.default_pack must be 4 bytes (8 hex characters)",
                                 {'key': 'default_pack'})

    ioctl_codes = {}
    for key in ("ioctl_ccid_escape", "ioctl_acr122u"):
        value = section.get(key)
        try:
            ioctl_codes[key] = int(value, 0) if isinstance(value, str) else int(value)
        except (TypeError, ValueError):
            raise ConfigurationError(f"nfc.{key} must be an integer control code", {'key': key})

    fallback_layout = str(section.get("fallback_layout") or "NTAG215")
    if fallback_layout not in LAYOUTS_BY_NAME:
        raise ConfigurationError(
            f"nfc.fallback_layout must be one of {', '.join(LAYOUTS_BY_NAME)}", {'key': 'fallback_layout'})

    return {
        'reader_filter': str(section.get("reader_filter") or ""),
        'apdu_timeout': _number(section, "apdu_timeout"),
        'write_timeout': _number(section, "write_timeout"),
        'connect_timeout': _number(section, "connect_timeout"),
        'auth_attempt_timeout': _number(section, "auth_attempt_timeout"),
        'ioctl_ccid_escape': ioctl_codes["ioctl_ccid_escape"],
        'ioctl_acr122u': ioctl_codes["ioctl_acr122u"],
        'default_auth0': _byte(section, "default_auth0"),
        'default_access': _byte(section, "default_access"),
        'default_pack': pack,
        'fallback_layout': fallback_layout,
        'ndef_language': str(section.get("ndef_language") or "en"),
    }


# Load configuration at module import
load_config()
