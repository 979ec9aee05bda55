"""
ACR122U NFC Bridge

Connects an ACR122U NFC reader (PC/SC) to web clients: tag detection with
NDEF decoding and protection status, NDEF writing, NTAG21x password
authentication and write protection.
"""

__version__ = '0.1.0'
