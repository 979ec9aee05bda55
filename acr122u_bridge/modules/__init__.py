"""
Modules package for the ACR122U NFC bridge.

This package contains the functionality modules:
- nfc: Handles the ACR122U reader, NDEF content and tag protection
- api: Provides the Socket.IO message channel and REST mirror for web clients
"""
