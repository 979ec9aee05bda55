"""
exceptions.py - Custom exception definitions for the ACR122U bridge.

This module defines the application-level exceptions. NFC errors live in
modules/nfc/exceptions.py and API errors in modules/api/exceptions.py.
"""

class AppError(Exception):
    """Base exception for all application errors."""
    def __init__(self, message, details=None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ValidationError(AppError):
    """Exception raised when validation fails."""
    pass


class ConfigurationError(AppError):
    """Exception raised when configuration is invalid."""
    pass
