"""
validators.py - Input validation utilities for the ACR122U bridge.

This module provides validation functions for inbound command fields.
"""

import re
from typing import Optional

from .exceptions import ValidationError


def is_valid_language_code(code: str) -> bool:
    """
    Check if a string can be stored as an NDEF Text record language code.

    The code length must fit the 6 low bits of the status byte.
    """
    return bool(code) and bool(re.match(r'^[A-Za-z]{2,8}(-[A-Za-z0-9]{1,8})*$', code)) and len(code) < 64


def validate_length(value: str, field_name: str, min_length: int = 0, max_length: Optional[int] = None):
    """
    Validate string length.

    Args:
        value (str): String to validate
        field_name (str): Name of the field for error message
        min_length (int, optional): Minimum length required
        max_length (int, optional): Maximum length allowed

    Raises:
        ValidationError: If string length is invalid
    """
    if not isinstance(value, str):
        raise ValidationError(f"{field_name} must be a string")

    if min_length > 0 and len(value) < min_length:
        raise ValidationError(f"{field_name} must be at least {min_length} characters")

    if max_length and len(value) > max_length:
        raise ValidationError(f"{field_name} cannot exceed {max_length} characters")

    return value
