"""
Utils Module - Common utility functions and classes for the ACR122U bridge.

This package provides reusable utilities for logging, error handling,
input validation and event communication.
"""

# Import and expose key functions from other modules
from .exceptions import (
    AppError,
    ValidationError,
    ConfigurationError
)

from .logger import (
    setup_logger,
    get_logger,
    set_global_log_level,
    parse_level,
    LoggerMixin
)

from .validators import (
    is_valid_language_code,
    validate_length
)

from .event_bus import (
    event_bus,
    EventBus,
    EventNames
)
