"""
exceptions.py - Custom exception classes for the NFC module.
"""

class NFCError(Exception):
    """Base exception for all NFC related errors."""
    pass

class NFCHardwareError(NFCError):
    """Exception raised when there's a reader communication error."""
    pass

class NFCNoReaderError(NFCHardwareError):
    """Exception raised when an operation requires a reader but none is attached."""

    def __init__(self, message="No reader connected"):
        super().__init__(message)

class NFCTransportError(NFCHardwareError):
    """Exception raised when a PC/SC transmit or control call fails."""

    def __init__(self, detail):
        super().__init__(f"Transport error: {detail}")
        self.detail = detail

class NFCTransportTimeoutError(NFCTransportError):
    """Exception raised when a reader exchange does not complete in time."""

    def __init__(self, timeout):
        super().__init__(f"no response within {int(timeout * 1000)} ms")
        self.timeout = timeout

class NFCNoTagError(NFCError):
    """Exception raised when an operation requires a tag but none is present."""

    def __init__(self, message="No tag present on reader"):
        super().__init__(message)

class NFCTagRemovedError(NFCNoTagError):
    """Exception raised when the tag left the reader while an operation was running."""

    def __init__(self, message="Tag removed during operation"):
        super().__init__(message)

class NFCReadError(NFCError):
    """Exception raised when tag reading fails."""
    pass

class NFCConfigReadError(NFCReadError):
    """Exception raised when the NTAG configuration pages cannot be read."""

    def __init__(self, message="Failed to read tag configuration"):
        super().__init__(message)

class NFCWriteError(NFCError):
    """Exception raised when tag writing fails."""
    pass

class NFCInvalidPageLengthError(NFCWriteError):
    """Exception raised when page data is not exactly one page long."""

    def __init__(self, length):
        super().__init__(f"Page data must be exactly 4 bytes, got {length}")
        self.length = length

class NFCPageWriteError(NFCWriteError):
    """Exception raised when the reader rejects a page WRITE."""

    def __init__(self, page, response=None):
        detail = response.hex().upper() if response else "no response"
        super().__init__(f"Write failed at page {page}: {detail}")
        self.page = page
        self.response = response

class NFCCapacityError(NFCWriteError):
    """Exception raised when an NDEF message does not fit in the tag user area."""
    pass

class NFCAuthenticationError(NFCError):
    """Exception raised when tag authentication fails."""
    pass

class NFCAuthenticationExhaustedError(NFCAuthenticationError):
    """Exception raised when every password format and transport was rejected."""

    def __init__(self, formats_tried):
        self.formats_tried = list(formats_tried)
        super().__init__(
            f"Authentication failed. Tried formats: {', '.join(self.formats_tried)}. "
            "If you know the exact 4-byte hex password, enter it as 8 hex characters "
            "(e.g., FFFFFFFF)."
        )

class NFCLayoutUnresolvedError(NFCError):
    """Exception raised when no known NTAG memory layout matches the tag."""

    def __init__(self, message="Could not detect tag memory layout"):
        super().__init__(message)

class NFCUnsupportedTagFamilyError(NFCError):
    """Exception raised for a tag family without a known memory layout."""

    def __init__(self, family):
        super().__init__(f"Unsupported tag family: {family}")
        self.family = family
