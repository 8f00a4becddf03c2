"""
SAAB HPD Error Hierarchy
========================

This module defines the exception hierarchy for the SID protocol engine.
All exceptions inherit from HPDError, allowing callers to catch every
engine-related error with a single except clause.

Exception Hierarchy
-------------------
HPDError (base)
├── ConfigError - invalid engine configuration
└── CommsError (serial communication)
    ├── ConnectionError - cannot open or use the serial port
    ├── TimeoutError - no reply within the allotted window
    └── ProtocolError - link protocol violation
        └── InvalidFrameError - frame fails length/pad/checksum checks

What Is NOT an Exception
------------------------
The streaming decoder never raises on malformed input. An invalid length
byte or a checksum mismatch in the byte stream only forces the
synchronizer to look for the sync marker again.

Remote error replies and acknowledgment timeouts are reported as
``Outcome`` values by the session layer, so callers can choose their own
retry policy. ``TimeoutError`` exists for helpers that have no outcome to
return (for example the CLI waiting for a first frame).
"""

from typing import Optional


# =============================================================================
# Base Exception Class
# =============================================================================

class HPDError(Exception):
    """
    Base exception for all SAAB HPD errors.

        try:
            session.create_region(...)
        except HPDError as e:
            print(f"Error: {e}")
    """
    pass


class ConfigError(HPDError):
    """
    Invalid engine configuration.

    Raised when an EngineConfig field is outside its valid range, for
    example a sync pattern of the wrong length or a zero attempt count.
    """
    pass


# =============================================================================
# Communication Exceptions
# =============================================================================

class CommsError(HPDError):
    """Base exception for serial communication errors."""
    pass


class ConnectionError(CommsError):
    """
    Cannot connect to the display bus.

    Raised when:
    - Serial port not found
    - Permission denied
    - Port busy or closed
    """
    pass


class TimeoutError(CommsError):
    """
    Communication timeout error.

    Note:
        This is an engine-specific TimeoutError, distinct from the
        Python builtin TimeoutError. It inherits from CommsError
        for consistent error handling.
    """
    pass


class ProtocolError(CommsError):
    """
    Link protocol error.

    Raised when bytes handed to a strict decoder do not form a frame.
    """
    pass


class InvalidFrameError(ProtocolError):
    """
    A frame failed validation.

    Attributes:
        raw: The offending bytes, when available.
    """

    def __init__(self, message: str, raw: Optional[bytes] = None):
        self.raw = raw
        super().__init__(message)


class ChecksumError(InvalidFrameError):
    """
    Checksum verification failed.

    Raised when the checksum byte of a frame doesn't match the
    calculated checksum.
    """

    def __init__(self, expected: int, actual: int, raw: Optional[bytes] = None):
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Checksum mismatch: expected {expected:02X}, got {actual:02X}",
            raw=raw,
        )


class RemoteError(CommsError):
    """
    Command rejected by the display.

    The session layer reports rejections as Outcome values; this exception
    is only raised when a caller asks for it with
    ``Outcome.raise_for_status()``.

    Attributes:
        code: Error code from the ERROR reply (None if the reply had none)
    """

    def __init__(self, code: Optional[int], message: str = ""):
        self.code = code
        if not message:
            message = "Remote error" if code is None else f"Remote error (0x{code:02X})"
        super().__init__(message)
