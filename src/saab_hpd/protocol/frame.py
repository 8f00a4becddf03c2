"""
SID Frame Record and Encoder
============================

This module defines the unit of exchange on the SID bus in both
directions, and the stateless encode path.

Wire Format
-----------
    ┌────────┬─────────┬──────┬──────────────┬──────────┐
    │ Length │ Command │ Pad  │   Payload    │ Checksum │
    │ 1 byte │ 1 byte  │  00  │ length-2 B   │  1 byte  │
    └────────┴─────────┴──────┴──────────────┴──────────┘

- Length counts the bytes after itself, up to but excluding the checksum.
  Valid range is 1-254; 0x00 and 0xFF are reserved.
- Frames built by this engine always carry the pad byte, so
  ``length = 2 + len(payload)``.
- A minimal inbound frame with length 1 carries only the command byte
  (no pad, no payload).
- Checksum is the low byte of the sum of everything from the length byte
  through the last payload byte (see checksum.py).

On the wire each exchange is preceded by a 4-byte synchronization marker;
finding it is the job of sync.py, not of this module.
"""

import logging
from dataclasses import dataclass
from typing import Final

from saab_hpd.errors import ChecksumError, InvalidFrameError
from saab_hpd.protocol.checksum import compute_checksum

logger = logging.getLogger(__name__)


# =============================================================================
# Frame Constants
# =============================================================================

# Valid length byte range (inclusive)
MIN_LENGTH: Final[int] = 0x01
MAX_LENGTH: Final[int] = 0xFE

# The fixed byte between command and payload
PAD_BYTE: Final[int] = 0x00

# Command byte + pad byte
HEADER_SIZE: Final[int] = 2

# Largest payload that still fits in a valid length byte
MAX_PAYLOAD_SIZE: Final[int] = MAX_LENGTH - HEADER_SIZE


def is_valid_length(length: int) -> bool:
    """Return True if ``length`` is an acceptable length byte (1-254)."""
    return MIN_LENGTH <= length <= MAX_LENGTH


# =============================================================================
# Frame Record
# =============================================================================

@dataclass(frozen=True)
class Frame:
    """
    A single validated SID frame.

    Instances are immutable and can only exist in a valid state: the
    length byte is in range and consistent with the payload, and the
    checksum matches. Use ``Frame.build()`` to create an outbound frame
    and let it compute length and checksum.

    Attributes:
        length: Length byte (1-254)
        command: Command or reply-kind byte
        payload: Bytes following the pad byte
        checksum: Checksum byte

    Example:
        frame = Frame.build(0x9F)
        frame.to_bytes()   # b'\\x02\\x9f\\x00\\xa1'
    """

    length: int
    command: int
    payload: bytes
    checksum: int

    def __post_init__(self) -> None:
        """Validate frame fields after initialization."""
        if not isinstance(self.payload, bytes):
            raise TypeError(
                f"Payload must be bytes, got {type(self.payload).__name__}"
            )

        if not 0 <= self.command <= 0xFF:
            raise ValueError(f"Command must be 0-255, got {self.command}")

        if not is_valid_length(self.length):
            raise InvalidFrameError(f"Invalid length byte: 0x{self.length:02X}")

        if self.length == MIN_LENGTH:
            if self.payload:
                raise InvalidFrameError("Length-1 frame cannot carry a payload")
        elif self.length != HEADER_SIZE + len(self.payload):
            raise InvalidFrameError(
                f"Length byte {self.length} does not match payload size "
                f"{len(self.payload)}"
            )

        expected = compute_checksum(self.checksum_bytes)
        if self.checksum != expected:
            raise ChecksumError(expected=expected, actual=self.checksum)

    @classmethod
    def build(cls, command: int, payload: bytes = b"") -> "Frame":
        """
        Build an outbound frame, computing length and checksum.

        Args:
            command: Command byte.
            payload: Payload bytes (max 252).

        Returns:
            Validated Frame.

        Raises:
            ValueError: If the payload is too large or command out of range.
        """
        payload = bytes(payload)
        if len(payload) > MAX_PAYLOAD_SIZE:
            raise ValueError(
                f"Payload too large: {len(payload)} bytes, max {MAX_PAYLOAD_SIZE}"
            )
        if not 0 <= command <= 0xFF:
            raise ValueError(f"Command must be 0-255, got {command}")

        length = HEADER_SIZE + len(payload)
        checksum = compute_checksum(bytes([length, command, PAD_BYTE]) + payload)
        return cls(length=length, command=command, payload=payload, checksum=checksum)

    @property
    def checksum_bytes(self) -> bytes:
        """The bytes covered by the checksum (length through payload)."""
        if self.length == MIN_LENGTH:
            return bytes([self.length, self.command])
        return bytes([self.length, self.command, PAD_BYTE]) + self.payload

    def to_bytes(self) -> bytes:
        """Serialize the frame for transmission (without sync marker)."""
        return self.checksum_bytes + bytes([self.checksum])

    @classmethod
    def from_bytes(cls, data: bytes) -> "Frame":
        """
        Parse exactly one frame from ``data``.

        This is the strict one-shot decoder, used for captured frames and
        tests. The byte stream coming off the bus goes through
        ``FrameDecoder`` in sync.py instead, which never raises.

        Args:
            data: Frame bytes starting at the length byte, without the
                  synchronization marker.

        Returns:
            Parsed Frame.

        Raises:
            InvalidFrameError: On a bad length byte, wrong size or nonzero pad.
            ChecksumError: On checksum mismatch.
        """
        data = bytes(data)
        if not data:
            raise InvalidFrameError("Empty frame", raw=data)

        length = data[0]
        if not is_valid_length(length):
            raise InvalidFrameError(f"Invalid length byte: 0x{length:02X}", raw=data)

        expected_size = length + 2
        if len(data) != expected_size:
            raise InvalidFrameError(
                f"Frame size {len(data)} does not match length byte "
                f"(expected {expected_size})",
                raw=data,
            )

        return parse_body(length, data[1:-1], data[-1], raw=data)

    def __repr__(self) -> str:
        """Return compact representation for debugging."""
        payload_repr = self.payload.hex(" ") if self.payload else "(empty)"
        return f"Frame(command=0x{self.command:02X}, payload={payload_repr})"


def parse_body(length: int, body: bytes, checksum: int, raw: bytes = b"") -> Frame:
    """
    Build a Frame from an already-delimited body.

    Shared by the strict decoder above and the streaming decoder.

    Args:
        length: The length byte.
        body: ``length`` bytes: command, pad and payload.
        checksum: The received checksum byte.
        raw: Original bytes, attached to raised errors.

    Raises:
        InvalidFrameError: On nonzero pad.
        ChecksumError: On checksum mismatch.
    """
    expected = compute_checksum(bytes([length]) + body)
    if expected != checksum:
        raise ChecksumError(expected=expected, actual=checksum, raw=raw)

    command = body[0]
    if length >= HEADER_SIZE and body[1] != PAD_BYTE:
        raise InvalidFrameError(
            f"Nonzero pad byte 0x{body[1]:02X} in frame 0x{command:02X}", raw=raw
        )

    return Frame(
        length=length,
        command=command,
        payload=bytes(body[HEADER_SIZE:]),
        checksum=checksum,
    )


def encode_frame(command: int, payload: bytes = b"") -> bytes:
    """
    Encode a command and payload into wire bytes.

    Example:
        >>> encode_frame(0x9F).hex()
        '029f00a1'
    """
    frame = Frame.build(command, payload)
    logger.debug(
        "Encoded frame: cmd=0x%02X payload_len=%d checksum=0x%02X",
        command, len(frame.payload), frame.checksum
    )
    return frame.to_bytes()
