"""
SID Command Codes and Region Payload Builders
=============================================

The display is organized in regions, each addressed by a composite key
``(region_id, sub_region_id0, sub_region_id1)``. The engine keeps no
region table: the SID owns region existence and content, and every
operation below is a stateless command.

Payload Layouts
---------------
All layouts start after the pad byte (see frame.py).

CREATE_REGION (0x10)::

    region  00  sub0  sub1  flag  font  width  00  x_lo  x_hi  y  text...

CHANGE_REGION (0x11)::

    region  00  sub0  sub1  visible  style  text...

DRAW_REGION (0x70) / CLEAR_REGION (0x60)::

    region  00  flag

Text is encoded as Latin-1. Text that would overflow the 252-byte payload
limit is truncated, never written past the end.
"""

import logging
from enum import IntEnum, IntFlag
from typing import Final, Optional, Union

from saab_hpd.protocol.frame import MAX_PAYLOAD_SIZE

logger = logging.getLogger(__name__)


# =============================================================================
# Command Codes
# =============================================================================

class SIDCommand(IntEnum):
    """Command and reply-kind bytes understood by the engine."""

    # Create a new region (fails with REGION_EXISTS if present)
    CREATE_REGION = 0x10

    # Change visibility, style and/or text of a region. The head unit also
    # sends these to the SID, which is what mode inference listens for.
    CHANGE_REGION = 0x11

    # Remove a region
    CLEAR_REGION = 0x60

    # Toggle region draw state
    DRAW_REGION = 0x70

    # Put the SID into self-test; it stops replying until it exits
    TEST_MODE = 0x9F

    # Reply: command rejected, payload carries the error code
    ERROR = 0xFE

    # Reply: command accepted
    ACK = 0xFF


# Seen on the bus but not decoded. Frames with these commands are passed
# through as opaque payloads.
PARTIALLY_KNOWN_COMMANDS: Final[frozenset[int]] = frozenset(
    {0x20, 0x21, 0x30, 0x33, 0x40, 0xA0}
)


def describe_command(command: int) -> str:
    """Return a readable name for a command byte."""
    try:
        return SIDCommand(command).name
    except ValueError:
        if command in PARTIALLY_KNOWN_COMMANDS:
            return f"PARTIAL_0x{command:02X}"
        return f"0x{command:02X}"


# =============================================================================
# Display Constants
# =============================================================================

class RegionStyle(IntFlag):
    """Text style flags for CHANGE_REGION. Flags may be combined."""

    NORMAL = 0x00
    RIGHT_ALIGN = 0x10
    BLINKING = 0x20
    INVERTED = 0x40
    UNDERLINE = 0x80


class Visibility(IntEnum):
    """Visibility values for CHANGE_REGION."""

    HIDDEN = 0x01
    VISIBLE = 0x02
    HIDDEN_2 = 0x03
    VISIBLE_2 = 0x08


class FontStyle(IntEnum):
    """Font selectors for CREATE_REGION."""

    SMALL = 0x00
    LARGE = 0x01
    MEDIUM = 0x02
    TIME = 0x04
    TIME_2 = 0x14


# Fixed bytes before the text in each layout
CREATE_REGION_HEADER_SIZE: Final[int] = 11
CHANGE_REGION_HEADER_SIZE: Final[int] = 6

# Longest text each command can carry
MAX_CREATE_TEXT: Final[int] = MAX_PAYLOAD_SIZE - CREATE_REGION_HEADER_SIZE
MAX_CHANGE_TEXT: Final[int] = MAX_PAYLOAD_SIZE - CHANGE_REGION_HEADER_SIZE

# Encoding used for region text
TEXT_ENCODING: Final[str] = "latin-1"

TextArg = Optional[Union[str, bytes]]


# =============================================================================
# Helpers
# =============================================================================

def _byte(name: str, value: int) -> int:
    if not 0 <= value <= 0xFF:
        raise ValueError(f"{name} must be 0-255, got {value}")
    return int(value)


def encode_text(text: TextArg, limit: int) -> bytes:
    """
    Encode region text, truncating to ``limit`` bytes.

    Args:
        text: ``str`` (encoded Latin-1, unencodable characters become
              ``?``), raw ``bytes``, or None.
        limit: Maximum number of bytes to keep.

    Returns:
        Encoded text, possibly truncated.
    """
    if text is None:
        return b""
    if isinstance(text, str):
        data = text.encode(TEXT_ENCODING, errors="replace")
    else:
        data = bytes(text)

    # Stop at an embedded NUL, as the display firmware does
    nul = data.find(b"\x00")
    if nul >= 0:
        data = data[:nul]

    if len(data) > limit:
        logger.warning(
            "Region text truncated from %d to %d bytes", len(data), limit
        )
        data = data[:limit]
    return data


# =============================================================================
# Payload Builders
# =============================================================================

def create_region_payload(
    region_id: int,
    sub_region_id0: int,
    sub_region_id1: int,
    x_pos: int,
    y_pos: int,
    width: int,
    font_style: int,
    text: TextArg = None,
    flag: int = 0x00,
) -> bytes:
    """
    Build the payload for CREATE_REGION.

    The x position is sent as two bytes, low byte first.

    Raises:
        ValueError: If a field is outside its byte range.
    """
    if not 0 <= x_pos <= 0xFFFF:
        raise ValueError(f"x_pos must be 0-65535, got {x_pos}")

    header = bytes([
        _byte("region_id", region_id),
        0x00,
        _byte("sub_region_id0", sub_region_id0),
        _byte("sub_region_id1", sub_region_id1),
        _byte("flag", flag),
        _byte("font_style", font_style),
        _byte("width", width),
        0x00,
        x_pos & 0xFF,
        (x_pos >> 8) & 0xFF,
        _byte("y_pos", y_pos),
    ])
    return header + encode_text(text, MAX_CREATE_TEXT)


def change_region_payload(
    region_id: int,
    sub_region_id0: int,
    sub_region_id1: int,
    visible: int,
    style: int,
    text: TextArg = None,
) -> bytes:
    """Build the payload for CHANGE_REGION."""
    header = bytes([
        _byte("region_id", region_id),
        0x00,
        _byte("sub_region_id0", sub_region_id0),
        _byte("sub_region_id1", sub_region_id1),
        _byte("visible", visible),
        _byte("style", style),
    ])
    return header + encode_text(text, MAX_CHANGE_TEXT)


def draw_region_payload(region_id: int, draw_flag: int = 0x01) -> bytes:
    """Build the payload for DRAW_REGION."""
    return bytes([_byte("region_id", region_id), 0x00, _byte("draw_flag", draw_flag)])


def clear_region_payload(region_id: int, clear_flag: int = 0x01) -> bytes:
    """Build the payload for CLEAR_REGION."""
    return bytes([_byte("region_id", region_id), 0x00, _byte("clear_flag", clear_flag)])
