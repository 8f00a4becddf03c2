"""
Additive Checksum for the SID Serial Protocol
=============================================

Every frame on the SID bus ends with a one-byte checksum: the low eight
bits of the arithmetic sum of all bytes from the length byte through the
last payload byte.

    [length][command][0x00][payload...][checksum]
    └──────────── summed ─────────────┘

Reference value from captured traffic (an acknowledgment frame):

    0x02 + 0xFF + 0x00 = 0x101  ->  checksum 0x01

Usage
-----
    from saab_hpd.protocol.checksum import compute_checksum, verify_checksum

    compute_checksum(bytes([0x02, 0xFF, 0x00]))   # 0x01
    verify_checksum(bytes([0x02, 0xFF, 0x00]), 0x01)  # True
"""

from typing import Final, Iterable

# Mask for the 8-bit checksum
CHECKSUM_MASK: Final[int] = 0xFF

# Reference frame body and checksum: DLC 0x02, command 0xFF, pad 0x00
REFERENCE_CHECKSUM: Final[tuple[bytes, int]] = (bytes([0x02, 0xFF, 0x00]), 0x01)


def compute_checksum(data: Iterable[int], initial: int = 0) -> int:
    """
    Calculate the SID checksum of a byte sequence.

    Args:
        data: Bytes from the length byte through the last payload byte.
        initial: Running sum to continue from (for incremental use).

    Returns:
        Checksum in the range 0x00-0xFF.

    Example:
        >>> compute_checksum(bytes([0x02, 0x9F, 0x00]))
        161
    """
    return (initial + sum(data)) & CHECKSUM_MASK


def verify_checksum(data: Iterable[int], expected: int) -> bool:
    """Return True if ``data`` sums to the ``expected`` checksum byte."""
    return compute_checksum(data) == (expected & CHECKSUM_MASK)
