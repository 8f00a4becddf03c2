"""
Byte Synchronizer and Streaming Frame Decoder
=============================================

Bytes arrive from the SID bus one at a time, with no guarantee that the
first byte we see is the start of a frame. This module turns that
unstructured stream into validated ``Frame`` objects.

Two cooperating pieces live here:

- **ByteSynchronizer** watches for the 4-byte synchronization marker
  (``02 81 00 83``). Until it has seen the marker, no byte is interpreted.
- **FrameDecoder** owns a synchronizer. Once synchronized it reads a
  length byte, accumulates ``length + 1`` more bytes, checks the pad and
  checksum, and emits a Frame.

Resynchronization
-----------------
Malformed framing is an expected condition on a shared vehicle bus, not a
fault. An invalid length byte, a nonzero pad or a checksum mismatch
discards the partial frame, logs a warning and drops the synchronizer back
to "searching". The next frame is accepted only after the marker has been
found again. Nothing in the streaming path raises.

After a good frame the decoder stays synchronized: the next byte is taken
as the next frame's length byte.

Note that the default marker is itself a well-formed frame (length 0x02,
command 0x81, checksum 0x83). When it shows up while already synchronized
it is recognized as a marker and not reported as a frame.

Usage
-----
    decoder = FrameDecoder()
    for frame in decoder.feed(port.read(port.in_waiting)):
        print(frame)
"""

import logging
from dataclasses import dataclass
from typing import Final, Optional

from saab_hpd.errors import ChecksumError, InvalidFrameError
from saab_hpd.protocol.frame import Frame, is_valid_length, parse_body

logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

# Synchronization marker that precedes legitimate exchanges on the bus
SYNC_PATTERN: Final[bytes] = bytes([0x02, 0x81, 0x00, 0x83])


# =============================================================================
# Byte Synchronizer
# =============================================================================

class ByteSynchronizer:
    """
    Detects the synchronization marker in a raw byte stream.

    A match index advances while incoming bytes equal the next marker
    byte. Any mismatch resets the index to zero; the mismatching byte is
    then compared with the first marker byte, so noise such as
    ``02 02 81 00 83`` still synchronizes. There is no general prefix
    table: the marker's first byte does not recur inside it.
    """

    def __init__(self, pattern: bytes = SYNC_PATTERN):
        if not pattern:
            raise ValueError("Sync pattern must not be empty")
        self.pattern = bytes(pattern)
        self._index = 0
        self._synchronized = False

    @property
    def synchronized(self) -> bool:
        """Return True once the marker has been seen."""
        return self._synchronized

    @property
    def match_index(self) -> int:
        """Number of marker bytes matched so far."""
        return self._index

    def feed(self, byte: int) -> bool:
        """
        Feed one byte while searching for the marker.

        Args:
            byte: Received byte (0-255).

        Returns:
            True if this byte completed the marker.
        """
        if byte == self.pattern[self._index]:
            self._index += 1
            if self._index == len(self.pattern):
                self._index = 0
                self._synchronized = True
                logger.debug("Sync marker detected")
                return True
            return False

        self._index = 1 if byte == self.pattern[0] else 0
        return False

    def reset(self) -> None:
        """Drop synchronization; the marker must be found again."""
        self._index = 0
        self._synchronized = False


# =============================================================================
# Streaming Frame Decoder
# =============================================================================

@dataclass
class DecoderStats:
    """Counters for diagnosing a noisy bus."""

    frames: int = 0
    markers: int = 0
    resyncs: int = 0
    length_errors: int = 0
    checksum_errors: int = 0
    pad_errors: int = 0
    discarded_bytes: int = 0


class FrameDecoder:
    """
    Incremental frame decoder with built-in resynchronization.

    The decoder keeps its assembly state between calls, so a frame may
    arrive split across any number of reads. It never blocks and never
    raises on bad input.

    Example:
        decoder = FrameDecoder()
        decoder.feed(bytes([0x02, 0x81, 0x00, 0x83, 0x02, 0xFF]))  # []
        decoder.feed(bytes([0x00, 0x01]))  # [Frame(command=0xFF, ...)]
    """

    def __init__(self, sync_pattern: bytes = SYNC_PATTERN):
        self.synchronizer = ByteSynchronizer(sync_pattern)
        self.stats = DecoderStats()
        self._buffer = bytearray()
        self._length = 0

    @property
    def synchronized(self) -> bool:
        """Return True if the decoder is aligned to frame boundaries."""
        return self.synchronizer.synchronized

    @property
    def pending(self) -> int:
        """Number of bytes buffered for the frame being assembled."""
        return len(self._buffer)

    def reset(self) -> None:
        """Discard any partial frame and drop synchronization."""
        self._buffer.clear()
        self._length = 0
        self.synchronizer.reset()

    def feed(self, data: bytes) -> list[Frame]:
        """
        Feed a chunk of received bytes.

        Args:
            data: Bytes read from the transport (any length).

        Returns:
            Frames completed by this chunk, in arrival order.
        """
        frames = []
        for byte in data:
            frame = self.feed_byte(byte)
            if frame is not None:
                frames.append(frame)
        return frames

    def feed_byte(self, byte: int) -> Optional[Frame]:
        """
        Feed a single received byte.

        Returns:
            The completed Frame, or None if no frame finished on this byte.
        """
        if not self.synchronizer.synchronized:
            held = self.synchronizer.match_index
            if self.synchronizer.feed(byte):
                self._buffer.clear()
                self._length = 0
            else:
                # Bytes that were held as a marker prefix but no longer are
                self.stats.discarded_bytes += held + 1 - self.synchronizer.match_index
            return None

        if self._length == 0:
            if not is_valid_length(byte):
                self.stats.length_errors += 1
                self._resync(f"invalid length byte 0x{byte:02X}")
                return None
            self._length = byte
            return None

        self._buffer.append(byte)
        if len(self._buffer) < self._length + 1:
            return None

        return self._complete()

    def _complete(self) -> Optional[Frame]:
        """Validate the assembled bytes and emit a frame."""
        length = self._length
        body = bytes(self._buffer[:-1])
        checksum = self._buffer[-1]
        raw = bytes([length]) + bytes(self._buffer)
        self._buffer.clear()
        self._length = 0

        try:
            frame = parse_body(length, body, checksum, raw=raw)
        except ChecksumError as e:
            self.stats.checksum_errors += 1
            self._resync(f"{e} in {raw.hex(' ')}")
            return None
        except InvalidFrameError as e:
            self.stats.pad_errors += 1
            self._resync(str(e))
            return None

        if raw == self.synchronizer.pattern:
            self.stats.markers += 1
            logger.debug("Sync marker seen while synchronized")
            return None

        self.stats.frames += 1
        logger.debug("RX frame: %s", raw.hex(" "))
        return frame

    def _resync(self, reason: str) -> None:
        """Discard the current frame and return to marker search."""
        self.stats.resyncs += 1
        self.stats.discarded_bytes += len(self._buffer)
        self._buffer.clear()
        self._length = 0
        self.synchronizer.reset()
        logger.warning("Framing error (%s), resynchronizing", reason)
