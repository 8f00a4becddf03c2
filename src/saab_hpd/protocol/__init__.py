"""
SID Protocol Engine
===================

The protocol engine turns the raw SID bus byte stream into frames, and
display commands into frames, in three layers:

- **checksum / frame**: the Frame record, its checksum, the encode path
- **sync**: marker detection and incremental decoding with resync
- **session**: commands, acknowledgment wait, retries, mode inference

Data flows transport -> FrameDecoder -> SIDSession -> Frame -> transport.

Quick Start
-----------
    from saab_hpd.protocol import SIDSession, Visibility, RegionStyle, open_serial_port

    port = open_serial_port('/dev/ttyUSB0')
    session = SIDSession(port)
    session.set_frame_callback(print)

    outcome = session.change_region(0x01, 0x02, 0xCD,
                                    Visibility.VISIBLE, RegionStyle.NORMAL, "BT ")
    print(outcome, session.mode)

Thread Safety
-------------
The classes in this package are NOT thread-safe. Use one session per
transport from a single thread.
"""

from saab_hpd.protocol.checksum import (
    CHECKSUM_MASK,
    compute_checksum,
    verify_checksum,
)
from saab_hpd.protocol.frame import (
    MAX_LENGTH,
    MAX_PAYLOAD_SIZE,
    MIN_LENGTH,
    PAD_BYTE,
    Frame,
    encode_frame,
    is_valid_length,
)
from saab_hpd.protocol.sync import (
    SYNC_PATTERN,
    ByteSynchronizer,
    DecoderStats,
    FrameDecoder,
)
from saab_hpd.protocol.commands import (
    PARTIALLY_KNOWN_COMMANDS,
    FontStyle,
    RegionStyle,
    SIDCommand,
    Visibility,
    change_region_payload,
    clear_region_payload,
    create_region_payload,
    describe_command,
    draw_region_payload,
)
from saab_hpd.protocol.mode import (
    DEFAULT_SIGNATURES,
    Mode,
    ModeSignatures,
    infer_mode,
    match_mode,
)
from saab_hpd.protocol.session import (
    Outcome,
    OutcomeStatus,
    RemoteErrorCode,
    SequenceResult,
    SIDSession,
    Step,
)
from saab_hpd.protocol.serial import (
    DEFAULT_BAUD_RATE,
    PortInfo,
    close_serial_port,
    find_sid_port,
    format_port_list,
    list_serial_ports,
    open_serial_port,
)

__all__ = [
    # Checksum
    "CHECKSUM_MASK",
    "compute_checksum",
    "verify_checksum",
    # Frame
    "MAX_LENGTH",
    "MAX_PAYLOAD_SIZE",
    "MIN_LENGTH",
    "PAD_BYTE",
    "Frame",
    "encode_frame",
    "is_valid_length",
    # Sync
    "SYNC_PATTERN",
    "ByteSynchronizer",
    "DecoderStats",
    "FrameDecoder",
    # Commands
    "PARTIALLY_KNOWN_COMMANDS",
    "FontStyle",
    "RegionStyle",
    "SIDCommand",
    "Visibility",
    "change_region_payload",
    "clear_region_payload",
    "create_region_payload",
    "describe_command",
    "draw_region_payload",
    # Mode
    "DEFAULT_SIGNATURES",
    "Mode",
    "ModeSignatures",
    "infer_mode",
    "match_mode",
    # Session
    "Outcome",
    "OutcomeStatus",
    "RemoteErrorCode",
    "SequenceResult",
    "SIDSession",
    "Step",
    # Serial
    "DEFAULT_BAUD_RATE",
    "PortInfo",
    "close_serial_port",
    "find_sid_port",
    "format_port_list",
    "list_serial_ports",
    "open_serial_port",
]
