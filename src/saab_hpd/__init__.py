"""
SAAB HPD - SID Display Protocol Engine
======================================

This package drives the dot-matrix information display ("SID") found in
SAAB instrument clusters over its proprietary point-to-point serial
protocol.

Main Components
---------------
- **protocol**: the protocol engine
    Sync-marker detection, frame codec with checksum, region commands,
    acknowledgment/retry session and display-mode inference

- **config**: engine configuration
    Sync marker, timeouts, retry bound, error-code offset, mode signatures

- **cli**: command-line tool (sidlink)
    Monitor the bus and send region commands from a terminal

Quick Start
-----------
    >>> from saab_hpd import SIDSession, open_serial_port
    >>> session = SIDSession(open_serial_port("/dev/ttyUSB0"))
    >>> session.replace_aux_play_text("Song - Artist").completed
    True

Or use the command-line tool:
    $ sidlink monitor
    $ sidlink aux-text "Song - Artist"
"""

__version__ = "1.0.0"

# =============================================================================
# Public API Exports
# =============================================================================

from saab_hpd.errors import (
    HPDError,
    ConfigError,
    CommsError,
    ConnectionError as HPDConnectionError,  # Avoid collision with builtin
    TimeoutError as HPDTimeoutError,
    ProtocolError,
    InvalidFrameError,
    ChecksumError,
    RemoteError,
)

from saab_hpd.protocol import (
    Frame,
    FrameDecoder,
    ByteSynchronizer,
    SIDSession,
    SIDCommand,
    Outcome,
    OutcomeStatus,
    RemoteErrorCode,
    Mode,
    ModeSignatures,
    RegionStyle,
    Visibility,
    FontStyle,
    encode_frame,
    compute_checksum,
    open_serial_port,
    close_serial_port,
    list_serial_ports,
    find_sid_port,
)

from saab_hpd.config import EngineConfig, get_default_config, set_default_config

__all__ = [
    "__version__",
    # Errors
    "HPDError",
    "ConfigError",
    "CommsError",
    "HPDConnectionError",
    "HPDTimeoutError",
    "ProtocolError",
    "InvalidFrameError",
    "ChecksumError",
    "RemoteError",
    # Protocol
    "Frame",
    "FrameDecoder",
    "ByteSynchronizer",
    "SIDSession",
    "SIDCommand",
    "Outcome",
    "OutcomeStatus",
    "RemoteErrorCode",
    "Mode",
    "ModeSignatures",
    "RegionStyle",
    "Visibility",
    "FontStyle",
    "encode_frame",
    "compute_checksum",
    "open_serial_port",
    "close_serial_port",
    "list_serial_ports",
    "find_sid_port",
    # Configuration
    "EngineConfig",
    "get_default_config",
    "set_default_config",
]
