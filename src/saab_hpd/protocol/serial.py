"""
Serial Port Utilities for the SID Bus
=====================================

The SID bus is reached through a USB-serial adapter wired to the cluster
harness. The session layer only needs a port that reports ``in_waiting``
and supports ``read``, ``write`` and ``flush``; this module finds and opens
such a port with pyserial.

Adapter Preference
------------------
When no port is given, adapters are ranked by the ``ADAPTERS`` table: FTDI
first, then Silicon Labs, then any other known USB bridge, then unknown
USB devices. Ports without a USB vendor ID (on-board UARTs) are never
picked automatically.

Line Settings
-------------
8 data bits, no parity, 1 stop bit, no flow control. The read timeout is
kept short because the session measures its own acknowledgment window.
"""

import logging
from dataclasses import dataclass
from typing import Final, Optional

import serial
import serial.tools.list_ports

from saab_hpd.errors import ConnectionError

logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

DEFAULT_BAUD_RATE: Final[int] = 9600

DEFAULT_TIMEOUT: Final[float] = 0.01

# USB vendor ID -> (adapter name, auto-detect rank; lower wins)
ADAPTERS: Final[dict[int, tuple[str, int]]] = {
    0x0403: ("FTDI", 0),
    0x10C4: ("Silicon Labs", 1),
    0x1A86: ("QinHeng CH34x", 2),
    0x067B: ("Prolific", 2),
}

# Rank of a USB device whose vendor is not in ADAPTERS
UNKNOWN_ADAPTER_RANK: Final[int] = 3

# Substring of a pyserial error -> hint shown to the user
_OPEN_HINTS: Final[tuple[tuple[str, str], ...]] = (
    ("permission denied", "no access to {device}; add your user to the 'dialout' group"),
    ("no such file", "{device} does not exist; run 'sidlink ports'"),
    ("not found", "{device} does not exist; run 'sidlink ports'"),
    ("busy", "{device} is in use by another program"),
)


# =============================================================================
# Port Information
# =============================================================================

@dataclass(frozen=True)
class PortInfo:
    """
    One serial port as reported by the operating system.

    Attributes:
        device: Device path ('/dev/ttyUSB0', 'COM3')
        description: Driver description
        manufacturer: USB manufacturer string, if any
        vid: USB vendor ID (None for on-board ports)
        pid: USB product ID
    """

    device: str
    description: str
    manufacturer: Optional[str]
    vid: Optional[int]
    pid: Optional[int]

    @classmethod
    def from_pyserial(cls, info) -> "PortInfo":
        """Build from a ``serial.tools.list_ports`` entry."""
        return cls(
            device=info.device,
            description=info.description or "",
            manufacturer=info.manufacturer,
            vid=info.vid,
            pid=info.pid,
        )

    @property
    def is_usb(self) -> bool:
        return self.vid is not None

    @property
    def adapter(self) -> Optional[str]:
        """Name of a known USB-serial bridge, or None."""
        entry = ADAPTERS.get(self.vid) if self.vid is not None else None
        return entry[0] if entry else None

    @property
    def rank(self) -> Optional[int]:
        """Auto-detect rank, or None if the port is not a USB adapter."""
        if self.vid is None:
            return None
        entry = ADAPTERS.get(self.vid)
        return entry[1] if entry else UNKNOWN_ADAPTER_RANK

    @property
    def usb_id(self) -> Optional[str]:
        if self.vid is None:
            return None
        return f"{self.vid:04X}:{self.pid or 0:04X}"

    def __str__(self) -> str:
        text = self.device
        if self.description:
            text += f" ({self.description})"
        if self.adapter:
            text += f" [{self.adapter}]"
        return text


# =============================================================================
# Port Enumeration
# =============================================================================

def list_serial_ports() -> list[PortInfo]:
    """List the serial ports the system reports."""
    ports = [PortInfo.from_pyserial(info) for info in serial.tools.list_ports.comports()]
    logger.debug("Found %d serial port(s): %s", len(ports), ", ".join(p.device for p in ports))
    return ports


def find_sid_port() -> Optional[str]:
    """
    Pick the most likely SID adapter.

    Returns:
        Device path of the best ranked USB adapter (first listed wins a
        tie), or None if no USB adapter is connected.
    """
    candidates = [p for p in list_serial_ports() if p.is_usb]
    if not candidates:
        logger.debug("No USB serial adapter connected")
        return None

    best = min(candidates, key=lambda p: p.rank)
    logger.info("Auto-detected SID adapter: %s", best)
    return best.device


# =============================================================================
# Open / Close
# =============================================================================

def open_serial_port(
    device: str,
    baud_rate: int = DEFAULT_BAUD_RATE,
    timeout: float = DEFAULT_TIMEOUT,
) -> serial.Serial:
    """
    Open ``device`` with the SID line settings and empty buffers.

    Raises:
        ValueError: If baud_rate is not positive.
        ConnectionError: If pyserial cannot open the port.
    """
    if baud_rate <= 0:
        raise ValueError(f"Invalid baud rate: {baud_rate}")

    logger.info("Opening %s at %d baud", device, baud_rate)
    try:
        port = serial.Serial(
            port=device,
            baudrate=baud_rate,
            bytesize=serial.EIGHTBITS,
            parity=serial.PARITY_NONE,
            stopbits=serial.STOPBITS_ONE,
            timeout=timeout,
            xonxoff=False,
            rtscts=False,
            dsrdtr=False,
        )
    except serial.SerialException as e:
        raise ConnectionError(_open_failure_message(device, e)) from e

    port.reset_input_buffer()
    port.reset_output_buffer()
    return port


def _open_failure_message(device: str, error: Exception) -> str:
    text = str(error).lower()
    for needle, hint in _OPEN_HINTS:
        if needle in text:
            return f"Cannot open {device}: " + hint.format(device=device)
    return f"Cannot open {device}: {error}"


def close_serial_port(port: Optional[serial.Serial]) -> None:
    """Close ``port`` if it is open. Close errors are logged, not raised."""
    if port is None or not port.is_open:
        return
    try:
        port.close()
    except serial.SerialException as e:
        logger.warning("Error closing %s: %s", getattr(port, "port", "port"), e)
    else:
        logger.debug("Closed %s", getattr(port, "port", "port"))


def format_port_list(ports: list[PortInfo], verbose: bool = False) -> str:
    """Render ports for the terminal, one line each (more with verbose)."""
    if not ports:
        return "No serial ports found."
    if not verbose:
        return "\n".join(f"  {port}" for port in ports)

    blocks = []
    for port in ports:
        rows = [
            ("Description", port.description),
            ("Manufacturer", port.manufacturer),
            ("Adapter", port.adapter),
            ("USB ID", port.usb_id),
        ]
        details = "".join(f"\n    {name}: {value}" for name, value in rows if value)
        blocks.append(f"  {port.device}{details}")
    return "\n".join(blocks)
