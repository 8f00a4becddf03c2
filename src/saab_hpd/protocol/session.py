"""
SID Command/Session Layer
=========================

This module is the application-facing side of the engine. Each operation
sends one frame and waits for the one reply the SID always sends back:

- ACK (0xFF): the command was accepted
- ERROR (0xFE): the command was rejected, payload carries the error code
- nothing within the acknowledgment window: timeout

Remote errors and timeouts are returned as ``Outcome`` values, not raised,
so callers decide how to retry. Composite operations use a bounded retry
per step (five attempts by default) and stop at the first step that keeps
failing.

Receive Path
------------
There is one receive path. Every byte read from the transport, whether
during ``poll()`` or while waiting for an acknowledgment, goes through the
same FrameDecoder, and every decoded frame is handed to the frame callback
and to mode inference. Frames that are neither ACK nor ERROR arriving while
a reply is pending are observed and then skipped; the wait continues.

Concurrency
-----------
A session is single-threaded. At most one request is outstanding, and the
wait for its reply keeps draining the transport until it resolves. Use one
session per transport and do not share it between threads.

Usage
-----
    port = open_serial_port('/dev/ttyUSB0')
    session = SIDSession(port)

    outcome = session.change_region(0x01, 0x02, 0xCD,
                                    Visibility.VISIBLE, RegionStyle.NORMAL,
                                    text="BT ")
    if not outcome.ok:
        print(f"Rejected: {outcome}")
"""

import logging
import time
from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Callable, Iterable, Optional, Union

from saab_hpd.config import EngineConfig, get_default_config
from saab_hpd.errors import RemoteError, TimeoutError
from saab_hpd.protocol.commands import (
    FontStyle,
    RegionStyle,
    SIDCommand,
    TextArg,
    Visibility,
    change_region_payload,
    clear_region_payload,
    create_region_payload,
    describe_command,
    draw_region_payload,
)
from saab_hpd.protocol.frame import Frame
from saab_hpd.protocol.mode import DEFAULT_SIGNATURES, Mode, infer_mode
from saab_hpd.protocol.sync import FrameDecoder

logger = logging.getLogger(__name__)


# =============================================================================
# Outcomes
# =============================================================================

class RemoteErrorCode(IntEnum):
    """Error codes carried in ERROR (0xFE) replies."""

    INVALID_COMMAND = 0x31   # Command byte not recognized
    REGION_EXISTS = 0x33     # CREATE_REGION on an existing region
    INVALID_ARGS = 0x34      # Bad arguments or payload length

    @classmethod
    def describe(cls, code: Optional[int]) -> str:
        """Get human-readable description of an error code."""
        descriptions = {
            0x31: "Invalid command",
            0x33: "Region exists",
            0x34: "Invalid arguments",
        }
        if code is None:
            return "Remote error (no code)"
        return descriptions.get(code, f"Unclassified error (0x{code:02X})")


class OutcomeStatus(str, Enum):
    OK = "Ok"
    REMOTE_ERROR = "RemoteError"
    TIMEOUT = "Timeout"


@dataclass(frozen=True)
class Outcome:
    """
    Result of one outbound command.

    Attributes:
        status: OK, REMOTE_ERROR or TIMEOUT
        error_code: Code from the ERROR reply (REMOTE_ERROR only; None if
            the reply was too short to carry one)
        reply: The reply frame, if any
    """

    status: OutcomeStatus
    error_code: Optional[int] = None
    reply: Optional[Frame] = None

    @property
    def ok(self) -> bool:
        return self.status is OutcomeStatus.OK

    @property
    def timed_out(self) -> bool:
        return self.status is OutcomeStatus.TIMEOUT

    @property
    def error(self) -> Union[RemoteErrorCode, int, None]:
        """The remote error as a RemoteErrorCode, or the raw code if unknown."""
        if self.status is not OutcomeStatus.REMOTE_ERROR or self.error_code is None:
            return None
        try:
            return RemoteErrorCode(self.error_code)
        except ValueError:
            return self.error_code

    def is_error(self, code: int) -> bool:
        """Return True if this is a remote error with the given code."""
        return self.status is OutcomeStatus.REMOTE_ERROR and self.error_code == code

    def raise_for_status(self) -> "Outcome":
        """
        Return self if OK, otherwise raise.

        Raises:
            RemoteError: On a remote error.
            TimeoutError: If no reply arrived.
        """
        if self.status is OutcomeStatus.REMOTE_ERROR:
            raise RemoteError(self.error_code, str(self))
        if self.status is OutcomeStatus.TIMEOUT:
            raise TimeoutError("No reply from the display")
        return self

    def __str__(self) -> str:
        if self.status is OutcomeStatus.REMOTE_ERROR:
            return RemoteErrorCode.describe(self.error_code)
        return self.status.value


OK = Outcome(OutcomeStatus.OK)
TIMEOUT = Outcome(OutcomeStatus.TIMEOUT)


# =============================================================================
# Composite Operations
# =============================================================================

@dataclass(frozen=True)
class Step:
    """
    One command in a composite operation.

    Attributes:
        name: Label for logs
        action: Callable that sends the command and returns its Outcome
        accept: Remote error codes that count as success for this step
    """

    name: str
    action: Callable[[], Outcome]
    accept: frozenset[int] = frozenset()

    def accepts(self, outcome: Outcome) -> bool:
        return outcome.ok or (
            outcome.error_code is not None
            and outcome.status is OutcomeStatus.REMOTE_ERROR
            and outcome.error_code in self.accept
        )


@dataclass
class SequenceResult:
    """Outcomes of a composite operation, one per step that was run."""

    total_steps: int
    outcomes: list[Outcome] = field(default_factory=list)
    failed_step: Optional[str] = None

    @property
    def completed(self) -> bool:
        return self.failed_step is None and len(self.outcomes) == self.total_steps


# Regions used by the AUX source screen
AUX_REGION_ID = 0x01
AUX_LABEL_SUBREGION = (0x02, 0xCD)
AUX_PLAY_SUBREGION = (0x02, 0xDF)
AUX_TEXT_SUBREGION = (0x08, 0xDF)
AUX_TEXT_GEOMETRY = {"x_pos": 207, "y_pos": 31, "width": 0xE6}


FrameCallback = Callable[[Frame], None]


# =============================================================================
# Session
# =============================================================================

class SIDSession:
    """
    Request/acknowledgment session over one SID transport.

    The transport is any object with the pyserial ``in_waiting``,
    ``read(size)``, ``write(data)`` and ``flush()`` members. ``clock`` and
    ``sleep`` are injectable so tests can run without real time passing.
    """

    def __init__(
        self,
        port,
        config: Optional[EngineConfig] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """
        Initialize the session.

        Args:
            port: Open serial port (or compatible transport).
            config: Engine configuration (default: get_default_config()).
            clock: Monotonic clock in seconds.
            sleep: Sleep function used between empty polls.
        """
        self.port = port
        self.config = (config or get_default_config()).validate()
        self.decoder = FrameDecoder(self.config.sync_pattern)
        self._signatures = self.config.mode_signatures or DEFAULT_SIGNATURES
        self._mode = Mode.UNKNOWN
        self._callback: Optional[FrameCallback] = None
        self._clock = clock
        self._sleep = sleep

    # -------------------------------------------------------------------------
    # Observation
    # -------------------------------------------------------------------------

    @property
    def mode(self) -> Mode:
        """Last display mode recognized on the bus."""
        return self._mode

    def reset_mode(self) -> None:
        self._mode = Mode.UNKNOWN

    def set_frame_callback(self, callback: Optional[FrameCallback]) -> None:
        """
        Register the function called once per decoded inbound frame.

        There is a single slot: registering replaces the previous callback,
        and None removes it. Acknowledgment frames are reported too.
        """
        self._callback = callback

    def poll(self) -> list[Frame]:
        """
        Drain the bytes currently waiting on the transport.

        Returns:
            Frames decoded by this call, already dispatched.
        """
        frames = []
        while True:
            data = self._read_available()
            if not data:
                return frames
            for frame in self.decoder.feed(data):
                self._dispatch(frame)
                frames.append(frame)

    def _dispatch(self, frame: Frame) -> None:
        """Run mode inference and the callback for one inbound frame."""
        logger.debug("Received %s: %r", describe_command(frame.command), frame)
        self._mode = infer_mode(frame, self._mode, self._signatures)
        if self._callback is not None:
            try:
                self._callback(frame)
            except Exception as e:
                logger.warning("Frame callback raised: %s", e)

    # -------------------------------------------------------------------------
    # Transmission
    # -------------------------------------------------------------------------

    def send_frame(self, frame: Frame, timeout: Optional[float] = None) -> Outcome:
        """
        Send a frame and wait for its acknowledgment.

        Args:
            frame: Frame to send.
            timeout: Reply window in seconds (default: config.ack_timeout).

        Returns:
            Outcome of the command.
        """
        # A late reply to an earlier command must not answer this one
        stale = self.poll()
        if stale:
            logger.debug("Drained %d frame(s) before sending", len(stale))
        self._write(frame.to_bytes())
        outcome = self.wait_for_reply(timeout)
        logger.debug(
            "%s -> %s", describe_command(frame.command), outcome
        )
        return outcome

    def send_command(self, command: int, payload: bytes = b"") -> Outcome:
        """Send any command byte with an opaque payload."""
        return self.send_frame(Frame.build(command, payload))

    def send_raw(self, data: bytes) -> None:
        """
        Write bytes verbatim, without framing or checksum.

        For diagnostics only. No reply is awaited.
        """
        self._write(bytes(data))

    def send_test_mode(self) -> None:
        """
        Put the SID into its self-test screen.

        The SID will not answer other commands until it leaves test mode,
        so no reply is awaited.
        """
        logger.info("Sending self-test command")
        self._write(Frame.build(SIDCommand.TEST_MODE).to_bytes())

    def _write(self, data: bytes) -> None:
        self.port.write(data)
        self.port.flush()
        logger.debug("TX %d bytes: %s", len(data), data.hex(" "))

    def _read_available(self) -> bytes:
        waiting = self.port.in_waiting
        if not waiting:
            return b""
        return bytes(self.port.read(min(waiting, self.config.read_chunk)))

    def wait_for_reply(self, timeout: Optional[float] = None) -> Outcome:
        """
        Drain the transport until an ACK or ERROR frame arrives.

        Never blocks past ``timeout``. Other frames decoded in the meantime
        are dispatched normally and then skipped.
        """
        if timeout is None:
            timeout = self.config.ack_timeout
        deadline = self._clock() + timeout
        outcome: Optional[Outcome] = None

        while True:
            data = self._read_available()
            for frame in self.decoder.feed(data):
                self._dispatch(frame)
                if outcome is None:
                    outcome = self._classify(frame)
            if outcome is not None:
                return outcome

            now = self._clock()
            if now >= deadline:
                logger.debug("No reply within %.3fs", timeout)
                return TIMEOUT
            if not data:
                self._sleep(min(self.config.poll_interval, deadline - now))

    def _classify(self, frame: Frame) -> Optional[Outcome]:
        """Map a reply frame to an Outcome, or None if it is not a reply."""
        if frame.command == SIDCommand.ACK:
            return Outcome(OutcomeStatus.OK, reply=frame)

        if frame.command == SIDCommand.ERROR:
            offset = self.config.error_code_offset
            code = frame.payload[offset] if len(frame.payload) > offset else None
            if code is None:
                logger.warning("Error reply without error code: %r", frame)
            return Outcome(OutcomeStatus.REMOTE_ERROR, error_code=code, reply=frame)

        logger.debug(
            "Skipping %s while waiting for reply", describe_command(frame.command)
        )
        return None

    # -------------------------------------------------------------------------
    # Region Commands
    # -------------------------------------------------------------------------

    def create_region(
        self,
        region_id: int,
        sub_region_id0: int,
        sub_region_id1: int,
        x_pos: int,
        y_pos: int,
        width: int,
        font_style: int,
        text: TextArg = None,
    ) -> Outcome:
        """
        Create a region (CREATE_REGION, 0x10).

        Returns a REGION_EXISTS remote error if the region is already
        defined.
        """
        payload = create_region_payload(
            region_id, sub_region_id0, sub_region_id1,
            x_pos, y_pos, width, font_style, text,
        )
        return self.send_command(SIDCommand.CREATE_REGION, payload)

    def change_region(
        self,
        region_id: int,
        sub_region_id0: int,
        sub_region_id1: int,
        visible: int,
        style: int,
        text: TextArg = None,
    ) -> Outcome:
        """Change visibility, style and optionally text (CHANGE_REGION, 0x11)."""
        payload = change_region_payload(
            region_id, sub_region_id0, sub_region_id1, visible, style, text
        )
        return self.send_command(SIDCommand.CHANGE_REGION, payload)

    def draw_region(self, region_id: int, draw_flag: int = 0x01) -> Outcome:
        """Toggle a region's draw state (DRAW_REGION, 0x70)."""
        return self.send_command(
            SIDCommand.DRAW_REGION, draw_region_payload(region_id, draw_flag)
        )

    def clear_region(self, region_id: int, clear_flag: int = 0x01) -> Outcome:
        """Remove a region (CLEAR_REGION, 0x60)."""
        return self.send_command(
            SIDCommand.CLEAR_REGION, clear_region_payload(region_id, clear_flag)
        )

    # -------------------------------------------------------------------------
    # Retries and Sequences
    # -------------------------------------------------------------------------

    def run_with_retry(
        self,
        action: Callable[[], Outcome],
        accept: Iterable[int] = (),
        name: str = "step",
    ) -> Outcome:
        """
        Run one command until it succeeds or attempts run out.

        Args:
            action: Sends the command and returns its Outcome.
            accept: Remote error codes that count as success.
            name: Label for logs.

        Returns:
            The last Outcome.
        """
        step = Step(name=name, action=action, accept=frozenset(accept))
        return self._run_step(step)

    def _run_step(self, step: Step) -> Outcome:
        attempts = self.config.max_attempts
        outcome = TIMEOUT
        for attempt in range(1, attempts + 1):
            outcome = step.action()
            if step.accepts(outcome):
                return outcome
            logger.debug(
                "%s failed (%s), attempt %d/%d", step.name, outcome, attempt, attempts
            )
        logger.info("%s failed after %d attempts: %s", step.name, attempts, outcome)
        return outcome

    def run_sequence(self, steps: list[Step]) -> SequenceResult:
        """
        Run steps in order with retries, aborting at the first failure.

        Steps after a failed step are not sent.
        """
        result = SequenceResult(total_steps=len(steps))
        for index, step in enumerate(steps):
            if index and self.config.step_delay:
                self._sleep(self.config.step_delay)
            outcome = self._run_step(step)
            result.outcomes.append(outcome)
            if not step.accepts(outcome):
                result.failed_step = step.name
                logger.warning(
                    "Aborting sequence at '%s' (%d of %d): %s",
                    step.name, index + 1, len(steps), outcome
                )
                break
        return result

    def replace_aux_play_text(self, text: TextArg) -> SequenceResult:
        """
        Show custom text on the AUX screen in place of "AUX Play".

        Hides the "Play" label, relabels "AUX" as "BT ", creates a text
        region (an existing one is fine) and shows ``text`` in it.
        """
        region = AUX_REGION_ID
        steps = [
            Step(
                "hide play label",
                lambda: self.change_region(
                    region, *AUX_PLAY_SUBREGION, Visibility.HIDDEN, RegionStyle.NORMAL
                ),
            ),
            Step(
                "relabel source",
                lambda: self.change_region(
                    region, *AUX_LABEL_SUBREGION, Visibility.VISIBLE,
                    RegionStyle.NORMAL, "BT ",
                ),
            ),
            Step(
                "create text region",
                lambda: self.create_region(
                    region, *AUX_TEXT_SUBREGION,
                    font_style=FontStyle.MEDIUM, **AUX_TEXT_GEOMETRY,
                ),
                accept=frozenset({RemoteErrorCode.REGION_EXISTS}),
            ),
            Step(
                "show text",
                lambda: self.change_region(
                    region, *AUX_TEXT_SUBREGION, Visibility.VISIBLE,
                    RegionStyle.NORMAL, text,
                ),
            ),
        ]
        return self.run_sequence(steps)
