"""
sidlink - SID Bus Command-Line Interface
========================================

This module implements the command-line interface for the SID protocol
engine. It watches traffic on the SID bus and sends region commands to
the display.

Usage Examples
--------------
List available serial ports:
    $ sidlink ports

Watch the bus (decoded frames and display mode):
    $ sidlink monitor

Show text on a region:
    $ sidlink change 0x01 0x02 0xCD --text "BT "

Replace "AUX Play" with custom text:
    $ sidlink aux-text "Song - Artist"

Byte arguments accept decimal (205) or hex (0xCD).

Exit Codes
----------
0 - Success
1 - Port error, remote rejection or timeout
2 - Invalid arguments or configuration error
3 - Internal error
"""

import dataclasses
import logging
import time
from contextlib import contextmanager
from typing import Iterator, Optional

import click

from saab_hpd import __version__
from saab_hpd.cli.errors import ExitCode, handle_cli_exception
from saab_hpd.config import get_default_config
from saab_hpd.errors import HPDError
from saab_hpd.protocol import (
    FontStyle,
    Frame,
    Outcome,
    RegionStyle,
    SIDSession,
    Visibility,
    close_serial_port,
    describe_command,
    find_sid_port,
    format_port_list,
    list_serial_ports,
    open_serial_port,
)

logger = logging.getLogger(__name__)


# =============================================================================
# CLI Context and Utilities
# =============================================================================

class Context:
    """
    Shared context for CLI commands.

    Stores common options like port, baud rate, and verbosity.
    """

    def __init__(self) -> None:
        self.port: Optional[str] = None
        self.baud: int = get_default_config().baud_rate
        self.verbose: bool = False
        self.timeout: Optional[float] = None

    def setup_logging(self) -> None:
        """Configure logging based on verbosity."""
        level = logging.DEBUG if self.verbose else logging.INFO
        logging.basicConfig(
            level=level,
            format="%(levelname)s: %(message)s" if self.verbose else "%(message)s",
        )

    def make_config(self):
        config = get_default_config()
        changes = {"baud_rate": self.baud}
        if self.timeout is not None:
            changes["ack_timeout"] = self.timeout
        return dataclasses.replace(config, **changes)


pass_context = click.make_pass_decorator(Context, ensure=True)


class ByteParam(click.ParamType):
    """Integer parameter accepting decimal or 0x-prefixed hex."""

    name = "byte"

    def __init__(self, maximum: int = 0xFF):
        self.maximum = maximum

    def convert(self, value, param, ctx):
        if isinstance(value, int):
            number = value
        else:
            try:
                number = int(value, 0)
            except ValueError:
                self.fail(f"{value!r} is not a number", param, ctx)
        if not 0 <= number <= self.maximum:
            self.fail(f"{value!r} is outside 0-{self.maximum}", param, ctx)
        return number


BYTE = ByteParam()
WORD = ByteParam(0xFFFF)


def parse_hex(value: str) -> bytes:
    """Parse a hex string such as '10 00 01' or '100001'."""
    try:
        return bytes.fromhex(value.replace(",", " ").replace("0x", ""))
    except ValueError:
        raise click.BadParameter(f"Invalid hex bytes: {value!r}")


def format_frame(frame: Frame) -> str:
    """One-line description of a frame for terminal output."""
    payload = frame.payload.hex(" ") if frame.payload else "-"
    return f"{describe_command(frame.command):<16} {payload}"


@contextmanager
def open_session(ctx: Context) -> Iterator[SIDSession]:
    """Open the configured (or auto-detected) port and wrap it in a session."""
    port_device = ctx.port or find_sid_port()
    if not port_device:
        click.echo("Error: No serial port specified and auto-detect failed.", err=True)
        click.echo("Use --port option or 'sidlink ports' to find available ports.", err=True)
        raise SystemExit(ExitCode.INVALID_ARGS)

    config = ctx.make_config().validate()
    serial_port = open_serial_port(port_device, baud_rate=config.baud_rate)
    try:
        yield SIDSession(serial_port, config=config)
    finally:
        close_serial_port(serial_port)


def report(outcome: Outcome) -> None:
    """Print an outcome and exit non-zero unless it is OK."""
    if outcome.ok:
        click.echo("OK")
        return
    click.echo(f"Failed: {outcome}", err=True)
    raise SystemExit(ExitCode.COMMAND_FAILED)


def run_command(ctx: Context, action) -> None:
    """Open a session, run ``action(session)`` and report its outcome."""
    try:
        with open_session(ctx) as session:
            outcome = action(session)
    except (HPDError, ValueError) as e:
        handle_cli_exception(e, verbose=ctx.verbose)
    if outcome is not None:
        report(outcome)


# =============================================================================
# Main CLI Group
# =============================================================================

@click.group()
@click.option(
    "-p", "--port",
    type=str,
    default=None,
    help="Serial port device (auto-detect if not specified)",
)
@click.option(
    "-b", "--baud",
    type=int,
    default=None,
    help="Baud rate (default: from configuration)",
)
@click.option(
    "-v", "--verbose",
    is_flag=True,
    help="Enable verbose output (logs every frame)",
)
@click.option(
    "--timeout",
    type=float,
    default=None,
    help="Acknowledgment timeout in seconds (default: 0.1)",
)
@click.version_option(version=__version__, prog_name="sidlink")
@pass_context
def main(
    ctx: Context,
    port: Optional[str],
    baud: Optional[int],
    verbose: bool,
    timeout: Optional[float],
) -> None:
    """
    Talk to the SAAB SID display over its serial bus.

    Use 'sidlink ports' to list available serial ports.
    """
    ctx.port = port
    if baud is not None:
        ctx.baud = baud
    ctx.verbose = verbose
    ctx.timeout = timeout
    ctx.setup_logging()


# =============================================================================
# Ports Command
# =============================================================================

@main.command()
@click.option("--detailed", "-d", is_flag=True, help="Show detailed port information")
def ports(detailed: bool) -> None:
    """List available serial ports."""
    port_list = list_serial_ports()

    if not port_list:
        click.echo("No serial ports found.")
        click.echo("\nTips:")
        click.echo("  - Connect your USB-serial adapter")
        click.echo("  - On Linux, ensure you have permission (dialout group)")
        return

    click.echo("Available serial ports:")
    click.echo(format_port_list(port_list, verbose=detailed))

    auto_port = find_sid_port()
    if auto_port:
        click.echo(f"\nSuggested port: {auto_port}")


# =============================================================================
# Monitor Command
# =============================================================================

@main.command()
@click.option(
    "--duration",
    type=float,
    default=0.0,
    help="Stop after this many seconds (default: run until Ctrl-C)",
)
@pass_context
def monitor(ctx: Context, duration: float) -> None:
    """
    Print every frame seen on the bus and track the display mode.

    Example:
        sidlink monitor
        sidlink monitor --duration 10
    """
    try:
        with open_session(ctx) as session:
            last_mode = session.mode
            session.set_frame_callback(lambda frame: click.echo(format_frame(frame)))
            click.echo("Monitoring SID bus... (Ctrl-C to stop)")

            start = time.monotonic()
            try:
                while not duration or time.monotonic() - start < duration:
                    session.poll()
                    if session.mode != last_mode:
                        last_mode = session.mode
                        click.echo(f"-- mode: {last_mode.value}")
                    time.sleep(0.005)
            except KeyboardInterrupt:
                pass

            stats = session.decoder.stats
            click.echo(
                f"\n{stats.frames} frame(s), {stats.resyncs} resync(s), "
                f"{stats.discarded_bytes} byte(s) discarded"
            )
    except (HPDError, ValueError) as e:
        handle_cli_exception(e, verbose=ctx.verbose)


# =============================================================================
# Region Commands
# =============================================================================

@main.command()
@click.argument("region", type=BYTE)
@click.argument("sub0", type=BYTE)
@click.argument("sub1", type=BYTE)
@click.argument("x", type=WORD)
@click.argument("y", type=BYTE)
@click.argument("width", type=BYTE)
@click.option(
    "--font",
    type=click.Choice([f.name.lower() for f in FontStyle]),
    default="medium",
    help="Font (default: medium)",
)
@click.option("--text", "-t", type=str, default=None, help="Initial text")
@pass_context
def create(ctx: Context, region, sub0, sub1, x, y, width, font, text) -> None:
    """Create a region (command 0x10)."""
    font_style = FontStyle[font.upper()]
    run_command(
        ctx,
        lambda s: s.create_region(region, sub0, sub1, x, y, width, font_style, text),
    )


@main.command()
@click.argument("region", type=BYTE)
@click.argument("sub0", type=BYTE)
@click.argument("sub1", type=BYTE)
@click.option("--visible/--hidden", default=True, help="Region visibility")
@click.option(
    "--style",
    "-s",
    type=click.Choice([name.lower() for name in RegionStyle.__members__]),
    multiple=True,
    help="Style flag (repeatable)",
)
@click.option("--text", "-t", type=str, default=None, help="Replacement text")
@pass_context
def change(ctx: Context, region, sub0, sub1, visible, style, text) -> None:
    """Change visibility, style and text of a region (command 0x11)."""
    flags = RegionStyle.NORMAL
    for name in style:
        flags |= RegionStyle[name.upper()]
    visibility = Visibility.VISIBLE if visible else Visibility.HIDDEN
    run_command(
        ctx,
        lambda s: s.change_region(region, sub0, sub1, visibility, flags, text),
    )


@main.command()
@click.argument("region", type=BYTE)
@click.option("--flag", type=BYTE, default=0x01, help="Draw flag (default: 1)")
@pass_context
def draw(ctx: Context, region, flag) -> None:
    """Toggle a region's draw state (command 0x70)."""
    run_command(ctx, lambda s: s.draw_region(region, flag))


@main.command()
@click.argument("region", type=BYTE)
@click.option("--flag", type=BYTE, default=0x01, help="Clear flag (default: 1)")
@pass_context
def clear(ctx: Context, region, flag) -> None:
    """Remove a region (command 0x60)."""
    run_command(ctx, lambda s: s.clear_region(region, flag))


@main.command()
@click.argument("command", type=BYTE)
@click.argument("payload", required=False, default="")
@pass_context
def send(ctx: Context, command, payload) -> None:
    """
    Send any COMMAND with a hex PAYLOAD and wait for the reply.

    Example:
        sidlink send 0x11 "01 00 02 cd 02 00 42 54"
    """
    data = parse_hex(payload)
    run_command(ctx, lambda s: s.send_command(command, data))


@main.command()
@click.argument("data")
@pass_context
def raw(ctx: Context, data) -> None:
    """
    Write hex DATA verbatim (no framing, no checksum, no reply).

    Example:
        sidlink raw "02 81 00 83"
    """
    payload = parse_hex(data)
    run_command(ctx, lambda s: s.send_raw(payload))
    click.echo(f"Sent {len(payload)} byte(s)")


@main.command("test-mode")
@pass_context
def test_mode(ctx: Context) -> None:
    """
    Put the SID into self-test mode.

    The display stops answering other commands until it leaves test mode.
    """
    run_command(ctx, lambda s: s.send_test_mode())
    click.echo("Self-test command sent")


@main.command("aux-text")
@click.argument("text")
@pass_context
def aux_text(ctx: Context, text: str) -> None:
    """Replace "AUX Play" on the AUX screen with TEXT."""
    try:
        with open_session(ctx) as session:
            result = session.replace_aux_play_text(text)
    except (HPDError, ValueError) as e:
        handle_cli_exception(e, verbose=ctx.verbose)

    if result.completed:
        click.echo("OK")
        return
    click.echo(
        f"Failed at '{result.failed_step}': {result.outcomes[-1]}", err=True
    )
    raise SystemExit(ExitCode.COMMAND_FAILED)


if __name__ == "__main__":
    main()
