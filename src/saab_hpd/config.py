"""
SAAB HPD - Engine Configuration
===============================

Protocol constants that are domain facts rather than engine logic live
here, so they can be changed without touching the codec. Configuration
can come from:
- Default values (defined here)
- Environment variables
- Explicit construction in application code

Timing values are in seconds. The SID answers a command within a few
milliseconds, so the default 100ms acknowledgment window is generous.
"""

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Optional
import os

from saab_hpd.errors import ConfigError

if TYPE_CHECKING:
    from saab_hpd.protocol.mode import ModeSignatures


# Environment variable prefix for all overrides
ENV_PREFIX = "SAAB_HPD_"


@dataclass
class EngineConfig:
    """
    Configuration for one protocol engine instance.

    Attributes:
        sync_pattern: Marker that precedes exchanges on the bus
        ack_timeout: Seconds to wait for an ACK/ERROR reply
        max_attempts: Attempts per step in composite operations
        step_delay: Pause between steps of a composite operation
        error_code_offset: Payload index of the code in an ERROR reply.
            Protocol revisions disagree (0 or 2); 0 is the default.
        poll_interval: Pause between transport polls when no byte is waiting
        read_chunk: Maximum bytes read from the transport per poll
        baud_rate: Serial speed used by the CLI and ``open_serial_port``
        mode_signatures: Signature table for mode inference (None = defaults)
    """

    # ═══════════════════════════════════════════════════════════════════════════
    # FRAMING
    # ═══════════════════════════════════════════════════════════════════════════

    sync_pattern: bytes = bytes([0x02, 0x81, 0x00, 0x83])
    error_code_offset: int = 0

    # ═══════════════════════════════════════════════════════════════════════════
    # TIMING
    # ═══════════════════════════════════════════════════════════════════════════

    ack_timeout: float = 0.1
    step_delay: float = 0.01
    poll_interval: float = 0.001

    # ═══════════════════════════════════════════════════════════════════════════
    # RETRIES AND TRANSPORT
    # ═══════════════════════════════════════════════════════════════════════════

    max_attempts: int = 5
    read_chunk: int = 64
    baud_rate: int = 9600

    mode_signatures: Optional["ModeSignatures"] = field(default=None)

    def validate(self) -> "EngineConfig":
        """
        Check every field, returning self for chaining.

        Raises:
            ConfigError: If a field is out of range.
        """
        if len(self.sync_pattern) != 4:
            raise ConfigError(
                f"sync_pattern must be 4 bytes, got {len(self.sync_pattern)}"
            )
        if self.ack_timeout <= 0:
            raise ConfigError(f"ack_timeout must be positive, got {self.ack_timeout}")
        if self.step_delay < 0 or self.poll_interval < 0:
            raise ConfigError("Delays must not be negative")
        if self.max_attempts < 1:
            raise ConfigError(f"max_attempts must be at least 1, got {self.max_attempts}")
        if not 0 <= self.error_code_offset < 252:
            raise ConfigError(
                f"error_code_offset must be 0-251, got {self.error_code_offset}"
            )
        if self.baud_rate <= 0:
            raise ConfigError(f"baud_rate must be positive, got {self.baud_rate}")
        if self.read_chunk < 1:
            raise ConfigError(f"read_chunk must be at least 1, got {self.read_chunk}")
        return self

    # ═══════════════════════════════════════════════════════════════════════════
    # FACTORY METHODS
    # ═══════════════════════════════════════════════════════════════════════════

    @classmethod
    def from_env(cls) -> "EngineConfig":
        """
        Create EngineConfig from environment variables.

        Environment variables (all optional):
            SAAB_HPD_SYNC_PATTERN: Marker as hex (e.g. "02810083")
            SAAB_HPD_ACK_TIMEOUT: Seconds (float)
            SAAB_HPD_STEP_DELAY: Seconds (float)
            SAAB_HPD_MAX_ATTEMPTS: Integer
            SAAB_HPD_ERROR_OFFSET: Integer
            SAAB_HPD_BAUD: Integer

        Invalid values are ignored and the default kept.
        """
        config = cls()

        if pattern := os.environ.get(ENV_PREFIX + "SYNC_PATTERN"):
            try:
                value = bytes.fromhex(pattern)
                if len(value) == 4:
                    config.sync_pattern = value
            except ValueError:
                pass

        for name, attr, kind in (
            ("ACK_TIMEOUT", "ack_timeout", float),
            ("STEP_DELAY", "step_delay", float),
            ("MAX_ATTEMPTS", "max_attempts", int),
            ("ERROR_OFFSET", "error_code_offset", int),
            ("BAUD", "baud_rate", int),
        ):
            if raw := os.environ.get(ENV_PREFIX + name):
                try:
                    setattr(config, attr, kind(raw))
                except ValueError:
                    pass  # Ignore invalid values

        return config


# ═══════════════════════════════════════════════════════════════════════════════
# DEFAULT CONFIGURATION INSTANCE
# ═══════════════════════════════════════════════════════════════════════════════

_default_config: Optional[EngineConfig] = None


def get_default_config() -> EngineConfig:
    """
    Get the default engine configuration.

    Created from environment variables on first access.
    """
    global _default_config
    if _default_config is None:
        _default_config = EngineConfig.from_env()
    return _default_config


def set_default_config(config: Optional[EngineConfig]) -> None:
    """Set (or with None, clear) the default engine configuration."""
    global _default_config
    _default_config = config
