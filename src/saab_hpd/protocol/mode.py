"""
Display Mode Inference
======================

The head unit updates the SID with CHANGE_REGION (0x11) frames whenever the
audio source changes. By recognizing a few of those updates we get a coarse
"what is the display showing" value without asking anybody.

Two kinds of signature are recognized, both inside the CHANGE_REGION
payload (``region 00 sub0 sub1 visible style text...``):

- **Source signatures**: an exact ``(sub0, sub1)`` pair identifies the AUX,
  CD, CDC or CDX source label.
- **Radio signature**: the radio ``(sub0, sub1)`` pair followed by text
  starting with ``FM`` or ``AM`` and a channel digit. ``FM1`` and ``FM2``
  map to their bands, ``AM`` with any digit maps to AM.

A frame that matches nothing leaves the mode as it was. The last
recognized mode is kept until a different signature arrives.

The signature table is configuration, not protocol: override it with a
``ModeSignatures`` instance when a different head unit labels its regions
differently.
"""

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Union

from saab_hpd.protocol.commands import CHANGE_REGION_HEADER_SIZE, SIDCommand
from saab_hpd.protocol.frame import Frame

logger = logging.getLogger(__name__)


class Mode(str, Enum):
    """Coarse classification of the audio source shown on the display."""

    UNKNOWN = "Unknown"
    AUX = "Aux"
    FM1 = "Fm1"
    FM2 = "Fm2"
    AM = "Am"
    CD = "Cd"
    CDC = "Cdc"
    CDX = "Cdx"


SourceTable = Union[
    tuple[tuple[tuple[int, int], Mode], ...],
    Mapping[tuple[int, int], Mode],
]


@dataclass(frozen=True)
class ModeSignatures:
    """
    Payload signatures used for mode inference.

    Attributes:
        region_id: Region the source label lives in (None matches any)
        sources: ``((sub0, sub1), mode)`` entries; a dict is accepted and
            stored as a tuple
        radio: ``(sub0, sub1)`` pair of the radio band label
    """

    region_id: Optional[int] = 0x01
    sources: SourceTable = (
        ((0x02, 0xCD), Mode.AUX),
        ((0x03, 0xCD), Mode.CD),
        ((0x04, 0xCD), Mode.CDC),
        ((0x05, 0xCD), Mode.CDX),
    )
    radio: tuple[int, int] = (0x01, 0xCD)

    def __post_init__(self) -> None:
        entries = self.sources.items() if isinstance(self.sources, Mapping) else self.sources
        table = tuple((tuple(pair), Mode(mode)) for pair, mode in entries)
        object.__setattr__(self, "sources", table)
        object.__setattr__(self, "radio", tuple(self.radio))

    def source_mode(self, key: tuple[int, int]) -> Optional[Mode]:
        """Return the mode announced by a ``(sub0, sub1)`` pair, if any."""
        for pair, mode in self.sources:
            if pair == key:
                return mode
        return None


DEFAULT_SIGNATURES = ModeSignatures()


def _radio_mode(text: bytes) -> Optional[Mode]:
    if len(text) < 3 or not ord("0") <= text[2] <= ord("9"):
        return None
    band = text[:2]
    if band == b"FM":
        return {ord("1"): Mode.FM1, ord("2"): Mode.FM2}.get(text[2])
    if band == b"AM":
        return Mode.AM
    return None


def match_mode(frame: Frame, signatures: ModeSignatures = DEFAULT_SIGNATURES) -> Optional[Mode]:
    """
    Return the mode announced by ``frame``, or None if it matches nothing.
    """
    if frame.command != SIDCommand.CHANGE_REGION:
        return None

    payload = frame.payload
    if len(payload) < 4:
        return None
    if signatures.region_id is not None and payload[0] != signatures.region_id:
        return None

    key = (payload[2], payload[3])
    source = signatures.source_mode(key)
    if source is not None:
        return source
    if key == signatures.radio:
        return _radio_mode(payload[CHANGE_REGION_HEADER_SIZE:])
    return None


def infer_mode(
    frame: Frame,
    current: Mode,
    signatures: ModeSignatures = DEFAULT_SIGNATURES,
) -> Mode:
    """
    Compute the next mode after observing ``frame``.

    Returns ``current`` unchanged when the frame matches no signature.
    """
    mode = match_mode(frame, signatures)
    if mode is None:
        return current
    if mode != current:
        logger.info("Display mode changed: %s -> %s", current.value, mode.value)
    return mode
