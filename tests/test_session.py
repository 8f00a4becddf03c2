"""
Tests for SIDSession
====================

Test Categories
---------------
1. Reply Tests: ACK, ERROR and timeout classification
2. Observation Tests: frame callback, polling, mode tracking
3. Retry Tests: bounded retries and sequences
4. AUX Text Tests: the replace-"AUX Play" sequence
"""

import logging

import pytest

from saab_hpd.config import EngineConfig
from saab_hpd.errors import ConfigError, RemoteError
from saab_hpd.errors import TimeoutError as HPDTimeoutError
from saab_hpd.protocol.frame import Frame, encode_frame
from saab_hpd.protocol.mode import Mode
from saab_hpd.protocol.session import (
    OK,
    TIMEOUT,
    Outcome,
    OutcomeStatus,
    RemoteErrorCode,
    SIDSession,
    Step,
)

from conftest import ACK, SYNC, error_reply


AUX_SOURCE = encode_frame(0x11, bytes([0x01, 0x00, 0x02, 0xCD, 0x02, 0x00]) + b"AUX")
RADIO_FM2 = encode_frame(0x11, bytes([0x01, 0x00, 0x01, 0xCD, 0x02, 0x00]) + b"FM2")


# =============================================================================
# Reply Tests
# =============================================================================

class TestReplies:
    """Classification of the one reply per command."""

    def test_ack(self, session, port):
        port.queue_reply(ACK)
        outcome = session.draw_region(0x01)
        assert outcome.ok
        assert outcome.reply.command == 0xFF

    def test_command_bytes_written(self, session, port):
        port.queue_reply(ACK)
        session.draw_region(0x05)
        assert port.writes == [encode_frame(0x70, bytes([0x05, 0x00, 0x01]))]
        assert port.flushes == 1

    def test_region_exists(self, session, port):
        port.queue_reply(bytes([0x03, 0xFE, 0x00, 0x33, 0x34]))
        outcome = session.create_region(1, 0x08, 0xDF, 207, 31, 0xE6, 0x02)
        assert outcome.status is OutcomeStatus.REMOTE_ERROR
        assert outcome.error is RemoteErrorCode.REGION_EXISTS
        assert outcome.is_error(0x33)
        assert str(outcome) == "Region exists"

    @pytest.mark.parametrize("code", [0x31, 0x34])
    def test_known_codes(self, session, port, code):
        port.queue_reply(error_reply(code))
        assert session.clear_region(1).error == RemoteErrorCode(code)

    def test_unclassified_code_passed_through(self, session, port):
        port.queue_reply(error_reply(0x42))
        outcome = session.clear_region(1)
        assert outcome.error == 0x42
        assert str(outcome) == "Unclassified error (0x42)"

    def test_error_code_offset(self, port, clock):
        config = EngineConfig(error_code_offset=2)
        session = SIDSession(port, config=config, clock=clock, sleep=clock.sleep)
        port.inject(SYNC)
        port.queue_reply(encode_frame(0xFE, bytes([0x00, 0x00, 0x34])))
        assert session.clear_region(1).error is RemoteErrorCode.INVALID_ARGS

    def test_error_without_code(self, session, port, caplog):
        port.queue_reply(encode_frame(0xFE))
        with caplog.at_level(logging.WARNING):
            outcome = session.clear_region(1)
        assert outcome.status is OutcomeStatus.REMOTE_ERROR
        assert outcome.error_code is None
        assert outcome.error is None
        assert "without error code" in caplog.text

    def test_timeout(self, session, port, clock, config):
        port.queue_reply(None)
        outcome = session.change_region(1, 2, 3, 2, 0)
        assert outcome is TIMEOUT
        assert outcome.timed_out
        assert config.ack_timeout - 1e-9 <= clock.now <= config.ack_timeout + 1e-9

    def test_explicit_timeout(self, session, clock):
        assert session.send_frame(Frame.build(0x11), timeout=0.5).timed_out
        assert clock.now == pytest.approx(0.5)

    def test_reply_split_across_polls(self, session, port):
        port.inject(ACK[:2])
        assert session.poll() == []
        port.inject(ACK[2:])
        assert session.wait_for_reply().ok

    def test_late_reply_not_credited_to_next_command(self, session, port):
        """An ACK arriving after its command timed out is drained, not reused."""
        seen = []
        session.set_frame_callback(seen.append)
        port.queue_reply(None)
        assert session.draw_region(1).timed_out

        port.inject(ACK)
        port.queue_reply(error_reply(0x33))
        outcome = session.create_region(1, 0x08, 0xDF, 207, 31, 0xE6, 0x02)
        assert outcome.is_error(0x33)
        assert [f.command for f in seen] == [0xFF, 0xFE]

    def test_unknown_command_skipped_while_waiting(self, session, port):
        port.queue_reply(encode_frame(0xA0, b"\x01\x02") + ACK)
        assert session.send_command(0x30, b"\x00").ok

    def test_no_reply_without_sync(self, port, clock):
        """Bytes before the marker are discarded, so the ACK is never seen."""
        session = SIDSession(port, config=EngineConfig(), clock=clock, sleep=clock.sleep)
        port.queue_reply(ACK)
        assert session.draw_region(1).timed_out

    def test_invalid_config_rejected(self, port):
        with pytest.raises(ConfigError):
            SIDSession(port, config=EngineConfig(ack_timeout=0))


class TestFireAndForget:
    """Commands that do not wait for a reply."""

    def test_test_mode(self, session, port, clock):
        session.send_test_mode()
        assert port.writes == [bytes([0x02, 0x9F, 0x00, 0xA1])]
        assert clock.sleeps == []

    def test_raw(self, session, port):
        session.send_raw(b"\x01\x02\x03")
        assert port.writes == [b"\x01\x02\x03"]


class TestOutcome:

    def test_constants(self):
        assert OK.ok and not OK.timed_out
        assert str(TIMEOUT) == "Timeout"

    def test_error_none_unless_remote_error(self):
        assert Outcome(OutcomeStatus.OK, error_code=0x33).error is None

    def test_describe(self):
        assert RemoteErrorCode.describe(None) == "Remote error (no code)"
        assert RemoteErrorCode.describe(0x31) == "Invalid command"

    def test_raise_for_status(self):
        assert OK.raise_for_status() is OK
        with pytest.raises(HPDTimeoutError):
            TIMEOUT.raise_for_status()
        with pytest.raises(RemoteError, match="Region exists") as info:
            Outcome(OutcomeStatus.REMOTE_ERROR, error_code=0x33).raise_for_status()
        assert info.value.code == 0x33


# =============================================================================
# Observation Tests
# =============================================================================

class TestObservation:
    """Every inbound frame reaches the callback and mode inference."""

    def test_poll_returns_frames(self, session, port):
        port.inject(AUX_SOURCE + RADIO_FM2)
        frames = session.poll()
        assert [f.command for f in frames] == [0x11, 0x11]
        assert session.mode is Mode.FM2

    def test_poll_empty(self, session):
        assert session.poll() == []

    def test_starts_unknown(self, port):
        assert SIDSession(port).mode is Mode.UNKNOWN

    def test_callback_sees_acks(self, session, port):
        seen = []
        session.set_frame_callback(seen.append)
        port.queue_reply(ACK)
        session.draw_region(1)
        assert [f.command for f in seen] == [0xFF]

    def test_callback_single_slot(self, session, port):
        first, second = [], []
        session.set_frame_callback(first.append)
        session.set_frame_callback(second.append)
        port.inject(AUX_SOURCE)
        session.poll()
        assert first == []
        assert len(second) == 1

    def test_callback_removed(self, session, port):
        seen = []
        session.set_frame_callback(seen.append)
        session.set_frame_callback(None)
        port.inject(AUX_SOURCE)
        session.poll()
        assert seen == []

    def test_callback_error_logged(self, session, port, caplog):
        def broken(frame):
            raise RuntimeError("boom")

        session.set_frame_callback(broken)
        port.inject(AUX_SOURCE)
        with caplog.at_level(logging.WARNING):
            assert len(session.poll()) == 1
        assert "boom" in caplog.text

    def test_mode_updated_while_waiting(self, session, port):
        """A head unit update arriving before the ACK is still observed."""
        seen = []
        session.set_frame_callback(seen.append)
        port.queue_reply(AUX_SOURCE + ACK)
        assert session.draw_region(1).ok
        assert session.mode is Mode.AUX
        assert [f.command for f in seen] == [0x11, 0xFF]

    def test_mode_kept_on_unrelated_frame(self, session, port):
        port.inject(RADIO_FM2)
        session.poll()
        port.inject(encode_frame(0x11, bytes([0x01, 0x00, 0x08, 0xDF, 0x02, 0x00])))
        session.poll()
        assert session.mode is Mode.FM2

    def test_reset_mode(self, session, port):
        port.inject(AUX_SOURCE)
        session.poll()
        session.reset_mode()
        assert session.mode is Mode.UNKNOWN


# =============================================================================
# Retry Tests
# =============================================================================

class TestRetries:
    """Bounded retries per step and abort-on-failure sequences."""

    def test_retry_until_ok(self, session):
        results = iter([TIMEOUT, TIMEOUT, OK])
        calls = []

        def action():
            calls.append(1)
            return next(results)

        assert session.run_with_retry(action).ok
        assert len(calls) == 3

    def test_retry_gives_up(self, session, config):
        calls = []

        def action():
            calls.append(1)
            return TIMEOUT

        assert session.run_with_retry(action, name="draw").timed_out
        assert len(calls) == config.max_attempts == 5

    def test_accepted_error_stops_retries(self, session):
        calls = []
        exists = Outcome(OutcomeStatus.REMOTE_ERROR, error_code=0x33)

        def action():
            calls.append(1)
            return exists

        outcome = session.run_with_retry(action, accept={RemoteErrorCode.REGION_EXISTS})
        assert outcome is exists
        assert len(calls) == 1

    def test_retries_over_the_wire(self, session, port):
        port.queue_reply(None)
        port.queue_reply(error_reply(0x34))
        port.queue_reply(ACK)
        assert session.run_with_retry(lambda: session.draw_region(1)).ok
        assert len(port.writes) == 3

    def test_sequence_completes(self, session, clock, config):
        steps = [Step("a", lambda: OK), Step("b", lambda: OK), Step("c", lambda: OK)]
        result = session.run_sequence(steps)
        assert result.completed
        assert len(result.outcomes) == 3
        assert clock.sleeps == [config.step_delay, config.step_delay]

    def test_sequence_aborts(self, session):
        sent = []

        def step(name, outcome):
            def action():
                sent.append(name)
                return outcome
            return Step(name, action)

        result = session.run_sequence([step("a", OK), step("b", TIMEOUT), step("c", OK)])
        assert not result.completed
        assert result.failed_step == "b"
        assert sent == ["a"] + ["b"] * 5
        assert len(result.outcomes) == 2

    def test_empty_sequence(self, session):
        assert session.run_sequence([]).completed


# =============================================================================
# AUX Text Tests
# =============================================================================

class TestReplaceAuxPlayText:
    """Hide "Play", relabel to "BT ", create and fill the text region."""

    def test_all_steps_ok(self, session, port):
        for _ in range(4):
            port.queue_reply(ACK)
        result = session.replace_aux_play_text("Song - Artist")
        assert result.completed
        assert [w[1] for w in port.writes] == [0x11, 0x11, 0x10, 0x11]
        assert port.writes[0][5:7] == bytes([0x02, 0xDF])
        assert Frame.from_bytes(port.writes[1]).payload.endswith(b"BT ")
        assert b"Song - Artist" in port.writes[3]

    def test_region_exists_accepted(self, session, port):
        port.queue_reply(ACK)
        port.queue_reply(ACK)
        port.queue_reply(error_reply(0x33))
        port.queue_reply(ACK)
        result = session.replace_aux_play_text("x")
        assert result.completed
        assert len(port.writes) == 4

    def test_create_geometry(self, session, port):
        for _ in range(4):
            port.queue_reply(ACK)
        session.replace_aux_play_text("x")
        create = Frame.from_bytes(port.writes[2])
        assert create.payload == bytes(
            [0x01, 0x00, 0x08, 0xDF, 0x00, 0x02, 0xE6, 0x00, 207, 0x00, 31]
        )

    def test_aborts_when_relabel_fails(self, session, port):
        port.queue_reply(ACK)
        for _ in range(5):
            port.queue_reply(None)
        result = session.replace_aux_play_text("x")
        assert result.failed_step == "relabel source"
        assert result.outcomes[-1].timed_out
        assert len(port.writes) == 6
