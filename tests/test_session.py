from __future__ import annotations

import logging

import pytest

from bbtk.commands import FIRMWARE
from bbtk.config import TimingConfig
from bbtk.errors import DeviceIOError, ProtocolMismatch, ProtocolTimeout
from bbtk.models import DEFAULT_SMOOTHING, DEFAULT_THRESHOLDS, SmoothingMask, ThresholdSet
from bbtk.session import BbtkSession


@pytest.fixture
def session(transport, config):
    return BbtkSession(transport, config)


def test_connect_accepts_bbtk_banner(session, transport):
    transport.add_reply("CONN", [b"BBTK;\r\n"])
    session.connect()
    assert transport.written == ["CONN"]


def test_connect_mismatch_exposes_received_text(session, transport):
    transport.add_reply("CONN", [b"HELLO\n"])
    with pytest.raises(ProtocolMismatch) as excinfo:
        session.connect()
    assert excinfo.value.received == "HELLO"
    assert excinfo.value.expected == ("BBTK;",)
    assert excinfo.value.command == "CONN"


def test_connect_timeout_is_reported(session):
    with pytest.raises(ProtocolTimeout):
        session.connect()


def test_check_alive(session, transport):
    transport.add_reply("ECHO", [b"ECHO\n"])
    assert session.check_alive() is True
    assert session.alive is True


def test_check_alive_mismatch_marks_device_not_alive(session, transport):
    session.alive = True
    transport.add_reply("ECHO", [b"ECH0\n"])
    with pytest.raises(ProtocolMismatch) as excinfo:
        session.check_alive()
    assert excinfo.value.responded is True
    assert session.alive is False


def test_check_alive_transport_error_leaves_flag(session, transport):
    session.alive = True
    transport.fail_write_on = "ECHO"
    with pytest.raises(DeviceIOError):
        session.check_alive()
    assert session.alive is True


def test_set_smoothing_sends_mask(session, transport):
    mask = SmoothingMask(mic1=False, mic2=True, opto1=True, opto2=False, opto3=False, opto4=False)
    session.set_smoothing(mask)
    assert transport.written == ["SMOO", "01000111"]
    assert session.smoothing == mask


def test_set_smoothing_propagates_second_send_failure(session, transport):
    transport.fail_write_on = DEFAULT_SMOOTHING.encode()
    with pytest.raises(DeviceIOError):
        session.set_smoothing()
    assert transport.written == ["SMOO"]
    assert session.smoothing is None


def test_set_thresholds_sends_nine_lines_then_waits(transport, config, monkeypatch):
    config.timing.commit_wait_sec = 1.0
    sleeps = []
    monkeypatch.setattr("bbtk.session.time.sleep", sleeps.append)
    session = BbtkSession(transport, config)

    session.set_thresholds()

    assert transport.written == ["SEPV", "0", "0", "63", "63", "110", "110", "110", "110"]
    # command settle delays are zero here, only the commit wait remains
    assert [delay for delay in sleeps if delay] == [1.0]
    assert session.thresholds == DEFAULT_THRESHOLDS


def test_thresholds_remember_last_written_set(session):
    assert session.thresholds is None
    custom = ThresholdSet(1, 2, 3, 4, 5, 6, 7, 8)
    session.set_thresholds(custom)
    assert session.thresholds == custom


def test_flush_and_display_info(session, transport):
    session.flush()
    session.display_info()
    assert transport.written == ["FLUS", "ABOU"]


def test_firmware_version_returned_verbatim(session, transport):
    transport.add_reply("FIRM", [b"BBTKv2 FW 1.2.3;\n"])
    assert session.firmware_version() == "BBTKv2 FW 1.2.3;"


def test_firmware_version_failure_is_not_fatal(session, caplog):
    with caplog.at_level(logging.WARNING, logger="bbtk.session"):
        assert session.firmware_version() == ""
    assert "Firmware version query failed" in caplog.text


def test_execute_by_mnemonic(session, transport):
    transport.add_reply("FIRM", [b"v2\n"])
    assert session.execute("FIRM") == "v2"
    transport.add_reply("FIRM", [b"v3\n"])
    assert session.execute(FIRMWARE) == "v3"


def test_adjust_thresholds_polls_until_done(session, transport, caplog):
    transport.add_reply("AJPV", [b"Adjusting\n", b"", b"Mic1 40\n", b"Done;\n"])
    with caplog.at_level(logging.INFO, logger="bbtk.session"):
        session.adjust_thresholds()
    progress = [r.getMessage() for r in caplog.records if "got" in r.getMessage()]
    assert progress == [
        'AJPV: expected "Done;", got "Adjusting"',
        'AJPV: expected "Done;", got "Mic1 40"',
    ]


def test_clear_timing_data_tolerates_wrong_lines(session, transport, caplog):
    transport.add_reply(
        "SPIE",
        [b"FRMT;\n"] + [b"DONE_WRONG;\n"] * 5 + [b"DONE;\n"],
    )
    with caplog.at_level(logging.WARNING, logger="bbtk.session"):
        session.clear_timing_data()
    warnings = [r for r in caplog.records if r.levelno == logging.WARNING]
    assert len(warnings) == 5
    assert all('got "DONE_WRONG;"' in r.getMessage() for r in warnings)
    assert not transport.pending


def test_clear_timing_data_accepts_erase_sectors(session, transport, caplog):
    transport.add_reply("SPIE", [b"ESEC;\n", b"", b"", b"DONE;\n"])
    with caplog.at_level(logging.WARNING, logger="bbtk.session"):
        session.clear_timing_data()
    assert not [r for r in caplog.records if r.levelno >= logging.WARNING]


def test_clear_timing_data_warns_on_unexpected_first_line(session, transport, caplog):
    transport.add_reply("SPIE", [b"BUSY;\n", b"DONE;\n"])
    with caplog.at_level(logging.WARNING, logger="bbtk.session"):
        session.clear_timing_data()
    assert 'SPIE: expected "FRMT;" or "ESEC;", got "BUSY;"' in caplog.text


def test_clear_timing_data_read_failure_is_fatal(session, transport):
    transport.add_reply("SPIE", [b"FRMT;\n"])
    transport.fail_read = True
    with pytest.raises(DeviceIOError):
        session.clear_timing_data()


def test_poll_max_wait_bounds_the_wait(transport, config):
    config.timing = TimingConfig(
        command_settle_sec=0.0,
        commit_wait_sec=0.0,
        poll_interval_sec=0.0,
        poll_max_wait_sec=1e-6,
    )
    session = BbtkSession(transport, config)
    with pytest.raises(ProtocolTimeout, match="Done;"):
        session.adjust_thresholds()


def test_close_sends_break_and_is_idempotent(session, transport):
    session.close()
    session.close()
    assert transport.breaks == 1
    assert transport.is_open is False


def test_context_manager_closes(transport, config):
    with BbtkSession(transport, config) as session:
        session.display_info()
    assert transport.is_open is False
    assert transport.breaks == 1


def test_failed_break_does_not_hide_the_original_error(transport, config, caplog):
    with pytest.raises(DeviceIOError, match="unplugged"):
        with BbtkSession(transport, config) as session:
            transport.fail_read = True
            transport.fail_break = True
            session.capture(1.0)
    assert transport.is_open is False
    assert session.alive is False
    assert any("Closing without break" in record.getMessage() for record in caplog.records)


def test_wake_breaks_and_resets(session, transport):
    session.wake()
    assert transport.breaks == 1
    assert transport.resets == 1


def test_capture_uses_configured_duration(session, transport):
    transport.add_reply("RUDS", [b"SDAT;\n0\n1000000\n0\nEDAT;\n"])
    result = session.capture()
    assert transport.written == ["DSCM", "TIML", "1000000", "RUDS"]
    assert b"EDAT" in result.data
