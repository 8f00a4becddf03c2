"""
Tests for serial port utilities
===============================

pyserial is mocked throughout; no hardware is needed.
"""

from unittest.mock import MagicMock, Mock, patch

import pytest
import serial

from saab_hpd.errors import ConnectionError
from saab_hpd.protocol.serial import (
    DEFAULT_BAUD_RATE,
    PortInfo,
    close_serial_port,
    find_sid_port,
    format_port_list,
    list_serial_ports,
    open_serial_port,
)


def comport(device, vid=None, description="Serial Port"):
    return Mock(device=device, description=description, manufacturer=None, vid=vid, pid=0x6001)


class TestPortInfo:

    def test_usb(self):
        info = PortInfo("/dev/ttyUSB0", "USB Serial", "FTDI", 0x0403, 0x6001)
        assert info.is_usb
        assert info.adapter == "FTDI"
        assert info.rank == 0
        assert info.usb_id == "0403:6001"

    def test_non_usb(self):
        info = PortInfo("/dev/ttyS0", "Serial Port", None, None, None)
        assert not info.is_usb
        assert info.adapter is None
        assert info.rank is None
        assert info.usb_id is None

    def test_str(self):
        s = str(PortInfo("/dev/ttyUSB0", "USB Serial", None, 0x10C4, 0xEA60))
        assert "/dev/ttyUSB0" in s
        assert "USB Serial" in s
        assert "Silicon Labs" in s

    def test_default_baud_rate(self):
        assert DEFAULT_BAUD_RATE == 9600


class TestFormatPortList:

    def test_empty(self):
        assert "No serial ports" in format_port_list([])

    def test_brief(self):
        ports = [
            PortInfo("/dev/ttyUSB0", "USB Serial", None, 0x0403, 0x6001),
            PortInfo("/dev/ttyS0", "Serial Port", None, None, None),
        ]
        result = format_port_list(ports)
        assert "/dev/ttyUSB0" in result
        assert "/dev/ttyS0" in result

    def test_detailed(self):
        ports = [PortInfo("/dev/ttyUSB0", "USB Serial", "FTDI", 0x0403, 0x6001)]
        result = format_port_list(ports, verbose=True)
        assert "Manufacturer: FTDI" in result
        assert "Adapter: FTDI" in result
        assert "USB ID: 0403:6001" in result


class TestEnumeration:

    @patch("serial.tools.list_ports.comports")
    def test_list(self, comports):
        comports.return_value = [comport("/dev/ttyS0"), comport("/dev/ttyUSB0", vid=0x0403)]
        ports = list_serial_ports()
        assert [p.device for p in ports] == ["/dev/ttyS0", "/dev/ttyUSB0"]
        assert ports[1].is_usb

    @patch("serial.tools.list_ports.comports")
    def test_prefers_ftdi(self, comports):
        comports.return_value = [
            comport("/dev/ttyUSB0", vid=0x1A86),
            comport("/dev/ttyUSB1", vid=0x0403),
        ]
        assert find_sid_port() == "/dev/ttyUSB1"

    @patch("serial.tools.list_ports.comports")
    def test_falls_back_to_first_usb(self, comports):
        comports.return_value = [comport("/dev/ttyS0"), comport("/dev/ttyACM0", vid=0x2341)]
        assert find_sid_port() == "/dev/ttyACM0"

    @patch("serial.tools.list_ports.comports")
    def test_known_bridge_beats_unknown_usb(self, comports):
        comports.return_value = [
            comport("/dev/ttyACM0", vid=0x2341),
            comport("/dev/ttyUSB3", vid=0x067B),
        ]
        assert find_sid_port() == "/dev/ttyUSB3"

    @patch("serial.tools.list_ports.comports")
    def test_tie_keeps_listing_order(self, comports):
        comports.return_value = [
            comport("/dev/ttyUSB1", vid=0x0403),
            comport("/dev/ttyUSB2", vid=0x0403),
        ]
        assert find_sid_port() == "/dev/ttyUSB1"

    @patch("serial.tools.list_ports.comports")
    def test_no_usb(self, comports):
        comports.return_value = [comport("/dev/ttyS0")]
        assert find_sid_port() is None


class TestOpenSerialPort:

    @patch("serial.Serial")
    def test_opens_8n1(self, serial_cls):
        port = open_serial_port("/dev/ttyUSB0", baud_rate=19200)
        kwargs = serial_cls.call_args.kwargs
        assert kwargs["port"] == "/dev/ttyUSB0"
        assert kwargs["baudrate"] == 19200
        assert kwargs["parity"] == serial.PARITY_NONE
        assert kwargs["rtscts"] is False
        port.reset_input_buffer.assert_called_once()

    def test_invalid_baud(self):
        with pytest.raises(ValueError):
            open_serial_port("/dev/ttyUSB0", baud_rate=0)

    @pytest.mark.parametrize("message, hint", [
        ("[Errno 13] could not open port: Permission denied", "dialout"),
        ("[Errno 2] No such file or directory: '/dev/ttyUSB9'", "sidlink ports"),
        ("[Errno 16] Device or resource busy", "in use"),
        ("unexpected failure", "Cannot open /dev/ttyUSB9: unexpected failure"),
    ])
    def test_errors_mapped(self, message, hint):
        with patch("serial.Serial", side_effect=serial.SerialException(message)):
            with pytest.raises(ConnectionError, match=hint):
                open_serial_port("/dev/ttyUSB9")


class TestClosePort:

    def test_none(self):
        close_serial_port(None)

    def test_close(self):
        port = MagicMock(is_open=True)
        close_serial_port(port)
        port.close.assert_called_once()

    def test_already_closed(self):
        port = MagicMock(is_open=False)
        close_serial_port(port)
        port.close.assert_not_called()

    def test_close_error_logged(self, caplog):
        port = MagicMock(is_open=True)
        port.close.side_effect = serial.SerialException("gone")
        close_serial_port(port)
        assert "gone" in caplog.text
