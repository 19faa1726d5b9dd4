from datetime import datetime

import pytest
from escpos.printer import Network

from otter_bridge.errors import ConnectError, WriteError
from otter_bridge.printer import PrinterLocks, build_test_page, send_raw


def test_send_raw_delivers_exact_bytes(stub_printer):
    send_raw("127.0.0.1", str(stub_printer.port), b"hello")

    assert stub_printer.wait_for(1)
    assert stub_printer.received == [b"hello"]


def test_send_raw_opens_one_connection_per_call(stub_printer):
    send_raw("127.0.0.1", str(stub_printer.port), b"first")
    send_raw("127.0.0.1", str(stub_printer.port), b"second")

    assert stub_printer.wait_for(2)
    assert sorted(stub_printer.received) == [b"first", b"second"]
    assert stub_printer.connections == 2


def test_connect_failure_names_address(closed_port):
    with pytest.raises(ConnectError) as excinfo:
        send_raw("127.0.0.1", str(closed_port), b"hello", connect_timeout=2)

    assert f"127.0.0.1:{closed_port}" in str(excinfo.value)


@pytest.mark.parametrize("port", ["abc", "0", "70000"])
def test_invalid_port_is_connect_error(port):
    with pytest.raises(ConnectError, match=f"127.0.0.1:{port}"):
        send_raw("127.0.0.1", port, b"hello")


@pytest.mark.parametrize("ip", ["::1", "[::1]", "fe80::1"])
def test_ipv6_address_rejected_before_dialing(ip, monkeypatch):
    def no_open(self, raise_not_found=True):
        raise AssertionError("socket opened")

    monkeypatch.setattr(Network, "open", no_open)

    with pytest.raises(ConnectError, match="IPv6 printer addresses are not supported") as excinfo:
        send_raw(ip, "9100", b"hello")

    assert f"{ip}:9100" in str(excinfo.value)


def test_write_failure_is_write_error(stub_printer, monkeypatch):
    def broken_raw(self, msg):
        raise BrokenPipeError("connection reset")

    monkeypatch.setattr(Network, "_raw", broken_raw)

    with pytest.raises(WriteError, match=f"127.0.0.1:{stub_printer.port}"):
        send_raw("127.0.0.1", str(stub_printer.port), b"hello")

    # connection is still closed after the failure
    assert stub_printer.wait_for(1)
    assert stub_printer.received == [b""]


def test_test_page_layout():
    page = build_test_page("10.0.0.5", "9100", now=datetime(2024, 3, 5, 7, 8, 9))

    assert page.startswith(b"\x1b@\x1ba\x01\x1b!\x38OTTER ORDER\n\x1b!\x00\x1ba\x00")
    assert b"Printer Bridge Test Page\n" in page
    assert b"Connection successful!\n" in page
    assert b"IP:   10.0.0.5\n" in page
    assert b"Port: 9100\n" in page
    assert b"Time: 2024-03-05 07:08:09\n" in page
    assert "\x1ba\x01✅ PRINT OK ✅\n".encode("utf-8") in page
    assert page.endswith(b"\n\n\n\x1dV\x01")


def test_test_page_uses_current_time():
    page = build_test_page("10.0.0.5", "9100")
    assert f"Time: {datetime.now():%Y-%m-%d}".encode() in page


def test_locks_are_per_address():
    locks = PrinterLocks()
    assert locks.for_address("10.0.0.5:9100") is locks.for_address("10.0.0.5:9100")
    assert locks.for_address("10.0.0.5:9100") is not locks.for_address("10.0.0.6:9100")
