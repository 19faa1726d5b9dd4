"""Raw TCP printer connections and ESC/POS test page."""

import ipaddress
import threading
from datetime import datetime
from typing import Optional

from escpos.exceptions import DeviceNotFoundError
from escpos.printer import Network

from otter_bridge.config import CONNECT_TIMEOUT, WRITE_TIMEOUT
from otter_bridge.errors import ConnectError, WriteError

ESC = "\x1b"
GS = "\x1d"

TEST_PAGE_RULE = "=" * 28


class PrinterLocks:
    """One lock per printer address so jobs to the same printer never interleave."""

    def __init__(self):
        self._locks = {}
        self._guard = threading.Lock()

    def for_address(self, address: str) -> threading.Lock:
        with self._guard:
            return self._locks.setdefault(address, threading.Lock())


def is_ipv6(ip: str) -> bool:
    try:
        return ipaddress.ip_address(ip.strip("[]")).version == 6
    except ValueError:
        return False  # hostname or IPv4


def open_printer(ip: str, port: str, timeout: float = CONNECT_TIMEOUT) -> Network:
    """Open a fresh TCP connection to a network printer."""
    address = f"{ip}:{port}"

    try:
        port_number = int(port)
    except ValueError as e:
        raise ConnectError(f"failed to connect to {address}: invalid port {port!r}") from e
    if not 0 < port_number < 65536:
        raise ConnectError(f"failed to connect to {address}: port out of range")

    # escpos Network sockets are IPv4 only
    if is_ipv6(ip):
        raise ConnectError(f"failed to connect to {address}: IPv6 printer addresses are not supported")

    printer = Network(ip, port_number, timeout=timeout)
    try:
        printer.open()
    except (DeviceNotFoundError, OSError) as e:
        raise ConnectError(f"failed to connect to {address}: {e}") from e

    return printer


def send_raw(
    ip: str,
    port: str,
    data: bytes,
    connect_timeout: float = CONNECT_TIMEOUT,
    write_timeout: float = WRITE_TIMEOUT,
):
    """Connect, write ``data`` in one go and close. Nothing is read back."""
    printer = open_printer(ip, port, connect_timeout)
    print(f"  Connected to printer at {ip}:{port}")

    try:
        printer.device.settimeout(write_timeout)
        printer._raw(data)
    except OSError as e:
        raise WriteError(f"failed to write data to {ip}:{port}: {e}") from e
    finally:
        printer.close()

    print(f"  Sent {len(data)} bytes to printer")


def build_test_page(ip: str, port: str, now: Optional[datetime] = None) -> bytes:
    """Build the self-test receipt for the given printer address."""
    if now is None:
        now = datetime.now()

    page = ""
    page += ESC + "@"  # ESC @ - Initialize
    page += ESC + "a" + "\x01"  # ESC a 1 - Center
    page += ESC + "!" + "\x38"  # ESC ! 0x38 - Double width/height, emphasized
    page += "OTTER ORDER\n"
    page += ESC + "!" + "\x00"  # ESC ! 0 - Normal text
    page += ESC + "a" + "\x00"  # ESC a 0 - Left
    page += "Printer Bridge Test Page\n"
    page += TEST_PAGE_RULE + "\n"
    page += "Connection successful!\n"
    page += f"IP:   {ip}\n"
    page += f"Port: {port}\n"
    page += f"Time: {now.strftime('%Y-%m-%d %H:%M:%S')}\n"
    page += TEST_PAGE_RULE + "\n\n"
    page += ESC + "a" + "\x01"
    page += "✅ PRINT OK ✅\n"
    page += "\n" * 9  # Feed past the cutter
    page += GS + "V" + "\x01"  # GS V 1 - Partial cut

    return page.encode("utf-8")
