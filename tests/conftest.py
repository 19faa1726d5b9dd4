import socket
import threading

import pytest

from otter_bridge.prefs import Preferences, SettingsStore
from otter_bridge.server import BridgeSupervisor, PrinterBridge


class StubPrinter:
    """TCP listener that records every byte stream it receives, one per connection."""

    def __init__(self):
        self.sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        self.sock.bind(("127.0.0.1", 0))
        self.sock.listen(16)
        self.sock.settimeout(0.1)
        self.port = self.sock.getsockname()[1]
        self.received = []
        self.connections = 0
        self._cond = threading.Condition()
        self._stopped = threading.Event()
        self._thread = threading.Thread(target=self._accept_loop, daemon=True)
        self._thread.start()

    def _accept_loop(self):
        while not self._stopped.is_set():
            try:
                conn, _ = self.sock.accept()
            except socket.timeout:
                continue
            except OSError:
                return
            threading.Thread(target=self._read, args=(conn,), daemon=True).start()

    def _read(self, conn):
        conn.settimeout(5)
        with self._cond:
            self.connections += 1
        chunks = []
        with conn:
            while True:
                try:
                    chunk = conn.recv(4096)
                except OSError:
                    break
                if not chunk:
                    break
                chunks.append(chunk)
        with self._cond:
            self.received.append(b"".join(chunks))
            self._cond.notify_all()

    def wait_for(self, count, timeout=5.0):
        with self._cond:
            return self._cond.wait_for(lambda: len(self.received) >= count, timeout)

    def close(self):
        self._stopped.set()
        self._thread.join(1)
        self.sock.close()


@pytest.fixture
def config_path(tmp_path):
    return tmp_path / "otter-order-printer-bridge" / "config.json"


@pytest.fixture
def store(config_path):
    return SettingsStore(config_path)


@pytest.fixture
def stub_printer():
    stub = StubPrinter()
    yield stub
    stub.close()


@pytest.fixture
def closed_port():
    """A localhost port with nothing listening on it."""
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    sock.bind(("127.0.0.1", 0))
    port = sock.getsockname()[1]
    sock.close()
    return port


@pytest.fixture
def stub_store(store, stub_printer):
    store.update_preferences(Preferences("127.0.0.1", str(stub_printer.port)))
    return store


def make_bridge(store):
    return PrinterBridge(store, host="127.0.0.1", port=0, connect_timeout=2, write_timeout=2)


@pytest.fixture
def running_bridge(stub_store):
    bridge = make_bridge(stub_store)
    supervisor = BridgeSupervisor(bridge)
    supervisor.start()
    assert supervisor.wait_until_ready(5)
    bridge.url = f"http://127.0.0.1:{bridge.server_address[1]}/"
    yield bridge
    supervisor.stop(5)
