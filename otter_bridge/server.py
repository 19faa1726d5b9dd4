"""HTTP listener that forwards print submissions to the network printer."""

import base64
import binascii
import enum
import json
import threading
import time
import traceback
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Optional, Tuple
from urllib.parse import urlsplit

from otter_bridge.config import (
    ALLOWED_HEADERS,
    ALLOWED_METHODS,
    ALLOWED_ORIGINS,
    BRIDGE_PORT,
    CONNECT_TIMEOUT,
    DEFAULT_HOST,
    WRITE_TIMEOUT,
)
from otter_bridge.errors import (
    BridgeError,
    ConfigIncompleteError,
    PreferencesError,
    RequestFormatError,
    StorageError,
)
from otter_bridge.prefs import SettingsStore
from otter_bridge.printer import PrinterLocks, build_test_page, send_raw


def parse_submission(body: bytes) -> bytes:
    """Decode a ``{"data": "<base64>"}`` request body into printer bytes."""
    try:
        payload = json.loads(body)
    except ValueError as e:
        raise RequestFormatError(f"body is not JSON: {e}") from e

    if not isinstance(payload, dict):
        raise RequestFormatError("body must be a JSON object")

    data = payload.get("data")
    if data is None:
        return b""
    if not isinstance(data, str):
        raise RequestFormatError("data must be a base64 string")

    # Line breaks from wrapped base64 encoders are ignored
    data = data.replace("\r", "").replace("\n", "")
    try:
        return base64.b64decode(data, validate=True)
    except binascii.Error as e:
        raise RequestFormatError(f"data is not valid base64: {e}") from e


class PrinterBridgeHandler(BaseHTTPRequestHandler):
    """HTTP request handler for print submissions."""

    server_version = "OtterBridge/1.0"

    def send_cors_headers(self):
        """Grant cross-origin access to allow-listed front-ends only."""
        origin = self.headers.get("Origin")
        if origin not in ALLOWED_ORIGINS:
            return
        self.send_header("Access-Control-Allow-Origin", origin)
        self.send_header("Access-Control-Allow-Methods", ", ".join(ALLOWED_METHODS))
        self.send_header("Access-Control-Allow-Headers", ", ".join(ALLOWED_HEADERS))
        self.send_header("Vary", "Origin")

    def send_json(self, status: int, payload: dict):
        body = json.dumps(payload).encode("utf-8")
        self.send_response(status)
        self.send_cors_headers()
        self.send_header("Content-Type", "application/json; charset=utf-8")
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)

    def on_root(self) -> bool:
        return urlsplit(self.path).path == "/"

    def do_OPTIONS(self):
        """Handle CORS preflight request."""
        print(f"  OPTIONS request from {self.headers.get('Origin')}")
        self.send_response(204)
        self.send_cors_headers()
        self.send_header("Content-Length", "0")
        self.end_headers()

    def do_POST(self):
        """Handle POST / - print submissions."""
        if not self.on_root():
            self.send_json(404, {"error": "Not Found"})
            return

        try:
            try:
                content_length = int(self.headers.get("Content-Length", 0))
            except ValueError:
                content_length = 0
            body = self.rfile.read(content_length) if content_length > 0 else b""

            print(f"\n[REQUEST] Received {len(body)} bytes")
            print(f"  Origin: {self.headers.get('Origin')}")

            status, payload = self.server.bridge.handle_print(body)
        except Exception as e:
            print(f"  Error: {e}")
            traceback.print_exc()
            status, payload = 500, {"error": "Internal Server Error"}

        self.send_json(status, payload)

    def not_allowed(self):
        if self.on_root():
            self.send_json(405, {"error": "Method Not Allowed"})
        else:
            self.send_json(404, {"error": "Not Found"})

    do_GET = not_allowed
    do_PUT = not_allowed
    do_PATCH = not_allowed
    do_DELETE = not_allowed

    def log_message(self, format, *args):
        pass  # Suppress default logging


class BridgeHTTPServer(ThreadingHTTPServer):
    """Threaded HTTP server that waits for in-flight requests on close."""

    daemon_threads = False
    block_on_close = True

    def __init__(self, server_address, handler_class, bridge: "PrinterBridge"):
        self.bridge = bridge
        super().__init__(server_address, handler_class)


class PrinterBridge:
    """Accepts print submissions over HTTP and forwards them to the printer."""

    def __init__(
        self,
        store: SettingsStore,
        host: str = DEFAULT_HOST,
        port: int = BRIDGE_PORT,
        connect_timeout: float = CONNECT_TIMEOUT,
        write_timeout: float = WRITE_TIMEOUT,
    ):
        self.store = store
        self.host = host
        self.port = port
        self.connect_timeout = connect_timeout
        self.write_timeout = write_timeout
        self.locks = PrinterLocks()
        self._httpd: Optional[BridgeHTTPServer] = None
        self._serving = threading.Event()

    @property
    def serving(self) -> bool:
        return self._serving.is_set()

    @property
    def server_address(self) -> Tuple[str, int]:
        """Bound address while serving, configured address otherwise."""
        httpd = self._httpd
        if httpd is not None:
            host, port = httpd.server_address[:2]
            return host, port
        return self.host, self.port

    def wait_until_serving(self, timeout: Optional[float] = None) -> bool:
        return self._serving.wait(timeout)

    def start(self, stop_event: threading.Event):
        """Serve until ``stop_event`` is set. Bind errors propagate."""
        httpd = BridgeHTTPServer((self.host, self.port), PrinterBridgeHandler, self)
        self._httpd = httpd

        watcher = threading.Thread(
            target=self._shutdown_when_set,
            args=(httpd, stop_event),
            name="printer-bridge-shutdown",
            daemon=True,
        )
        watcher.start()

        host, port = self.server_address
        print(f"Starting server on {host}:{port}...")
        self._serving.set()

        try:
            httpd.serve_forever(poll_interval=0.2)
        finally:
            self._serving.clear()
            httpd.server_close()  # joins in-flight request threads
            self._httpd = None

        print("Printer server stopped")

    @staticmethod
    def _shutdown_when_set(httpd: BridgeHTTPServer, stop_event: threading.Event):
        stop_event.wait()
        print("Shutting down server...")
        httpd.shutdown()

    def handle_print(self, body: bytes) -> Tuple[int, dict]:
        """Turn a request body into an HTTP status and JSON payload."""
        try:
            data = parse_submission(body)
        except RequestFormatError as e:
            print(f"  Invalid request: {e}")
            return 400, {"error": "Invalid request format"}

        try:
            prefs = self.store.get_preferences()
        except StorageError as e:
            print(f"  Failed to get preferences: {e}")
            return 500, {"error": f"Failed to get preferences: {e}"}

        try:
            self.forward_to_printer(prefs.printer_ip, prefs.printer_port, data)
        except BridgeError as e:
            print(f"  Print failed: {e}")
            return 500, {"error": f"Failed to send data: {e}"}

        return 200, {"status": "Data sent successfully"}

    def forward_to_printer(self, ip: str, port: str, data: bytes):
        """Send one submission over its own connection."""
        if not ip or not port:
            raise ConfigIncompleteError("printer IP or port not set")

        with self.locks.for_address(f"{ip}:{port}"):
            send_raw(ip, port, data, self.connect_timeout, self.write_timeout)

    def print_test_page(self):
        """Print the self-test receipt to the configured printer."""
        print("Starting print test...")

        try:
            prefs = self.store.get_preferences()
        except StorageError as e:
            raise PreferencesError(f"failed to get preferences: {e}") from e

        if not prefs.usable:
            raise ConfigIncompleteError("printer IP or port not set")

        print(f"Connecting to printer at {prefs.address}")
        page = build_test_page(prefs.printer_ip, prefs.printer_port)

        with self.locks.for_address(prefs.address):
            send_raw(
                prefs.printer_ip,
                prefs.printer_port,
                page,
                self.connect_timeout,
                self.write_timeout,
            )

        print("Print job sent successfully!")


class BridgeState(enum.Enum):
    STOPPED = "stopped"
    STARTING = "starting"
    RUNNING = "running"
    FAILED = "failed"


class BridgeSupervisor:
    """Runs a PrinterBridge on a background thread and records how it ended."""

    def __init__(self, bridge: PrinterBridge):
        self.bridge = bridge
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._failure: Optional[Exception] = None

    @property
    def failure(self) -> Optional[Exception]:
        return self._failure

    @property
    def state(self) -> BridgeState:
        if self.bridge.serving:
            return BridgeState.RUNNING
        if self._failure is not None:
            return BridgeState.FAILED
        if self._thread is not None and self._thread.is_alive():
            return BridgeState.STARTING
        return BridgeState.STOPPED

    def start(self):
        """Start the bridge unless it is already running."""
        if self._thread is not None and self._thread.is_alive():
            return

        self._stop.clear()
        self._failure = None
        self._thread = threading.Thread(target=self._run, name="printer-bridge", daemon=True)
        self._thread.start()

    def _run(self):
        try:
            self.bridge.start(self._stop)
        except Exception as e:
            self._failure = e
            print(f"Printer server failed: {e}")

    def wait_until_ready(self, timeout: Optional[float] = None) -> bool:
        """Wait for the bridge to serve. False if it stopped or failed first."""
        deadline = None if timeout is None else time.monotonic() + timeout

        while not self.bridge.serving:
            if self._thread is None or not self._thread.is_alive():
                return False
            if deadline is not None and time.monotonic() >= deadline:
                return False
            self.bridge.wait_until_serving(0.05)

        return True

    def join(self, timeout: Optional[float] = None):
        if self._thread is not None:
            self._thread.join(timeout)

    def stop(self, timeout: Optional[float] = None):
        """Ask the bridge to shut down gracefully and wait for it."""
        self._stop.set()
        self.join(timeout)

    def describe(self) -> str:
        state = self.state
        if state is BridgeState.RUNNING:
            return f"Printer server is running on port {self.bridge.server_address[1]}"
        if state is BridgeState.FAILED:
            return f"Printer server failed: {self._failure}"
        if state is BridgeState.STARTING:
            return "Printer server is starting"
        return "Printer server is not running"
