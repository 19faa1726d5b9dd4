"""Application context shared by the shell and the bridge."""

from pathlib import Path
from typing import Optional, Union

from otter_bridge.config import APP_NAME, BRIDGE_PORT, DEFAULT_HOST
from otter_bridge.prefs import Preferences, SettingsStore
from otter_bridge.server import BridgeSupervisor, PrinterBridge


class App:
    """Owns the settings store and the bridge for the life of the process."""

    def __init__(self, store: SettingsStore, bridge: PrinterBridge):
        self.store = store
        self.bridge = bridge
        self.supervisor = BridgeSupervisor(bridge)

    @classmethod
    def create(
        cls,
        config_path: Optional[Union[str, Path]] = None,
        host: str = DEFAULT_HOST,
        port: int = BRIDGE_PORT,
    ) -> "App":
        store = SettingsStore(config_path, app_name=APP_NAME)
        return cls(store, PrinterBridge(store, host=host, port=port))

    def startup(self):
        """Start the bridge in the background."""
        print(f"Config file: {self.store.path}")
        self.supervisor.start()

    def shutdown(self, timeout: Optional[float] = None):
        self.supervisor.stop(timeout)

    def get_server_status(self) -> str:
        return self.supervisor.describe()

    def get_preferences(self) -> Preferences:
        return self.store.get_preferences()

    def save_preferences(self, prefs: Preferences):
        """Persist new preferences, then verify them with a test page.

        The preferences stay saved even when the test page fails; that
        failure is still raised to the caller.
        """
        self.store.update_preferences(prefs)
        self.bridge.print_test_page()
