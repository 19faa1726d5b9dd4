"""Printer preferences and their on-disk store.

The store keeps a single JSON file, ``<user-config-dir>/<app-name>/config.json``::

    {
      "printer_ip": "192.168.1.87",
      "printer_port": "9100"
    }

Every write goes to a uniquely named temporary file in the same directory
which is then renamed over ``config.json``, so readers only ever see the
old or the new file, never a partial one.
"""

import itertools
import json
import os
import time
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Optional, Union

from otter_bridge.config import (
    APP_NAME,
    CONFIG_DIR_MODE,
    CONFIG_FILE_MODE,
    DEFAULT_PRINTER_IP,
    DEFAULT_PRINTER_PORT,
    default_config_path,
)
from otter_bridge.errors import ConfigStateError, StorageError

# Disambiguates temp files created within the same clock tick
_tmp_counter = itertools.count()


@dataclass(frozen=True)
class Preferences:
    """Printer connection settings. The port stays a string."""

    printer_ip: str = DEFAULT_PRINTER_IP
    printer_port: str = DEFAULT_PRINTER_PORT

    @property
    def usable(self) -> bool:
        """True when both IP and port are set."""
        return bool(self.printer_ip) and bool(self.printer_port)

    @property
    def address(self) -> str:
        return f"{self.printer_ip}:{self.printer_port}"

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data) -> "Preferences":
        """Build preferences from decoded JSON.

        Raises ValueError if ``data`` is not an object or a field is not a
        string. Missing fields take their default, unknown keys are ignored.
        """
        if not isinstance(data, dict):
            raise ValueError(f"expected a JSON object, got {type(data).__name__}")

        ip = data.get("printer_ip", DEFAULT_PRINTER_IP)
        port = data.get("printer_port", DEFAULT_PRINTER_PORT)
        for key, value in (("printer_ip", ip), ("printer_port", port)):
            if not isinstance(value, str):
                raise ValueError(f"{key} must be a string")

        return cls(printer_ip=ip, printer_port=port)


class SettingsStore:
    """Lazily loaded, immediately persisted printer preferences."""

    def __init__(self, path: Optional[Union[str, Path]] = None, app_name: str = APP_NAME):
        self.path = Path(path) if path else default_config_path(app_name)
        self._prefs = Preferences()
        self._loaded = False

    @property
    def loaded(self) -> bool:
        return self._loaded

    @property
    def directory(self) -> Path:
        return self.path.parent

    def load(self):
        """Read preferences from disk, creating the file with defaults if needed.

        A file that exists but does not hold valid preferences is replaced
        with defaults (see ``restore_defaults_on_corruption``).
        """
        try:
            self.directory.mkdir(mode=CONFIG_DIR_MODE, parents=True, exist_ok=True)
        except OSError as e:
            raise StorageError(f"ensure config dir {self.directory}: {e}") from e

        try:
            raw = self.path.read_bytes()
        except FileNotFoundError:
            raw = b""
        except OSError as e:
            raise StorageError(f"read prefs {self.path}: {e}") from e

        if not raw.strip():
            self._prefs = Preferences()
            self._loaded = True
            self.save()
            return

        try:
            self._prefs = Preferences.from_dict(json.loads(raw))
        except ValueError:
            # JSONDecodeError and UnicodeDecodeError are both ValueErrors
            self.restore_defaults_on_corruption()
            return

        self._loaded = True

    def restore_defaults_on_corruption(self):
        """Recover from an unreadable config file by writing defaults over it.

        Writing the defaults back is best-effort: the in-memory defaults are
        used even when the file cannot be rewritten.
        """
        print(f"  Config file {self.path} is malformed, restoring defaults")
        self._prefs = Preferences()
        self._loaded = True
        try:
            self.save()
        except StorageError as e:
            print(f"  Warning: could not rewrite {self.path}: {e}")

    def save(self):
        """Atomically write the in-memory preferences to disk."""
        if not self._loaded:
            raise ConfigStateError("prefs not loaded")

        payload = json.dumps(self._prefs.to_dict(), indent=2).encode("utf-8")
        tmp = self.path.with_name(
            f"{self.path.name}.tmp-{time.time_ns()}-{next(_tmp_counter)}"
        )

        try:
            fd = os.open(tmp, os.O_WRONLY | os.O_CREAT | os.O_EXCL, CONFIG_FILE_MODE)
            with os.fdopen(fd, "wb") as f:
                f.write(payload)
                f.flush()
                os.fsync(f.fileno())
        except OSError as e:
            _remove_quietly(tmp)
            raise StorageError(f"write temp prefs {tmp}: {e}") from e

        try:
            os.replace(tmp, self.path)
        except OSError as e:
            _remove_quietly(tmp)
            raise StorageError(f"rename prefs to {self.path}: {e}") from e

    def get_preferences(self) -> Preferences:
        """Return the current preferences, loading them on first use."""
        if not self._loaded:
            self.load()
        return self._prefs

    def update_preferences(self, prefs: Preferences):
        """Replace the preferences and persist them before returning."""
        if not self._loaded:
            self.load()
        self._prefs = prefs
        self.save()


def _remove_quietly(path: Path):
    """Remove a leftover temp file; the original error is what gets reported."""
    try:
        os.remove(path)
    except OSError:
        pass
