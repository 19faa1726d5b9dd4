"""Configuration defaults and config-file location."""

import os
import platform
from pathlib import Path

APP_NAME = "otter-order-printer-bridge"

# Bridge listener defaults
DEFAULT_HOST = "127.0.0.1"
BRIDGE_PORT = 3838

# Front-ends allowed to call the bridge from a browser
ALLOWED_ORIGINS = (
    "http://localhost:5174",  # local development
    "https://kitchen.otterorder.com",  # kitchen display
)
ALLOWED_METHODS = ("GET", "POST", "OPTIONS")
ALLOWED_HEADERS = ("Content-Type", "Authorization")

# Printer defaults
DEFAULT_PRINTER_IP = ""
DEFAULT_PRINTER_PORT = "9100"  # raw printing

# Network deadlines (seconds)
CONNECT_TIMEOUT = 10
WRITE_TIMEOUT = 10

# Preferences file
CONFIG_FILENAME = "config.json"
CONFIG_DIR_MODE = 0o700
CONFIG_FILE_MODE = 0o600


def user_config_dir() -> Path:
    """Return the per-OS base directory for user configuration."""
    system = platform.system()

    if system == "Windows":
        appdata = os.getenv("APPDATA")
        if appdata:
            return Path(appdata)
        return Path.home() / "AppData" / "Roaming"

    if system == "Darwin":
        return Path.home() / "Library" / "Application Support"

    xdg = os.getenv("XDG_CONFIG_HOME")
    if xdg:
        return Path(xdg)
    return Path.home() / ".config"


def default_config_path(app_name: str = APP_NAME) -> Path:
    """Return <user-config-dir>/<app-name>/config.json."""
    return user_config_dir() / app_name / CONFIG_FILENAME
