"""Exceptions raised by the printer bridge."""


class BridgeError(Exception):
    """Base class for printer bridge errors."""

    pass


class StorageError(BridgeError):
    """The preferences file or its directory could not be accessed."""

    pass


class ConfigStateError(BridgeError):
    """Preferences were saved before they were ever loaded."""

    pass


class ConfigIncompleteError(BridgeError):
    """Printer IP or port is not set."""

    pass


class PreferencesError(BridgeError):
    """Preferences could not be read for a print."""

    pass


class ConnectError(BridgeError):
    """TCP connection to the printer failed or timed out."""

    pass


class WriteError(BridgeError):
    """Sending bytes to the printer failed or missed the write deadline."""

    pass


class RequestFormatError(BridgeError):
    """HTTP request body is not a valid print submission."""

    pass
