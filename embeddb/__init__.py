"""
embeddb: run a MariaDB server as an embedded, application-managed process.

This package unpacks a server distribution, installs a data directory, starts
the server, waits until it accepts connections and makes sure it is stopped
again when the host program exits.
"""

from .config import Configuration, ConfigurationBuilder
from .db import DBState, EmbeddedDB
from .exceptions import (
    ConfigurationError,
    InstallError,
    LaunchError,
    ProcessControlError,
    ProcessDiedError,
    ProvisioningError,
    ReadinessTimeoutError,
)

__all__ = [
    "Configuration", "ConfigurationBuilder", "DBState", "EmbeddedDB",
    "ConfigurationError", "InstallError", "LaunchError", "ProcessControlError",
    "ProcessDiedError", "ProvisioningError", "ReadinessTimeoutError",
]
