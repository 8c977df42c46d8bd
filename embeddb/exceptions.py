"""
Exception taxonomy for embeddb.

Everything raised while provisioning, installing or starting the server is a
ProcessControlError, so callers can handle the whole family with one clause.
"""
from typing import Optional


class ConfigurationError(ValueError):
    """Raised when a Configuration is built from invalid values."""


class ProcessControlError(Exception):
    """Base class for every failure while controlling the embedded server."""


class ProvisioningError(ProcessControlError):
    """The base or data directory could not be deleted or created."""


class LaunchError(ProcessControlError):
    """The executable is missing, not executable, or the OS refused to spawn it."""


class InstallError(ProcessControlError):
    """The install command exited with a non-zero status."""

    def __init__(self, message: str, exit_code: Optional[int] = None):
        super().__init__(message)
        self.exit_code = exit_code


class ReadinessTimeoutError(ProcessControlError):
    """The expected console line did not appear before the deadline."""


class ProcessDiedError(ProcessControlError):
    """The process exited before printing the expected console line."""

    def __init__(self, message: str, exit_code: Optional[int] = None):
        super().__init__(message)
        self.exit_code = exit_code
