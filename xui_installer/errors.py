"""Exception taxonomy for the installer. Every error is fatal to the run."""


class SetupError(Exception):
    """Base exception for installer errors."""

    pass


class ConfigurationError(SetupError):
    """Raised when flags are missing or invalid."""

    pass


class PrivilegeError(SetupError):
    """Raised when the installer is not running as root."""

    pass


class PlatformError(SetupError):
    """Raised when required OS tooling is missing."""

    pass


class UnsupportedPlatformError(PlatformError):
    """Raised when the CPU architecture has no upstream release."""

    pass


class NetworkError(SetupError):
    """Raised when an upstream request fails."""

    pass


class NotFoundError(NetworkError):
    """Raised when upstream metadata lacks the expected value."""

    pass


class ExecutionError(SetupError):
    """Raised when a delegated command or file operation fails."""

    pass
