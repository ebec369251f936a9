"""Error classes specific to registries."""

from stormcrow.errors import StormcrowError

__all__ = ("RegistryError", "RegistryClosedError")


class RegistryError(StormcrowError):
    """Base class for all error classes related to registries."""

    pass


class RegistryClosedError(RegistryError):
    """Error thrown when a new device cannot be registered because the
    registry has been closed during shutdown.
    """

    pass
