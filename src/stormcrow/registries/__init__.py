"""Package that holds the registries of the daemon.

Registries are the single source of truth about the objects that they track;
other components query them through snapshots and mutate them through atomic
operations only.
"""

from .devices import DeviceRegistry, DeviceRegistryEntry, RegistrationInfo
from .errors import RegistryClosedError, RegistryError

__all__ = (
    "DeviceRegistry",
    "DeviceRegistryEntry",
    "RegistrationInfo",
    "RegistryClosedError",
    "RegistryError",
)
