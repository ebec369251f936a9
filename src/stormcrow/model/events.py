"""Events delivered by the device plane."""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from .devices import BusLocation, DeviceKey

__all__ = ("DeviceEvent", "DeviceEventKind")


class DeviceEventKind(Enum):
    """Kinds of events that the device plane may report."""

    PRESENT = "present"
    ABSENT = "absent"


@dataclass(frozen=True)
class DeviceEvent:
    """A single notification about a USB device appearing on or disappearing
    from the host.
    """

    key: DeviceKey
    kind: DeviceEventKind
    bus_location: Optional[BusLocation] = None

    @classmethod
    def present(cls, key: DeviceKey, bus_location: BusLocation) -> "DeviceEvent":
        return cls(key, DeviceEventKind.PRESENT, bus_location)

    @classmethod
    def absent(
        cls, key: DeviceKey, bus_location: Optional[BusLocation] = None
    ) -> "DeviceEvent":
        return cls(key, DeviceEventKind.ABSENT, bus_location)
