"""Actions returned by the device registry when it decides how to react to an
event. Actions are executed by the caller, outside the registry lock.
"""

from dataclasses import dataclass
from typing import Optional, Union

from .devices import BusLocation, DeviceKey

__all__ = ("Action", "DoAttach", "DoDetach", "NoOp", "NO_OP")


@dataclass(frozen=True)
class NoOp:
    """Action that tells the caller that there is nothing to do."""

    def __bool__(self) -> bool:
        return False


@dataclass(frozen=True)
class DoAttach:
    """Action that tells the caller to attach the device with the given key
    at the given bus location to the given virtual machine.
    """

    vm_name: str
    key: DeviceKey
    bus_location: BusLocation


@dataclass(frozen=True)
class DoDetach:
    """Action that tells the caller to detach the device with the given key
    from the given virtual machine.
    """

    vm_name: str
    key: DeviceKey
    bus_location: Optional[BusLocation] = None


Action = Union[NoOp, DoAttach, DoDetach]

#: Shared instance of the no-op action
NO_OP = NoOp()
