"""Context object that holds the components shared by the parts of the
daemon.
"""

from dataclasses import dataclass

from .hypervisor import Hypervisor
from .registries import DeviceRegistry

__all__ = ("DaemonContext",)


@dataclass
class DaemonContext:
    """Components and settings shared by the control-plane handler, the event
    correlator and the shutdown coordinator. Constructed once at startup.
    """

    registry: DeviceRegistry
    """Registry of the devices that are passed through to virtual machines"""

    hypervisor: Hypervisor
    """The hypervisor that devices are attached to"""

    remove_requires_owner: bool = True
    """Whether a device can be unregistered only by naming the virtual machine
    it is registered to
    """

    @classmethod
    def create(cls, hypervisor: Hypervisor, **kwds) -> "DaemonContext":
        """Creates a new context with an empty device registry that uses the
        given hypervisor.
        """
        return cls(registry=DeviceRegistry(hypervisor), hypervisor=hypervisor, **kwds)
