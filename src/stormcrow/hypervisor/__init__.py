"""Hypervisors that USB devices can be attached to."""

from .base import Hypervisor, HypervisorFactory, create_hypervisor, factory
from .dummy import DryRunHypervisor

__all__ = (
    "DryRunHypervisor",
    "Hypervisor",
    "HypervisorFactory",
    "create_hypervisor",
    "factory",
)


@factory.register("libvirt")
def _create_libvirt_hypervisor(**kwds) -> Hypervisor:
    # libvirt bindings are imported lazily; they need the native library
    from .virt import LibvirtHypervisor

    return LibvirtHypervisor(**kwds)
