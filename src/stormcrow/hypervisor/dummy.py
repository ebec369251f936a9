"""Hypervisor implementation that only logs the operations that it would
perform. Useful for trying out the daemon on a machine without libvirt.
"""

from stormcrow.logger import log as base_log

from .base import Hypervisor, factory

__all__ = ("DryRunHypervisor",)

log = base_log.getChild("hypervisor.dry_run")


@factory.register("dry-run")
class DryRunHypervisor(Hypervisor):
    """Hypervisor that pretends that every operation succeeds."""

    async def attach(self, vm_name: str, markup: str) -> None:
        log.info(f"Would attach to {vm_name!r}:\n{markup}")

    async def detach(self, vm_name: str, markup: str) -> None:
        log.info(f"Would detach from {vm_name!r}:\n{markup}")
