"""Hypervisor implementation that talks to libvirt."""

from __future__ import annotations

import libvirt

from trio import CapacityLimiter, to_thread
from typing import Optional

from stormcrow.errors import HypervisorError
from stormcrow.logger import log as base_log

from .base import Hypervisor

__all__ = ("LibvirtHypervisor",)

log = base_log.getChild("hypervisor.libvirt")


class LibvirtHypervisor(Hypervisor):
    """Hypervisor that attaches USB devices to running libvirt domains.

    libvirt calls are blocking so they are executed in worker threads. A
    worker thread that does not finish within the timeout of the hypervisor
    is abandoned; the operation is then reported as failed.
    """

    uri: str
    """URI of the libvirt daemon to connect to"""

    _conn: Optional["libvirt.virConnect"]
    _limiter: CapacityLimiter

    def __init__(
        self,
        uri: str = "qemu:///system",
        timeout: Optional[float] = 10.0,
        max_workers: int = 4,
    ):
        """Constructor.

        Parameters:
            uri: URI of the libvirt daemon to connect to
            timeout: maximum number of seconds that a single attach or detach
                operation may take
            max_workers: maximum number of libvirt calls that may be in
                progress at the same time
        """
        super().__init__(timeout=timeout)
        self.uri = uri
        self._conn = None
        self._limiter = CapacityLimiter(max_workers)

    async def open(self) -> None:
        log.info(f"Connecting to hypervisor at {self.uri!r}...")
        await self._run(self._get_connection)

    async def aclose(self) -> None:
        conn, self._conn = self._conn, None
        if conn is None:
            return

        try:
            await to_thread.run_sync(conn.close)
        except libvirt.libvirtError as ex:
            log.warning(f"Failed to disconnect from hypervisor: {ex}")
        else:
            log.info("Disconnected from hypervisor")

    async def attach(self, vm_name: str, markup: str) -> None:
        await self._run(self._attach_sync, vm_name, markup)

    async def detach(self, vm_name: str, markup: str) -> None:
        await self._run(self._detach_sync, vm_name, markup)

    async def _run(self, func, *args):
        return await to_thread.run_sync(
            func, *args, abandon_on_cancel=True, limiter=self._limiter
        )

    def _attach_sync(self, vm_name: str, markup: str) -> None:
        domain = self._lookup_domain(vm_name)
        try:
            domain.attachDeviceFlags(markup, libvirt.VIR_DOMAIN_AFFECT_LIVE)
        except libvirt.libvirtError as ex:
            raise HypervisorError(str(ex)) from ex

    def _detach_sync(self, vm_name: str, markup: str) -> None:
        domain = self._lookup_domain(vm_name)
        try:
            domain.detachDeviceFlags(markup, libvirt.VIR_DOMAIN_AFFECT_LIVE)
        except libvirt.libvirtError as ex:
            raise HypervisorError(str(ex)) from ex

    def _get_connection(self) -> "libvirt.virConnect":
        """Returns the libvirt connection of the hypervisor, opening it if
        needed. Called from worker threads only.
        """
        if self._conn is None:
            try:
                self._conn = libvirt.open(self.uri)
            except libvirt.libvirtError as ex:
                raise HypervisorError(
                    f"No connection to hypervisor at {self.uri!r}: {ex}"
                ) from ex
        return self._conn

    def _lookup_domain(self, vm_name: str) -> "libvirt.virDomain":
        conn = self._get_connection()
        try:
            return conn.lookupByName(vm_name)
        except libvirt.libvirtError as ex:
            raise HypervisorError(f"No such virtual machine: {vm_name!r}") from ex
