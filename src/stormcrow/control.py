"""Handler of the commands that arrive on the control plane."""

from __future__ import annotations

from typing import Any, List, Tuple

from .context import DaemonContext
from .errors import ValidationError
from .logger import log as base_log
from .model import (
    AddCommand,
    Command,
    DeviceKey,
    ListCommand,
    QuitCommand,
    RemoveCommand,
)
from .registries import RegistrationInfo
from .shutdown import ShutdownCoordinator

__all__ = ("ControlPlaneHandler", "validate_device_arguments")

log = base_log.getChild("control")


def validate_device_arguments(vm: Any, vid: Any, pid: Any) -> Tuple[str, DeviceKey]:
    """Validates the arguments of an Add or Remove command.

    Parameters:
        vm: the name of the virtual machine
        vid: the vendor ID as a string of four hexadecimal digits
        pid: the product ID as a string of four hexadecimal digits

    Returns:
        the stripped name of the virtual machine and the device key

    Raises:
        ValidationError: if any of the arguments is malformed
    """
    if not isinstance(vm, str) or not vm.strip():
        raise ValidationError("VM name must be a non-empty string")

    try:
        key = DeviceKey.from_hex(vid, pid)
    except ValueError as ex:
        raise ValidationError(f"Invalid USB ID: {ex}") from ex

    return vm.strip(), key


class ControlPlaneHandler:
    """Object that validates the commands of the control plane and applies
    them to the device registry.
    """

    def __init__(self, context: DaemonContext, shutdown: ShutdownCoordinator):
        """Constructor.

        Parameters:
            context: the daemon context holding the device registry
            shutdown: the coordinator to notify when a Quit command arrives
        """
        self._context = context
        self._shutdown = shutdown

    async def handle(self, command: Command) -> Any:
        """Handles a single command from the control plane.

        Returns:
            the reply to send back to the caller

        Raises:
            ValidationError: if the command is malformed; the registry is not
                modified in this case
        """
        if isinstance(command, AddCommand):
            return await self.add(command.vm, command.vid, command.pid)
        elif isinstance(command, RemoveCommand):
            return await self.remove(command.vm, command.vid, command.pid)
        elif isinstance(command, ListCommand):
            return self.list()
        elif isinstance(command, QuitCommand):
            return self.quit()
        else:
            raise ValidationError(f"Unknown command: {command!r}")

    async def add(self, vm: str, vid: str, pid: str) -> str:
        """Registers a device for passthrough to the given virtual machine."""
        vm, key = validate_device_arguments(vm, vid, pid)
        log.info(
            f"Add request for {vm!r}", extra={"id": str(key), "semantics": "request"}
        )
        await self._context.registry.register(key, vm)
        return "OK"

    async def remove(self, vm: str, vid: str, pid: str) -> str:
        """Unregisters a device. Unregistering a device that is not registered
        is not an error.

        Raises:
            OwnershipError: if ownership checks are enabled and the device is
                registered to another virtual machine
        """
        vm, key = validate_device_arguments(vm, vid, pid)
        log.info(
            f"Remove request for {vm!r}", extra={"id": str(key), "semantics": "request"}
        )
        owner = vm if self._context.remove_requires_owner else None
        await self._context.registry.unregister(key, owner=owner)
        return "OK"

    def list(self) -> List[RegistrationInfo]:
        """Returns a snapshot of the current registrations."""
        return self._context.registry.snapshot()

    def quit(self) -> str:
        """Requests the daemon to shut down."""
        self._shutdown.request("Shutting down by request")
        return "BYE"
