"""A registry that maps USB devices to the virtual machines that they should
be attached to, and keeps track of the attachment state of each device.
"""

from __future__ import annotations

from blinker import Signal
from dataclasses import dataclass
from trio import CancelScope, Event, open_nursery
from typing import Any, Dict, List, Optional, TYPE_CHECKING

from stormcrow.errors import OwnershipError
from stormcrow.logger import log as base_log
from stormcrow.model import (
    Action,
    AttachmentState,
    BusLocation,
    DeviceKey,
    DoAttach,
    DoDetach,
    NO_OP,
)

from .errors import RegistryClosedError

if TYPE_CHECKING:
    from stormcrow.hypervisor import Hypervisor

__all__ = ("DeviceRegistry", "DeviceRegistryEntry", "RegistrationInfo")

log = base_log.getChild("registries.devices")


@dataclass(frozen=True)
class RegistrationInfo:
    """Immutable snapshot of a single entry in the device registry."""

    key: DeviceKey
    vm_name: str
    state: AttachmentState
    bus_location: Optional[BusLocation] = None

    @property
    def json(self) -> Dict[str, Any]:
        """Returns the JSON representation of the snapshot."""
        return {
            "vid": self.key.vendor_hex,
            "pid": self.key.product_hex,
            "vm": self.vm_name,
            "state": self.state.value,
            "location": str(self.bus_location) if self.bus_location else None,
        }


class DeviceRegistryEntry:
    """A single entry in the device registry.

    Entries are owned by the registry; they are never handed out to other
    components. Use `DeviceRegistry.snapshot()` to inspect them.
    """

    key: DeviceKey
    vm_name: str
    state: AttachmentState
    bus_location: Optional[BusLocation]

    teardown_pending: int
    """Number of registration changes waiting for the call in flight to be
    committed; no follow-up actions are issued while this is positive
    """

    _settled: Optional[Event]

    def __init__(
        self,
        key: DeviceKey,
        vm_name: str,
        bus_location: Optional[BusLocation] = None,
    ):
        self.key = key
        self.vm_name = vm_name
        self.state = AttachmentState.DETACHED
        self.bus_location = bus_location
        self.teardown_pending = 0
        self._settled = None

    @property
    def info(self) -> RegistrationInfo:
        return RegistrationInfo(self.key, self.vm_name, self.state, self.bus_location)

    @property
    def settled(self) -> Event:
        """Event that is set when the hypervisor call that is currently in
        flight for this entry has been committed.
        """
        if self._settled is None:
            self._settled = Event()
            if not self.state.in_flight:
                self._settled.set()
        return self._settled


class DeviceRegistry:
    """Registry that maps USB device keys to the names of the virtual machines
    that the devices should be attached to.

    The registry is the single source of truth about the attachment state of
    each device. It never exposes its entries directly. The registry is used
    from the Trio thread only, and none of its read-modify-write sequences
    contains a checkpoint, so each of them is atomic with respect to other
    tasks. Operations that react to device events only *decide* what should
    happen and return an action; the caller is responsible for executing the
    action with the hypervisor and for committing the outcome with
    `commit_attach_result()` or `commit_detach_result()`.

    The transitional ``ATTACHING`` and ``DETACHING`` states guarantee that at
    most one hypervisor call is in flight for a given device.
    """

    added = Signal(
        doc="""\
        Signal sent whenever a device is registered, including when an earlier
        registration of the same device is replaced.

        Parameters:
            info (RegistrationInfo): snapshot of the entry that was added
        """
    )
    removed = Signal(
        doc="""\
        Signal sent whenever a device was removed from the registry.

        Parameters:
            info (RegistrationInfo): snapshot of the entry that was removed
        """
    )
    state_changed = Signal(
        doc="""\
        Signal sent whenever the attachment state of a device changes.

        Parameters:
            info (RegistrationInfo): snapshot of the entry after the change
            old_state (AttachmentState): the old state
            new_state (AttachmentState): the new state
        """
    )

    _closed: bool
    _entries: Dict[DeviceKey, DeviceRegistryEntry]
    _hypervisor: "Hypervisor"

    def __init__(self, hypervisor: "Hypervisor"):
        """Constructor.

        Parameters:
            hypervisor: the hypervisor to use when a registration change
                requires a device to be detached from its old virtual machine
        """
        self._closed = False
        self._entries = {}
        self._hypervisor = hypervisor

    def __contains__(self, key: DeviceKey) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def closed(self) -> bool:
        """Whether the registry has been closed."""
        return self._closed

    def close(self) -> None:
        """Closes the registry. New registrations are rejected and device
        events are ignored from now on. Entries that are already in the
        registry can still be unregistered.
        """
        self._closed = True

    def snapshot(self) -> List[RegistrationInfo]:
        """Returns a snapshot of all the entries in the registry, sorted by
        device key.
        """
        return [
            self._entries[key].info
            for key in sorted(self._entries, key=lambda k: (k.vendor_id, k.product_id))
        ]

    def state_of(self, key: DeviceKey) -> Optional[AttachmentState]:
        """Returns the attachment state of the device with the given key, or
        ``None`` if the device is not registered.
        """
        entry = self._entries.get(key)
        return entry.state if entry else None

    async def register(self, key: DeviceKey, vm_name: str) -> None:
        """Registers the device with the given key to the virtual machine with
        the given name, replacing any earlier registration of the same device.

        When the device is attached to the virtual machine of the earlier
        registration, it is detached first. Failures of the detach operation
        are logged but not propagated. When a hypervisor call is in flight for
        the device, the call is allowed to finish first.

        The new registration always starts in the ``DETACHED`` state.

        Raises:
            RegistryClosedError: if the registry has been closed
        """
        action = await self._begin_teardown(key, check_closed=True)
        if action is not None:
            await self._detach_shielded(action)

        old_entry = self._entries.get(key)
        if old_entry is not None and old_entry.state is AttachmentState.DETACHING:
            self._set_state(old_entry, AttachmentState.DETACHED)

        entry = DeviceRegistryEntry(
            key, vm_name, old_entry.bus_location if old_entry else None
        )
        self._entries[key] = entry

        self.added.send(self, info=entry.info)

    async def unregister(self, key: DeviceKey, owner: Optional[str] = None) -> bool:
        """Removes the registration of the device with the given key.

        When the device is attached, it is detached first. Failures of the
        detach operation are logged but not propagated. This function is a
        no-op if the device is not registered.

        Parameters:
            key: the key of the device to unregister
            owner: when not ``None``, the registration is removed only if it
                belongs to the virtual machine with this name

        Returns:
            whether a registration was removed

        Raises:
            OwnershipError: if ``owner`` is given and the device is registered
                to another virtual machine
        """
        action = await self._begin_teardown(key, owner=owner)
        if action is not None:
            await self._detach_shielded(action)

        entry = self._entries.get(key)
        if entry is None:
            return False

        if entry.state is AttachmentState.DETACHING:
            self._set_state(entry, AttachmentState.DETACHED)

        del self._entries[key]
        self.removed.send(self, info=entry.info)
        return True

    async def clear(self) -> None:
        """Unregisters all the devices, detaching the ones that are attached.
        Devices are torn down concurrently.
        """
        keys = list(self._entries)
        async with open_nursery() as nursery:
            for key in keys:
                nursery.start_soon(self.unregister, key)

    def on_device_present(self, key: DeviceKey, bus_location: BusLocation) -> Action:
        """Decides what to do when the device with the given key appears on
        the bus.

        Returns:
            an attach action if the device is registered and detached, a
            no-op otherwise
        """
        entry = self._entries.get(key)
        if self._closed or entry is None:
            return NO_OP

        if entry.state is AttachmentState.DETACHED:
            entry.bus_location = bus_location
            self._set_state(entry, AttachmentState.ATTACHING)
            return DoAttach(entry.vm_name, key, bus_location)

        if entry.state.in_flight:
            # Acted upon when the call in flight is committed
            entry.bus_location = bus_location

        return NO_OP

    def on_device_absent(self, key: DeviceKey) -> Action:
        """Decides what to do when the device with the given key disappears
        from the bus.

        Returns:
            a detach action if the device is registered and attached, a no-op
            otherwise
        """
        entry = self._entries.get(key)
        if self._closed or entry is None:
            return NO_OP

        bus_location, entry.bus_location = entry.bus_location, None

        if entry.state is AttachmentState.ATTACHED:
            self._set_state(entry, AttachmentState.DETACHING)
            return DoDetach(entry.vm_name, key, bus_location)

        return NO_OP

    def commit_attach_result(self, key: DeviceKey, success: bool) -> Action:
        """Records the outcome of an attach action returned earlier by
        `on_device_present()`.

        A failed attach leaves the device detached so the next appearance of
        the device triggers a new attempt.

        Returns:
            a detach action if the attach succeeded but the device disappeared
            while the attach was in flight, a no-op otherwise
        """
        entry = self._get_entry_in_state(key, AttachmentState.ATTACHING)
        if entry is None:
            return NO_OP

        if not success:
            self._set_state(entry, AttachmentState.DETACHED)
            return NO_OP

        self._set_state(entry, AttachmentState.ATTACHED)

        if entry.bus_location is None and self._may_follow_up(entry):
            self._set_state(entry, AttachmentState.DETACHING)
            return DoDetach(entry.vm_name, key)

        return NO_OP

    def commit_detach_result(self, key: DeviceKey, success: bool) -> Action:
        """Records the outcome of a detach action returned earlier by
        `on_device_absent()` or `commit_attach_result()`.

        The device is considered detached even if the detach failed; the
        physical device is gone so there is nothing else to do with it.

        Returns:
            an attach action if the device re-appeared while the detach was
            in flight, a no-op otherwise
        """
        entry = self._get_entry_in_state(key, AttachmentState.DETACHING)
        if entry is None:
            return NO_OP

        if not success:
            log.warning(
                "Detach failed, assuming device is gone",
                extra={"id": str(key)},
            )

        self._set_state(entry, AttachmentState.DETACHED)

        if entry.bus_location is not None and self._may_follow_up(entry):
            self._set_state(entry, AttachmentState.ATTACHING)
            return DoAttach(entry.vm_name, key, entry.bus_location)

        return NO_OP

    async def _begin_teardown(
        self, key: DeviceKey, *, owner: Optional[str] = None, check_closed: bool = False
    ) -> Optional[DoDetach]:
        """Waits until no hypervisor call is in flight for the device with the
        given key, then moves the device into the ``DETACHING`` state if it
        is attached.

        Returns:
            the detach action that the caller must execute before committing
            the teardown, or ``None`` if the device is not attached
        """
        while True:
            if check_closed and self._closed:
                raise RegistryClosedError("Registry is closed")

            entry = self._entries.get(key)
            if entry is None:
                return None

            if owner is not None and entry.vm_name != owner:
                raise OwnershipError(
                    f"Device {key} is registered to another virtual machine"
                )

            if entry.state is AttachmentState.ATTACHED:
                self._set_state(entry, AttachmentState.DETACHING)
                return DoDetach(entry.vm_name, key, entry.bus_location)

            if not entry.state.in_flight:
                return None

            entry.teardown_pending += 1
            try:
                await entry.settled.wait()
            finally:
                entry.teardown_pending -= 1

    async def _detach_shielded(self, action: DoDetach) -> None:
        """Executes a detach action started by `_begin_teardown()`. The call is
        shielded from cancellation; the entry would be stuck in the
        ``DETACHING`` state otherwise.
        """
        with CancelScope(shield=True):
            await self._hypervisor.execute(action)

    def _get_entry_in_state(
        self, key: DeviceKey, state: AttachmentState
    ) -> Optional[DeviceRegistryEntry]:
        entry = self._entries.get(key)
        if entry is None or entry.state is not state:
            log.warning(
                f"Ignoring commit, device is not in {state.value} state",
                extra={"id": str(key)},
            )
            return None
        return entry

    def _may_follow_up(self, entry: DeviceRegistryEntry) -> bool:
        """Returns whether a commit may issue a follow-up action for the given
        entry. Registration changes waiting for the entry take precedence.
        """
        return not self._closed and entry.teardown_pending == 0

    def _set_state(
        self, entry: DeviceRegistryEntry, new_state: AttachmentState
    ) -> bool:
        """Moves the given entry into a new state if the state machine permits
        the transition.

        Returns:
            whether the transition took place
        """
        old_state = entry.state
        if not old_state.can_transition_to(new_state):
            log.warning(
                f"Ignoring illegal transition {old_state.value} --> {new_state.value}",
                extra={"id": str(entry.key)},
            )
            return False

        entry.state = new_state

        if new_state.in_flight:
            entry._settled = Event()
        elif entry._settled is not None:
            entry._settled.set()
            entry._settled = None

        self.state_changed.send(
            self, info=entry.info, old_state=old_state, new_state=new_state
        )
        return True
