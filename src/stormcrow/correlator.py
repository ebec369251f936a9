"""Event correlator that turns device-plane events into attach and detach
operations on the hypervisor.
"""

from __future__ import annotations

from trio import Nursery
from trio.abc import ReceiveChannel

from .context import DaemonContext
from .logger import log as base_log
from .model import Action, DeviceEvent, DeviceEventKind, DoAttach, DoDetach, NO_OP

__all__ = ("EventCorrelator",)

log = base_log.getChild("correlator")


class EventCorrelator:
    """Object that consumes device-plane events, asks the device registry
    what to do with them and carries out the resulting actions.

    Decisions are made synchronously, in the order in which the events
    arrive. Actions are executed outside the registry lock; actions for
    different devices may be in flight at the same time.
    """

    def __init__(self, context: DaemonContext):
        """Constructor.

        Parameters:
            context: the daemon context holding the registry and the hypervisor
        """
        self._context = context

    def decide(self, event: DeviceEvent) -> Action:
        """Asks the registry what to do in response to the given event.
        Events for unregistered devices and duplicate events yield a no-op.
        """
        registry = self._context.registry
        if event.kind is DeviceEventKind.PRESENT:
            if event.bus_location is None:
                log.warning(
                    "Ignoring device event without bus location",
                    extra={"id": str(event.key)},
                )
                return NO_OP
            return registry.on_device_present(event.key, event.bus_location)
        else:
            return registry.on_device_absent(event.key)

    async def carry_out(self, action: Action) -> None:
        """Executes the given action with the hypervisor and commits its
        outcome to the registry. Follow-up actions returned by the registry
        are executed the same way until there is nothing left to do.

        Hypervisor errors never propagate out of this function.
        """
        registry = self._context.registry
        hypervisor = self._context.hypervisor

        while action:
            success = await hypervisor.execute(action)
            if isinstance(action, DoAttach):
                action = registry.commit_attach_result(action.key, success)
            elif isinstance(action, DoDetach):
                action = registry.commit_detach_result(action.key, success)
            else:
                action = NO_OP

    async def handle(self, event: DeviceEvent) -> None:
        """Handles a single device-plane event and waits until the resulting
        hypervisor calls have been committed.
        """
        await self.carry_out(self.decide(event))

    async def run(self, events: ReceiveChannel[DeviceEvent], nursery: Nursery) -> None:
        """Consumes device-plane events from the given channel until it is
        closed.

        Parameters:
            events: the channel that yields device-plane events
            nursery: nursery in which hypervisor calls are executed; it should
                outlive this task so calls in flight can be committed even if
                the intake of events is stopped
        """
        async with events:
            async for event in events:
                location = event.bus_location or "unknown location"
                log.debug(
                    f"Device {event.kind.value} at {location}",
                    extra={"id": str(event.key)},
                )
                action = self.decide(event)
                if action:
                    nursery.start_soon(self.carry_out, action)
