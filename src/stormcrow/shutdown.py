"""Coordinator object that shuts down the daemon gracefully."""

from __future__ import annotations

from signal import SIGINT, SIGTERM
from trio import Event, open_signal_receiver

from .context import DaemonContext
from .logger import log as base_log

__all__ = ("ShutdownCoordinator",)

log = base_log.getChild("shutdown")


class ShutdownCoordinator:
    """Object that propagates a shutdown request to the parts of the daemon.

    A shutdown proceeds in two phases. First, someone calls `request()`; the
    daemon then stops the intake of control-plane commands and device-plane
    events. Second, the daemon calls `run()`, which closes the registry, waits
    for the hypervisor calls in flight to be committed and detaches every
    device that is still attached. A shutdown cannot be cancelled once it was
    requested.
    """

    _context: DaemonContext
    _finished: Event
    _requested: Event

    def __init__(self, context: DaemonContext):
        """Constructor.

        Parameters:
            context: the daemon context holding the registry to tear down
        """
        self._context = context
        self._finished = Event()
        self._requested = Event()

    @property
    def finished(self) -> bool:
        """Whether the shutdown sequence has completed."""
        return self._finished.is_set()

    @property
    def requested(self) -> bool:
        """Whether a shutdown has been requested."""
        return self._requested.is_set()

    def request(self, reason: str = "Shutdown requested") -> None:
        """Requests the daemon to shut down. Repeated requests are ignored."""
        if not self._requested.is_set():
            log.info(reason)
            self._requested.set()

    async def wait_until_requested(self) -> None:
        """Waits until someone requests the daemon to shut down."""
        await self._requested.wait()

    async def run(self) -> None:
        """Executes the shutdown sequence: closes the registry and detaches
        every device that is still attached to a virtual machine.

        Each detach is bounded by the timeout of the hypervisor; failed
        detaches are logged and skipped.
        """
        self.request()

        registry = self._context.registry
        registry.close()

        num_entries = len(registry)
        if num_entries:
            log.info(f"Releasing {num_entries} registered device(s)...")

        await registry.clear()

        self._finished.set()
        log.info("All devices released")

    async def watch_signals(self) -> None:
        """Task that requests a shutdown when the process receives SIGINT or
        SIGTERM.
        """
        with open_signal_receiver(SIGINT, SIGTERM) as signals:
            async for signum in signals:
                name = "SIGINT" if signum == SIGINT else "SIGTERM"
                self.request(f"Received {name}, shutting down")
