"""Application object of the stormcrow daemon."""

from __future__ import annotations

from trio import open_memory_channel, open_nursery
from trio.abc import SendChannel
from typing import Optional, Protocol

from .configurator import AppConfigurator, Configuration
from .context import DaemonContext
from .control import ControlPlaneHandler
from .correlator import EventCorrelator
from .errors import StormcrowError
from .hypervisor import create_hypervisor
from .logger import log
from .model import AttachmentState, DeviceEvent
from .registries import RegistrationInfo
from .shutdown import ShutdownCoordinator
from .sources import UdevDeviceSource
from .transports import UnixControlServer

__all__ = ("StormcrowDaemon",)

PACKAGE_NAME = __name__.rpartition(".")[0]


class DeviceSource(Protocol):
    """Interface specification for device planes."""

    async def run(self, events: SendChannel[DeviceEvent]) -> None: ...


class ControlServer(Protocol):
    """Interface specification for control-plane transports."""

    async def run(self, handler: ControlPlaneHandler) -> None: ...


class StormcrowDaemon:
    """Main application object of the daemon.

    The daemon is assembled in `prepare()` from the loaded configuration and
    runs in `run()` until a Quit command or a termination signal arrives.
    """

    config: Configuration
    """The configuration of the daemon"""

    context: Optional[DaemonContext] = None
    """Components shared by the parts of the daemon"""

    control_handler: Optional[ControlPlaneHandler] = None
    control_server: Optional[ControlServer] = None
    correlator: Optional[EventCorrelator] = None
    device_source: Optional[DeviceSource] = None
    shutdown: Optional[ShutdownCoordinator] = None

    def __init__(
        self, app_name: str = "stormcrow", package_name: str = PACKAGE_NAME
    ):
        """Constructor.

        Parameters:
            app_name: name of the application; used to derive the name of
                the default configuration file and the environment variable
                that points to an extra configuration file
            package_name: name of the package holding the default
                configuration
        """
        self.app_name = app_name
        self.package_name = package_name
        self.config = {}
        self.debug = False

    def prepare(
        self, config: Optional[str] = None, debug: bool = False
    ) -> Optional[int]:
        """Hook function that contains preparation steps that should be
        performed by the daemon before it starts serving requests.

        Parameters:
            config: name of the configuration file to load
            debug: whether the daemon is started in debug mode

        Returns:
            error code to terminate the daemon with if the preparation was not
            successful; ``None`` if the preparation was successful
        """
        self.debug = bool(debug)

        if not self._load_configuration(config):
            return 1

        try:
            self._create_components()
        except (StormcrowError, TypeError) as ex:
            log.error(f"Invalid configuration: {ex}")
            return 1

    async def run(self) -> None:
        """Runs the daemon until a shutdown is requested, then releases every
        device that is registered.
        """
        assert self.context is not None
        assert self.shutdown is not None

        queue_size = int(self.config.get("EVENT_QUEUE_SIZE", 256))
        sender, receiver = open_memory_channel(queue_size)

        async with self.context.hypervisor:
            # Hypervisor calls run in the worker nursery so they can be
            # committed after the intake has been stopped
            async with open_nursery() as workers:
                async with open_nursery() as intake:
                    intake.start_soon(self._run_device_source, sender)
                    intake.start_soon(self.correlator.run, receiver, workers)
                    intake.start_soon(self.control_server.run, self.control_handler)
                    intake.start_soon(self.shutdown.watch_signals)

                    await self.shutdown.wait_until_requested()
                    intake.cancel_scope.cancel()

                await self.shutdown.run()

    def _create_components(self) -> None:
        """Creates the components of the daemon from the loaded
        configuration.
        """
        hypervisor = create_hypervisor(self.config.get("HYPERVISOR") or {})

        self.context = DaemonContext.create(
            hypervisor,
            remove_requires_owner=bool(
                self.config.get("REMOVE_REQUIRES_OWNER", True)
            ),
        )
        self.shutdown = ShutdownCoordinator(self.context)
        self.correlator = EventCorrelator(self.context)
        self.control_handler = ControlPlaneHandler(self.context, self.shutdown)

        if self.device_source is None:
            devices = self.config.get("DEVICES") or {}
            self.device_source = UdevDeviceSource(**devices)

        if self.control_server is None:
            control = dict(self.config.get("CONTROL") or {})
            path = control.pop("socket", None)
            if not path:
                raise StormcrowError("No control socket specified")
            self.control_server = UnixControlServer(path, **control)

        registry = self.context.registry
        registry.added.connect(self._on_device_added, sender=registry)
        registry.removed.connect(self._on_device_removed, sender=registry)
        registry.state_changed.connect(self._on_device_state_changed, sender=registry)

    async def _run_device_source(self, events: SendChannel[DeviceEvent]) -> None:
        try:
            await self.device_source.run(events)
        except Exception:
            log.exception("Device plane stopped unexpectedly, shutting down")
            self.shutdown.request("Device plane failed")

    def _load_configuration(self, config: Optional[str] = None) -> bool:
        """Loads the configuration of the daemon from the default package
        configuration, the given file and the file named by the
        ``STORMCROW_SETTINGS`` environment variable.

        Returns:
            whether all configuration files were processed successfully
        """
        configurator = AppConfigurator(
            self.app_name, package_name=self.package_name, log=log
        )
        return configurator.configure(self.config, config)

    def _on_device_added(self, sender, *, info: RegistrationInfo) -> None:
        log.info(f"Registered to {info.vm_name!r}", extra={"id": str(info.key)})

    def _on_device_removed(self, sender, *, info: RegistrationInfo) -> None:
        log.info(f"Unregistered from {info.vm_name!r}", extra={"id": str(info.key)})

    def _on_device_state_changed(
        self,
        sender,
        *,
        info: RegistrationInfo,
        old_state: AttachmentState,
        new_state: AttachmentState,
    ) -> None:
        log.debug(
            f"{old_state.value} --> {new_state.value} ({info.vm_name!r})",
            extra={"id": str(info.key)},
        )
