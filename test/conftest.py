from pytest import fixture
from pytest_trio.enable_trio_mode import *  # noqa: F401,F403
from trio import Event, sleep
from typing import List, Optional, Set, Tuple

from stormcrow.context import DaemonContext
from stormcrow.control import ControlPlaneHandler
from stormcrow.correlator import EventCorrelator
from stormcrow.errors import HypervisorError
from stormcrow.hypervisor import Hypervisor
from stormcrow.shutdown import ShutdownCoordinator


class RecordingHypervisor(Hypervisor):
    """Hypervisor that records the calls made to it instead of talking to a
    real virtual machine manager.
    """

    calls: List[Tuple[str, str, str]]
    failures: Set[str]
    delay: float
    gate: Optional[Event]

    def __init__(self, timeout: Optional[float] = 10.0):
        super().__init__(timeout=timeout)
        self.calls = []
        self.failures = set()
        self.delay = 0
        self.gate = None

    async def attach(self, vm_name: str, markup: str) -> None:
        await self._call("attach", vm_name, markup)

    async def detach(self, vm_name: str, markup: str) -> None:
        await self._call("detach", vm_name, markup)

    @property
    def attached_to(self) -> List[str]:
        return [vm for op, vm, _ in self.calls if op == "attach"]

    @property
    def detached_from(self) -> List[str]:
        return [vm for op, vm, _ in self.calls if op == "detach"]

    async def _call(self, operation: str, vm_name: str, markup: str) -> None:
        self.calls.append((operation, vm_name, markup))
        if self.gate is not None:
            await self.gate.wait()
        if self.delay:
            await sleep(self.delay)
        if operation in self.failures:
            raise HypervisorError(f"Simulated {operation} failure")


@fixture
def hypervisor() -> RecordingHypervisor:
    return RecordingHypervisor()


@fixture
def context(hypervisor) -> DaemonContext:
    return DaemonContext.create(hypervisor)


@fixture
def registry(context):
    return context.registry


@fixture
def correlator(context) -> EventCorrelator:
    return EventCorrelator(context)


@fixture
def shutdown(context) -> ShutdownCoordinator:
    return ShutdownCoordinator(context)


@fixture
def handler(context, shutdown) -> ControlPlaneHandler:
    return ControlPlaneHandler(context, shutdown)
