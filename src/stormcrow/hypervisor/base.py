"""Base class and interface specification for hypervisors that USB devices
can be attached to.
"""

from __future__ import annotations

from abc import ABCMeta, abstractmethod
from functools import partial
from trio import TooSlowError, fail_after
from typing import Any, Callable, Dict, Optional

from stormcrow.descriptors import encode
from stormcrow.errors import HypervisorError, StormcrowError
from stormcrow.logger import log as base_log
from stormcrow.model import Action, DoAttach, DoDetach

__all__ = ("Hypervisor", "HypervisorFactory", "create_hypervisor")

log = base_log.getChild("hypervisor")


class Hypervisor(metaclass=ABCMeta):
    """Interface specification for hypervisors that can attach USB devices to
    and detach USB devices from running virtual machines.

    Implementations raise HypervisorError_ from `attach()` and `detach()` when
    the operation fails. Callers normally go through `execute()`, which
    converts failures and timeouts into a boolean result.
    """

    timeout: Optional[float]
    """Maximum number of seconds that a single attach or detach operation may
    take; ``None`` means no limit.
    """

    def __init__(self, timeout: Optional[float] = 10.0):
        """Constructor.

        Parameters:
            timeout: maximum number of seconds that a single attach or detach
                operation may take
        """
        self.timeout = timeout

    async def __aenter__(self):
        await self.open()
        return self

    async def __aexit__(self, exc_type, exc_value, tb):
        await self.aclose()

    async def open(self) -> None:
        """Prepares the hypervisor for use. The default implementation does
        nothing.
        """
        pass

    async def aclose(self) -> None:
        """Releases the resources held by the hypervisor. The default
        implementation does nothing.
        """
        pass

    @abstractmethod
    async def attach(self, vm_name: str, markup: str) -> None:
        """Attaches the device described by the given markup to the running
        virtual machine with the given name.

        Raises:
            HypervisorError: if the device could not be attached
        """
        raise NotImplementedError

    @abstractmethod
    async def detach(self, vm_name: str, markup: str) -> None:
        """Detaches the device described by the given markup from the running
        virtual machine with the given name.

        Raises:
            HypervisorError: if the device could not be detached
        """
        raise NotImplementedError

    async def execute(self, action: Action) -> bool:
        """Carries out an attach or detach action returned by the device
        registry.

        Errors and timeouts are logged and reported as an unsuccessful
        execution; they are never propagated to the caller.

        Parameters:
            action: the action to execute

        Returns:
            whether the action was executed successfully. No-op actions are
            always successful.
        """
        if isinstance(action, DoAttach):
            markup = encode(action.key, action.bus_location)
            func, verb = partial(self.attach, action.vm_name, markup), "attach"
        elif isinstance(action, DoDetach):
            markup = encode(action.key, action.bus_location)
            func, verb = partial(self.detach, action.vm_name, markup), "detach"
        else:
            return True

        extra = {"id": str(action.key)}

        try:
            with fail_after(self.timeout if self.timeout is not None else float("inf")):
                await func()
        except TooSlowError:
            log.error(
                f"Failed to {verb} device, {action.vm_name!r} did not respond "
                f"in {self.timeout} seconds",
                extra={**extra, "semantics": "failure"},
            )
            return False
        except StormcrowError as ex:
            log.error(
                f"Failed to {verb} device on {action.vm_name!r}: {ex}",
                extra={**extra, "semantics": "failure"},
            )
            return False
        except Exception:
            log.exception(
                f"Unexpected error while trying to {verb} device on "
                f"{action.vm_name!r}",
                extra=extra,
            )
            return False

        preposition = "to" if verb == "attach" else "from"
        log.info(
            f"Device {verb}ed {preposition} {action.vm_name!r}",
            extra={**extra, "semantics": "success"},
        )
        return True


class HypervisorFactory:
    """Factory object that creates hypervisor instances from a simple dict
    representation like the one below::

        {"type": "libvirt", "uri": "qemu:///system", "timeout": 10}

    The ``type`` member is used to look up the hypervisor class registered in
    the factory; the remaining members are passed to it as keyword arguments.
    """

    _registry: Dict[str, Callable[..., Hypervisor]]

    def __init__(self):
        """Constructor."""
        self._registry = {}

    def create(self, specification: Dict[str, Any]) -> Hypervisor:
        """Creates a hypervisor object from its specification.

        Raises:
            HypervisorError: if the type of the hypervisor is not known
        """
        parameters = dict(specification)
        hypervisor_type = parameters.pop("type", "libvirt")
        func = self._registry.get(hypervisor_type)
        if func is None:
            raise HypervisorError(f"Unknown hypervisor type: {hypervisor_type!r}")
        return func(**parameters)

    def register(self, name: str, klass=None):
        """Registers the given class for this factory with the given name, or
        returns a decorator that will register an arbitrary class with the
        given name if no class is specified.
        """
        if klass is None:
            return partial(self.register, name)
        else:
            self._registry[name] = klass
            return klass


#: Default hypervisor factory
factory = HypervisorFactory()

create_hypervisor = factory.create
