from pytest import raises

from stormcrow.context import DaemonContext
from stormcrow.control import ControlPlaneHandler, validate_device_arguments
from stormcrow.errors import OwnershipError, ValidationError
from stormcrow.model import (
    AddCommand,
    AttachmentState,
    BusLocation,
    DeviceKey,
    ListCommand,
    QuitCommand,
    RemoveCommand,
)
from stormcrow.shutdown import ShutdownCoordinator

KEY = DeviceKey(0x1234, 0x5678)


def test_validate_device_arguments():
    assert validate_device_arguments(" vmA ", "1234", "0x5678") == ("vmA", KEY)

    for vm, vid, pid in (
        ("", "1234", "5678"),
        ("   ", "1234", "5678"),
        (None, "1234", "5678"),
        ("vmA", "123", "5678"),
        ("vmA", "1234", "56789"),
        ("vmA", "12g4", "5678"),
        ("vmA", 0x1234, "5678"),
    ):
        with raises(ValidationError):
            validate_device_arguments(vm, vid, pid)


async def test_add(handler, registry):
    assert await handler.handle(AddCommand("vmA", "1234", "5678")) == "OK"
    assert registry.snapshot()[0].vm_name == "vmA"


async def test_invalid_add_leaves_registry_intact(handler, registry):
    with raises(ValidationError):
        await handler.handle(AddCommand("vmA", "xyz", "5678"))
    assert len(registry) == 0


async def test_remove(handler, registry):
    await handler.add("vmA", "1234", "5678")
    assert await handler.handle(RemoveCommand("vmA", "1234", "5678")) == "OK"
    assert len(registry) == 0


async def test_remove_unknown_device(handler, registry, hypervisor):
    assert await handler.handle(RemoveCommand("vmA", "1234", "5678")) == "OK"
    assert hypervisor.calls == []


async def test_remove_requires_owner(handler, registry):
    await handler.add("vmA", "1234", "5678")

    with raises(OwnershipError):
        await handler.remove("vmB", "1234", "5678")

    assert KEY in registry


async def test_remove_without_ownership_check(hypervisor):
    context = DaemonContext.create(hypervisor, remove_requires_owner=False)
    handler = ControlPlaneHandler(context, ShutdownCoordinator(context))

    await handler.add("vmA", "1234", "5678")
    assert await handler.remove("vmB", "1234", "5678") == "OK"
    assert KEY not in context.registry


async def test_list(handler, registry):
    assert await handler.handle(ListCommand()) == []

    await handler.add("vmA", "1234", "5678")
    registry.on_device_present(KEY, BusLocation(1, 4))

    (info,) = await handler.handle(ListCommand())
    assert info.key == KEY
    assert info.vm_name == "vmA"
    assert info.state is AttachmentState.ATTACHING
    assert info.bus_location == BusLocation(1, 4)


async def test_quit(handler, shutdown):
    assert not shutdown.requested
    assert await handler.handle(QuitCommand()) == "BYE"
    assert shutdown.requested


async def test_unknown_command(handler):
    with raises(ValidationError):
        await handler.handle("reboot")
