import logging

from pytest import fixture
from trio import open_memory_channel, open_nursery, sleep

from stormcrow.app import StormcrowDaemon
from stormcrow.client import send_request
from stormcrow.hypervisor import DryRunHypervisor
from stormcrow.model import (
    AddCommand,
    AttachmentState,
    BusLocation,
    DeviceEvent,
    DeviceKey,
    QuitCommand,
)

KEY = DeviceKey(0x1234, 0x5678)


class ScriptedDeviceSource:
    """Device plane that forwards the events pushed into it by the test."""

    def __init__(self):
        self._send, self._receive = open_memory_channel(16)

    async def push(self, event: DeviceEvent) -> None:
        await self._send.send(event)

    async def run(self, events) -> None:
        async with events:
            async for event in self._receive:
                await events.send(event)


@fixture
def socket_path(tmp_path):
    return tmp_path / "control.sock"


@fixture
def config_file(tmp_path, socket_path):
    path = tmp_path / "test.cfg"
    path.write_text(
        f"HYPERVISOR = {{'type': 'dry-run', 'timeout': 5}}\n"
        f"CONTROL = {{'socket': {str(socket_path)!r}}}\n"
    )
    return path


@fixture
def app(config_file, monkeypatch, tmp_path) -> StormcrowDaemon:
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("STORMCROW_SETTINGS", raising=False)

    app = StormcrowDaemon()
    app.device_source = ScriptedDeviceSource()
    assert app.prepare(str(config_file)) is None
    return app


async def wait_for(predicate) -> None:
    while not predicate():
        await sleep(0.01)


def test_prepare(app, socket_path):
    assert isinstance(app.context.hypervisor, DryRunHypervisor)
    assert app.context.hypervisor.timeout == 5
    assert app.context.remove_requires_owner
    assert app.control_server.path == socket_path
    assert app.config["EVENT_QUEUE_SIZE"] == 256


def test_prepare_with_missing_config_file(tmp_path):
    app = StormcrowDaemon()
    assert app.prepare(str(tmp_path / "no-such-file.cfg")) == 1


def test_prepare_with_unknown_hypervisor(tmp_path, monkeypatch):
    monkeypatch.delenv("STORMCROW_SETTINGS", raising=False)
    config_file = tmp_path / "bad.cfg"
    config_file.write_text("HYPERVISOR = {'type': 'vmware'}\n")

    app = StormcrowDaemon()
    assert app.prepare(str(config_file)) == 1


def test_prepare_with_invalid_config_value(tmp_path, monkeypatch):
    monkeypatch.delenv("STORMCROW_SETTINGS", raising=False)
    config_file = tmp_path / "bad.cfg"
    config_file.write_text("REMOVE_REQUIRES_OWNER = 'yes'\n")

    app = StormcrowDaemon()
    assert app.prepare(str(config_file)) == 1
    assert app.context is None


async def test_registrations_are_logged(app, caplog):
    caplog.set_level(logging.INFO, logger="stormcrow")
    registry = app.context.registry

    await registry.register(KEY, "vmA")
    await registry.register(KEY, "vmB")
    await registry.unregister(KEY)

    messages = [record.getMessage() for record in caplog.records]
    assert "Registered to 'vmA'" in messages
    assert "Registered to 'vmB'" in messages
    assert "Unregistered from 'vmB'" in messages


async def test_run_until_quit(app, socket_path):
    path = str(socket_path)
    registry = app.context.registry

    async with open_nursery() as nursery:
        nursery.start_soon(app.run)
        await wait_for(socket_path.exists)

        reply = await send_request(path, AddCommand("vmA", "1234", "5678"))
        assert reply == {"result": "OK"}

        await app.device_source.push(DeviceEvent.present(KEY, BusLocation(1, 4)))
        await wait_for(lambda: registry.state_of(KEY) is AttachmentState.ATTACHED)

        reply = await send_request(path, QuitCommand())
        assert reply == {"result": "BYE"}

    assert app.shutdown.finished
    assert len(registry) == 0
    assert not socket_path.exists()
