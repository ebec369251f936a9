from pytest import fixture, importorskip, raises

from stormcrow.errors import HypervisorError
from stormcrow.hypervisor import DryRunHypervisor, HypervisorFactory, create_hypervisor
from stormcrow.model import NO_OP, BusLocation, DeviceKey, DoAttach, DoDetach

KEY = DeviceKey(0x1234, 0x5678)


def test_factory():
    factory = HypervisorFactory()

    @factory.register("dry-run")
    class TestHypervisor(DryRunHypervisor):
        pass

    hypervisor = factory.create({"type": "dry-run", "timeout": 3})
    assert isinstance(hypervisor, TestHypervisor)
    assert hypervisor.timeout == 3

    with raises(HypervisorError, match="Unknown hypervisor type"):
        factory.create({"type": "hyper-v"})


def test_create_hypervisor():
    assert isinstance(create_hypervisor({"type": "dry-run"}), DryRunHypervisor)


async def test_execute(hypervisor):
    assert await hypervisor.execute(NO_OP)
    assert hypervisor.calls == []

    assert await hypervisor.execute(DoAttach("vmA", KEY, BusLocation(1, 4)))
    assert await hypervisor.execute(DoDetach("vmA", KEY))

    (op1, vm1, markup1), (op2, vm2, markup2) = hypervisor.calls
    assert (op1, vm1) == ("attach", "vmA")
    assert (op2, vm2) == ("detach", "vmA")
    assert "<address bus='1' device='4'/>" in markup1
    assert "<address" not in markup2


async def test_execute_failure(hypervisor):
    hypervisor.failures.add("attach")
    assert not await hypervisor.execute(DoAttach("vmA", KEY, BusLocation(1, 4)))


async def test_execute_timeout(hypervisor, autojump_clock):
    hypervisor.delay = 11
    assert not await hypervisor.execute(DoDetach("vmA", KEY))

    hypervisor.timeout = None
    assert await hypervisor.execute(DoDetach("vmA", KEY))


class FakeDomain:
    def __init__(self, libvirt, fail: bool = False):
        self.libvirt = libvirt
        self.fail = fail
        self.calls = []

    def attachDeviceFlags(self, markup, flags):
        self._record("attach", markup, flags)

    def detachDeviceFlags(self, markup, flags):
        self._record("detach", markup, flags)

    def _record(self, operation, markup, flags):
        if self.fail:
            raise self.libvirt.libvirtError("device busy")
        self.calls.append((operation, markup, flags))


class FakeConnection:
    def __init__(self, libvirt, domains):
        self.libvirt = libvirt
        self.domains = domains
        self.closed = False

    def lookupByName(self, name):
        try:
            return self.domains[name]
        except KeyError:
            raise self.libvirt.libvirtError("Domain not found") from None

    def close(self):
        self.closed = True


@fixture
def libvirt():
    return importorskip("libvirt")


async def test_libvirt_hypervisor(libvirt):
    from stormcrow.hypervisor.virt import LibvirtHypervisor

    domain = FakeDomain(libvirt)
    broken = FakeDomain(libvirt, fail=True)
    conn = FakeConnection(libvirt, {"vmA": domain, "vmB": broken})

    hypervisor = create_hypervisor({"type": "libvirt", "uri": "test:///default"})
    assert isinstance(hypervisor, LibvirtHypervisor)
    hypervisor._conn = conn

    await hypervisor.attach("vmA", "<hostdev/>")
    await hypervisor.detach("vmA", "<hostdev/>")
    assert domain.calls == [
        ("attach", "<hostdev/>", libvirt.VIR_DOMAIN_AFFECT_LIVE),
        ("detach", "<hostdev/>", libvirt.VIR_DOMAIN_AFFECT_LIVE),
    ]

    with raises(HypervisorError, match="device busy"):
        await hypervisor.attach("vmB", "<hostdev/>")

    with raises(HypervisorError, match="No such virtual machine"):
        await hypervisor.detach("vmC", "<hostdev/>")

    await hypervisor.aclose()
    assert conn.closed
